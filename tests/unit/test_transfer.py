"""Unit tests for TransferStream and TransferProgress."""

import io
import threading
from unittest.mock import MagicMock

import pytest

from ftpengine.ftp.control import ControlChannel
from ftpengine.ftp.data_channel import DataChannelDescriptor, DataChannelMode
from ftpengine.ftp.exceptions import (
    FTPTimeoutError,
    TransferCancelledError,
    TransferError,
    TransferFailure,
)
from ftpengine.ftp.transfer import TransferProgress, TransferStream

from tests.conftest import make_reply


@pytest.fixture
def control():
    """Mock control channel."""
    control = MagicMock(spec=ControlChannel)
    control.read_reply.return_value = make_reply(226, "Transfer complete")
    return control


@pytest.fixture
def channel(socket_pair):
    """Data channel wrapping the client end of a socket pair."""
    client, _ = socket_pair
    return DataChannelDescriptor(
        mode=DataChannelMode.PASSIVE,
        remote_address="127.0.0.1",
        remote_port=5000,
        sock=client,
    )


def make_stream(channel, control, **kwargs):
    """Build a stream with short timeouts."""
    kwargs.setdefault("idle_timeout", 0.5)
    return TransferStream(channel, control, "/pub/file.bin", "RETR", **kwargs)


class TestTransferProgress:
    """Tests for TransferProgress dataclass."""

    def test_percent_calculation(self):
        """Test percentage calculation."""
        progress = TransferProgress("/f", bytes_transferred=50, bytes_total=200)
        assert progress.percent == 25.0

    def test_percent_unknown_total(self):
        """Test percentage with unknown size."""
        assert TransferProgress("/f", bytes_transferred=50).percent == 0.0


class TestTransferStream:
    """Tests for TransferStream."""

    def test_reads_until_eof(self, channel, control, socket_pair, sample_payload):
        """Test that all bytes are received until the server closes."""
        _, server = socket_pair
        sender = threading.Thread(target=lambda: (server.sendall(sample_payload), server.close()))
        sender.start()

        stream = make_stream(channel, control)
        received = b"".join(stream.iter_chunks())
        sender.join()

        assert received == sample_payload
        assert stream.bytes_transferred == len(sample_payload)

    def test_reports_progress(self, channel, control, socket_pair):
        """Test progress callback on each block."""
        _, server = socket_pair
        server.sendall(b"x" * 100)
        server.close()
        updates = []

        stream = make_stream(channel, control, on_progress=updates.append, bytes_total=100)
        list(stream.iter_chunks())

        assert updates[-1].bytes_transferred == 100
        assert updates[-1].percent == 100.0
        assert updates[-1].remote_path == "/pub/file.bin"

    def test_idle_timeout(self, channel, control):
        """Test that a stalled peer raises FTPTimeoutError."""
        stream = make_stream(channel, control, idle_timeout=0.1)

        with pytest.raises(FTPTimeoutError):
            list(stream.iter_chunks())

    def test_cancel_between_blocks(self, channel, control, socket_pair):
        """Test that cancellation stops the stream."""
        _, server = socket_pair
        server.sendall(b"partial")
        cancelled = threading.Event()

        stream = make_stream(
            channel, control, cancelled=cancelled, on_progress=lambda p: cancelled.set()
        )
        with pytest.raises(TransferCancelledError):
            list(stream.iter_chunks())

    def test_write_all_bytes(self, channel, control, socket_pair):
        """Test writing bytes then half-closing."""
        _, server = socket_pair
        stream = make_stream(channel, control)

        stream.write_all(b"hello world")
        reply = stream.finish(half_close=True)

        assert reply.code == 226
        assert server.recv(1024) == b"hello world"
        assert server.recv(1024) == b""
        assert channel.sock is None

    def test_write_all_file(self, channel, control, socket_pair):
        """Test writing from a binary file object."""
        _, server = socket_pair
        stream = make_stream(channel, control)

        stream.write_all(io.BytesIO(b"from a file"))
        stream.finish(half_close=True)

        assert server.recv(1024) == b"from a file"

    def test_finish_reads_reply_after_closing(self, channel, control):
        """Test that the data socket is closed before the reply is read."""
        def check_closed():
            assert channel.sock is None
            return make_reply(226, "Transfer complete")

        control.read_reply.side_effect = check_closed
        make_stream(channel, control).finish()

        control.read_reply.assert_called_once()

    def test_finish_failed_transfer(self, channel, control):
        """Test that a non-226/250 completion raises TransferError."""
        control.read_reply.return_value = make_reply(451, "Local error in processing")

        with pytest.raises(TransferError) as exc_info:
            make_stream(channel, control).finish()

        assert exc_info.value.failure == TransferFailure.SERVER_REJECTED
        assert "Local error in processing" in str(exc_info.value)
