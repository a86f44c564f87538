"""Transfer stream for the ftpengine protocol client.

Adapts a connected data socket into chunked reads/writes and ties the
end of the payload to the completion reply on the control channel.
"""

import logging
import socket
import threading
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from ftpengine.ftp.control import ControlChannel
from ftpengine.ftp.data_channel import DataChannelDescriptor
from ftpengine.ftp.exceptions import (
    FTPTimeoutError,
    TransferCancelledError,
    TransferError,
    TransferFailure,
)
from ftpengine.ftp.replies import ReplyMessage

logger = logging.getLogger("ftpengine.transfer")

# Codes that confirm a finished data transfer
COMPLETION_CODES = (226, 250)


@dataclass
class TransferProgress:
    """Progress information for a transfer."""
    remote_path: str
    bytes_transferred: int
    bytes_total: Optional[int] = None

    @property
    def percent(self) -> float:
        """Transfer progress as percentage (0-100), 0 when size is unknown."""
        if not self.bytes_total:
            return 0.0
        return (self.bytes_transferred / self.bytes_total) * 100.0


# Type alias for progress callback
ProgressCallback = Callable[[TransferProgress], None]


class TransferStream:
    """Byte stream over one data connection, finished by a control reply."""

    # Block size for data transfers (8KB)
    BLOCK_SIZE = 8192

    def __init__(
        self,
        channel: DataChannelDescriptor,
        control: ControlChannel,
        remote_path: str,
        operation: str,
        idle_timeout: float,
        cancelled: Optional[threading.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
        bytes_total: Optional[int] = None
    ):
        """
        Initialize the stream.

        Args:
            channel: Negotiated data channel, already established
            control: Control channel that will carry the completion reply
            remote_path: Remote path being transferred (for errors/progress)
            operation: Verb being served (RETR, STOR, LIST, NLST)
            idle_timeout: Seconds a read or write may stall
            cancelled: Event checked between blocks
            on_progress: Optional callback for progress updates
            bytes_total: Expected size, if known
        """
        self._channel = channel
        self._control = control
        self._remote_path = remote_path
        self._operation = operation
        self._idle_timeout = idle_timeout
        self._cancelled = cancelled or threading.Event()
        self._on_progress = on_progress
        self._bytes_total = bytes_total
        self.bytes_transferred = 0

        channel.sock.settimeout(idle_timeout)

    def iter_chunks(self) -> Iterator[bytes]:
        """
        Yield received blocks until the server closes the connection.

        Raises:
            FTPTimeoutError: If the peer stalls longer than the idle timeout
            TransferCancelledError: If cancellation is requested
        """
        sock = self._channel.sock
        while True:
            self._check_cancelled()
            try:
                block = sock.recv(self.BLOCK_SIZE)
            except socket.timeout:
                raise FTPTimeoutError(f"{self._operation} data", self._idle_timeout)
            except OSError as e:
                raise TransferError(
                    self._remote_path,
                    self._operation,
                    TransferFailure.SERVER_REJECTED,
                    original_error=e,
                )
            if not block:
                return
            self._advance(len(block))
            yield block

    def write_all(self, source) -> None:
        """
        Send everything from a bytes object or a binary file.

        Raises:
            FTPTimeoutError: If the peer stops accepting data
            TransferCancelledError: If cancellation is requested
        """
        sock = self._channel.sock
        for block in _blocks(source, self.BLOCK_SIZE):
            self._check_cancelled()
            try:
                sock.sendall(block)
            except socket.timeout:
                raise FTPTimeoutError(f"{self._operation} data", self._idle_timeout)
            except OSError as e:
                raise TransferError(
                    self._remote_path,
                    self._operation,
                    TransferFailure.SERVER_REJECTED,
                    original_error=e,
                )
            self._advance(len(block))

    def finish(self, half_close: bool = False) -> ReplyMessage:
        """
        Close the data connection, then read and check the completion reply.

        Args:
            half_close: Shut down the write side first so the server sees EOF

        Returns:
            The 226/250 completion reply

        Raises:
            TransferError: If the server reports a failed transfer
        """
        if half_close and self._channel.sock is not None:
            try:
                self._channel.sock.shutdown(socket.SHUT_WR)
            except OSError as e:
                logger.debug(f"Data socket shutdown failed: {e}")
        self._channel.close()

        reply = self._control.read_reply()
        if reply.code not in COMPLETION_CODES:
            raise TransferError(
                self._remote_path,
                self._operation,
                TransferFailure.SERVER_REJECTED,
                reply=reply,
            )
        logger.debug(
            f"{self._operation} {self._remote_path}: {self.bytes_transferred} bytes"
        )
        return reply

    def _check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise TransferCancelledError(self._remote_path, self._operation)

    def _advance(self, count: int) -> None:
        self.bytes_transferred += count
        if self._on_progress:
            self._on_progress(TransferProgress(
                remote_path=self._remote_path,
                bytes_transferred=self.bytes_transferred,
                bytes_total=self._bytes_total,
            ))


def _blocks(source, block_size: int) -> Iterator[bytes]:
    """Split bytes, or read a binary file, into blocks."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        view = memoryview(source)
        for start in range(0, len(view), block_size):
            yield view[start:start + block_size]
        return
    while True:
        block = source.read(block_size)
        if not block:
            return
        yield block
