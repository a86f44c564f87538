"""FTP session state machine for the ftpengine protocol client.

Provides SessionPhase enum, Credentials and SessionConfig dataclasses,
and FtpSession, which drives login, transfer mode and the
RETR/STOR/LIST/NLST/DELE operations over a ControlChannel and a fresh
data channel per transfer.
"""

import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Callable, List, Optional, Union

from ftpengine.ftp.control import ControlChannel
from ftpengine.ftp.data_channel import DataChannelMode, DataChannelNegotiator
from ftpengine.ftp.exceptions import (
    CommandInFlightError,
    DeleteError,
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPNotConnectedError,
    FTPTimeoutError,
    GreetingError,
    MalformedReplyError,
    TransferCancelledError,
    TransferError,
    TransferFailure,
)
from ftpengine.ftp.replies import ReplyMessage
from ftpengine.ftp.transfer import ProgressCallback, TransferStream
from ftpengine.utils.validators import (
    validate_host,
    validate_port,
    validate_remote_path,
    validate_timeout_millis,
)

logger = logging.getLogger("ftpengine.session")

LINE_BREAK = re.compile(r"\r\n|\n|\r")

# Errors after which the control channel can no longer be trusted
DESYNC_ERRORS = (FTPTimeoutError, MalformedReplyError, FTPConnectionError)

# Preliminary replies that open a data transfer
TRANSFER_START_CODES = (125, 150)


class SessionPhase(Enum):
    """FTP session phase."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    TRANSFERRING = "transferring"
    ERROR = "error"


@dataclass(frozen=True)
class Credentials:
    """FTP login credentials."""
    username: str = "anonymous"
    password: str = field(default="", repr=False)


@dataclass(frozen=True)
class SessionConfig:
    """FTP session configuration."""
    host: str
    port: int = 21
    timeout_millis: int = 20000
    use_passive: bool = True
    use_binary: bool = True
    connect_timeout_millis: Optional[int] = None
    response_timeout_millis: Optional[int] = None
    transfer_timeout_millis: Optional[int] = None
    trust_pasv_address: bool = False
    encoding: str = "utf-8"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.host:
            raise ValueError("Host is required")
        is_valid, error = validate_host(self.host)
        if not is_valid:
            raise ValueError(error)
        is_valid, error = validate_port(self.port)
        if not is_valid:
            raise ValueError(error)
        for name in (
            "timeout_millis",
            "connect_timeout_millis",
            "response_timeout_millis",
            "transfer_timeout_millis",
        ):
            value = getattr(self, name)
            if value is None and name != "timeout_millis":
                continue
            is_valid, error = validate_timeout_millis(value)
            if not is_valid:
                raise ValueError(f"{name}: {error}")

    @property
    def connect_timeout(self) -> float:
        """Seconds allowed for the control TCP handshake."""
        return (self.connect_timeout_millis or self.timeout_millis) / 1000.0

    @property
    def response_timeout(self) -> float:
        """Seconds allowed for each control reply."""
        return (self.response_timeout_millis or self.timeout_millis) / 1000.0

    @property
    def transfer_timeout(self) -> float:
        """Seconds a data connection may take to open or stay idle."""
        return (self.transfer_timeout_millis or self.timeout_millis) / 1000.0

    @property
    def data_mode(self) -> DataChannelMode:
        """Data channel mode used for every transfer of the session."""
        return DataChannelMode.PASSIVE if self.use_passive else DataChannelMode.ACTIVE


class FtpSession:
    """
    One FTP control connection and its login.

    Not safe for concurrent use: callers sharing a session must
    serialize operations themselves, or use one session per thread.

    Usage:
        config = SessionConfig(host="ftp.example.com")
        with FtpSession(config, Credentials("user", "secret")) as session:
            session.connect()
            session.login()
            data = session.download("/pub/readme.txt")
    """

    def __init__(self, config: SessionConfig, credentials: Optional[Credentials] = None):
        """
        Initialize the session.

        Args:
            config: Validated session configuration
            credentials: Login credentials (anonymous if omitted)
        """
        self._config = config
        self._credentials = credentials or Credentials()
        self._control = ControlChannel(config.encoding)
        self._phase = SessionPhase.DISCONNECTED
        self._binary: Optional[bool] = None
        self._awaiting_completion = False
        self._cancelled = threading.Event()
        self.welcome: Optional[ReplyMessage] = None

    @property
    def phase(self) -> SessionPhase:
        """Current session phase."""
        return self._phase

    @property
    def config(self) -> SessionConfig:
        """Session configuration."""
        return self._config

    @property
    def is_ready(self) -> bool:
        """True if logged in and able to transfer."""
        return self._phase == SessionPhase.READY

    @property
    def is_cancelled(self) -> bool:
        """True if cancellation was requested."""
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Request cancellation of the current or next transfer."""
        self._cancelled.set()

    def reset_cancel(self) -> None:
        """Reset cancellation flag for new operation."""
        self._cancelled.clear()

    def connect(self) -> ReplyMessage:
        """
        Open the control connection and read the greeting.

        Returns:
            The server's 220 greeting

        Raises:
            FTPConnectionError: If the connection fails
            FTPTimeoutError: If the connection or greeting times out
            GreetingError: If the server does not greet with 220
        """
        if self._phase not in (SessionPhase.DISCONNECTED, SessionPhase.ERROR):
            raise FTPError(f"Session is already {self._phase.value}")

        self._control.close(send_quit=False)
        self._binary = None
        self._awaiting_completion = False
        config = self._config

        logger.info(f"Connecting to {config.host}:{config.port}")
        try:
            self._control.open(
                config.host,
                config.port,
                config.connect_timeout,
                config.response_timeout,
            )
            reply = self._control.read_reply()
            if reply.code == 120:
                reply = self._control.read_reply()
            if reply.code != 220:
                raise GreetingError(reply)
        except BaseException as e:
            logger.warning(f"Connection to {config.host}:{config.port} failed: {e}")
            self._control.close(send_quit=False)
            self._phase = SessionPhase.ERROR
            raise

        self.welcome = reply
        self._phase = SessionPhase.CONNECTED
        return reply

    def login(self, credentials: Optional[Credentials] = None) -> ReplyMessage:
        """
        Authenticate with USER and, when asked for one, PASS.

        Args:
            credentials: Overrides the credentials given at construction

        Returns:
            The 230 reply

        Raises:
            FTPAuthenticationError: If the server refuses the login
        """
        if self._phase != SessionPhase.CONNECTED:
            raise FTPNotConnectedError("Login", self._phase)

        credentials = credentials or self._credentials
        with self._guard(SessionPhase.CONNECTED):
            reply = self._control.execute("USER", credentials.username)
            if reply.code == 331:
                reply = self._control.execute("PASS", credentials.password)
            if reply.code != 230:
                raise FTPAuthenticationError(credentials.username, reply)

        self._phase = SessionPhase.AUTHENTICATED
        logger.info(f"Logged in as {credentials.username}")
        self._phase = SessionPhase.READY
        return reply

    def set_transfer_mode(self, binary: bool) -> None:
        """
        Select image (TYPE I) or ASCII (TYPE A) representation.

        The mode is cached; TYPE is only sent when it changes.

        Args:
            binary: True for TYPE I, False for TYPE A
        """
        self._require_ready("TYPE")
        if self._binary == binary:
            return

        type_code = "I" if binary else "A"
        with self._guard(SessionPhase.READY):
            reply = self._control.execute("TYPE", type_code)
            if reply.code != 200:
                raise FTPError(f"TYPE {type_code} refused", reply=reply)
        self._binary = binary

    def noop(self) -> ReplyMessage:
        """Send NOOP to check the control connection is alive."""
        self._require_ready("NOOP")
        with self._guard(SessionPhase.READY):
            reply = self._control.execute("NOOP")
            if reply.code != 200:
                raise FTPError("NOOP refused", reply=reply)
        return reply

    def download(
        self,
        remote_path: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> bytes:
        """
        Retrieve a remote file into memory.

        Args:
            remote_path: Remote file path
            on_progress: Optional callback for progress updates

        Returns:
            File contents

        Raises:
            TransferError: If the file is missing or the transfer fails
        """
        chunks: List[bytes] = []
        self.download_into(remote_path, chunks.append, on_progress)
        return b"".join(chunks)

    def download_into(
        self,
        remote_path: str,
        write: Callable[[bytes], object],
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """
        Retrieve a remote file, handing each received block to write.

        Args:
            remote_path: Remote file path
            write: Called with every block, in order
            on_progress: Optional callback for progress updates

        Returns:
            Number of bytes received
        """
        _check_path(remote_path)

        def receive(stream: TransferStream) -> None:
            for block in stream.iter_chunks():
                write(block)

        stream = self._transfer("RETR", remote_path, receive, on_progress=on_progress)
        return stream.bytes_transferred

    def upload(
        self,
        remote_path: str,
        data: Union[bytes, BinaryIO],
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """
        Store bytes, or the contents of a binary file, at a remote path.

        Args:
            remote_path: Remote file path
            data: Bytes or a binary file object opened for reading
            on_progress: Optional callback for progress updates

        Returns:
            Number of bytes sent

        Raises:
            TransferError: If the server refuses or fails the upload
        """
        _check_path(remote_path)
        total = len(data) if isinstance(data, (bytes, bytearray)) else None

        stream = self._transfer(
            "STOR",
            remote_path,
            lambda s: s.write_all(data),
            half_close=True,
            on_progress=on_progress,
            bytes_total=total,
        )
        return stream.bytes_transferred

    def list_files(self, remote_path: str = "", detailed: bool = False) -> List[str]:
        """
        List a remote directory.

        Args:
            remote_path: Directory (or file) to list; empty for the
                server's working directory
            detailed: Use LIST (server-formatted lines) instead of NLST

        Returns:
            Entries in the order the server sent them
        """
        if remote_path:
            _check_path(remote_path)
        verb = "LIST" if detailed else "NLST"
        chunks: List[bytes] = []

        def receive(stream: TransferStream) -> None:
            for block in stream.iter_chunks():
                chunks.append(block)

        self._transfer(verb, remote_path, receive)

        text = b"".join(chunks).decode(self._config.encoding, errors="replace")
        entries = LINE_BREAK.split(text)
        if entries and entries[-1] == "":
            entries.pop()
        return entries

    def delete_file(self, remote_path: str) -> None:
        """
        Delete a remote file with DELE.

        Raises:
            DeleteError: If the server refuses (550 for a missing file)
        """
        _check_path(remote_path)
        self._require_ready("DELE")

        with self._guard(SessionPhase.READY):
            reply = self._control.execute("DELE", remote_path)
            if not reply.is_success:
                raise DeleteError(remote_path, reply)
        logger.info(f"Deleted {remote_path}")

    def disconnect(self) -> None:
        """Close the control connection. Safe from any phase."""
        trusted = self._phase in (
            SessionPhase.CONNECTED,
            SessionPhase.AUTHENTICATED,
            SessionPhase.READY,
        )
        self._control.close(send_quit=trusted)
        self._phase = SessionPhase.DISCONNECTED
        self._binary = None
        self._awaiting_completion = False

    def _transfer(
        self,
        verb: str,
        remote_path: str,
        handle: Callable[[TransferStream], None],
        half_close: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        bytes_total: Optional[int] = None
    ) -> TransferStream:
        """Run one data-channel operation from negotiation to completion reply."""
        self._require_ready(verb)
        if self._binary is None:
            self.set_transfer_mode(self._config.use_binary)
        if self._cancelled.is_set():
            raise TransferCancelledError(remote_path, verb)

        config = self._config
        self._phase = SessionPhase.TRANSFERRING
        with self._guard(SessionPhase.READY):
            negotiator = DataChannelNegotiator(
                self._control,
                config.transfer_timeout,
                config.trust_pasv_address,
            )
            with negotiator.negotiate(config.data_mode) as channel:
                if self._cancelled.is_set():
                    raise TransferCancelledError(remote_path, verb)

                args = (remote_path,) if remote_path else ()
                reply = self._control.execute(verb, *args)
                if reply.code not in TRANSFER_START_CODES:
                    if reply.is_preliminary:
                        # Another reply will follow that nobody reads
                        self._awaiting_completion = True
                    raise _transfer_failure(verb, remote_path, reply)

                self._awaiting_completion = True
                channel.establish()
                stream = TransferStream(
                    channel,
                    self._control,
                    remote_path,
                    verb,
                    config.transfer_timeout,
                    cancelled=self._cancelled,
                    on_progress=on_progress,
                    bytes_total=bytes_total,
                )
                handle(stream)
                # From here a failure either carries a complete reply or is a desync error
                self._awaiting_completion = False
                stream.finish(half_close=half_close)

        self._phase = SessionPhase.READY
        logger.info(f"{verb} {remote_path or '.'} complete ({stream.bytes_transferred} bytes)")
        return stream

    def _require_ready(self, operation: str) -> None:
        if self._phase != SessionPhase.READY:
            raise FTPNotConnectedError(operation, self._phase)

    @contextmanager
    def _guard(self, phase_on_rejection: SessionPhase):
        """
        Classify failures of one exchange.

        A failure that leaves the control channel out of step (timeout,
        malformed or lost reply, unread completion reply) closes the
        channel and moves the session to ERROR. A clean rejection reply
        leaves the channel usable and restores phase_on_rejection. So does
        CommandInFlightError, since another caller's exchange still owns
        the channel.
        """
        try:
            yield
        except CommandInFlightError:
            self._phase = phase_on_rejection
            raise
        except BaseException as e:
            if (
                isinstance(e, DESYNC_ERRORS)
                or self._awaiting_completion
                or self._control.command_in_flight
            ):
                logger.warning(f"Session abandoned after error: {e}")
                self._control.close(send_quit=False)
                self._phase = SessionPhase.ERROR
                self._binary = None
                self._awaiting_completion = False
            else:
                self._phase = phase_on_rejection
            raise

    def __enter__(self) -> "FtpSession":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.disconnect()


def _check_path(remote_path: str) -> None:
    is_valid, error = validate_remote_path(remote_path)
    if not is_valid:
        raise ValueError(error)


def _transfer_failure(verb: str, remote_path: str, reply: ReplyMessage) -> TransferError:
    """Map a refused transfer verb to a TransferError."""
    if reply.code == 550:
        failure = TransferFailure.NOT_FOUND
    else:
        failure = TransferFailure.SERVER_REJECTED
    return TransferError(remote_path, verb, failure, reply=reply)
