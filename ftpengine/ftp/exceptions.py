"""FTP-specific exceptions for the ftpengine protocol client.

Custom exception hierarchy for FTP operations. Every error carries a
human-readable message, the low-level error it wraps (if any) and the
raw server reply that caused it (if any), so failures can be diagnosed
without a packet capture.
"""

from enum import Enum


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    def __init__(self, message: str, original_error: Exception = None, reply=None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.reply = reply

    def __str__(self) -> str:
        text = self.message
        if self.original_error:
            text = f"{text}: {self.original_error}"
        if self.reply is not None:
            text = f"{text} (server replied: {self.reply})"
        return text


class FTPConnectionError(FTPError):
    """Failed to establish, or lost, the control connection."""

    def __init__(
        self,
        host: str,
        port: int,
        original_error: Exception = None,
        message: str = None
    ):
        self.host = host
        self.port = port
        message = message or f"Failed to connect to {host}:{port}"
        super().__init__(message, original_error)


class GreetingError(FTPError):
    """Server did not greet with 220 after the control connection opened."""

    def __init__(self, reply):
        super().__init__("Server did not send a 220 greeting", reply=reply)


class FTPAuthenticationError(FTPError):
    """FTP authentication (login) failed."""

    def __init__(self, username: str, reply=None):
        self.username = username
        message = f"Authentication failed for user '{username}'"
        super().__init__(message, reply=reply)


class MalformedReplyError(FTPError):
    """Control connection delivered bytes that are not a valid FTP reply."""

    def __init__(self, message: str, raw_line: str = None):
        self.raw_line = raw_line
        if raw_line is not None:
            message = f"{message}: {raw_line!r}"
        super().__init__(message)


class PassiveNegotiationError(FTPError):
    """PASV exchange or the resulting data connection failed."""


class ActiveNegotiationError(FTPError):
    """PORT exchange, local listener or server connect-back failed."""


class TransferFailure(Enum):
    """Reason a data transfer was refused or failed."""
    NOT_FOUND = "not_found"
    SERVER_REJECTED = "server_rejected"


class TransferError(FTPError):
    """Failed to move data for RETR, STOR, LIST or NLST."""

    def __init__(
        self,
        remote_path: str,
        operation: str,
        failure: TransferFailure,
        reply=None,
        original_error: Exception = None
    ):
        self.remote_path = remote_path
        self.operation = operation
        self.failure = failure
        if failure == TransferFailure.NOT_FOUND:
            message = f"Cannot {operation} '{remote_path}': not found"
        else:
            message = f"Server rejected {operation} of '{remote_path}'"
        super().__init__(message, original_error, reply)


class DeleteError(FTPError):
    """DELE was refused by the server."""

    def __init__(self, remote_path: str, reply=None):
        self.remote_path = remote_path
        super().__init__(f"Failed to delete '{remote_path}'", reply=reply)

    @property
    def code(self):
        """Reply code that refused the delete, if any."""
        return self.reply.code if self.reply is not None else None


class FTPTimeoutError(FTPError):
    """FTP operation timed out."""

    def __init__(self, operation: str = "Operation", timeout: float = 20.0):
        self.operation = operation
        self.timeout = timeout
        message = f"{operation} timed out after {timeout:g} seconds"
        super().__init__(message)


class FTPNotConnectedError(FTPError):
    """Operation attempted without a logged-in, trusted session."""

    def __init__(self, operation: str = "Operation", phase=None):
        self.phase = phase
        message = f"{operation} requires an active FTP session"
        if phase is not None:
            message = f"{message} (session is {phase.value})"
        super().__init__(message)


class CommandInFlightError(FTPError):
    """A command was issued while the previous one still awaits its reply."""

    def __init__(self, pending: str, attempted: str):
        self.pending = pending
        self.attempted = attempted
        message = f"Cannot send {attempted} while {pending} is awaiting a reply"
        super().__init__(message)


class TransferCancelledError(FTPError):
    """Transfer was cancelled by the caller."""

    def __init__(self, remote_path: str, operation: str):
        self.remote_path = remote_path
        self.operation = operation
        super().__init__(f"{operation} of '{remote_path}' cancelled")
