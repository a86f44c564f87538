"""FTP control channel for the ftpengine protocol client.

Owns the persistent control TCP connection and serializes the strictly
half-duplex command/reply exchange over it.
"""

import logging
import socket
from typing import Optional

from ftpengine.ftp.exceptions import (
    CommandInFlightError,
    FTPConnectionError,
    FTPError,
    FTPTimeoutError,
)
from ftpengine.ftp.replies import ReplyMessage, ReplyParser

logger = logging.getLogger("ftpengine.control")

CRLF = "\r\n"


class ControlChannel:
    """Manages the FTP control connection."""

    def __init__(self, encoding: str = "utf-8"):
        """
        Initialize the control channel.

        Args:
            encoding: Character set for commands and replies
        """
        self.encoding = encoding
        self.host: Optional[str] = None
        self.port: Optional[int] = None
        self.response_timeout: Optional[float] = None
        self._sock: Optional[socket.socket] = None
        self._file = None
        self._parser = ReplyParser(encoding)
        self._pending: Optional[str] = None

    @property
    def is_open(self) -> bool:
        """True while the control socket is open."""
        return self._sock is not None

    @property
    def command_in_flight(self) -> bool:
        """True while a command awaits its reply."""
        return self._pending is not None

    @property
    def sock(self) -> Optional[socket.socket]:
        """Underlying control socket (used to derive data-channel addresses)."""
        return self._sock

    def open(
        self,
        host: str,
        port: int,
        connect_timeout: float,
        response_timeout: float
    ) -> None:
        """
        Establish the control connection.

        Args:
            host: FTP server host
            port: FTP server port
            connect_timeout: Seconds allowed for the TCP handshake
            response_timeout: Seconds allowed for each reply read

        Raises:
            FTPTimeoutError: If the connection times out
            FTPConnectionError: If the connection is refused or fails
        """
        self.host = host
        self.port = port
        self.response_timeout = response_timeout

        logger.debug(f"Connecting to {host}:{port}")
        try:
            sock = socket.create_connection((host, port), timeout=connect_timeout)
        except socket.timeout:
            raise FTPTimeoutError("Connection", connect_timeout)
        except OSError as e:
            raise FTPConnectionError(host, port, e)

        sock.settimeout(response_timeout)
        self._sock = sock
        self._file = sock.makefile("rb")
        self._pending = None

    def send_command(self, verb: str, *args: str) -> None:
        """
        Write one command line.

        Args:
            verb: FTP command verb (e.g. "RETR")
            *args: Command arguments, joined with spaces

        Raises:
            CommandInFlightError: If a previous command awaits its reply
            ValueError: If an argument contains CR or LF
            FTPConnectionError: If the connection is closed or lost
        """
        if self._pending is not None:
            raise CommandInFlightError(self._pending, verb)
        if self._sock is None:
            raise FTPConnectionError(
                self.host, self.port, message="Control connection is closed"
            )

        line = " ".join((verb,) + args)
        if "\r" in line or "\n" in line:
            raise ValueError(f"Illegal newline character in {verb} command")

        logger.debug(f"> {_mask(verb, line)}")
        try:
            self._sock.sendall((line + CRLF).encode(self.encoding))
        except socket.timeout:
            raise FTPTimeoutError(f"Sending {verb}", self.response_timeout)
        except OSError as e:
            raise FTPConnectionError(
                self.host, self.port, e, message="Control connection lost"
            )
        self._pending = verb

    def read_reply(self) -> ReplyMessage:
        """
        Read the next complete reply.

        Returns:
            Parsed ReplyMessage

        Raises:
            FTPTimeoutError: If no complete reply arrives in time
            MalformedReplyError: If the reply is malformed or truncated
            FTPConnectionError: If the connection is closed or lost
        """
        if self._file is None:
            raise FTPConnectionError(
                self.host, self.port, message="Control connection is closed"
            )

        operation = f"Reply to {self._pending}" if self._pending else "Reply"
        try:
            reply = self._parser.read_reply(self._file.readline)
        except socket.timeout:
            raise FTPTimeoutError(operation, self.response_timeout)
        except OSError as e:
            raise FTPConnectionError(
                self.host, self.port, e, message="Control connection lost"
            )
        finally:
            self._pending = None

        for line in reply.lines:
            logger.debug(f"< {reply.code} {line}")
        return reply

    def execute(self, verb: str, *args: str) -> ReplyMessage:
        """
        Send a command and read its reply.

        Returns:
            The command's ReplyMessage
        """
        self.send_command(verb, *args)
        return self.read_reply()

    def close(self, send_quit: bool = True) -> None:
        """
        Send QUIT (best effort) and close the connection.

        Safe to call repeatedly.

        Args:
            send_quit: Whether to say goodbye before closing
        """
        if self._sock is None:
            return

        if send_quit:
            self._pending = None
            try:
                self.execute("QUIT")
            except (FTPError, OSError, ValueError) as e:
                logger.debug(f"QUIT failed during close: {e}")

        try:
            self._file.close()
        finally:
            self._sock.close()
            self._file = None
            self._sock = None
            self._pending = None


def _mask(verb: str, line: str) -> str:
    """Hide the argument of PASS commands."""
    if verb.upper() == "PASS":
        return "PASS ****"
    return line
