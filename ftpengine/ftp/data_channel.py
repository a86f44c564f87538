"""Data channel negotiation for the ftpengine protocol client.

Implements the PASV and PORT exchanges that set up the secondary TCP
connection FTP uses for payload transfer.
"""

import logging
import re
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ftpengine.ftp.control import ControlChannel
from ftpengine.ftp.exceptions import (
    ActiveNegotiationError,
    FTPTimeoutError,
    PassiveNegotiationError,
)
from ftpengine.ftp.replies import ReplyMessage

logger = logging.getLogger("ftpengine.data_channel")

PASV_TUPLE = re.compile(r"(\d+),(\d+),(\d+),(\d+),(\d+),(\d+)")


class DataChannelMode(Enum):
    """Which side opens the data connection."""
    PASSIVE = "passive"
    ACTIVE = "active"


def parse_pasv_reply(reply: ReplyMessage) -> Tuple[str, int]:
    """
    Extract host and port from a PASV reply.

    Args:
        reply: Reply to a PASV command

    Returns:
        Tuple of (host, port)

    Raises:
        PassiveNegotiationError: If the reply is not a well-formed 227

    Example:
        "227 Entering Passive Mode (127,0,0,1,19,136)"
        Returns: ("127.0.0.1", 5000)  # 19*256 + 136
    """
    if reply.code != 227:
        raise PassiveNegotiationError("PASV refused", reply=reply)

    match = PASV_TUPLE.search(reply.text)
    if not match:
        raise PassiveNegotiationError("PASV reply has no address tuple", reply=reply)

    numbers = [int(n) for n in match.groups()]
    if any(n > 255 for n in numbers):
        raise PassiveNegotiationError("PASV reply has an out-of-range value", reply=reply)

    host = ".".join(str(n) for n in numbers[:4])
    port = numbers[4] * 256 + numbers[5]
    return host, port


def format_port_argument(host: str, port: int) -> str:
    """
    Format the argument of a PORT command.

    Args:
        host: IPv4 address (e.g. "192.168.1.1")
        port: Port number

    Returns:
        Argument string (e.g. "192,168,1,1,234,56")
    """
    octets = host.split(".")
    if len(octets) != 4:
        raise ValueError(f"PORT needs an IPv4 address, got {host}")
    return ",".join(octets + [str(port // 256), str(port % 256)])


@dataclass
class DataChannelDescriptor:
    """One negotiated data connection. Single use."""
    mode: DataChannelMode
    remote_address: str
    remote_port: int
    sock: Optional[socket.socket] = None
    listener: Optional[socket.socket] = None
    accept_timeout: Optional[float] = None

    @property
    def is_connected(self) -> bool:
        """True once the data socket is connected."""
        return self.sock is not None

    def establish(self) -> socket.socket:
        """
        Return the connected data socket, accepting it in active mode.

        Must be called after the transfer verb's preliminary reply,
        since an active-mode server only dials back once it has the verb.

        Raises:
            ActiveNegotiationError: If the server never connects back
        """
        if self.sock is not None:
            return self.sock

        try:
            conn, addr = self.listener.accept()
        except socket.timeout as e:
            raise ActiveNegotiationError(
                f"Server did not connect back within {self.accept_timeout:g} seconds", e
            )
        except OSError as e:
            raise ActiveNegotiationError("Accepting the data connection failed", e)
        finally:
            self.listener.close()
            self.listener = None

        conn.settimeout(self.accept_timeout)
        self.sock = conn
        self.remote_address, self.remote_port = addr[0], addr[1]
        logger.debug(f"Accepted data connection from {addr[0]}:{addr[1]}")
        return conn

    def close(self) -> None:
        """Close the data socket and any pending listener."""
        if self.sock is not None:
            try:
                self.sock.close()
            finally:
                self.sock = None
        if self.listener is not None:
            try:
                self.listener.close()
            finally:
                self.listener = None

    def __enter__(self) -> "DataChannelDescriptor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class DataChannelNegotiator:
    """Establishes the data connection for one transfer."""

    def __init__(
        self,
        control: ControlChannel,
        transfer_timeout: float,
        trust_pasv_address: bool = False
    ):
        """
        Initialize the negotiator.

        Args:
            control: Open control channel of the session
            transfer_timeout: Seconds allowed for data connect/accept and idle reads
            trust_pasv_address: Dial the address advertised in PASV replies
                instead of the control connection's peer address
        """
        self._control = control
        self._transfer_timeout = transfer_timeout
        self._trust_pasv_address = trust_pasv_address

    def negotiate(self, mode: DataChannelMode) -> DataChannelDescriptor:
        """Set up a data path in the given mode."""
        if mode == DataChannelMode.PASSIVE:
            return self.open_passive()
        return self.open_active()

    def open_passive(self) -> DataChannelDescriptor:
        """
        Send PASV and connect to the advertised endpoint.

        Returns:
            Connected DataChannelDescriptor

        Raises:
            PassiveNegotiationError: If PASV fails or the endpoint is unreachable
        """
        reply = self._control.execute("PASV")
        host, port = parse_pasv_reply(reply)

        if not self._trust_pasv_address:
            peer_host = self._control.sock.getpeername()[0]
            if peer_host != host:
                logger.debug(f"Ignoring PASV address {host}, using {peer_host}")
                host = peer_host

        try:
            sock = socket.create_connection((host, port), timeout=self._transfer_timeout)
        except socket.timeout:
            raise FTPTimeoutError("Data connection", self._transfer_timeout)
        except OSError as e:
            raise PassiveNegotiationError(
                f"Cannot open data connection to {host}:{port}", e, reply
            )

        logger.debug(f"Passive data connection to {host}:{port}")
        return DataChannelDescriptor(
            mode=DataChannelMode.PASSIVE,
            remote_address=host,
            remote_port=port,
            sock=sock,
            accept_timeout=self._transfer_timeout,
        )

    def open_active(self) -> DataChannelDescriptor:
        """
        Listen locally and announce the endpoint with PORT.

        Returns:
            DataChannelDescriptor awaiting the server's connection

        Raises:
            ActiveNegotiationError: If binding fails or PORT is refused
        """
        local_host = self._control.sock.getsockname()[0]
        try:
            listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise ActiveNegotiationError("Cannot create data listener", e)

        try:
            listener.bind((local_host, 0))
            listener.listen(1)
            listener.settimeout(self._transfer_timeout)
            host, port = listener.getsockname()[:2]
            argument = format_port_argument(host, port)
        except (OSError, ValueError) as e:
            listener.close()
            raise ActiveNegotiationError(f"Cannot listen on {local_host}", e)

        try:
            reply = self._control.execute("PORT", argument)
        except BaseException:
            listener.close()
            raise

        if reply.code != 200:
            listener.close()
            raise ActiveNegotiationError("PORT refused", reply=reply)

        logger.debug(f"Active data listener on {host}:{port}")
        return DataChannelDescriptor(
            mode=DataChannelMode.ACTIVE,
            remote_address=host,
            remote_port=port,
            listener=listener,
            accept_timeout=self._transfer_timeout,
        )
