"""Pytest configuration and shared fixtures for ftpengine tests."""

import socket
from typing import Generator, Tuple

import pytest

from ftpengine.ftp.replies import ReplyMessage
from ftpengine.ftp.session import Credentials, SessionConfig


# Test constants
TEST_FTP_HOST = "192.168.1.100"
TEST_FTP_USER = "testuser"
TEST_FTP_PASS = "testpass"


def make_reply(code: int, *lines: str) -> ReplyMessage:
    """Build a ReplyMessage with default text."""
    return ReplyMessage(code=code, lines=list(lines) or ["OK"])


@pytest.fixture
def session_config() -> SessionConfig:
    """Provide a passive-mode session configuration."""
    return SessionConfig(host=TEST_FTP_HOST)


@pytest.fixture
def credentials() -> Credentials:
    """Provide test login credentials."""
    return Credentials(TEST_FTP_USER, TEST_FTP_PASS)


@pytest.fixture
def socket_pair() -> Generator[Tuple[socket.socket, socket.socket], None, None]:
    """Provide a connected (client, server) socket pair, closed afterwards."""
    client, server = socket.socketpair()
    yield client, server
    client.close()
    server.close()


@pytest.fixture
def sample_payload() -> bytes:
    """Binary payload spanning several transfer blocks."""
    return bytes(range(256)) * 100 + b"\r\n\x00tail"
