"""Secure credential storage for the ftpengine protocol client.

FTP passwords are kept in the system keyring (Windows Credential
Manager, macOS Keychain, Linux Secret Service), one entry per server
account, and never in the JSON settings file.
"""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError

from ftpengine.ftp.session import Credentials

logger = logging.getLogger("ftpengine.credentials")


class CredentialManager:
    """Passwords for FTP accounts, stored in the system keyring."""

    SERVICE_NAME = "ftpengine"

    def __init__(self, service_name: str = SERVICE_NAME):
        """
        Initialize the credential manager.

        Args:
            service_name: Keyring service the entries are filed under
        """
        self._service_name = service_name

    @staticmethod
    def account_key(host: str, username: str, port: int = 21) -> str:
        """
        Keyring entry name for one server account.

        Example:
            account_key("ftp.example.com", "alice", 2121)
            Returns: "alice@ftp.example.com:2121"
        """
        return f"{username}@{host}:{port}"

    def save_password(self, host: str, username: str, password: str, port: int = 21) -> bool:
        """
        Store the password of an FTP account.

        Returns:
            True if the keyring accepted it
        """
        key = self.account_key(host, username, port)
        try:
            keyring.set_password(self._service_name, key, password)
        except KeyringError as e:
            logger.warning(f"Cannot store password for {key}: {e}")
            return False
        return True

    def get_password(self, host: str, username: str, port: int = 21) -> Optional[str]:
        """Stored password of an FTP account, or None."""
        key = self.account_key(host, username, port)
        try:
            return keyring.get_password(self._service_name, key)
        except KeyringError as e:
            logger.warning(f"Cannot read password for {key}: {e}")
            return None

    def delete_password(self, host: str, username: str, port: int = 21) -> bool:
        """
        Forget the password of an FTP account.

        Returns:
            False if nothing was stored or the keyring refused
        """
        key = self.account_key(host, username, port)
        try:
            keyring.delete_password(self._service_name, key)
        except KeyringError as e:
            logger.debug(f"No password removed for {key}: {e}")
            return False
        return True

    def has_password(self, host: str, username: str, port: int = 21) -> bool:
        """True if a password is stored for the account."""
        return self.get_password(host, username, port) is not None

    def credentials_for(self, host: str, username: str, port: int = 21) -> Credentials:
        """
        Login credentials for an account.

        Anonymous accounts and accounts without a stored password get an
        empty password, which servers asking for one will refuse at login.
        """
        if username == "anonymous":
            return Credentials(username, "")
        return Credentials(username, self.get_password(host, username, port) or "")
