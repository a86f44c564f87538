"""High-level FTP client for the ftpengine protocol client.

FtpClient wraps one FtpSession behind the small connect-on-demand API
applications use: download, upload, list, delete, plus helpers that
move data between remote paths and local files.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from ftpengine.config.credentials import CredentialManager
from ftpengine.config.settings import ClientSettings
from ftpengine.ftp.exceptions import FTPNotConnectedError
from ftpengine.ftp.session import Credentials, FtpSession, SessionConfig, SessionPhase
from ftpengine.ftp.transfer import ProgressCallback

logger = logging.getLogger("ftpengine.client")


class FtpClient:
    """
    FTP client bound to one server account.

    Usage:
        with FtpClient("ftp.example.com", "user", "secret", 21) as ftp:
            ftp.download_file("/synchro/incoming/sample.txt", "sample.txt")
            for name in ftp.list_files("/synchro/outgoing"):
                print(name)
    """

    def __init__(
        self,
        host_address: str,
        username: str,
        password: str,
        port: int = 21,
        timeout: int = 20000,
        use_passive: bool = True,
        **options
    ):
        """
        Initialize the client. No connection is made until first use.

        Args:
            host_address: FTP server host
            username: FTP username
            password: FTP password
            port: FTP server port
            timeout: Milliseconds to wait for connects, replies and data
            use_passive: PASV (True) or PORT (False) for every transfer
            **options: Further SessionConfig fields (use_binary, encoding, ...)
        """
        config = SessionConfig(
            host=host_address,
            port=port,
            timeout_millis=timeout,
            use_passive=use_passive,
            **options
        )
        self._session = FtpSession(config, Credentials(username, password))

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        password: Optional[str] = None,
        credentials: Optional[CredentialManager] = None
    ) -> "FtpClient":
        """
        Build a client from persisted settings.

        Args:
            settings: Saved connection defaults
            password: Password; looked up in the keyring when omitted
            credentials: Credential store (system keyring by default)
        """
        config = settings.to_session_config()
        if password is None:
            credentials = credentials or CredentialManager()
            password = credentials.credentials_for(
                config.host, settings.last_username, config.port
            ).password

        return cls(
            config.host,
            settings.last_username,
            password,
            port=config.port,
            timeout=config.timeout_millis,
            use_passive=config.use_passive,
            use_binary=config.use_binary,
            trust_pasv_address=config.trust_pasv_address,
            encoding=config.encoding,
        )

    @property
    def session(self) -> FtpSession:
        """Underlying protocol session."""
        return self._session

    def _ready_session(self) -> FtpSession:
        """Connect and log in on first use."""
        session = self._session
        if session.phase == SessionPhase.DISCONNECTED:
            session.connect()
            session.login()
        elif session.phase == SessionPhase.ERROR:
            raise FTPNotConnectedError("Operation", session.phase)
        return session

    def download(self, ftp_path: str, on_progress: Optional[ProgressCallback] = None) -> bytes:
        """Download a remote file into memory."""
        return self._ready_session().download(ftp_path, on_progress)

    def upload(
        self,
        ftp_path: str,
        data: bytes,
        on_progress: Optional[ProgressCallback] = None
    ) -> None:
        """Upload bytes to a remote file."""
        self._ready_session().upload(ftp_path, data, on_progress)

    def list_files(self, ftp_path: str = "") -> List[str]:
        """Names in a remote directory, in server order."""
        return self._ready_session().list_files(ftp_path)

    def get_files(self, ftp_path: str = "") -> List[str]:
        """Alias of list_files."""
        return self.list_files(ftp_path)

    def delete_file(self, ftp_path: str) -> None:
        """Delete a remote file."""
        self._ready_session().delete_file(ftp_path)

    def download_file(
        self,
        ftp_path: str,
        file_path: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """
        Download a remote file to a local path.

        The local file is written as blocks arrive; after a failed
        transfer its contents are incomplete.

        Returns:
            Number of bytes written
        """
        session = self._ready_session()
        file_path = Path(file_path)
        with open(file_path, "wb") as f:
            count = session.download_into(ftp_path, f.write, on_progress)
        logger.info(f"Downloaded {ftp_path} to {file_path}")
        return count

    def upload_file(
        self,
        ftp_path: str,
        file_path: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """
        Upload a local file to a remote path.

        Returns:
            Number of bytes sent
        """
        session = self._ready_session()
        file_path = Path(file_path)
        with open(file_path, "rb") as f:
            count = session.upload(ftp_path, f, on_progress)
        logger.info(f"Uploaded {file_path} to {ftp_path}")
        return count

    def reconnect(self) -> None:
        """Drop the current connection and log in again."""
        self._session.disconnect()
        self._ready_session()

    def close(self) -> None:
        """Disconnect. Safe to call repeatedly."""
        self._session.disconnect()

    def __enter__(self) -> "FtpClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
