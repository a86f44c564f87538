"""Logging configuration for the ftpengine protocol client.

Provides centralized logging with secret redaction so that FTP
passwords never reach a console or a log file, even at DEBUG level
where every control-channel command is traced.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Optional


# Secret patterns to redact from logs
SECRET_PATTERNS = [
    # PASS command lines on the control channel
    (re.compile(r'(\bPASS )(?!\*\*\*\*)\S.*$', re.IGNORECASE | re.MULTILINE), r'\1****'),
    # Password in various key/value formats
    (re.compile(r'(password["\s:=]+)[^\s,}\]]+', re.IGNORECASE), r'\1[REDACTED]'),
    (re.compile(r'(passwd["\s:=]+)[^\s,}\]]+', re.IGNORECASE), r'\1[REDACTED]'),
    # FTP URLs with credentials
    (re.compile(r'ftp://[^:/@\s]+:[^@\s]+@'), 'ftp://[REDACTED]@'),
]


class RedactingFormatter(logging.Formatter):
    """Formatter that masks passwords in log messages."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record, redacting any secrets."""
        message = super().format(record)
        for pattern, replacement in SECRET_PATTERNS:
            message = pattern.sub(replacement, message)
        return message


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True
) -> logging.Logger:
    """
    Configure ftpengine logging with secret redaction.

    Args:
        level: Logging level (default INFO; DEBUG traces the control channel)
        log_file: Optional file path for log output
        console: Whether to output to console (default True)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("ftpengine")
    logger.setLevel(level)

    logger.handlers.clear()

    formatter = RedactingFormatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
