"""Configuration module for ftpengine.

This module handles client settings and credentials:
- SettingsManager: JSON-based settings persistence
- CredentialManager: Secure credential storage via keyring
- Paths: Settings and log file locations
- ClientSettings: Settings dataclass
"""
