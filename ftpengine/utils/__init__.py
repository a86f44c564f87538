"""Utility module for ftpengine.

This module provides cross-cutting utilities:
- Logging: Configured logging with password redaction
- Validators: Input validation for hosts, ports, timeouts and paths
"""
