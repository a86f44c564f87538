"""FTP protocol module for ftpengine.

This module implements the client side of RFC 959 on plain sockets:
- ReplyParser: Control-line parsing into ReplyMessage objects
- ControlChannel: Half-duplex command/reply exchange
- DataChannelNegotiator: PASV/PORT data connection setup
- TransferStream: Data transfer tied to its completion reply
- FtpSession: Login and transfer state machine
- FtpClient: Connect-on-demand facade with local file helpers
- Exceptions: FTP-specific error types
"""
