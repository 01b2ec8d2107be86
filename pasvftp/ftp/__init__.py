"""FTP protocol module for pasvftp.

This module handles the client side of the FTP protocol:
- Reply: Reply line parsing and reply-code classification
- ControlChannel: Command/reply transport over the control socket
- SessionNegotiator / FTPSession: Login and transfer parameters
- PassiveDataChannel: Per-transfer PASV data connections
- TransferEngine: Directory and file operations
- Operations: Operation values, dispatch and the per-call executor
- Exceptions: FTP-specific error types
"""
