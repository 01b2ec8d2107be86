"""pasvftp - passive-mode FTP client protocol engine.

Subpackages:
- ftp: Control channel, session negotiation, passive data channel, transfers
- config: Client settings, paths and keyring credentials
- utils: Logging and input validation
"""

__version__ = "0.1.0"
