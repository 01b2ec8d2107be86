"""Configuration module for pasvftp.

This module handles client settings and credentials:
- SettingsManager: JSON-based settings persistence
- CredentialManager: Secure credential storage via keyring
- Paths: Platform config, settings and log locations
- ClientSettings: Settings dataclass
"""
