"""Keyring-backed FTP password store for pasvftp.

Passwords live in the platform keyring under the "pasvftp" service,
one entry per host and login name. A missing or broken keyring backend
never fails an FTP operation: lookups fall back to "no password".
"""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger("pasvftp.credentials")


class CredentialManager:
    """Stores and looks up FTP passwords per host and user."""

    SERVICE_NAME = "pasvftp"

    def __init__(self, service_name: str = SERVICE_NAME):
        self._service_name = service_name

    @property
    def service_name(self) -> str:
        """Keyring service the passwords are stored under."""
        return self._service_name

    @staticmethod
    def account_for(host: str, username: str) -> str:
        """Keyring account name for a login, e.g. "ftp.example.com:bob"."""
        return f"{host}:{username}"

    def save_password(self, host: str, username: str, password: str) -> bool:
        """
        Store a password that the server has accepted.

        Returns:
            True if stored, False if the keyring refused
        """
        try:
            keyring.set_password(self._service_name, self.account_for(host, username), password)
        except KeyringError as e:
            logger.warning(f"Keyring refused to store password for {username}@{host}: {e}")
            return False
        return True

    def get_password(self, host: str, username: str) -> Optional[str]:
        """Stored password for host and user, None if absent or unavailable."""
        try:
            return keyring.get_password(self._service_name, self.account_for(host, username))
        except KeyringError as e:
            logger.warning(f"Keyring lookup failed for {username}@{host}: {e}")
            return None
