"""Client settings management for pasvftp.

Provides ClientSettings dataclass and SettingsManager for persistence.
"""

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from pasvftp.config.paths import get_settings_path
from pasvftp.ftp.passive import BLOCK_SIZE, PassiveAddressPolicy
from pasvftp.ftp.session import FTPConnectionConfig


@dataclass
class ClientSettings:
    """Client defaults that persist between sessions."""

    # Connection defaults
    default_port: int = 21
    default_username: str = "anonymous"
    timeout: Optional[int] = None
    passive_address_policy: str = PassiveAddressPolicy.CONTROL_HOST.value
    encoding: str = "utf-8"

    # Transfer settings
    block_size: int = BLOCK_SIZE

    # Logging
    log_level: str = "INFO"

    def to_dict(self) -> dict:
        """Convert settings to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ClientSettings":
        """Create settings from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)

    @property
    def log_level_number(self) -> int:
        """log_level as a logging module constant, INFO if unknown."""
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO

    def to_connection_config(
        self,
        host: str,
        port: Optional[int] = None,
        username: Optional[str] = None
    ) -> FTPConnectionConfig:
        """
        Build a connection config from these defaults.

        Raises:
            ValueError: If the resulting config is invalid
        """
        return FTPConnectionConfig(
            host=host,
            port=port if port is not None else self.default_port,
            username=username or self.default_username,
            timeout=self.timeout,
            passive_address_policy=PassiveAddressPolicy(self.passive_address_policy),
            encoding=self.encoding,
        )


class SettingsManager:
    """Manages client settings persistence."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize settings manager.

        Args:
            config_path: Optional custom path, defaults to platform standard
        """
        self._config_path = config_path or get_settings_path()
        self._settings: Optional[ClientSettings] = None

    @property
    def config_path(self) -> Path:
        """Path to settings file."""
        return self._config_path

    def load(self) -> ClientSettings:
        """
        Load settings from disk.

        Returns:
            ClientSettings instance (defaults if file not found)
        """
        if self._config_path.exists():
            try:
                with open(self._config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                self._settings = ClientSettings.from_dict(data)
            except (json.JSONDecodeError, IOError, TypeError, AttributeError):
                # Invalid or unreadable file, use defaults
                self._settings = ClientSettings()
        else:
            self._settings = ClientSettings()

        return self._settings

    def save(self, settings: ClientSettings) -> None:
        """
        Persist settings to disk.

        Args:
            settings: Settings to save
        """
        self._settings = settings

        # Ensure parent directory exists
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self._config_path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)

    def reset(self) -> ClientSettings:
        """
        Reset to default settings.

        Returns:
            Default ClientSettings instance
        """
        self._settings = ClientSettings()

        if self._config_path.exists():
            self._config_path.unlink()

        return self._settings

    def update(self, **kwargs) -> ClientSettings:
        """
        Update specific settings fields.

        Args:
            **kwargs: Field names and new values

        Returns:
            Updated ClientSettings instance
        """
        if self._settings is None:
            self.load()

        for key, value in kwargs.items():
            if hasattr(self._settings, key):
                setattr(self._settings, key, value)

        self.save(self._settings)
        return self._settings
