"""FTP session management for the pasvftp protocol engine.

Provides ConnectionState enum, FTPConnectionConfig dataclass,
and FTPSession, the explicit per-connection session object.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pasvftp.ftp.control import ControlChannel
from pasvftp.ftp.exceptions import FTPError, FTPConnectionError, FTPNotConnectedError
from pasvftp.ftp.negotiator import SessionNegotiator
from pasvftp.ftp.passive import PassiveAddressPolicy
from pasvftp.ftp.transcript import LineObserver
from pasvftp.utils.validators import validate_host, validate_port, validate_timeout

logger = logging.getLogger("pasvftp.session")


class ConnectionState(Enum):
    """FTP session state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class FTPConnectionConfig:
    """FTP connection configuration."""
    host: str
    port: int = 21
    username: str = "anonymous"
    timeout: Optional[int] = None
    passive_address_policy: PassiveAddressPolicy = PassiveAddressPolicy.CONTROL_HOST
    encoding: str = "utf-8"

    def __post_init__(self):
        """Validate configuration after initialization."""
        for is_valid, error in (
            validate_host(self.host),
            validate_port(self.port),
            validate_timeout(self.timeout),
        ):
            if not is_valid:
                raise ValueError(error)
        if not self.username:
            raise ValueError("Username is required")


class FTPSession:
    """Owns one control channel for the lifetime of a connection."""

    def __init__(
        self,
        negotiator: Optional[SessionNegotiator] = None,
        observer: Optional[LineObserver] = None
    ):
        """
        Initialize the session.

        Args:
            negotiator: Login/parameter negotiator (default SessionNegotiator)
            observer: Optional line observer passed to the control channel
        """
        self._negotiator = negotiator or SessionNegotiator()
        self._observer = observer
        self._channel: Optional[ControlChannel] = None
        self._config: Optional[FTPConnectionConfig] = None
        self._state = ConnectionState.DISCONNECTED
        self._connected_at: Optional[datetime] = None
        self._last_activity: Optional[datetime] = None
        self._error_message: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        self._check_channel()
        return self._state

    @property
    def is_connected(self) -> bool:
        """True if currently connected and negotiated."""
        return self.state == ConnectionState.CONNECTED

    @property
    def config(self) -> Optional[FTPConnectionConfig]:
        """Current connection configuration."""
        return self._config

    @property
    def connected_at(self) -> Optional[datetime]:
        """Timestamp when connection was established."""
        return self._connected_at

    @property
    def last_activity(self) -> Optional[datetime]:
        """Timestamp of last operation."""
        return self._last_activity

    @property
    def error_message(self) -> Optional[str]:
        """Last error message if state is ERROR."""
        return self._error_message

    @property
    def channel(self) -> ControlChannel:
        """
        Get the control channel.

        Raises:
            FTPNotConnectedError: If not connected
        """
        if not self.is_connected or self._channel is None:
            raise FTPNotConnectedError("FTP access")
        return self._channel

    def connect(self, config: FTPConnectionConfig, password: str = "") -> None:
        """
        Open the control channel and negotiate the session.

        Args:
            config: Connection configuration
            password: FTP password

        Raises:
            FTPConnectionError: If connection fails
            FTPTimeoutError: If a configured timeout expires
            FTPSessionError: If the server greeting is not 220
            FTPAuthenticationError: If login fails
        """
        if self._channel is not None:
            raise RuntimeError("Session already connected")

        self._config = config
        self._state = ConnectionState.CONNECTING
        self._error_message = None

        channel = ControlChannel(
            config.host,
            config.port,
            timeout=config.timeout,
            encoding=config.encoding,
            observer=self._observer,
        )
        try:
            channel.open()
            self._negotiator.negotiate(channel, config.username, password)
        except FTPError as e:
            self._fail(channel, e)
            raise
        except OSError as e:
            self._fail(channel, e)
            raise FTPConnectionError(config.host, config.port, e)

        self._channel = channel
        self._state = ConnectionState.CONNECTED
        self._connected_at = datetime.now()
        self._last_activity = self._connected_at

    def disconnect(self) -> None:
        """Close the session gracefully. Never raises."""
        channel, self._channel = self._channel, None
        if channel is not None:
            channel.close()

        self._state = ConnectionState.DISCONNECTED
        self._connected_at = None

    def touch(self) -> None:
        """Update last activity timestamp."""
        self._last_activity = datetime.now()

    def _check_channel(self) -> None:
        # The control channel drops its socket on a fatal I/O error
        if self._state == ConnectionState.CONNECTED and not self._channel.is_open:
            logger.error("Control connection lost, session ended")
            self._state = ConnectionState.ERROR
            self._error_message = "Control connection lost"
            self._channel = None
            self._connected_at = None

    def _fail(self, channel: ControlChannel, error: Exception) -> None:
        logger.error(f"Session setup failed: {error}")
        self._state = ConnectionState.ERROR
        self._error_message = str(error)
        channel.close()

    def __enter__(self) -> "FTPSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()
