"""Operation dispatch for the pasvftp protocol engine.

Each supported operation is a small immutable value carrying its own
parameters. run_operation() dispatches them onto a TransferEngine and
OperationExecutor wraps that in connect -> operate -> disconnect,
reporting the outcome as an OperationResult instead of raising.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from pasvftp.config.credentials import CredentialManager
from pasvftp.config.settings import ClientSettings
from pasvftp.ftp.engine import TransferDirection, TransferEngine
from pasvftp.ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPDataChannelError,
    FTPError,
    FTPOperationError,
    FTPPartialMoveError,
    FTPProtocolError,
    FTPSessionError,
    FTPTimeoutError,
)
from pasvftp.ftp.passive import BLOCK_SIZE
from pasvftp.ftp.session import FTPConnectionConfig, FTPSession
from pasvftp.ftp.transcript import LineObserver, Transcript
from pasvftp.utils.validators import validate_ftp_path

logger = logging.getLogger("pasvftp.executor")


@dataclass(frozen=True)
class ListDirectory:
    """List a remote directory."""
    path: str = "/"


@dataclass(frozen=True)
class MakeDirectory:
    """Create a remote directory."""
    path: str


@dataclass(frozen=True)
class RemoveDirectory:
    """Remove a remote directory."""
    path: str


@dataclass(frozen=True)
class DeleteRemoteFile:
    """Delete a file on the server."""
    path: str


@dataclass(frozen=True)
class DeleteLocalFile:
    """Delete a file on the local filesystem."""
    path: str


@dataclass(frozen=True)
class CopyFile:
    """Copy a file between the local filesystem and the server."""
    remote_path: str
    local_path: str
    direction: TransferDirection


@dataclass(frozen=True)
class MoveFile:
    """Copy a file, then delete it on the source side."""
    remote_path: str
    local_path: str
    direction: TransferDirection


Operation = Union[
    ListDirectory,
    MakeDirectory,
    RemoveDirectory,
    DeleteRemoteFile,
    DeleteLocalFile,
    CopyFile,
    MoveFile,
]


class ErrorKind(Enum):
    """Classified failure of an operation."""
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"
    SESSION = "session"
    AUTHENTICATION = "authentication"
    OPERATION = "operation"
    DATA_CHANNEL = "data_channel"
    PARTIAL_MOVE = "partial_move"
    FILE_NOT_FOUND = "file_not_found"
    LOCAL_IO = "local_io"
    INVALID_ARGUMENT = "invalid_argument"


# Most specific classes first
_ERROR_KINDS = (
    (FTPPartialMoveError, ErrorKind.PARTIAL_MOVE),
    (FTPAuthenticationError, ErrorKind.AUTHENTICATION),
    (FTPSessionError, ErrorKind.SESSION),
    (FTPDataChannelError, ErrorKind.DATA_CHANNEL),
    (FTPOperationError, ErrorKind.OPERATION),
    (FTPProtocolError, ErrorKind.PROTOCOL),
    (FTPTimeoutError, ErrorKind.TIMEOUT),
    (FTPConnectionError, ErrorKind.CONNECTION),
    (FileNotFoundError, ErrorKind.FILE_NOT_FOUND),
    (OSError, ErrorKind.LOCAL_IO),
    (ValueError, ErrorKind.INVALID_ARGUMENT),
)


def classify_error(error: Exception) -> ErrorKind:
    """Map an exception raised by an operation to its ErrorKind."""
    for error_type, kind in _ERROR_KINDS:
        if isinstance(error, error_type):
            return kind
    # FTPNotConnectedError and any other FTPError
    return ErrorKind.SESSION


@dataclass
class OperationResult:
    """Result of running one operation."""
    operation: Operation
    success: bool
    error: Optional[Exception] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    listing: List[str] = field(default_factory=list)
    bytes_transferred: int = 0
    duration_seconds: float = 0.0

    @classmethod
    def failed(cls, operation: Operation, error: Exception, duration: float = 0.0) -> "OperationResult":
        """Build a failure result from the exception that ended the operation."""
        return cls(
            operation=operation,
            success=False,
            error=error,
            error_kind=classify_error(error),
            error_message=str(error),
            duration_seconds=duration,
        )


def validate_operation(operation: Operation) -> None:
    """
    Check an operation's arguments without touching the network.

    Raises:
        ValueError: If a remote path is empty or contains line breaks,
            a local path is empty, or the direction is unknown
        TypeError: If the operation type is not supported
    """
    if isinstance(operation, (ListDirectory, MakeDirectory, RemoveDirectory, DeleteRemoteFile)):
        remote_paths, local_paths = [operation.path], []
    elif isinstance(operation, DeleteLocalFile):
        remote_paths, local_paths = [], [operation.path]
    elif isinstance(operation, (CopyFile, MoveFile)):
        if not isinstance(operation.direction, TransferDirection):
            raise ValueError(f"Unknown transfer direction: {operation.direction!r}")
        remote_paths, local_paths = [operation.remote_path], [operation.local_path]
    else:
        raise TypeError(f"Unsupported operation: {type(operation).__name__}")

    for path in remote_paths:
        is_valid, error = validate_ftp_path(path)
        if not is_valid:
            raise ValueError(error)
    for path in local_paths:
        if not str(path).strip():
            raise ValueError("Local path is required")


def run_operation(engine: TransferEngine, operation: Operation) -> OperationResult:
    """
    Run one operation on a connected engine.

    Args:
        engine: Engine bound to a negotiated session
        operation: Operation to run

    Returns:
        Successful OperationResult

    Raises:
        FTPError, FileNotFoundError, OSError: Whatever the operation raised
        TypeError: If the operation type is not supported
    """
    start_time = time.time()
    result = OperationResult(operation=operation, success=True)

    if isinstance(operation, ListDirectory):
        result.listing = engine.list_directory(operation.path)
    elif isinstance(operation, MakeDirectory):
        engine.make_directory(operation.path)
    elif isinstance(operation, RemoveDirectory):
        engine.remove_directory(operation.path)
    elif isinstance(operation, DeleteRemoteFile):
        engine.delete_remote_file(operation.path)
    elif isinstance(operation, DeleteLocalFile):
        engine.delete_local_file(operation.path)
    elif isinstance(operation, CopyFile):
        result.bytes_transferred = engine.copy(
            operation.remote_path, operation.local_path, operation.direction
        )
    elif isinstance(operation, MoveFile):
        result.bytes_transferred = engine.move(
            operation.remote_path, operation.local_path, operation.direction
        )
    else:
        raise TypeError(f"Unsupported operation: {type(operation).__name__}")

    result.duration_seconds = time.time() - start_time
    return result


class OperationExecutor:
    """Runs each operation on its own short-lived session."""

    def __init__(
        self,
        config: FTPConnectionConfig,
        password: Optional[str] = None,
        credentials: Optional[CredentialManager] = None,
        observer: Optional[LineObserver] = None,
        block_size: int = BLOCK_SIZE,
        remember_password: bool = False
    ):
        """
        Initialize the executor.

        Args:
            config: Connection configuration
            password: FTP password; looked up in the keyring when None
            credentials: Credential store used for the lookup
            observer: Optional line observer for every session
            block_size: Streaming buffer size
            remember_password: Store an explicit password in the keyring
                once it has been accepted by the server
        """
        self._config = config
        self._password = password
        self._credentials = credentials or CredentialManager()
        self._observer = observer
        self._block_size = block_size
        self._remember_password = remember_password

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        host: str,
        port: Optional[int] = None,
        username: Optional[str] = None,
        **kwargs
    ) -> "OperationExecutor":
        """
        Build an executor from persisted client settings.

        Raises:
            ValueError: If the resulting connection config is invalid
        """
        config = settings.to_connection_config(host, port=port, username=username)
        return cls(config, block_size=settings.block_size, **kwargs)

    @property
    def config(self) -> FTPConnectionConfig:
        """Connection configuration."""
        return self._config

    def resolve_password(self) -> str:
        """Explicit password, else the stored one, else empty."""
        if self._password is not None:
            return self._password

        stored = self._credentials.get_password(self._config.host, self._config.username)
        if stored is not None:
            logger.debug(f"Using stored password for {self._config.username}")
            return stored
        return ""

    def execute(self, operation: Operation) -> OperationResult:
        """
        Connect, run one operation, and disconnect.

        Never raises for invalid arguments, FTP or local filesystem
        failures; they are reported in the returned OperationResult.
        Arguments are checked before any connection is made.

        Args:
            operation: Operation to run

        Returns:
            OperationResult with success/failure status
        """
        return self._execute(operation, self._observer)

    def execute_capturing(self, operation: Operation) -> Tuple[OperationResult, str]:
        """
        Run an operation and capture the session transcript.

        The configured observer, if any, still sees every line.

        Returns:
            Tuple of (result, replies and listing lines as CRLF text)
        """
        transcript = Transcript()

        def observe(direction: str, line: str) -> None:
            transcript(direction, line)
            if self._observer is not None:
                self._observer(direction, line)

        result = self._execute(operation, observe)
        return result, transcript.text

    def _execute(self, operation: Operation, observer: Optional[LineObserver]) -> OperationResult:
        start_time = time.time()
        try:
            validate_operation(operation)
        except ValueError as e:
            logger.error(f"{type(operation).__name__} rejected: {e}")
            return OperationResult.failed(operation, e)

        session = FTPSession(observer=observer)
        try:
            session.connect(self._config, self.resolve_password())
            self._store_password()
            engine = TransferEngine(session, block_size=self._block_size)
            result = run_operation(engine, operation)
        except (FTPError, OSError, ValueError) as e:
            logger.error(f"{type(operation).__name__} failed: {e}")
            return OperationResult.failed(operation, e, time.time() - start_time)
        finally:
            session.disconnect()

        result.duration_seconds = time.time() - start_time
        return result

    def _store_password(self) -> None:
        if not self._remember_password or self._password is None:
            return
        saved = self._credentials.save_password(
            self._config.host, self._config.username, self._password
        )
        if not saved:
            logger.warning(f"Could not store password for {self._config.username}")
