"""Transfer engine for the pasvftp protocol engine.

Issues directory and file commands on a negotiated session and moves
file bytes over a fresh passive data connection for every transfer.
"""

import errno
import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, Union

from pasvftp.ftp.control import ControlChannel
from pasvftp.ftp.exceptions import (
    FTPError,
    FTPOperationError,
    FTPPartialMoveError,
)
from pasvftp.ftp.passive import BLOCK_SIZE, DataConnection, PassiveDataChannel
from pasvftp.ftp.reply import Reply
from pasvftp.ftp.session import FTPSession
from pasvftp.utils.validators import validate_block_size, validate_ftp_path

logger = logging.getLogger("pasvftp.engine")

PathLike = Union[str, Path]

# Data connection already open, transfer starting
DATA_CONNECTION_OPEN = 125
# File status okay, about to open data connection
OPENING_DATA_CONNECTION = 150
# Closing data connection, requested file action successful
TRANSFER_COMPLETE = 226
# Requested file action okay, completed
FILE_ACTION_OK = 250
# "PATHNAME" created
PATH_CREATED = 257

# Size hint in a 150 reply, e.g. "(1024 bytes)"
SIZE_HINT = re.compile(r"\((\d+) bytes\)", re.IGNORECASE)

# Suffix of the sibling file a download is written to
PARTIAL_SUFFIX = ".part"


class TransferDirection(Enum):
    """Which side of the data socket is the source."""
    UPLOAD = "upload"
    DOWNLOAD = "download"


@dataclass
class TransferProgress:
    """Progress information for a transfer."""
    path: str
    bytes_transferred: int
    bytes_total: Optional[int] = None

    @property
    def percent(self) -> float:
        """Transfer progress as percentage (0-100), 0 when size is unknown."""
        if not self.bytes_total:
            return 0.0
        return (self.bytes_transferred / self.bytes_total) * 100.0


# Type alias for progress callback
ProgressCallback = Callable[[TransferProgress], None]


def parse_size_hint(reply: Reply) -> Optional[int]:
    """Return the transfer size announced in a 150 reply, if any."""
    match = SIZE_HINT.search(reply.text)
    if match is None:
        return None
    return int(match.group(1))


class TransferEngine:
    """Runs FTP operations on a connected session."""

    def __init__(
        self,
        session: FTPSession,
        block_size: int = BLOCK_SIZE,
        passive: Optional[PassiveDataChannel] = None
    ):
        """
        Initialize the engine.

        Args:
            session: Connected, negotiated session
            block_size: Streaming buffer size in bytes
            passive: Passive data channel factory, defaults to the
                policy in the session config
        """
        is_valid, error = validate_block_size(block_size)
        if not is_valid:
            raise ValueError(error)

        self._session = session
        self._block_size = block_size
        if passive is None:
            config = session.config
            passive = PassiveDataChannel(config.passive_address_policy) if config else PassiveDataChannel()
        self._passive = passive

    @property
    def session(self) -> FTPSession:
        """Session the engine operates on."""
        return self._session

    @property
    def block_size(self) -> int:
        """Streaming buffer size in bytes."""
        return self._block_size

    # Directory operations

    def iter_listing(self, path: Optional[str] = None) -> Iterator[str]:
        """
        Lazily list a remote directory.

        Lines are yielded as they arrive on the data connection. The
        terminal reply is read once the listing is exhausted, or when
        the generator is closed early.

        Args:
            path: Remote directory, server's current directory if None

        Yields:
            Listing lines as sent by the server

        Raises:
            FTPOperationError: If the server refuses the listing
        """
        if path is not None:
            self._check_path(path)
        command = f"LIST {path}" if path is not None else "LIST"

        conn, _ = self._open_transfer(command, "list directory failed")
        completed = False
        try:
            for line in conn.iter_lines(self._channel.encoding, self._block_size):
                yield line
            completed = True
        finally:
            if not completed:
                self._abandon_transfer(command, conn)

        self._finish_transfer(command, conn, "list directory failed")

    def list_directory(self, path: Optional[str] = None) -> List[str]:
        """List a remote directory into memory."""
        return list(self.iter_listing(path))

    def make_directory(self, path: str) -> Reply:
        """Create a remote directory (MKD, expects 257)."""
        return self._simple_command(f"MKD {path}", path, PATH_CREATED, "create directory failed")

    def remove_directory(self, path: str) -> Reply:
        """Remove a remote directory (RMD, expects 250)."""
        return self._simple_command(f"RMD {path}", path, FILE_ACTION_OK, "remove directory failed")

    # File operations

    def delete_remote_file(self, path: str) -> Reply:
        """Delete a remote file (DELE, expects 250)."""
        return self._simple_command(f"DELE {path}", path, FILE_ACTION_OK, "delete file failed")

    def delete_local_file(self, path: PathLike) -> None:
        """
        Delete a local file.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(errno.ENOENT, "Local file not found", str(path))
        path.unlink()
        logger.info(f"Deleted local file {path}")

    def download(
        self,
        remote_path: str,
        local_path: PathLike,
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """
        Download a remote file (RETR).

        The local parent directory is created before the transfer. Data
        is written to a ".part" sibling that is opened only once the
        server accepts the RETR, and renamed over local_path only after
        the terminal reply confirms the transfer. On any failure the
        sibling is removed and an existing local_path is left untouched.

        Returns:
            Number of bytes received

        Raises:
            FTPOperationError: If the server refuses or fails the transfer
        """
        self._check_path(remote_path)
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        partial_path = local_path.with_name(local_path.name + PARTIAL_SUFFIX)

        command = f"RETR {remote_path}"
        conn, start_reply = self._open_transfer(command, "download failed")
        received = 0
        try:
            try:
                total = parse_size_hint(start_reply)
                with open(partial_path, "wb") as f:
                    for block in conn.recv_chunks(self._block_size):
                        f.write(block)
                        received += len(block)
                        if on_progress:
                            on_progress(TransferProgress(remote_path, received, total))
            except Exception:
                self._abandon_transfer(command, conn)
                raise

            self._finish_transfer(command, conn, "download failed")
            os.replace(partial_path, local_path)
        except Exception:
            self._discard_partial(partial_path)
            raise

        logger.info(f"Downloaded {remote_path} to {local_path} ({received} bytes)")
        return received

    def upload(
        self,
        local_path: PathLike,
        remote_path: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """
        Upload a local file (STOR).

        Returns:
            Number of bytes sent

        Raises:
            FileNotFoundError: If the local file does not exist
            FTPOperationError: If the server refuses or fails the transfer
        """
        self._check_path(remote_path)
        local_path = Path(local_path)
        if not local_path.is_file():
            raise FileNotFoundError(errno.ENOENT, "Local file not found", str(local_path))

        total = local_path.stat().st_size
        sent = 0

        def callback(block: bytes) -> None:
            nonlocal sent
            sent += len(block)
            if on_progress:
                on_progress(TransferProgress(remote_path, sent, total))

        command = f"STOR {remote_path}"
        with open(local_path, "rb") as f:
            conn, _ = self._open_transfer(command, "upload failed")
            try:
                conn.send_stream(f, self._block_size, callback)
            except Exception:
                self._abandon_transfer(command, conn)
                raise

        # Closing the data socket marks end of file for the server
        self._finish_transfer(command, conn, "upload failed")
        logger.info(f"Uploaded {local_path} to {remote_path} ({sent} bytes)")
        return sent

    def copy(
        self,
        remote_path: str,
        local_path: PathLike,
        direction: TransferDirection,
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """Copy a file in the given direction. Returns bytes transferred."""
        if direction == TransferDirection.DOWNLOAD:
            return self.download(remote_path, local_path, on_progress)
        if direction == TransferDirection.UPLOAD:
            return self.upload(local_path, remote_path, on_progress)
        raise ValueError(f"Unknown transfer direction: {direction!r}")

    def move(
        self,
        remote_path: str,
        local_path: PathLike,
        direction: TransferDirection,
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """
        Copy a file, then delete the source side.

        The copy is never rolled back.

        Raises:
            FTPPartialMoveError: If the copy succeeded but the source
                could not be deleted
        """
        transferred = self.copy(remote_path, local_path, direction, on_progress)

        if direction == TransferDirection.DOWNLOAD:
            source, destination = remote_path, str(local_path)
        else:
            source, destination = str(local_path), remote_path

        try:
            if direction == TransferDirection.DOWNLOAD:
                self.delete_remote_file(remote_path)
            else:
                self.delete_local_file(local_path)
        except (FTPError, OSError) as e:
            logger.error(f"Move of {source} copied data but source was kept: {e}")
            raise FTPPartialMoveError(source, destination, e) from e

        return transferred

    # Internals

    @property
    def _channel(self) -> ControlChannel:
        channel = self._session.channel
        self._session.touch()
        return channel

    def _check_path(self, path: str) -> None:
        is_valid, error = validate_ftp_path(path)
        if not is_valid:
            raise ValueError(error)

    def _simple_command(self, command: str, path: str, expected: int, message: str) -> Reply:
        self._check_path(path)
        reply = self._channel.send(command)
        if reply.code != expected:
            raise FTPOperationError(message, command, reply)
        logger.info(f"{command}: {reply}")
        return reply

    def _open_transfer(self, command: str, message: str) -> Tuple[DataConnection, Reply]:
        """PASV, connect the data socket, then send the transfer command."""
        channel = self._channel
        conn = self._passive.open(channel)
        try:
            reply = channel.send(command)
        except Exception:
            conn.close()
            raise

        if reply.code not in (DATA_CONNECTION_OPEN, OPENING_DATA_CONNECTION):
            conn.close()
            raise FTPOperationError(message, command, reply)

        return conn, reply

    def _finish_transfer(self, command: str, conn: DataConnection, message: str) -> Reply:
        conn.close()
        reply = self._channel.read_reply()
        if reply.code not in (TRANSFER_COMPLETE, FILE_ACTION_OK):
            raise FTPOperationError(message, command, reply)
        return reply

    def _discard_partial(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial download {path}: {e}")

    def _abandon_transfer(self, command: str, conn: DataConnection) -> None:
        """Close the data socket and drain the terminal reply."""
        conn.close()
        try:
            reply = self._session.channel.read_reply()
            logger.warning(f"{command} abandoned, server answered {reply}")
        except FTPError as e:
            logger.warning(f"{command} abandoned, no terminal reply: {e}")
