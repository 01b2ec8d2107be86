"""Local FTP server for integration testing.

Uses pyftpdlib to serve a temporary directory over FTP with passive
mode enabled, so the client can be exercised against a real peer.
"""

import tempfile
import threading
import time
from pathlib import Path
from typing import Optional

from pyftpdlib.authorizers import DummyAuthorizer
from pyftpdlib.handlers import FTPHandler
from pyftpdlib.servers import FTPServer


class MockFTPServer:
    """
    pyftpdlib server running in a background thread.

    Usage:
        with MockFTPServer() as server:
            # Connect to server.host:server.port
            # server.root_dir is the served filesystem
            pass
    """

    DEFAULT_USER = "testuser"
    DEFAULT_PASS = "testpass"

    def __init__(
        self,
        port: int = 0,
        username: str = DEFAULT_USER,
        password: str = DEFAULT_PASS,
    ):
        """
        Initialize the server.

        Args:
            port: Port to listen on, 0 picks a free one
            username: FTP username
            password: FTP password
        """
        self._requested_port = port
        self.username = username
        self.password = password

        self._server: Optional[FTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._temp_dir: Optional[tempfile.TemporaryDirectory] = None
        self._root_dir: Optional[Path] = None

    @property
    def root_dir(self) -> Path:
        """Root directory of the served filesystem."""
        if self._root_dir is None:
            raise RuntimeError("Server not started")
        return self._root_dir

    @property
    def host(self) -> str:
        """Server host address."""
        return "127.0.0.1"

    @property
    def port(self) -> int:
        """Port the server is bound to."""
        if self._server is None:
            raise RuntimeError("Server not started")
        return self._server.socket.getsockname()[1]

    def add_file(self, path: str, content: bytes) -> Path:
        """
        Place a file on the server.

        Args:
            path: FTP path (e.g., "/data/file.bin")
            content: File content

        Returns:
            Local path of the created file
        """
        local_path = self.local_path(path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_bytes(content)
        return local_path

    def local_path(self, path: str) -> Path:
        """Map an FTP path to its location under root_dir."""
        return self.root_dir / path.lstrip("/")

    def start(self) -> None:
        """Start the FTP server in a background thread."""
        self._temp_dir = tempfile.TemporaryDirectory(prefix="pasvftp_test_")
        self._root_dir = Path(self._temp_dir.name)

        authorizer = DummyAuthorizer()
        authorizer.add_user(
            self.username,
            self.password,
            str(self._root_dir),
            perm="elradfmw"  # Full permissions
        )

        # Subclass so handler settings don't leak between servers
        class _Handler(FTPHandler):
            pass

        _Handler.authorizer = authorizer
        _Handler.passive_ports = range(60000, 60100)
        _Handler.auth_failed_timeout = 0.1

        self._server = FTPServer((self.host, self._requested_port), _Handler)

        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

        # Give server time to start
        time.sleep(0.2)

    def stop(self) -> None:
        """Stop the FTP server and clean up."""
        if self._server:
            self._server.close_all()

        if self._thread:
            self._thread.join(timeout=5)

        if self._temp_dir:
            self._temp_dir.cleanup()

        self._server = None
        self._thread = None
        self._temp_dir = None
        self._root_dir = None

    def __enter__(self) -> "MockFTPServer":
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.stop()
