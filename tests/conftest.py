"""Pytest configuration and shared fixtures for pasvftp tests."""

import io
from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Tuple
from unittest.mock import patch

import pytest


# Test constants
TEST_FTP_HOST = "127.0.0.1"
TEST_FTP_PORT = 2121
TEST_FTP_USER = "testuser"
TEST_FTP_PASS = "testpass"

# Replies for a greeting, USER/PASS login and TYPE/MODE/STRU
LOGIN_REPLIES = (
    "220 Service ready for new user.",
    "331 Username ok, send password.",
    "230 Login successful.",
    "200 Type set to: Binary.",
    "200 Transfer mode set to: S",
    "200 File transfer structure set to: F.",
)


@dataclass
class MockFTPConfig:
    """Configuration for mock FTP server in tests."""
    host: str = TEST_FTP_HOST
    port: int = TEST_FTP_PORT
    username: str = TEST_FTP_USER
    password: str = TEST_FTP_PASS


class FakeReader:
    """makefile() stand-in that serves scripted reply lines."""

    def __init__(self, server: "FakeFTPServer"):
        self._server = server
        self.closed = False

    def readline(self, limit: int = -1) -> bytes:
        if not self._server.replies:
            return b""
        return self._server.replies.popleft()

    def close(self) -> None:
        self.closed = True


class FakeControlSocket:
    """Control socket recording every command sent."""

    def __init__(self, server: "FakeFTPServer"):
        self._server = server
        self.reader = FakeReader(server)
        self.closed = False

    def makefile(self, mode: str = "rb"):
        return self.reader

    def sendall(self, data: bytes) -> None:
        if self.closed:
            raise OSError("socket closed")
        command = data.decode("utf-8").rstrip("\r\n")
        self._server.events.append(("command", command))

    def close(self) -> None:
        self.closed = True


class FakeDataSocket:
    """Data socket serving a payload and recording what is sent."""

    def __init__(self, payload: bytes = b""):
        self._payload = io.BytesIO(payload)
        self.received = bytearray()
        self.closed = False

    def recv(self, size: int) -> bytes:
        return self._payload.read(size)

    def sendall(self, data: bytes) -> None:
        self.received.extend(data)

    def gettimeout(self) -> Optional[float]:
        return None

    def close(self) -> None:
        self.closed = True


class FakeFTPServer:
    """
    Scripted peer for unit tests.

    The first create_connection() call returns the control socket,
    later calls return data sockets in the order they were queued.
    """

    def __init__(self):
        self.replies: deque = deque()
        self.events: List[Tuple[str, object]] = []
        self.control: Optional[FakeControlSocket] = None
        self.data_sockets: List[FakeDataSocket] = []
        self._pending_data: deque = deque()

    def reply(self, *lines: str) -> "FakeFTPServer":
        """Queue reply lines on the control channel."""
        for line in lines:
            self.replies.append(f"{line}\r\n".encode("utf-8"))
        return self

    def data(self, payload: bytes = b"") -> "FakeFTPServer":
        """Queue a data socket serving payload."""
        self._pending_data.append(FakeDataSocket(payload))
        return self

    def create_connection(self, address, timeout=None, *args, **kwargs):
        self.events.append(("connect", address))
        if self.control is None:
            self.control = FakeControlSocket(self)
            return self.control
        sock = self._pending_data.popleft() if self._pending_data else FakeDataSocket()
        self.data_sockets.append(sock)
        return sock

    @property
    def commands(self) -> List[str]:
        """Commands sent on the control channel, in order."""
        return [value for kind, value in self.events if kind == "command"]


@pytest.fixture
def ftp_config() -> MockFTPConfig:
    """Provide mock FTP configuration for tests."""
    return MockFTPConfig()


@pytest.fixture
def fake_server():
    """Patch socket creation with a scripted FTP peer."""
    server = FakeFTPServer()
    with patch("socket.create_connection", side_effect=server.create_connection):
        yield server


@pytest.fixture
def sample_file(tmp_path):
    """Create a local file with binary content."""
    path = tmp_path / "local" / "sample.bin"
    path.parent.mkdir(parents=True)
    path.write_bytes(bytes(range(256)) * 40)
    return path


@pytest.fixture
def login_replies() -> Tuple[str, ...]:
    """Replies for a successful greeting, login and negotiation."""
    return LOGIN_REPLIES


@pytest.fixture
def connected_session(fake_server, ftp_config):
    """FTPSession connected to the scripted peer."""
    from pasvftp.ftp.session import FTPConnectionConfig, FTPSession

    fake_server.reply(*LOGIN_REPLIES)
    session = FTPSession()
    session.connect(
        FTPConnectionConfig(
            host=ftp_config.host,
            port=ftp_config.port,
            username=ftp_config.username,
        ),
        password=ftp_config.password,
    )
    yield session
    session.disconnect()


@pytest.fixture
def engine(connected_session):
    """TransferEngine on the connected scripted session."""
    from pasvftp.ftp.engine import TransferEngine

    return TransferEngine(connected_session)
