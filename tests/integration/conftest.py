"""Fixtures for integration tests against a local pyftpdlib server."""

import pytest

from mock_ftp_server import MockFTPServer
from pasvftp.ftp.session import FTPConnectionConfig, FTPSession


@pytest.fixture
def ftp_server():
    """Provide a running local FTP server."""
    server = MockFTPServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def server_config(ftp_server):
    """Connection config for the local server."""
    return FTPConnectionConfig(
        host=ftp_server.host,
        port=ftp_server.port,
        username=ftp_server.username,
        timeout=10,
    )


@pytest.fixture
def live_session(ftp_server, server_config):
    """Session logged in to the local server."""
    session = FTPSession()
    session.connect(server_config, password=ftp_server.password)
    yield session
    session.disconnect()
