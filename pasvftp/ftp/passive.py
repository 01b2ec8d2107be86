"""Passive-mode data channel.

Every data-bearing command gets its own PASV negotiation and its own
data socket. Endpoints and sockets are never reused.
"""

import logging
import re
import socket
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Callable, Iterator, Optional, Tuple

from pasvftp.ftp.control import ControlChannel
from pasvftp.ftp.exceptions import (
    FTPDataChannelError,
    FTPProtocolError,
    FTPTimeoutError,
)
from pasvftp.ftp.transcript import DATA

logger = logging.getLogger("pasvftp.passive")

# Entering passive mode
PASSIVE_OK = 227

DIGIT_RUNS = re.compile(r"\d+")

# Default transfer block size (8KB)
BLOCK_SIZE = 8192


class PassiveAddressPolicy(Enum):
    """Which host to connect the data socket to."""
    # Reuse the control host
    CONTROL_HOST = "control_host"
    SERVER_ADDRESS = "server_address"


@dataclass(frozen=True)
class DataEndpoint:
    """Host and port of one passive data connection."""
    host: str
    port: int


def parse_pasv_reply(text: str) -> Tuple[str, int]:
    """
    Extract the address and port from a 227 reply.

    Args:
        text: Reply text, e.g. "Entering Passive Mode (127,0,0,1,19,136)"

    Returns:
        Tuple of (dotted IPv4 address, port)

    Raises:
        FTPProtocolError: If six numbers in range cannot be found
    """
    tokens = DIGIT_RUNS.findall(text)
    if len(tokens) < 6:
        raise FTPProtocolError("Malformed passive mode reply", text)

    numbers = [int(t) for t in tokens[-6:]]
    if any(n > 255 for n in numbers):
        raise FTPProtocolError("Passive mode reply out of range", text)

    address = ".".join(str(n) for n in numbers[:4])
    port = numbers[4] * 256 + numbers[5]
    return address, port


class DataConnection:
    """One data socket, used for exactly one transfer."""

    def __init__(
        self,
        sock: socket.socket,
        endpoint: DataEndpoint,
        observer: Optional[Callable[[str, str], None]] = None
    ):
        self._sock = sock
        self._endpoint = endpoint
        self._observer = observer

    @property
    def endpoint(self) -> DataEndpoint:
        """Endpoint this connection was opened to."""
        return self._endpoint

    @property
    def is_closed(self) -> bool:
        """True once close() has been called."""
        return self._sock is None

    def recv_chunks(self, block_size: int = BLOCK_SIZE) -> Iterator[bytes]:
        """Yield received blocks until the server closes the connection."""
        while True:
            try:
                block = self._socket().recv(block_size)
            except socket.timeout:
                raise FTPTimeoutError("Data transfer", self._socket().gettimeout())
            except OSError as e:
                raise FTPDataChannelError("Data connection failed", original_error=e)
            if not block:
                return
            yield block

    def iter_lines(self, encoding: str = "utf-8", block_size: int = BLOCK_SIZE) -> Iterator[str]:
        """Yield received text lines without their line delimiter."""
        pending = b""
        for block in self.recv_chunks(block_size):
            pending += block
            *complete, pending = pending.split(b"\n")
            for raw in complete:
                yield self._decode_line(raw, encoding)
        if pending:
            yield self._decode_line(pending, encoding)

    def send_stream(
        self,
        source: BinaryIO,
        block_size: int = BLOCK_SIZE,
        callback: Optional[Callable[[bytes], None]] = None
    ) -> int:
        """
        Copy a binary stream to the data socket until EOF.

        Returns:
            Number of bytes sent
        """
        total = 0
        while True:
            block = source.read(block_size)
            if not block:
                break
            try:
                self._socket().sendall(block)
            except socket.timeout:
                raise FTPTimeoutError("Data transfer", self._socket().gettimeout())
            except OSError as e:
                raise FTPDataChannelError("Data connection failed", original_error=e)
            total += len(block)
            if callback:
                callback(block)
        return total

    def close(self) -> None:
        """Close the data socket. Safe to call more than once."""
        sock, self._sock = self._sock, None
        if sock is None:
            return
        try:
            sock.close()
        except OSError as e:
            logger.debug(f"Error closing data socket: {e}")

    def _socket(self) -> socket.socket:
        if self._sock is None:
            raise FTPDataChannelError("Data connection already closed")
        return self._sock

    def _decode_line(self, raw: bytes, encoding: str) -> str:
        line = raw.rstrip(b"\r").decode(encoding, errors="replace")
        if self._observer is not None:
            self._observer(DATA, line)
        return line

    def __enter__(self) -> "DataConnection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class PassiveDataChannel:
    """Negotiates passive mode and opens the data socket."""

    def __init__(self, policy: PassiveAddressPolicy = PassiveAddressPolicy.CONTROL_HOST):
        self._policy = policy

    @property
    def policy(self) -> PassiveAddressPolicy:
        """Data host selection policy."""
        return self._policy

    def request_endpoint(self, channel: ControlChannel) -> DataEndpoint:
        """
        Send PASV and resolve the data endpoint.

        Raises:
            FTPDataChannelError: If the server does not answer 227
            FTPProtocolError: If the 227 reply cannot be parsed
        """
        reply = channel.send("PASV")
        if reply.code != PASSIVE_OK:
            raise FTPDataChannelError("Failed to enter passive mode", "PASV", reply)

        address, port = parse_pasv_reply(reply.text)
        if self._policy == PassiveAddressPolicy.SERVER_ADDRESS:
            host = address
        else:
            if address != channel.host:
                logger.debug(f"Ignoring passive address {address}, using {channel.host}")
            host = channel.host

        return DataEndpoint(host=host, port=port)

    def open(self, channel: ControlChannel) -> DataConnection:
        """
        Negotiate passive mode and connect the data socket.

        Returns:
            DataConnection for a single transfer

        Raises:
            FTPDataChannelError: If passive mode fails or the socket cannot connect
        """
        endpoint = self.request_endpoint(channel)
        logger.debug(f"Opening data connection to {endpoint.host}:{endpoint.port}")
        try:
            sock = socket.create_connection(
                (endpoint.host, endpoint.port), timeout=channel.timeout
            )
        except socket.timeout:
            raise FTPTimeoutError("Data connection", channel.timeout)
        except OSError as e:
            raise FTPDataChannelError(
                f"Failed to open data connection to {endpoint.host}:{endpoint.port}",
                original_error=e
            )

        return DataConnection(sock, endpoint, channel.observer)
