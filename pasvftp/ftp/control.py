"""FTP control channel.

Owns the control socket. Sends one command line at a time and reads
exactly one logical reply for it; commands are never pipelined.
"""

import logging
import socket
from typing import Optional

from pasvftp.ftp.exceptions import (
    FTPConnectionError,
    FTPError,
    FTPNotConnectedError,
    FTPProtocolError,
    FTPSessionError,
    FTPTimeoutError,
)
from pasvftp.ftp.reply import Reply, read_reply
from pasvftp.ftp.transcript import COMMAND, REPLY, LineObserver, mask_command

logger = logging.getLogger("pasvftp.control")

CRLF = "\r\n"

# Longest reply line accepted from the server
MAX_LINE = 8192

# Service ready for new user
GREETING_CODE = 220


class ControlChannel:
    """Blocking command/reply transport over the control socket."""

    def __init__(
        self,
        host: str,
        port: int = 21,
        timeout: Optional[float] = None,
        encoding: str = "utf-8",
        observer: Optional[LineObserver] = None
    ):
        """
        Initialize the channel. No connection is made until open().

        Args:
            host: Server host
            port: Control port
            timeout: Socket timeout in seconds, None blocks indefinitely
            encoding: Encoding for command and reply lines
            observer: Optional callable notified of every line sent/received
        """
        self._host = host
        self._port = port
        self._timeout = timeout
        self._encoding = encoding
        self._observer = observer
        self._sock: Optional[socket.socket] = None
        self._file = None

    @property
    def host(self) -> str:
        """Control connection host."""
        return self._host

    @property
    def port(self) -> int:
        """Control connection port."""
        return self._port

    @property
    def timeout(self) -> Optional[float]:
        """Socket timeout in seconds (None when blocking)."""
        return self._timeout

    @property
    def encoding(self) -> str:
        """Line encoding."""
        return self._encoding

    @property
    def observer(self) -> Optional[LineObserver]:
        """Line observer, if one was injected."""
        return self._observer

    @property
    def is_open(self) -> bool:
        """True while the control socket is open."""
        return self._sock is not None

    def open(self) -> Reply:
        """
        Connect and read the server greeting.

        Returns:
            The 220 greeting reply

        Raises:
            FTPConnectionError: If the socket cannot be opened
            FTPTimeoutError: If the configured timeout expires
            FTPSessionError: If the greeting is not 220
        """
        if self._sock is not None:
            raise RuntimeError("Control channel already open")

        logger.info(f"Connecting to {self._host}:{self._port}")
        try:
            self._sock = socket.create_connection(
                (self._host, self._port), timeout=self._timeout
            )
        except socket.timeout:
            raise FTPTimeoutError("Connection", self._timeout)
        except OSError as e:
            raise FTPConnectionError(self._host, self._port, e)

        self._file = self._sock.makefile("rb")

        try:
            greeting = self.read_reply()
        except Exception:
            self._close_socket()
            raise

        if greeting.code != GREETING_CODE:
            logger.error(f"Unexpected greeting: {greeting}")
            self._close_socket()
            raise FTPSessionError(greeting)

        logger.info(f"Connected to {self._host}:{self._port}")
        return greeting

    def send(self, command: str) -> Reply:
        """
        Send one command and read its reply.

        Args:
            command: Command line without CRLF

        Returns:
            The server's reply

        Raises:
            FTPNotConnectedError: If the channel is not open
            FTPConnectionError: If the socket is closed or reset
            FTPProtocolError: If the reply cannot be parsed
        """
        self._write_line(command)
        return self.read_reply()

    def read_reply(self) -> Reply:
        """
        Read one logical reply without sending anything.

        Used for the terminal reply of a data transfer.
        """
        if self._file is None:
            raise FTPNotConnectedError("Reading a reply")
        reply = read_reply(self._read_line)
        logger.debug(f"<- {reply}")
        return reply

    def close(self) -> None:
        """Send QUIT and close the socket. Never raises."""
        if self._sock is None:
            return

        try:
            reply = self.send("QUIT")
            logger.debug(f"QUIT answered {reply.code}")
        except Exception as e:
            logger.debug(f"QUIT failed during teardown: {e}")
        finally:
            self._close_socket()
            logger.info(f"Disconnected from {self._host}:{self._port}")

    def _write_line(self, line: str) -> None:
        if self._sock is None:
            raise FTPNotConnectedError(f"Sending {line.split(' ', 1)[0]}")
        if "\r" in line or "\n" in line:
            raise ValueError("Command must not contain line breaks")

        logger.debug(f"-> {mask_command(line)}")
        self._notify(COMMAND, line)
        try:
            self._sock.sendall((line + CRLF).encode(self._encoding))
        except socket.timeout:
            raise self._lost(FTPTimeoutError(line.split(" ", 1)[0], self._timeout))
        except OSError as e:
            raise self._lost(FTPConnectionError(self._host, self._port, e))

    def _read_line(self) -> str:
        try:
            raw = self._file.readline(MAX_LINE + 1)
        except socket.timeout:
            raise self._lost(FTPTimeoutError("Reading reply", self._timeout))
        except OSError as e:
            raise self._lost(FTPConnectionError(self._host, self._port, e))

        if not raw:
            raise self._lost(FTPConnectionError(
                self._host, self._port,
                EOFError("connection closed by server")
            ))
        if len(raw) > MAX_LINE:
            raise FTPProtocolError(f"Reply line longer than {MAX_LINE} bytes")

        try:
            line = raw.decode(self._encoding).rstrip("\r\n")
        except UnicodeDecodeError as e:
            raise FTPProtocolError(f"Undecodable reply line ({e.reason})")

        self._notify(REPLY, line)
        return line

    def _lost(self, error: FTPError) -> FTPError:
        """Drop the socket after a fatal I/O failure and return error for raising."""
        logger.warning(f"Control connection to {self._host}:{self._port} lost: {error}")
        self._close_socket()
        return error

    def _notify(self, direction: str, line: str) -> None:
        if self._observer is not None:
            self._observer(direction, line)

    def _close_socket(self) -> None:
        file, self._file = self._file, None
        sock, self._sock = self._sock, None
        try:
            if file is not None:
                file.close()
        except OSError as e:
            logger.debug(f"Error closing control reader: {e}")
        try:
            if sock is not None:
                sock.close()
        except OSError as e:
            logger.debug(f"Error closing control socket: {e}")
