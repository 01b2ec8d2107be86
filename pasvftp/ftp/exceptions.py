"""FTP-specific exceptions for the pasvftp protocol engine.

Custom exception hierarchy for control-channel and data-channel
operations. Every failure carries enough context (command sent,
reply received) to diagnose it without re-running the session.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from pasvftp.ftp.reply import Reply


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class FTPConnectionError(FTPError):
    """Control or data socket could not be opened, or was reset."""

    def __init__(self, host: str, port: int, original_error: Exception = None):
        self.host = host
        self.port = port
        message = f"Connection to {host}:{port} failed"
        super().__init__(message, original_error)


class FTPTimeoutError(FTPError):
    """A configured socket timeout expired."""

    def __init__(self, operation: str = "Operation", timeout: Optional[float] = None):
        self.timeout = timeout
        message = f"{operation} timed out after {timeout} seconds"
        super().__init__(message)


class FTPProtocolError(FTPError):
    """A server reply could not be parsed."""

    def __init__(self, message: str, line: Optional[str] = None):
        self.line = line
        if line is not None:
            message = f"{message}: {line!r}"
        super().__init__(message)


class FTPSessionError(FTPError):
    """Server greeting was not a 220 service-ready reply."""

    def __init__(self, reply: "Reply"):
        self.reply = reply
        super().__init__(f"FTP server not ready: {reply}")


class FTPAuthenticationError(FTPError):
    """Login sequence did not reach a 230-class success."""

    def __init__(self, username: str, reply: Optional["Reply"] = None):
        self.username = username
        self.reply = reply
        message = f"Authentication failed for user '{username}'"
        if reply is not None:
            message = f"{message} ({reply})"
        super().__init__(message)


class FTPReplyError(FTPError):
    """A command got a reply outside its required success class."""

    def __init__(self, message: str, command: str, reply: "Reply"):
        self.command = command
        self.reply = reply
        super().__init__(f"{message}: {command!r} -> {reply}")

    @property
    def code(self) -> Optional[int]:
        """Reply code the server answered with."""
        if self.reply is None:
            return None
        return self.reply.code


class FTPOperationError(FTPReplyError):
    """A directory or file command was refused by the server."""


class FTPDataChannelError(FTPReplyError):
    """Passive mode was refused or the data socket could not be used."""

    def __init__(
        self,
        message: str,
        command: str = "PASV",
        reply: Optional["Reply"] = None,
        original_error: Exception = None
    ):
        if reply is None:
            # Socket-level failure, no reply to report
            self.command = command
            self.reply = None
            FTPError.__init__(self, message, original_error)
        else:
            super().__init__(message, command, reply)
            self.original_error = original_error


class FTPPartialMoveError(FTPError):
    """Move copied the data but could not remove the source."""

    def __init__(self, source: str, destination: str, original_error: Exception = None):
        self.source = source
        self.destination = destination
        self.copied = True
        message = (
            f"Moved '{source}' to '{destination}' but the source was not removed"
        )
        super().__init__(message, original_error)


class FTPNotConnectedError(FTPError):
    """Operation attempted without an active FTP session."""

    def __init__(self, operation: str = "Operation"):
        message = f"{operation} requires an active FTP connection"
        super().__init__(message)
