"""Login and transfer parameter negotiation.

Runs once per connection, right after the greeting, before any
transfer command is issued.
"""

import logging

from pasvftp.ftp.control import ControlChannel
from pasvftp.ftp.exceptions import FTPAuthenticationError

logger = logging.getLogger("pasvftp.negotiator")

# User logged in, proceed
LOGGED_IN = 230
# User name okay, need password
NEED_PASSWORD = 331

# Binary type, stream mode, file structure
TRANSFER_PARAMETERS = ("TYPE I", "MODE S", "STRU F")


class SessionNegotiator:
    """Drives the fixed startup sequence of a session."""

    def negotiate(self, channel: ControlChannel, username: str, password: str) -> None:
        """
        Authenticate and set transfer parameters.

        Args:
            channel: Open control channel (greeting already read)
            username: Login name
            password: Login password, sent only if the server asks

        Raises:
            FTPAuthenticationError: If login does not succeed
            FTPConnectionError: If the control connection fails
        """
        self.login(channel, username, password)
        self.set_transfer_parameters(channel)

    def login(self, channel: ControlChannel, username: str, password: str) -> None:
        """Send USER and, if requested, PASS."""
        reply = channel.send(f"USER {username}")
        if reply.code == LOGGED_IN:
            logger.info(f"Logged in as '{username}' without password")
            return
        if reply.code != NEED_PASSWORD:
            raise FTPAuthenticationError(username, reply)

        reply = channel.send(f"PASS {password}")
        if not reply.is_success:
            raise FTPAuthenticationError(username, reply)
        logger.info(f"Logged in as '{username}'")

    def set_transfer_parameters(self, channel: ControlChannel) -> None:
        """Send TYPE I, MODE S and STRU F."""
        for command in TRANSFER_PARAMETERS:
            reply = channel.send(command)
            # Servers differ on the exact code, only warn
            if not reply.is_success:
                logger.warning(f"{command} answered {reply}")
