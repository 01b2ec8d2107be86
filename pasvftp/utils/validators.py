"""Input validators for pasvftp.

Provides validation functions for connection settings and the
paths that end up as command arguments on the control channel.
"""

import re
from typing import Optional, Tuple


# IPv4 address pattern
IPV4_PATTERN = re.compile(
    r'^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}'
    r'(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$'
)

# Hostname pattern (simplified)
HOSTNAME_PATTERN = re.compile(
    r'^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.[A-Za-z0-9-]{1,63})*$'
)

MIN_TIMEOUT = 5
MAX_TIMEOUT = 300


def validate_ip_address(ip: str) -> Tuple[bool, Optional[str]]:
    """
    Validate an IPv4 address.

    Args:
        ip: IP address string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not ip or not ip.strip():
        return False, "IP address is required"

    ip = ip.strip()

    if IPV4_PATTERN.match(ip):
        return True, None

    return False, f"Invalid IP address format: {ip}"


def validate_hostname(hostname: str) -> Tuple[bool, Optional[str]]:
    """Validate a hostname."""
    if not hostname or not hostname.strip():
        return False, "Hostname is required"

    hostname = hostname.strip()

    if HOSTNAME_PATTERN.match(hostname):
        return True, None

    return False, f"Invalid hostname format: {hostname}"


def validate_host(host: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a host (IP address or hostname).

    Args:
        host: Host string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not host or not host.strip():
        return False, "Host is required"

    host = host.strip()

    is_valid_ip, _ = validate_ip_address(host)
    if is_valid_ip:
        return True, None

    is_valid_hostname, _ = validate_hostname(host)
    if is_valid_hostname:
        return True, None

    return False, f"Invalid host: {host}. Must be a valid IP address or hostname."


def validate_port(port: int) -> Tuple[bool, Optional[str]]:
    """
    Validate a port number.

    Args:
        port: Port number to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(port, int):
        try:
            port = int(port)
        except (ValueError, TypeError):
            return False, "Port must be a number"

    if port < 1 or port > 65535:
        return False, f"Port must be between 1 and 65535, got {port}"

    return True, None


def validate_timeout(timeout: Optional[int]) -> Tuple[bool, Optional[str]]:
    """
    Validate a timeout value in seconds.

    None means no timeout: sockets block until the transport gives up.

    Args:
        timeout: Timeout in seconds or None

    Returns:
        Tuple of (is_valid, error_message)
    """
    if timeout is None:
        return True, None

    if not isinstance(timeout, (int, float)):
        try:
            timeout = float(timeout)
        except (ValueError, TypeError):
            return False, "Timeout must be a number"

    if timeout < MIN_TIMEOUT or timeout > MAX_TIMEOUT:
        return False, (
            f"Timeout must be between {MIN_TIMEOUT} and {MAX_TIMEOUT} seconds, "
            f"got {timeout}"
        )

    return True, None


def validate_block_size(block_size: int) -> Tuple[bool, Optional[str]]:
    """Validate a transfer block size in bytes."""
    if not isinstance(block_size, int) or isinstance(block_size, bool):
        return False, "Block size must be an integer"

    if block_size < 512 or block_size > 1024 * 1024:
        return False, f"Block size must be between 512 and 1048576 bytes, got {block_size}"

    return True, None


def validate_ftp_path(path: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a remote path used as a command argument.

    Args:
        path: FTP path to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not path or not path.strip():
        return False, "FTP path is required"

    # Commands are CRLF-terminated
    if "\r" in path or "\n" in path:
        return False, "FTP path cannot contain line breaks"

    return True, None
