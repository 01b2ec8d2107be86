"""Reply parsing for the FTP control channel.

A reply line is a three digit code followed by a space (last line)
or a hyphen (first line of a multi-line block), then free text.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Tuple

from pasvftp.ftp.exceptions import FTPProtocolError


class ReplyCategory(Enum):
    """Reply class given by the first digit of the code."""
    PRELIMINARY = 1
    SUCCESS = 2
    INTERMEDIATE = 3
    TRANSIENT_FAILURE = 4
    PERMANENT_FAILURE = 5


@dataclass(frozen=True)
class Reply:
    """One logical server reply."""
    code: int
    text: str
    is_multiline: bool = False
    lines: Tuple[str, ...] = field(default=(), compare=False, repr=False)

    @property
    def category(self) -> ReplyCategory:
        """Reply class of this code."""
        return ReplyCategory(self.code // 100)

    @property
    def is_preliminary(self) -> bool:
        """True for 1yz replies."""
        return self.category == ReplyCategory.PRELIMINARY

    @property
    def is_success(self) -> bool:
        """True for 2yz replies."""
        return self.category == ReplyCategory.SUCCESS

    @property
    def is_intermediate(self) -> bool:
        """True for 3yz replies."""
        return self.category == ReplyCategory.INTERMEDIATE

    @property
    def is_failure(self) -> bool:
        """True for 4yz and 5yz replies."""
        return self.category in (
            ReplyCategory.TRANSIENT_FAILURE,
            ReplyCategory.PERMANENT_FAILURE,
        )

    def __str__(self) -> str:
        return f"{self.code} {self.text}"


def parse_reply_line(line: str) -> Tuple[int, bool, str]:
    """
    Split a reply line into its parts.

    Args:
        line: Reply line with the line delimiter already stripped

    Returns:
        Tuple of (code, is_continuation, text)

    Raises:
        FTPProtocolError: If the line does not start with a valid code
    """
    code = line[:3]
    if len(code) != 3 or not all(c in "0123456789" for c in code):
        raise FTPProtocolError("Malformed reply line", line)
    if code[0] not in "12345":
        raise FTPProtocolError("Unknown reply class", line)

    separator = line[3:4]
    if separator not in ("", " ", "-"):
        raise FTPProtocolError("Malformed reply line", line)

    return int(code), separator == "-", line[4:]


def read_reply(readline: Callable[[], str]) -> Reply:
    """
    Read one logical reply, accumulating multi-line blocks.

    Args:
        readline: Callable returning the next line without CRLF.
            Must raise on end of stream.

    Returns:
        Parsed Reply

    Raises:
        FTPProtocolError: If the first line is not a valid reply line
    """
    first = readline()
    code, is_continuation, text = parse_reply_line(first)
    if not is_continuation:
        return Reply(code=code, text=text, lines=(first,))

    terminator = f"{code:03d} "
    lines = [first]
    parts = [text]
    while True:
        line = readline()
        lines.append(line)
        if line.startswith(terminator) or line == terminator.rstrip():
            parts.append(line[4:])
            break
        parts.append(line)

    return Reply(
        code=code,
        text="\n".join(parts),
        is_multiline=True,
        lines=tuple(lines),
    )
