"""Session transcript capture.

Transcript is an observer for ControlChannel that records every
command, reply line, and listing line in the order they crossed the
wire. Used for diagnostics and record/replay style assertions.
"""

from typing import Callable, List, Tuple

# Observer signature: (direction, line) with direction in
# "command", "reply" or "data"
LineObserver = Callable[[str, str], None]

COMMAND = "command"
REPLY = "reply"
DATA = "data"


def mask_command(line: str) -> str:
    """Hide the argument of a PASS command."""
    if line[:5].upper() == "PASS ":
        return line[:5] + "*" * len(line[5:])
    return line


class Transcript:
    """Accumulates the lines of one session."""

    def __init__(self):
        self._entries: List[Tuple[str, str]] = []

    def __call__(self, direction: str, line: str) -> None:
        if direction == COMMAND:
            line = mask_command(line)
        self._entries.append((direction, line))

    @property
    def entries(self) -> List[Tuple[str, str]]:
        """Recorded (direction, line) pairs."""
        return list(self._entries)

    def lines(self, direction: str = None) -> List[str]:
        """Recorded lines, optionally filtered by direction."""
        return [
            line for d, line in self._entries
            if direction is None or d == direction
        ]

    @property
    def commands(self) -> List[str]:
        """Command lines sent, with PASS masked."""
        return self.lines(COMMAND)

    @property
    def text(self) -> str:
        """Replies and listing lines as CRLF-terminated text."""
        return "".join(
            f"{line}\r\n" for d, line in self._entries if d != COMMAND
        )

    def clear(self) -> None:
        """Forget everything recorded so far."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
