"""User-facing console output.

Status lines are bright yellow so they stand out from the output of the
external tools interleaved with them.
"""

from __future__ import annotations

from rich.console import Console
from rich.text import Text

from .errors import CommandError

__all__ = ["Output", "STATUS_STYLE"]

STATUS_STYLE = "bright_yellow"


class Output:
    """Prints status, success and numbered error lines.

    Attributes:
        console: rich Console used for all output
        beep_enabled: Whether beep_success/beep_fail ring the bell
    """

    def __init__(self, console: Console | None = None, beep: bool = True) -> None:
        self.console = console if console is not None else Console(highlight=False)
        self.beep_enabled = beep

    def info(self, message: str) -> None:
        self.console.print(Text(message, style=STATUS_STYLE))

    def success(self, message: str, *args: object) -> bool:
        """Print a success line. Always returns True."""
        self.info(message % args if args else message)
        return True

    def fail(self, code: int, *args: object) -> bool:
        """Print ``Error <code>: <message>``. Always returns False."""
        return self.error(CommandError(code, *args))

    def error(self, err: CommandError) -> bool:
        self.info(f"Error {err.code}: {err.message}")
        return False

    def key_value(self, key: str, value: str) -> None:
        line = Text(f"{key}: ", style=STATUS_STYLE)
        line.append(value)
        self.console.print(line)

    def prompt(self, text: str = "\n> ") -> None:
        self.console.print(Text(text, style=STATUS_STYLE), end="")

    def beep_success(self) -> None:
        if self.beep_enabled:
            self.console.bell()

    def beep_fail(self) -> None:
        # A terminal bell has no pitch; failure rings twice.
        if self.beep_enabled:
            self.console.bell()
            self.console.bell()
