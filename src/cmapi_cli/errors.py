"""Exception types and the numbered error table shown to the user."""

from __future__ import annotations

__all__ = [
    "ERROR_MESSAGES",
    "InputReaderError",
    "NoData",
    "StreamError",
    "CommandError",
    "CommandCancelled",
    "BitbucketError",
    "BitbucketAPIError",
]


ERROR_MESSAGES: dict[int, str] = {
    100: "Git is not installed or not in the PATH.",
    101: "PROS is not installed or not in the PATH.",
    102: "Not a git repository.",
    103: "Failed to link remote repository.",
    104: "Failed to set git config.",
    105: "Failed to create the backup commit.",
    106: "Failed to push the backup commit.",
    107: "Failed to make.",
    108: "Failed to upload.",
    109: "PROS project already exists. Use --force to overwrite the project.pros file.",
    110: "Failed to create the initial commit.",
    111: "Failed to reset to the initial commit.",
    112: "Failed to pull.",
    113: "Failed to create the project directory '%s'.",
    114: "Failed to clone.",
    115: "Failed to clone the template repository.",
    116: "Failed to link the template repository.",
    117: "No template repository found in the local machine at '%s'.",
    118: "Repository already exists.",
    119: "Failed to copy the template repository.",
    120: "Failed to create the remote repository.",
    121: "Failed to create the remote repository with status %s.",
    122: "Failed to push to the server.",
    123: "Failed to initialize git repository.",
    124: "Failed to write project.pros",
    125: "Failed to install kernel.",
    126: "Failed to read the secret file.",
    127: "Failed to get user information.",
    128: "Failed to access the administrator directory.",
    129: "Failed to get working directory.",
    130: "Secret key '%s' does not exist.",
    131: "Failed to reset to the latest commit.",
    132: "'PROS_TOOLCHAIN' environment variable is not defined.",
    133: "User should be in the 'dialout' group.",
    134: "Not a PROS project, use command 'init' to initialize it.",
    200: "Invalid label, only capital letters, digits and hyphens are accepted.",
    300: "Failed to parse command line.",
    301: "Unknown command '%s'.",
}


class InputReaderError(Exception):
    """Base class for console input reader errors."""
    pass


class NoData(InputReaderError):
    """No completed line is buffered right now."""

    def __init__(self) -> None:
        super().__init__("no data")


class StreamError(InputReaderError):
    """The input stream reached EOF or failed. Terminal.

    Attributes:
        cause: The exception raised by the stream (EOFError on end of input)
    """

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"input stream closed: {cause!r}")


class CommandError(Exception):
    """A numbered, user-facing command failure.

    Attributes:
        code: Key into ERROR_MESSAGES
        args_: Values substituted into the message template
    """

    def __init__(self, code: int, *args: object) -> None:
        self.code = code
        self.args_ = args
        super().__init__(f"Error {code}: {self.message}")

    @property
    def message(self) -> str:
        template = ERROR_MESSAGES.get(self.code, "Unknown error.")
        if self.args_:
            return template % self.args_
        return template


class CommandCancelled(Exception):
    """The command in progress was cancelled with Ctrl+C.

    Attributes:
        command: Command word that was cancelled, if known
    """

    def __init__(self, command: str | None = None) -> None:
        self.command = command
        super().__init__(f"command cancelled: {command or '?'}")


class BitbucketError(Exception):
    """Remote repository API failure (transport or protocol)."""
    pass


class BitbucketAPIError(BitbucketError):
    """The API answered with a non-success status.

    Attributes:
        status_code: HTTP status code
        reason: HTTP reason phrase
        message: Response body, possibly truncated
    """

    def __init__(self, status_code: int, reason: str, message: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        self.message = message
        super().__init__(f"[{status_code} {reason}] {message}")

    @property
    def status(self) -> str:
        """Status line in the form '404 Not Found'."""
        return f"{self.status_code} {self.reason}".strip()
