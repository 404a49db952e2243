"""CMAPI environment variable configuration.

Environment variables:
    CMAPI_HOME: Administrator directory (secret file, template repository)
        - default: ~/.cmapi-cli

    CMAPI_LOG_DEBUG: Debug logging
        - true/1/yes = on (DEBUG log written to a temporary file)
        - false/0/no = off (default, warnings to stderr)

    CMAPI_BEEP: Ring the terminal bell after build and upload
        - true/1/yes = on (default)
        - false/0/no = off

    CMAPI_SIGINT_MODE: SIGINT (Ctrl+C) handling
        - cancel = stop the running external command, exit when idle (default)
        - exit = always exit
        - cancel_then_exit = stop the running command, a second Ctrl+C exits

    CMAPI_SIGINT_DOUBLE_TAP_WINDOW: Double Ctrl+C window in seconds
        - default 1.0, clamped to 0.1-10

    CMAPI_UPLOAD_RETRIES: Extra upload attempts after the first one fails
        - default 5, clamped to 0-20

    CMAPI_DEVICE_POLL_INTERVAL: Seconds between V5 device checks
        - default 1.0, clamped to 0-10
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "load_config", "SigintMode"]


class SigintMode(Enum):
    """SIGINT handling mode.

    - CANCEL: stop running external commands; exit if nothing is running
    - EXIT: exit the REPL
    - CANCEL_THEN_EXIT: stop running commands, second SIGINT exits
    """

    CANCEL = "cancel"
    EXIT = "exit"
    CANCEL_THEN_EXIT = "cancel_then_exit"

    @classmethod
    def from_string(cls, value: str) -> "SigintMode":
        """Parse a mode name, falling back to CANCEL for unknown values."""
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.CANCEL


DEFAULT_UPLOAD_RETRIES = 5
DEFAULT_DEVICE_POLL_INTERVAL = 1.0
DEFAULT_DOUBLE_TAP_WINDOW = 1.0

# Stored in the administrator directory
SECRET_FILE_NAME = ".cmapi-cli-secret.json"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    if not value:
        return default
    try:
        return max(low, min(float(value), high))
    except ValueError:
        return default


def _parse_int(value: str | None, default: int, low: int, high: int) -> int:
    if not value:
        return default
    try:
        return max(low, min(int(value), high))
    except ValueError:
        return default


def _parse_admin_dir(value: str | None) -> Path:
    if value and value.strip():
        return Path(value.strip()).expanduser()
    return Path.home() / ".cmapi-cli"


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the system temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "cmapi-cli"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"cmapi_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """CMAPI runtime configuration.

    Attributes:
        admin_dir: Administrator directory
        log_debug: Debug logging to a temporary file
        log_file: Log file path (set when log_debug is on)
        beep: Ring the terminal bell after build and upload
        sigint_mode: SIGINT handling mode
        sigint_double_tap_window: Double Ctrl+C window in seconds
        upload_retries: Extra upload attempts
        device_poll_interval: Seconds between V5 device checks
    """

    admin_dir: Path = Path.home() / ".cmapi-cli"
    log_debug: bool = False
    log_file: str | None = None
    beep: bool = True
    sigint_mode: SigintMode = SigintMode.CANCEL
    sigint_double_tap_window: float = DEFAULT_DOUBLE_TAP_WINDOW
    upload_retries: int = DEFAULT_UPLOAD_RETRIES
    device_poll_interval: float = DEFAULT_DEVICE_POLL_INTERVAL

    @property
    def secret_file(self) -> Path:
        return self.admin_dir / SECRET_FILE_NAME

    def __repr__(self) -> str:
        return (
            f"Config(admin_dir={self.admin_dir}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"beep={self.beep}, "
            f"sigint_mode={self.sigint_mode.value}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window}, "
            f"upload_retries={self.upload_retries}, "
            f"device_poll_interval={self.device_poll_interval})"
        )


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(os.environ.get("CMAPI_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        admin_dir=_parse_admin_dir(os.environ.get("CMAPI_HOME")),
        log_debug=log_debug,
        log_file=log_file,
        beep=_parse_bool(os.environ.get("CMAPI_BEEP"), default=True),
        sigint_mode=SigintMode.from_string(os.environ.get("CMAPI_SIGINT_MODE") or ""),
        sigint_double_tap_window=_parse_float(
            os.environ.get("CMAPI_SIGINT_DOUBLE_TAP_WINDOW"),
            DEFAULT_DOUBLE_TAP_WINDOW, 0.1, 10.0,
        ),
        upload_retries=_parse_int(
            os.environ.get("CMAPI_UPLOAD_RETRIES"), DEFAULT_UPLOAD_RETRIES, 0, 20
        ),
        device_poll_interval=_parse_float(
            os.environ.get("CMAPI_DEVICE_POLL_INTERVAL"),
            DEFAULT_DEVICE_POLL_INTERVAL, 0.0, 10.0,
        ),
    )
