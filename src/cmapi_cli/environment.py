"""Startup prerequisite checks."""

from __future__ import annotations

import getpass
import logging
import os
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path

from .console import Output

__all__ = ["Environment", "check_environment"]

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = {"git": 100, "pros": 101}


@dataclass
class Environment:
    """Result of the startup checks.

    Attributes:
        admin_dir: Administrator directory (created if missing)
        working_dir: Directory the REPL commands operate on
        failures: Error codes of the checks that failed
    """

    admin_dir: Path
    working_dir: Path
    failures: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _user_in_dialout_group(username: str) -> bool | None:
    """None when there is no dialout group on this machine."""
    import grp

    try:
        dialout = grp.getgrnam("dialout")
    except KeyError:
        return None
    return dialout.gr_gid in os.getgrouplist(username, os.getgid())


def check_environment(admin_dir: Path, out: Output) -> Environment:
    """Run every check, printing each failure.

    Args:
        admin_dir: Administrator directory to create
        out: Where failures are reported

    Returns:
        The environment; ``ok`` is True only if every check passed
    """
    failures: list[int] = []

    def fail(code: int) -> None:
        failures.append(code)
        out.fail(code)

    try:
        username = getpass.getuser()
    except (KeyError, OSError):
        fail(127)
        return Environment(admin_dir=admin_dir, working_dir=Path("."), failures=failures)

    if sys.platform.startswith("linux"):
        try:
            if _user_in_dialout_group(username) is False:
                fail(133)
        except OSError as e:
            logger.debug(f"Group lookup failed: {e}")
            fail(127)

    for tool, code in REQUIRED_TOOLS.items():
        if shutil.which(tool) is None:
            fail(code)

    if "PROS_TOOLCHAIN" not in os.environ:
        fail(132)

    try:
        admin_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.debug(f"Cannot create {admin_dir}: {e}")
        fail(128)

    try:
        working_dir = Path.cwd()
    except OSError:
        fail(129)
        working_dir = Path(".")

    return Environment(admin_dir=admin_dir, working_dir=working_dir, failures=failures)
