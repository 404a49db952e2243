"""Thin wrappers around the external tools: git, make and pros.

Each method runs one tool invocation through the ProcessRunner and reports
success as a bool; the command handlers decide which numbered error a
failure maps to.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .errors import CommandError
from .models import ProsProjectFile
from .runtime import ProcessRunner

__all__ = ["Git", "Pros", "copy_template", "PROJECT_FILE"]

logger = logging.getLogger(__name__)

PROJECT_FILE = "project.pros"
DEFAULT_BRANCH = "master"
V5_DEVICE_MARKER = " - "


class Git:
    """git operations on a working tree."""

    def __init__(self, runner: ProcessRunner) -> None:
        self.runner = runner

    def is_repo(self, root: Path) -> bool:
        return self.runner.output(root, "git", "rev-parse").ok

    def require_repo(self, root: Path) -> None:
        """Raises CommandError 102 if ``root`` is not inside a repository."""
        if not self.is_repo(root):
            raise CommandError(102)

    def init(self, root: Path) -> bool:
        """Create a repository unless one exists already."""
        if self.is_repo(root):
            return True
        return self.runner.succeeded(root, "git", "init", f"--initial-branch={DEFAULT_BRANCH}")

    def config(self, root: Path, key: str, value: str) -> bool:
        return self.runner.succeeded(root, "git", "config", key, value)

    def remote_url(self, root: Path, remote: str = "origin") -> str | None:
        result = self.runner.output(root, "git", "remote", "get-url", remote)
        return result.stdout.strip() if result.ok else None

    def set_remote(self, root: Path, url: str, remote: str = "origin") -> bool:
        """Point ``remote`` at ``url``, adding it if it does not exist."""
        current = self.remote_url(root, remote)
        if current == url:
            return True
        if current is not None:
            return self.runner.succeeded(root, "git", "remote", "set-url", remote, url)
        return self.runner.succeeded(root, "git", "remote", "add", remote, url)

    def add_all(self, root: Path) -> bool:
        return self.runner.succeeded(root, "git", "add", "-A")

    def commit(self, root: Path, message: str, allow_empty: bool = False) -> bool:
        argv = ["git", "commit"]
        if allow_empty:
            argv.append("--allow-empty")
        argv += ["-m", message]
        return self.runner.succeeded(root, *argv)

    def push(self, root: Path, branch: str = DEFAULT_BRANCH) -> bool:
        return self.runner.succeeded(root, "git", "push", "-u", "origin", branch)

    def pull(self, root: Path) -> bool:
        return self.runner.succeeded(root, "git", "pull")

    def pull_tee(self, root: Path) -> bool:
        # Used where the default branch may not be master
        return self.runner.tee(root, "git", "pull").ok

    def reset_hard(self, root: Path) -> bool:
        return self.runner.succeeded(root, "git", "reset", "--hard")

    def clone(self, cwd: Path, url: str, directory: str) -> bool:
        return self.runner.succeeded(cwd, "git", "clone", url, directory)


class Pros:
    """make and pros operations on a PROS project."""

    def __init__(self, runner: ProcessRunner) -> None:
        self.runner = runner

    @staticmethod
    def is_project(root: Path) -> bool:
        """True if ``root`` has a project.pros. Does not validate it."""
        return (Path(root) / PROJECT_FILE).exists()

    def require_project(self, root: Path) -> None:
        """Raises CommandError 134 if ``root`` is not a PROS project."""
        if not self.is_project(root):
            raise CommandError(134)

    @staticmethod
    def write_project_file(root: Path) -> None:
        """Write a minimal project.pros named after the directory.

        Raises:
            CommandError: 124 if the file cannot be written
        """
        root = Path(root)
        contents = ProsProjectFile.for_project(root.name).to_json()
        try:
            (root / PROJECT_FILE).write_text(contents, encoding="utf-8")
        except OSError as e:
            logger.debug(f"Cannot write {PROJECT_FILE}: {e}")
            raise CommandError(124) from e

    def install_kernel(self, root: Path, kernel: str, no_download: bool) -> bool:
        """Apply the kernel template without overwriting project files.

        The toolchain sometimes reports errors with exit code 0, so the
        output is scanned for ``ERROR`` as well.
        """
        argv = ["pros", "conductor", "install", f"kernel@{kernel}", "-force-system"]
        if no_download:
            argv.append("--no-download")
        result = self.runner.tee(root, *argv)
        return result.ok and "ERROR" not in result.stdout and "ERROR" not in result.stderr

    def make(self, root: Path, clean_all: bool = False) -> bool:
        argv = ["make", "all", "-j"] if clean_all else ["make", "-j"]
        return self.runner.succeeded(root, *argv)

    def device_connected(self, root: Path) -> bool:
        result = self.runner.output(root, "pros", "lsusb", "--target", "v5")
        return V5_DEVICE_MARKER in result.stdout

    def upload(self, root: Path, slot: int) -> bool:
        return self.runner.succeeded(
            root, "pros", "upload", "--after", "screen", "--slot", str(slot)
        )


def copy_template(template_root: Path, project_root: Path) -> None:
    """Copy a template working tree, leaving out its git metadata.

    Raises:
        CommandError: 119 if the copy fails
    """

    def ignore(_directory: str, names: list[str]) -> set[str]:
        return {name for name in names if name.endswith(".git")}

    try:
        shutil.copytree(template_root, project_root, ignore=ignore, dirs_exist_ok=True)
    except (OSError, shutil.Error) as e:
        logger.debug(f"Template copy failed: {e}")
        raise CommandError(119) from e
