"""Process runner with registry bookkeeping and reliable termination.

cmapi-cli runtime module

This module provides:
- Synchronous execution of external tools (git, make, pros)
- Three output modes: inherit the console, capture, or both (tee)
- Registration of every live subprocess in a ProcessRegistry
- Process group isolation and graceful termination (SIGTERM -> timeout -> SIGKILL)

Key design points:
- The child never inherits stdin; the console input reader owns it
- POSIX: start_new_session=True so a whole build tree can be signalled
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- An interrupted wait terminates the process group before re-raising
- A cancelled command stops the next run before it starts, and turns a
  finished run into CommandCancelled
"""

from __future__ import annotations

import logging
import subprocess
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Any, TextIO

from .process_registry import IS_WINDOWS, ProcessRegistry, send_signal

__all__ = [
    "OutputMode",
    "ProcessResult",
    "ProcessRunner",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL
PUMP_JOIN_TIMEOUT = 1.0  # seconds to wait for output pumps after exit

# Exit code reported when the executable cannot be started
START_FAILED = -1


class OutputMode(Enum):
    """Where subprocess output goes."""

    INHERIT = "inherit"  # straight to the console
    CAPTURE = "capture"  # collected, not printed
    TEE = "tee"  # printed and collected


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path
    env: Mapping[str, str] | None = None


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of a finished subprocess.

    ``stdout`` and ``stderr`` are empty in INHERIT mode.
    """

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class ProcessRunner:
    """Runs external tools one at a time on behalf of the foreground loop.

    Example:
        registry = ProcessRegistry()
        runner = ProcessRunner(registry)

        if not runner.succeeded(project_root, "git", "pull"):
            ...
        result = runner.output(project_root, "git", "remote", "get-url", "origin")
    """

    registry: ProcessRegistry = field(default_factory=ProcessRegistry)
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    stdout: TextIO | None = None
    stderr: TextIO | None = None

    def run(self, spec: ProcessSpec, mode: OutputMode = OutputMode.INHERIT) -> ProcessResult:
        """Run a subprocess to completion.

        Args:
            spec: Process specification
            mode: Output handling

        Returns:
            The result; returncode is -1 if the process could not be started

        Raises:
            CommandCancelled: The command in progress was cancelled before
                the process started or while it ran
        """
        self.registry.raise_if_cancelled()
        kwargs = self._build_subprocess_kwargs(spec, mode)

        process: subprocess.Popen | None = None
        try:
            try:
                process = subprocess.Popen(spec.argv, **kwargs)
            except (OSError, ValueError) as e:
                logger.debug(f"Failed to start {spec.argv[0]}: {e}")
                return ProcessResult(START_FAILED, "", str(e))

            self.registry.register(process, spec.argv)
            logger.debug(
                f"Started subprocess pid={process.pid} "
                f"argv={spec.argv} cwd={spec.cwd}"
            )

            if mode is OutputMode.CAPTURE:
                out, err = process.communicate()
                result = ProcessResult(process.returncode, out or "", err or "")
            elif mode is OutputMode.TEE:
                result = self._run_tee(process)
            else:
                process.wait()
                result = ProcessResult(process.returncode)

            self.registry.raise_if_cancelled()
        except BaseException:
            # KeyboardInterrupt, cancellation, or anything else that abandons the wait
            if process is not None and process.poll() is None:
                self._terminate_process(process)
            raise
        finally:
            if process is not None:
                self.registry.unregister(process)

        logger.debug(
            f"Subprocess completed pid={process.pid} "
            f"returncode={result.returncode}"
        )
        return result

    # -- convenience wrappers -------------------------------------------------

    def status(self, cwd: Path, *argv: str) -> int:
        """Run with inherited output and return the exit code."""
        return self.run(ProcessSpec(list(argv), Path(cwd))).returncode

    def succeeded(self, cwd: Path, *argv: str) -> bool:
        """Run with inherited output; True if the exit code is 0."""
        return self.status(cwd, *argv) == 0

    def output(self, cwd: Path, *argv: str) -> ProcessResult:
        """Run silently and capture output."""
        return self.run(ProcessSpec(list(argv), Path(cwd)), OutputMode.CAPTURE)

    def tee(self, cwd: Path, *argv: str) -> ProcessResult:
        """Run, printing output as it arrives, and capture it."""
        return self.run(ProcessSpec(list(argv), Path(cwd)), OutputMode.TEE)

    # -- internals ------------------------------------------------------------

    def _build_subprocess_kwargs(self, spec: ProcessSpec, mode: OutputMode) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "cwd": spec.cwd,
            "stdin": subprocess.DEVNULL,
        }

        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        if mode is not OutputMode.INHERIT:
            kwargs.update(
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        else:
            # Inherit the console unless the runner was given explicit streams
            if self.stdout is not None:
                kwargs["stdout"] = self.stdout
            if self.stderr is not None:
                kwargs["stderr"] = self.stderr

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    def _run_tee(self, process: subprocess.Popen) -> ProcessResult:
        out_chunks: list[str] = []
        err_chunks: list[str] = []
        pumps = [
            threading.Thread(
                target=_pump,
                args=(process.stdout, self.stdout or sys.stdout, out_chunks),
                name=f"tee-stdout-{process.pid}",
                daemon=True,
            ),
            threading.Thread(
                target=_pump,
                args=(process.stderr, self.stderr or sys.stderr, err_chunks),
                name=f"tee-stderr-{process.pid}",
                daemon=True,
            ),
        ]
        for pump in pumps:
            pump.start()

        process.wait()

        for pump in pumps:
            pump.join(timeout=PUMP_JOIN_TIMEOUT)
            if pump.is_alive():
                logger.warning(f"Output pump {pump.name} still running after exit")

        return ProcessResult(process.returncode, "".join(out_chunks), "".join(err_chunks))

    def _terminate_process(self, process: subprocess.Popen) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM to the process group (terminate() on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (kill() on Windows)
        4. Wait up to kill_timeout for forced exit
        """
        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            send_signal(process, kill=False)
            try:
                process.wait(timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except subprocess.TimeoutExpired:
                pass

            logger.debug(f"Force killing subprocess pid={pid}")
            send_signal(process, kill=True)

            try:
                process.wait(timeout=self.kill_timeout)
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={process.returncode}"
                )
            except subprocess.TimeoutExpired:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")


def _pump(source: IO[str] | None, sink: TextIO, chunks: list[str]) -> None:
    """Copy a child pipe to ``sink`` line by line, keeping a copy."""
    if source is None:
        return
    with source:
        for line in source:
            chunks.append(line)
            try:
                sink.write(line)
                sink.flush()
            except (OSError, ValueError):
                # Console gone; keep collecting so the child never blocks
                pass
