"""Registry of running external processes.

Every subprocess started by the runner is registered while it runs, so an
asynchronous shutdown path (input stream failure, SIGTERM, Ctrl+C) can
terminate all of them. The registry also records which REPL command is in
progress, so Ctrl+C can cancel the whole command rather than one tool run.

Thread safety: the foreground loop registers and unregisters entries while
the input reader thread or a signal handler may iterate them. All access
goes through one lock and iteration happens on snapshots.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator

from ..errors import CommandCancelled

__all__ = ["ProcessRegistry", "ProcessInfo", "send_signal"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


@dataclass
class ProcessInfo:
    """A tracked subprocess.

    Attributes:
        process: The Popen handle
        argv: Command line it was started with
        started_at: Registration time
    """

    process: subprocess.Popen
    argv: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def pid(self) -> int:
        return self.process.pid

    def __repr__(self) -> str:
        elapsed = (datetime.now() - self.started_at).total_seconds()
        status = "running" if self.process.poll() is None else "done"
        name = self.argv[0] if self.argv else "?"
        return (
            f"ProcessInfo(pid={self.pid}, "
            f"cmd={name}, "
            f"status={status}, "
            f"elapsed={elapsed:.1f}s)"
        )


class ProcessRegistry:
    """Ordered collection of subprocesses started and not yet completed.

    Example:
        ```python
        registry = ProcessRegistry()

        with registry.command("normal"):
            proc = subprocess.Popen(["make", "-j"])
            registry.register(proc, ["make", "-j"])
            proc.wait()
            registry.unregister(proc)
            registry.raise_if_cancelled()

        # from a signal handler or another thread
        registry.cancel_all()
        ```
    """

    def __init__(self) -> None:
        # Reentrant: signal handlers may iterate while the main thread holds it
        self._lock = threading.RLock()
        self._entries: list[ProcessInfo] = []
        self._command: str | None = None
        self._cancelled = False

    def register(self, process: subprocess.Popen, argv: list[str] | None = None) -> None:
        """Add a started subprocess.

        Raises:
            ValueError: If the process is already registered
        """
        with self._lock:
            if any(info.process is process for info in self._entries):
                raise ValueError(f"Process {process.pid} already registered")
            info = ProcessInfo(process=process, argv=list(argv or []))
            self._entries.append(info)
        logger.debug(f"Registered process: {info}")

    def unregister(self, process: subprocess.Popen) -> bool:
        """Remove a completed subprocess.

        Returns:
            True if it was registered
        """
        with self._lock:
            for i, info in enumerate(self._entries):
                if info.process is process:
                    del self._entries[i]
                    break
            else:
                return False
        logger.debug(f"Unregistered process: {info}")
        return True

    @contextmanager
    def command(self, name: str) -> Iterator[None]:
        """Mark a REPL command as in progress for the duration of the block.

        A cancellation requested inside the block is reported by
        ``raise_if_cancelled`` until the block exits.
        """
        with self._lock:
            self._command = name
            self._cancelled = False
        try:
            yield
        finally:
            with self._lock:
                self._command = None
                self._cancelled = False

    def raise_if_cancelled(self) -> None:
        """Raises CommandCancelled if the command in progress was cancelled."""
        with self._lock:
            if self._cancelled:
                raise CommandCancelled(self._command)

    def snapshot(self) -> list[ProcessInfo]:
        """Copy of the current entries in start order."""
        with self._lock:
            return list(self._entries)

    def processes(self) -> list[subprocess.Popen]:
        return [info.process for info in self.snapshot()]

    def has_active(self) -> bool:
        with self._lock:
            return bool(self._entries)

    def is_busy(self) -> bool:
        """True while a command is in progress or a process is running."""
        with self._lock:
            return self._command is not None or bool(self._entries)

    def cancel_all(self) -> int:
        """Cancel the command in progress and stop its processes.

        Returns:
            Number of processes signalled
        """
        with self._lock:
            if self._command is not None:
                self._cancelled = True
                logger.info(f"Cancelling command: {self._command}")
        return self.terminate_all()

    def terminate_all(self) -> int:
        """Ask every tracked process to stop (SIGTERM).

        Returns:
            Number of processes signalled
        """
        return self._signal_all(kill=False)

    def kill_all(self) -> int:
        """Kill every tracked process without waiting for it to die.

        Returns:
            Number of processes signalled
        """
        return self._signal_all(kill=True)

    def _signal_all(self, kill: bool) -> int:
        signalled = 0
        for info in self.snapshot():
            if info.process.poll() is not None:
                continue
            try:
                send_signal(info.process, kill=kill)
                signalled += 1
                logger.info(f"{'Killed' if kill else 'Terminated'} process: {info}")
            except ProcessLookupError:
                pass
            except OSError as e:
                logger.warning(f"Error signalling process pid={info.pid}: {e}")
        return signalled

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, process: object) -> bool:
        with self._lock:
            return any(info.process is process for info in self._entries)


def send_signal(process: subprocess.Popen, kill: bool) -> None:
    """Signal a process, and its whole group when it leads one.

    Processes started with ``start_new_session=True`` lead their own process
    group, so build tools spawned by them are signalled too.

    Raises:
        ProcessLookupError: The process no longer exists
    """
    if not IS_WINDOWS:
        sig = signal.SIGKILL if kill else signal.SIGTERM
        try:
            pgid = os.getpgid(process.pid)
        except OSError:
            pgid = None
        if pgid == process.pid:
            os.killpg(pgid, sig)
            return
    if kill:
        process.kill()
    else:
        process.terminate()
