"""Signal management.

Turns OS signals into REPL-level actions instead of killing the CLI outright:
- SIGINT: cancel the command in progress (exit only when idle)
- SIGTERM: kill every tracked subprocess and exit

Supported configuration:
- CMAPI_SIGINT_MODE: cancel | exit | cancel_then_exit
- CMAPI_SIGINT_DOUBLE_TAP_WINDOW: seconds within which a second Ctrl+C forces exit

Handlers run on the main thread, between bytecodes of the foreground loop.
Cancelling a command marks it cancelled in the registry and signals the
process groups it started; the runner then raises CommandCancelled and the
dispatcher returns to the prompt.
"""

from __future__ import annotations

import logging
import os
import signal
import sys
import time
from typing import Any, Callable, Optional

from .config import SigintMode
from .runtime import ProcessRegistry

__all__ = ["SignalManager", "SigintMode", "EXIT_SIGINT", "EXIT_SIGTERM"]

logger = logging.getLogger(__name__)

EXIT_SIGINT = 130  # 128 + SIGINT(2)
EXIT_SIGTERM = 143  # 128 + SIGTERM(15)


class SignalManager:
    """Signal manager for the REPL process.

    Example:
        ```python
        registry = ProcessRegistry()
        signals = SignalManager(registry, on_shutdown=flush_output)
        signals.install()
        try:
            run_repl(...)
        except KeyboardInterrupt:
            pass
        finally:
            signals.restore()
        ```

    Attributes:
        registry: Running-process registry
        sigint_mode: SIGINT handling mode
        double_tap_window: Double Ctrl+C window in seconds
    """

    def __init__(
        self,
        registry: ProcessRegistry,
        sigint_mode: SigintMode = SigintMode.CANCEL,
        double_tap_window: float = 1.0,
        on_shutdown: Optional[Callable[[], None]] = None,
        exit_func: Callable[[int], Any] = os._exit,
    ) -> None:
        self.registry = registry
        self.sigint_mode = sigint_mode
        self.double_tap_window = double_tap_window
        self._on_shutdown = on_shutdown
        self._exit = exit_func

        self._last_sigint_time: float = 0.0
        self._shutdown_requested: bool = False
        self._original_handlers: dict[int, Any] = {}
        self._installed: bool = False

    @property
    def is_shutdown_requested(self) -> bool:
        return self._shutdown_requested

    def install(self) -> None:
        """Install the SIGINT and SIGTERM handlers. Main thread only."""
        if self._installed:
            logger.warning("SignalManager already installed")
            return

        self._original_handlers[signal.SIGINT] = signal.signal(
            signal.SIGINT, lambda sig, frame: self._handle_sigint()
        )
        if sys.platform != "win32":
            self._original_handlers[signal.SIGTERM] = signal.signal(
                signal.SIGTERM, lambda sig, frame: self._handle_sigterm()
            )
        self._installed = True
        logger.debug(
            f"Signal handlers installed (mode={self.sigint_mode.value}, "
            f"double_tap_window={self.double_tap_window}s)"
        )

    def restore(self) -> None:
        """Put the original handlers back."""
        if not self._installed:
            return

        for signum, handler in self._original_handlers.items():
            try:
                signal.signal(signum, handler)
            except (ValueError, OSError) as e:
                logger.debug(f"Error restoring handler for {signum}: {e}")
        self._original_handlers.clear()
        self._installed = False
        logger.debug("Signal handlers removed")

    def _handle_sigint(self) -> None:
        """Handle SIGINT.

        - A command in progress is cancelled (CANCEL, CANCEL_THEN_EXIT): its
          processes are stopped and the REPL returns to the prompt
        - Idle at the prompt, or EXIT mode: KeyboardInterrupt ends the REPL
        - Second SIGINT within the window after a shutdown was armed: force exit
        """
        current_time = time.monotonic()
        time_since_last = current_time - self._last_sigint_time
        self._last_sigint_time = current_time

        if time_since_last < self.double_tap_window and self._shutdown_requested:
            logger.warning("Double SIGINT detected, forcing shutdown")
            self._force_shutdown()
            return

        if self.sigint_mode == SigintMode.EXIT:
            logger.info("SIGINT received (mode=exit), requesting shutdown")
            self._request_shutdown()

        elif self.sigint_mode == SigintMode.CANCEL:
            if self.registry.is_busy():
                count = self.registry.cancel_all()
                logger.info(f"SIGINT received (mode=cancel), command cancelled, {count} process(es) stopped")
            else:
                logger.info("SIGINT received (mode=cancel), idle at the prompt, requesting shutdown")
                self._request_shutdown()

        elif self.sigint_mode == SigintMode.CANCEL_THEN_EXIT:
            if self.registry.is_busy():
                count = self.registry.cancel_all()
                logger.info(
                    f"SIGINT received (mode=cancel_then_exit), command cancelled, {count} process(es) stopped. "
                    f"Press Ctrl+C again within {self.double_tap_window}s to exit."
                )
                # Armed, but the REPL keeps running
                self._shutdown_requested = True
            else:
                logger.info(
                    "SIGINT received (mode=cancel_then_exit), idle at the prompt, requesting shutdown"
                )
                self._request_shutdown()

    def _handle_sigterm(self) -> None:
        """SIGTERM always kills everything and exits."""
        logger.info("SIGTERM received, shutting down")
        self._shutdown_requested = True
        self.registry.kill_all()
        self._run_shutdown_callback()
        self._exit(EXIT_SIGTERM)

    def _request_shutdown(self) -> None:
        self._shutdown_requested = True
        self._run_shutdown_callback()
        raise KeyboardInterrupt

    def _force_shutdown(self) -> None:
        logger.warning("Forcing immediate shutdown")
        self._shutdown_requested = True

        count = self.registry.kill_all()
        if count:
            logger.info(f"Force shutdown: killed {count} process(es)")

        self._run_shutdown_callback()
        self._exit(EXIT_SIGINT)

    def _run_shutdown_callback(self) -> None:
        if self._on_shutdown:
            try:
                self._on_shutdown()
            except Exception as e:
                logger.warning(f"Error in shutdown callback: {e}")
