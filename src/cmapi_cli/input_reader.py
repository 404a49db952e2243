"""Non-blocking console input reader.

A single daemon thread owns the input stream and reads it line by line.
Completed lines are buffered so the foreground loop can either poll
(``read_nowait``) or block (``read``) without ever touching the stream
itself. This lets the REPL throw away input typed while an external tool
was printing, and keeps stdin away from child processes.

When the stream reaches EOF or fails, buffered lines are dropped, the
registered ``on_error`` callback runs exactly once on the reader thread,
then the reader moves to the closed state for good. The application uses the callback to kill tracked
subprocesses and exit.

Example:
    reader = InputReader(on_error=lambda err: os._exit(0)).start()

    reader.drain()          # discard stray input
    line = reader.read()    # wait for the next line
"""

from __future__ import annotations

import logging
import sys
import threading
from collections import deque
from enum import Enum
from typing import Callable, Optional, TextIO

from .errors import NoData, StreamError

__all__ = ["InputReader", "ReaderState", "ErrorCallback"]

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[StreamError], None]


class ReaderState(Enum):
    """Lifecycle of the background reader."""

    IDLE = "idle"
    READING = "reading"
    CLOSED = "closed"


class InputReader:
    """Line reader running on a dedicated background thread.

    The buffer and state are shared by exactly one producer (the reader
    thread) and one consumer (the foreground loop), guarded by a single
    condition variable.

    Attributes:
        stream: Text stream read by the background thread
    """

    def __init__(
        self,
        on_error: Optional[ErrorCallback] = None,
        stream: Optional[TextIO] = None,
    ) -> None:
        self.stream = stream if stream is not None else sys.stdin
        self._on_error = on_error
        self._lines: deque[str] = deque()
        self._cond = threading.Condition()
        self._state = ReaderState.IDLE
        self._error: Optional[StreamError] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def on_error(self) -> Optional[ErrorCallback]:
        return self._on_error

    @on_error.setter
    def on_error(self, callback: Optional[ErrorCallback]) -> None:
        if self._thread is not None:
            raise RuntimeError("on_error must be set before the reader starts")
        self._on_error = callback

    @property
    def state(self) -> ReaderState:
        with self._cond:
            return self._state

    @property
    def closed(self) -> bool:
        return self.state is ReaderState.CLOSED

    @property
    def error(self) -> Optional[StreamError]:
        with self._cond:
            return self._error

    @property
    def pending(self) -> int:
        """Number of buffered lines not yet read."""
        with self._cond:
            return len(self._lines)

    def start(self) -> "InputReader":
        """Start the background thread. May be called once.

        Returns:
            The reader itself, so construction and start can be chained
        """
        if self._thread is not None:
            raise RuntimeError("InputReader already started")

        self._thread = threading.Thread(
            target=self._run, name="cmapi-input-reader", daemon=True
        )
        self._thread.start()
        return self

    def read_nowait(self) -> str:
        """Return the oldest buffered line without blocking.

        Raises:
            NoData: Nothing is buffered and the stream is still healthy
            StreamError: The stream has failed
        """
        with self._cond:
            return self._take()

    def read(self, timeout: Optional[float] = None) -> str:
        """Block until a line arrives or the stream fails.

        Args:
            timeout: Give up after this many seconds (None waits forever)

        Raises:
            NoData: The timeout expired with nothing buffered
            StreamError: The stream has failed
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._lines or self._error is not None,
                timeout=timeout,
            )
            return self._take()

    def drain(self) -> list[str]:
        """Discard every line that is already buffered.

        Stops quietly when the stream has failed; the next ``read`` reports
        the error.

        Returns:
            The discarded lines, oldest first
        """
        discarded: list[str] = []
        while True:
            try:
                discarded.append(self.read_nowait())
            except (NoData, StreamError):
                break
        if discarded:
            logger.debug(f"Discarded {len(discarded)} stray input line(s)")
        return discarded

    def _take(self) -> str:
        # Caller holds self._cond. The error is published together with CLOSED.
        if self._error is not None:
            raise self._error.with_traceback(None)
        if self._lines:
            return self._lines.popleft()
        raise NoData()

    def _run(self) -> None:
        logger.debug("Input reader thread started")
        while True:
            with self._cond:
                self._state = ReaderState.READING
            try:
                raw = self.stream.readline()
                if not raw:
                    raise EOFError("end of input")
            except (EOFError, OSError, ValueError) as e:
                self._fail(StreamError(e))
                return

            line = raw[:-1] if raw.endswith("\n") else raw
            if line.endswith("\r"):
                line = line[:-1]

            with self._cond:
                self._lines.append(line)
                self._state = ReaderState.IDLE
                self._cond.notify_all()

    def _fail(self, error: StreamError) -> None:
        logger.debug(f"Input stream failed: {error.cause!r}")

        # Nothing buffered may be delivered once the callback has started;
        # readers see NoData (or keep waiting) until CLOSED is published.
        with self._cond:
            discarded = len(self._lines)
            self._lines.clear()
        if discarded:
            logger.debug(f"Dropped {discarded} buffered line(s) on stream failure")

        # The callback runs before the closed state becomes visible.
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception as e:
                logger.warning(f"Error in input error callback: {e}")

        with self._cond:
            self._error = error
            self._state = ReaderState.CLOSED
            self._cond.notify_all()
        logger.debug("Input reader thread stopped")
