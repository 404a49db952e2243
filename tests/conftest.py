"""Pytest configuration and fixtures."""

from __future__ import annotations

import io
import os
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Iterator

import pytest
from rich.console import Console

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from cmapi_cli.config import Config
from cmapi_cli.console import Output
from cmapi_cli.handlers import CommandContext
from cmapi_cli.input_reader import InputReader
from cmapi_cli.runtime import OutputMode, ProcessRegistry, ProcessResult, ProcessRunner, ProcessSpec
from cmapi_cli.secret_store import SecretStore, default_secrets


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll ``predicate`` until it is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class Pipe:
    """An os.pipe wrapped as text streams: write to ``writer``, read from ``stream``."""

    def __init__(self) -> None:
        r, w = os.pipe()
        self.stream = os.fdopen(r, "r", encoding="utf-8")
        self.writer = os.fdopen(w, "w", encoding="utf-8")

    def write(self, text: str) -> None:
        self.writer.write(text)
        self.writer.flush()

    def close_writer(self) -> None:
        if not self.writer.closed:
            self.writer.close()


@pytest.fixture
def pipe() -> Iterator[Pipe]:
    p = Pipe()
    readers: list[InputReader] = []
    p.readers = readers  # type: ignore[attr-defined]
    yield p
    # EOF lets the reader threads finish before the read end is closed
    p.close_writer()
    for reader in readers:
        thread = reader._thread
        if thread is not None:
            thread.join(timeout=2.0)
    p.stream.close()


@pytest.fixture
def make_reader(pipe: Pipe) -> Callable[..., InputReader]:
    """Start an InputReader on the pipe fixture."""

    def factory(on_error=None) -> InputReader:
        reader = InputReader(on_error=on_error, stream=pipe.stream).start()
        pipe.readers.append(reader)  # type: ignore[attr-defined]
        return reader

    return factory


# =============================================================================
# Command context fakes
# =============================================================================


Responder = Callable[[ProcessSpec], ProcessResult | None]


class ScriptedRunner(ProcessRunner):
    """ProcessRunner that records command lines instead of running them.

    A ``responder`` sees every ProcessSpec first and may answer it; otherwise
    ``rules`` maps an argv prefix to a result (or a list of results consumed
    in order); the longest matching prefix wins, everything else succeeds.
    """

    def __init__(self, responder: Responder | None = None) -> None:
        super().__init__(registry=ProcessRegistry())
        self.responder = responder
        self.calls: list[list[str]] = []
        self.cwds: list[Path] = []
        self.modes: list[OutputMode] = []
        self.rules: dict[tuple[str, ...], ProcessResult | list[ProcessResult]] = {}

    def on(self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.rules[prefix] = ProcessResult(returncode, stdout, stderr)

    def on_sequence(self, *prefix: str, results: list[ProcessResult]) -> None:
        self.rules[prefix] = list(results)

    def run(self, spec: ProcessSpec, mode: OutputMode = OutputMode.INHERIT) -> ProcessResult:
        # Same cancellation points as ProcessRunner.run: before and after the tool
        self.registry.raise_if_cancelled()
        result = self._answer(spec, mode)
        self.registry.raise_if_cancelled()
        return result

    def _answer(self, spec: ProcessSpec, mode: OutputMode) -> ProcessResult:
        argv = list(spec.argv)
        self.calls.append(argv)
        self.cwds.append(Path(spec.cwd))
        self.modes.append(mode)

        if self.responder is not None:
            answer = self.responder(spec)
            if answer is not None:
                return answer

        matches = [p for p in self.rules if tuple(argv[: len(p)]) == p]
        if not matches:
            return ProcessResult(0)
        rule = self.rules[max(matches, key=len)]
        if isinstance(rule, list):
            return rule.pop(0) if len(rule) > 1 else rule[0]
        return rule

    def called(self, *prefix: str) -> bool:
        return any(tuple(c[: len(prefix)]) == prefix for c in self.calls)


def make_output() -> Output:
    console = Console(file=io.StringIO(), width=200, color_system=None, highlight=False)
    return Output(console=console, beep=False)


def output_text(out: Output) -> str:
    return out.console.file.getvalue()  # type: ignore[attr-defined]


@pytest.fixture
def out() -> Output:
    return make_output()


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def secrets(tmp_path: Path) -> SecretStore:
    values = default_secrets(username="tester", home=tmp_path / "home")
    values["password"] = "hunter2"
    return SecretStore(tmp_path / "secret.json", values)


@pytest.fixture
def ctx(tmp_path: Path, runner: ScriptedRunner, out: Output, secrets: SecretStore) -> CommandContext:
    working_dir = tmp_path / "project"
    working_dir.mkdir()
    admin_dir = tmp_path / "admin"
    admin_dir.mkdir()
    return CommandContext(
        config=Config(admin_dir=admin_dir, beep=False, upload_retries=2, device_poll_interval=0.0),
        secrets=secrets,
        runner=runner,
        out=out,
        working_dir=working_dir,
        admin_dir=admin_dir,
        sleep=lambda seconds: None,
    )


@pytest.fixture
def background() -> Iterator[Callable[[Callable[[], object]], threading.Thread]]:
    """Run callables on daemon threads; joined at teardown."""
    threads: list[threading.Thread] = []

    def start(target: Callable[[], object]) -> threading.Thread:
        thread = threading.Thread(target=target, daemon=True)
        thread.start()
        threads.append(thread)
        return thread

    yield start
    for thread in threads:
        thread.join(timeout=5.0)
