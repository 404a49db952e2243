"""cmapi-cli application entry.

Startup checks, wiring of the long-lived objects, and the REPL.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any, Callable

from . import __version__
from .config import Config, load_config
from .console import Output
from .dispatcher import CommandDispatcher
from .environment import check_environment
from .errors import CommandError, StreamError
from .handlers import CommandContext
from .input_reader import ErrorCallback, InputReader
from .runtime import ProcessRegistry, ProcessRunner
from .secret_store import SecretStore, default_secrets
from .signal_manager import SignalManager

__all__ = ["main", "run_repl", "make_input_error_handler", "configure_logging"]

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = "normal"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def make_input_error_handler(
    registry: ProcessRegistry,
    exit_func: Callable[[int], Any] = os._exit,
) -> ErrorCallback:
    """Callback for the input reader: kill tracked processes, then exit.

    Runs on the reader thread, so it exits with ``os._exit``; kills are
    best-effort and not awaited.
    """

    def on_input_error(error: StreamError) -> None:
        logger.info(f"Console input closed ({error.cause!r}), shutting down")
        killed = registry.kill_all()
        if killed:
            logger.info(f"Killed {killed} running process(es)")
        for stream in (sys.stdout, sys.stderr):
            try:
                stream.flush()
            except (OSError, ValueError):
                pass
        exit_func(0)

    return on_input_error


def run_repl(
    reader: InputReader,
    dispatcher: CommandDispatcher,
    out: Output,
    last_command: str = DEFAULT_COMMAND,
) -> str:
    """Prompt for and run commands until the input stream fails.

    Input typed while a command was running is discarded before each
    prompt. An empty line repeats the last accepted command.

    Returns:
        The last accepted command line
    """
    out.info(f"Press enter to execute '{DEFAULT_COMMAND}' command or previous command again (if any).")
    out.info("Use 'help' to see all commands.")

    while True:
        reader.drain()
        out.prompt()

        try:
            raw = reader.read()
        except StreamError:
            break

        command_line = raw.strip()
        if not command_line:
            command_line = last_command
            out.info(f"Execute last command: {command_line}")

        if dispatcher.dispatch(command_line):
            last_command = command_line

    return last_command


def configure_logging(config: Config) -> None:
    """Debug mode logs everything to a temp file; otherwise warnings to stderr."""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.WARNING

    # Third-party libraries stay at WARNING
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers)
    logging.getLogger("cmapi_cli").setLevel(log_level)


def _parse_startup_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cmapi",
        description="Robotics project assistant: build, upload and back up PROS projects.",
    )
    parser.add_argument(
        "-f", "--force", action="store_true",
        help="Start even if the environment or secret file checks fail",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def _load_secrets(config: Config, out: Output, force: bool) -> SecretStore | None:
    try:
        secrets = SecretStore.load(config.secret_file)
    except CommandError as e:
        out.error(e)
        if not force:
            return None
        # Carry on with in-memory defaults
        return SecretStore(config.secret_file, default_secrets())

    if secrets.updated:
        out.info("Secret file updated.")
    return secrets


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Process exit code
    """
    args = _parse_startup_args(argv)
    config = load_config()
    configure_logging(config)
    logger.debug(f"Starting cmapi-cli {__version__}: {config}")

    out = Output(beep=config.beep)
    out.beep_success()

    env = check_environment(config.admin_dir, out)
    if not env.ok and not args.force:
        return 1

    secrets = _load_secrets(config, out, args.force)
    if secrets is None:
        return 1

    registry = ProcessRegistry()
    ctx = CommandContext(
        config=config,
        secrets=secrets,
        runner=ProcessRunner(registry),
        out=out,
        working_dir=env.working_dir,
        admin_dir=env.admin_dir,
    )
    dispatcher = CommandDispatcher(ctx)

    signals = SignalManager(
        registry,
        sigint_mode=config.sigint_mode,
        double_tap_window=config.sigint_double_tap_window,
        on_shutdown=lambda: out.console.file.flush(),
    )
    reader = InputReader(on_error=make_input_error_handler(registry)).start()

    signals.install()
    try:
        run_repl(reader, dispatcher, out)
    except KeyboardInterrupt:
        out.console.print()
        source = "Ctrl+C" if signals.is_shutdown_requested else "keyboard interrupt"
        logger.info(f"Interrupted by {source}, exiting")
    finally:
        signals.restore()

    return 0


def cli() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
