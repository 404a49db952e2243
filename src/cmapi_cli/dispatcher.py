"""Parses a REPL command line and runs the matching handler."""

from __future__ import annotations

import argparse
import logging
import shlex
from typing import Iterable, NoReturn

from .errors import CommandCancelled, CommandError
from .handlers import CommandContext, CommandHandler, default_handlers

__all__ = ["CommandDispatcher", "build_option_parser", "split_command_line"]

logger = logging.getLogger(__name__)


class _OptionParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting the REPL."""

    def error(self, message: str) -> NoReturn:
        logger.debug(f"Option parsing failed: {message}")
        raise CommandError(300)

    def exit(self, status: int = 0, message: str | None = None) -> NoReturn:
        raise CommandError(300)


def build_option_parser(default_directory: str) -> argparse.ArgumentParser:
    """Options shared by every command.

    Args:
        default_directory: Default for ``--directory``
    """
    parser = _OptionParser(prog="cmapi", add_help=False)
    parser.add_argument("-d", "--directory", default=default_directory)
    parser.add_argument("-f", "--force", action="store_true")
    parser.add_argument("-k", "--kernel", default="latest")
    parser.add_argument("-l", "--local", action="store_true")
    parser.add_argument("-np", "--no-pull", dest="no_pull", action="store_true")
    parser.add_argument("-s", "--slot", type=int, default=1)
    parser.add_argument("args", nargs="*")
    return parser


def split_command_line(command_line: str) -> list[str]:
    """Split with POSIX shell quoting rules.

    Raises:
        CommandError: 300 on unbalanced quotes
    """
    try:
        return shlex.split(command_line)
    except ValueError as e:
        logger.debug(f"Cannot split {command_line!r}: {e}")
        raise CommandError(300) from e


class CommandDispatcher:
    """Maps command words to handlers.

    Example:
        dispatcher = CommandDispatcher(ctx)
        if dispatcher.dispatch("clone -k 4.1.0 ROBOT"):
            last_command = "clone -k 4.1.0 ROBOT"
    """

    def __init__(
        self,
        ctx: CommandContext,
        handlers: Iterable[CommandHandler] | None = None,
    ) -> None:
        self.ctx = ctx
        self._handlers: dict[str, CommandHandler] = {}
        for handler in handlers if handlers is not None else default_handlers():
            self.register(handler)

    def register(self, handler: CommandHandler) -> None:
        if handler.name in self._handlers:
            raise ValueError(f"Command {handler.name!r} already registered")
        self._handlers[handler.name] = handler

    @property
    def commands(self) -> list[str]:
        return sorted(self._handlers)

    def dispatch(self, command_line: str) -> bool:
        """Run one command line.

        Failures inside a recognized command are printed and still count
        as recognized.

        Returns:
            True if the command line was recognized and accepted; False if it
            could not be parsed, the command is unknown or its arguments were
            rejected
        """
        try:
            words = split_command_line(command_line)
        except CommandError as e:
            return self.ctx.out.error(e)

        if not words:
            return False

        return self.handle(words[0], words[1:])

    def handle(self, command: str, argv: list[str]) -> bool:
        handler = self._handlers.get(command)
        if handler is None:
            return self.ctx.out.fail(301, command)

        parser = build_option_parser(self.ctx.secrets.get("workspace-dir"))
        try:
            options = parser.parse_intermixed_args(argv)
        except CommandError as e:
            return self.ctx.out.error(e)

        rejected = handler.validate(options, self.ctx)
        if rejected is not None:
            return self.ctx.out.error(rejected)

        logger.debug(f"Running {command} with {vars(options)}")
        try:
            with self.ctx.runner.registry.command(command):
                handler.handle(options, self.ctx)
        except CommandError as e:
            self.ctx.out.error(e)
        except CommandCancelled:
            logger.info(f"Command {command} cancelled")
            self.ctx.out.info(f"Command '{command}' cancelled.")
        return True
