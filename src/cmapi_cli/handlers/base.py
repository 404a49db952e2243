"""Command handler base abstractions.

Defines the handler protocol and the execution context passed to it.
"""

from __future__ import annotations

import argparse
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from ..bitbucket import BitbucketClient
from ..errors import CommandError
from ..toolchain import Git, Pros

if TYPE_CHECKING:
    from ..config import Config
    from ..console import Output
    from ..runtime import ProcessRunner
    from ..secret_store import SecretStore

__all__ = [
    "CommandContext",
    "CommandHandler",
    "LabelCommandHandler",
    "is_valid_label",
]

_LABEL_PATTERN = re.compile(r"^[A-Z0-9\-]+$")


def is_valid_label(label: str | None) -> bool:
    """Labels are upper-case letters, digits and hyphens."""
    return bool(label) and _LABEL_PATTERN.match(label) is not None


@dataclass
class CommandContext:
    """Everything a command needs, built once at startup.

    Attributes:
        config: Runtime configuration
        secrets: Persisted user settings
        runner: Runs external tools and tracks them in the registry
        out: Console output
        working_dir: Directory project commands act on
        admin_dir: Administrator directory holding the template repository
        bitbucket_factory: Builds an API client from the current secrets
        sleep: Pause between device checks
    """

    config: "Config"
    secrets: "SecretStore"
    runner: "ProcessRunner"
    out: "Output"
    working_dir: Path
    admin_dir: Path
    bitbucket_factory: Callable[["SecretStore"], BitbucketClient] | None = None
    sleep: Callable[[float], None] = time.sleep
    git: Git = field(init=False)
    pros: Pros = field(init=False)

    def __post_init__(self) -> None:
        self.git = Git(self.runner)
        self.pros = Pros(self.runner)

    def make_bitbucket_client(self) -> BitbucketClient:
        if self.bitbucket_factory is not None:
            return self.bitbucket_factory(self.secrets)
        return BitbucketClient(
            self.secrets.get("username"),
            self.secrets.get("password"),
            self.secrets.get("workspace"),
        )


class CommandHandler(ABC):
    """REPL command handler protocol."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Command word typed at the prompt."""
        ...

    @abstractmethod
    def handle(self, options: argparse.Namespace, ctx: CommandContext) -> bool:
        """Run the command.

        Args:
            options: Parsed options; ``options.args`` holds positionals
            ctx: Execution context

        Returns:
            True on success

        Raises:
            CommandError: For numbered failures
        """
        ...

    def validate(self, options: argparse.Namespace, ctx: CommandContext) -> CommandError | None:
        """Reject the command line before anything runs.

        Returns:
            The error, or None if the command line is acceptable
        """
        return None


class LabelCommandHandler(CommandHandler):
    """Handler whose first positional argument is a project label."""

    def validate(self, options: argparse.Namespace, ctx: CommandContext) -> CommandError | None:
        label = options.args[0] if options.args else None
        if not is_valid_label(label):
            return CommandError(200)
        return None

    @staticmethod
    def label(options: argparse.Namespace) -> str:
        return options.args[0]
