"""REPL command handlers.

One handler per command word; ``default_handlers`` lists them all.
"""

from __future__ import annotations

from .base import CommandContext, CommandHandler, LabelCommandHandler, is_valid_label
from .project import (
    BackupHandler,
    BuildHandler,
    CompileHandler,
    InitHandler,
    LinkHandler,
    PullHandler,
)
from .repository import CloneHandler, CreateHandler
from .settings import USAGE, HelpHandler, SecretHandler

__all__ = [
    "CommandContext",
    "CommandHandler",
    "LabelCommandHandler",
    "USAGE",
    "default_handlers",
    "is_valid_label",
]


def default_handlers() -> list[CommandHandler]:
    return [
        CompileHandler(clean_all=True),
        BackupHandler(),
        InitHandler(),
        LinkHandler(),
        BuildHandler(),
        CompileHandler(clean_all=False),
        PullHandler(),
        CloneHandler(),
        CreateHandler(),
        HelpHandler(),
        SecretHandler(),
    ]
