"""Commands acting on the project in the working directory.

b, normal, all, init, link, backup, pull
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from ..errors import CommandError
from .base import CommandContext, CommandHandler

__all__ = [
    "BuildHandler",
    "CompileHandler",
    "InitHandler",
    "LinkHandler",
    "BackupHandler",
    "PullHandler",
    "apply_kernel",
    "apply_kernel_then_reset",
    "init_project",
    "link_remote",
]

logger = logging.getLogger(__name__)

MAKE_BANNER = "------------------ Make Project ------------------"


# =============================================================================
# Shared steps (also used by clone/create)
# =============================================================================


def apply_kernel(ctx: CommandContext, root: Path, kernel: str, no_pull: bool) -> None:
    """Write project.pros and install the kernel template.

    Raises:
        CommandError: 124 or 125
    """
    ctx.pros.write_project_file(root)
    if not ctx.pros.install_kernel(root, kernel, no_download=no_pull):
        raise CommandError(125)


def init_project(
    ctx: CommandContext, root: Path, kernel: str, force: bool, no_pull: bool
) -> None:
    """Turn ``root`` into a git-tracked PROS project.

    Existing files are committed first and restored afterwards, so the
    kernel never overwrites them.

    Raises:
        CommandError: 109, 104, 110, 111, 123, 124 or 125
    """
    if ctx.pros.is_project(root) and not force:
        raise CommandError(109)

    if not ctx.git.init(root):
        raise CommandError(123)

    if not ctx.git.config(root, "commit.gpgsign", "false"):
        raise CommandError(104)

    if not ctx.git.add_all(root) or not ctx.git.commit(
        root, "Apply PROS kernel", allow_empty=True
    ):
        raise CommandError(110)

    apply_kernel_then_reset(ctx, root, kernel, no_pull, reset_error=111)


def apply_kernel_then_reset(
    ctx: CommandContext, root: Path, kernel: str, no_pull: bool, reset_error: int
) -> None:
    """Apply the kernel, then reset the tree to the last commit regardless.

    Raises:
        CommandError: The kernel failure, or ``reset_error`` if the reset fails
    """
    failure: CommandError | None = None
    try:
        apply_kernel(ctx, root, kernel, no_pull)
    except CommandError as e:
        failure = e

    if not ctx.git.reset_hard(root):
        if failure is not None:
            ctx.out.error(failure)
        raise CommandError(reset_error)

    if failure is not None:
        raise failure


def link_remote(ctx: CommandContext, root: Path, slug: str) -> bool:
    """Point ``origin`` at the server repository and set the commit identity.

    Raises:
        CommandError: 102, 103 or 104
    """
    ctx.git.require_repo(root)

    if not ctx.git.set_remote(root, ctx.secrets.repo_url(slug)):
        raise CommandError(103)

    if not (
        ctx.git.config(root, "user.name", ctx.secrets.get("computer-name"))
        and ctx.git.config(root, "user.email", ctx.secrets.get("email"))
        and ctx.git.config(root, "commit.gpgsign", "false")
    ):
        raise CommandError(104)

    return ctx.out.success("Linked '%s' -> '%s'.", root, ctx.secrets.web_url(slug))


def _make(ctx: CommandContext, root: Path, clean_all: bool) -> None:
    ctx.pros.require_project(root)
    ctx.out.info(MAKE_BANNER)
    if not ctx.pros.make(root, clean_all=clean_all):
        ctx.out.beep_fail()
        raise CommandError(107)


# =============================================================================
# Handlers
# =============================================================================


class BuildHandler(CommandHandler):
    """``b``: compile only."""

    @property
    def name(self) -> str:
        return "b"

    def handle(self, options: argparse.Namespace, ctx: CommandContext) -> bool:
        _make(ctx, ctx.working_dir, clean_all=False)
        ctx.out.beep_success()
        return True


class CompileHandler(CommandHandler):
    """``normal`` / ``all``: compile, wait for the brain, upload."""

    def __init__(self, clean_all: bool) -> None:
        self.clean_all = clean_all

    @property
    def name(self) -> str:
        return "all" if self.clean_all else "normal"

    def handle(self, options: argparse.Namespace, ctx: CommandContext) -> bool:
        root = ctx.working_dir
        _make(ctx, root, clean_all=self.clean_all)

        while not ctx.pros.device_connected(root):
            ctx.out.info("V5 product not found, retrying...")
            ctx.sleep(ctx.config.device_poll_interval)

        ctx.out.info("Starting to upload")

        retries = ctx.config.upload_retries
        for attempt in range(retries + 1):
            if attempt:
                ctx.out.info(f"Upload failed, retrying... ({attempt}/{retries})")
            if ctx.pros.upload(root, options.slot):
                ctx.out.beep_success()
                return True

        ctx.out.beep_fail()
        raise CommandError(108)


class InitHandler(CommandHandler):
    """``init``: create the git repository and PROS project in place."""

    @property
    def name(self) -> str:
        return "init"

    def handle(self, options: argparse.Namespace, ctx: CommandContext) -> bool:
        root = ctx.working_dir
        init_project(ctx, root, options.kernel, options.force, options.no_pull)
        return ctx.out.success("Initialized PROS project at '%s'.", root)


class LinkHandler(CommandHandler):
    """``link [SLUG]``: slug defaults to the directory name."""

    @property
    def name(self) -> str:
        return "link"

    def handle(self, options: argparse.Namespace, ctx: CommandContext) -> bool:
        slug = options.args[0] if options.args else ctx.working_dir.name
        return link_remote(ctx, ctx.working_dir, slug)


class BackupHandler(CommandHandler):
    """``backup``: commit everything and push."""

    @property
    def name(self) -> str:
        return "backup"

    def handle(self, options: argparse.Namespace, ctx: CommandContext) -> bool:
        root = ctx.working_dir
        ctx.git.require_repo(root)

        if not ctx.git.add_all(root) or not ctx.git.commit(root, "Backup"):
            raise CommandError(105)

        if not ctx.git.push(root):
            raise CommandError(106)

        return ctx.out.success("All changes have been backed up to the server.")


class PullHandler(CommandHandler):
    @property
    def name(self) -> str:
        return "pull"

    def handle(self, options: argparse.Namespace, ctx: CommandContext) -> bool:
        root = ctx.working_dir
        ctx.git.require_repo(root)

        if not ctx.git.pull(root):
            raise CommandError(112)

        return ctx.out.success("All changes have been pulled from the server.")
