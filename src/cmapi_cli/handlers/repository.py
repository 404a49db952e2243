"""Repository management commands: clone, create."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from ..errors import BitbucketAPIError, BitbucketError, CommandError
from ..toolchain import copy_template
from .base import CommandContext, LabelCommandHandler
from .project import apply_kernel_then_reset, init_project, link_remote

__all__ = ["CloneHandler", "CreateHandler"]

logger = logging.getLogger(__name__)


def _make_project_dir(project_root: Path) -> None:
    try:
        project_root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.debug(f"Cannot create {project_root}: {e}")
        raise CommandError(113, project_root) from e


class CloneHandler(LabelCommandHandler):
    """``clone LABEL``: clone from the server and set the project up."""

    @property
    def name(self) -> str:
        return "clone"

    def handle(self, options: argparse.Namespace, ctx: CommandContext) -> bool:
        label = self.label(options)
        workspace_dir = Path(options.directory).expanduser()
        dir_name = ctx.secrets.directory_name(label)
        slug = ctx.secrets.slug(label)
        project_root = workspace_dir / dir_name

        _make_project_dir(project_root)

        if not ctx.git.clone(workspace_dir, ctx.secrets.repo_url(slug), dir_name):
            raise CommandError(114)

        apply_kernel_then_reset(ctx, project_root, options.kernel, options.no_pull, reset_error=131)

        return ctx.out.success("Cloned '%s' -> '%s'.", ctx.secrets.web_url(slug), project_root)


class CreateHandler(LabelCommandHandler):
    """``create LABEL``: new project from the template repository.

    1. Refresh the template repository in the administrator directory
    2. Copy it (without git metadata) into the workspace
    3. Initialize the PROS project
    4. Create the server repository and push, unless ``--local``
    """

    @property
    def name(self) -> str:
        return "create"

    def handle(self, options: argparse.Namespace, ctx: CommandContext) -> bool:
        label = self.label(options)
        template_slug = ctx.secrets.get("template-repo").lower()
        template_root = ctx.admin_dir / template_slug

        if not options.no_pull:
            self._refresh_template(ctx, template_root, template_slug)

        if not ctx.git.is_repo(template_root):
            raise CommandError(117, template_root)

        workspace_dir = Path(options.directory).expanduser()
        project_root = workspace_dir / ctx.secrets.directory_name(label)
        slug = ctx.secrets.slug(label)

        if ctx.git.is_repo(project_root):
            raise CommandError(118)

        _make_project_dir(project_root)

        copy_template(template_root, project_root)

        init_project(ctx, project_root, options.kernel, force=True, no_pull=options.no_pull)

        if not options.local:
            self._create_remote(ctx, label, slug)
            link_remote(ctx, project_root, slug)
            if not ctx.git.push(project_root):
                raise CommandError(122)

        return ctx.out.success("Created repository at '%s'.", project_root)

    @staticmethod
    def _refresh_template(ctx: CommandContext, template_root: Path, template_slug: str) -> None:
        if not ctx.git.is_repo(template_root):
            if not ctx.git.clone(ctx.admin_dir, ctx.secrets.repo_url(template_slug), template_slug):
                raise CommandError(115)
            return

        try:
            link_remote(ctx, template_root, template_slug)
        except CommandError as e:
            ctx.out.error(e)
            raise CommandError(116) from e

        if not ctx.git.pull_tee(template_root):
            raise CommandError(112)

    @staticmethod
    def _create_remote(ctx: CommandContext, label: str, slug: str) -> None:
        name = ctx.secrets.get("repo-name-prefix") + label
        project_key = ctx.secrets.get("project")

        async def _create() -> str:
            async with ctx.make_bitbucket_client() as client:
                return await client.create_repository(slug, name, project_key)

        try:
            status = asyncio.run(_create())
        except BitbucketAPIError as e:
            raise CommandError(121, e.status) from e
        except BitbucketError as e:
            logger.debug(f"Repository creation failed: {e}")
            raise CommandError(120) from e
        logger.debug(f"Remote repository created: {status}")
