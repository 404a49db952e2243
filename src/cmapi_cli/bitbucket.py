"""Bitbucket Cloud API client.

Only repository creation is needed: cloning and pushing go through git.
Uses aiohttp; callers in the synchronous REPL wrap the coroutine with
``asyncio.run``.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from .errors import BitbucketAPIError, BitbucketError
from .models import RepositoryPayload, RepositoryProject

__all__ = ["BitbucketClient", "DEFAULT_API_URL"]

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.bitbucket.org/2.0"
DEFAULT_TIMEOUT = 30.0  # seconds
MAX_ERROR_BODY = 500  # characters of the response kept in errors


class BitbucketClient:
    """Creates repositories in a Bitbucket workspace.

    Example:
        async with BitbucketClient("bot", "app-password", "vex7984") as client:
            await client.create_repository("7984-robot", "7984 - ROBOT", "CURRENT")
    """

    def __init__(
        self,
        username: str,
        password: str,
        workspace: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.username = username
        self.workspace = workspace
        self.base_url = base_url.rstrip("/")
        self._auth = aiohttp.BasicAuth(username, password)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "BitbucketClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    def repository_url(self, slug: str) -> str:
        return f"{self.base_url}/repositories/{self.workspace}/{slug}"

    async def create_repository(self, slug: str, name: str, project_key: str) -> str:
        """Create a private C++ repository.

        Args:
            slug: Repository slug (lower case)
            name: Display name
            project_key: Key of the Bitbucket project to file it under

        Returns:
            The response status line, e.g. "200 OK"

        Raises:
            BitbucketAPIError: The API answered with a status other than 200
            BitbucketError: The request could not be completed
        """
        payload = RepositoryPayload(
            project=RepositoryProject(key=project_key),
            name=name,
        )
        url = self.repository_url(slug)
        session = await self._get_session()

        logger.debug(f"POST {url} as {self.username}")
        try:
            async with session.post(
                url,
                json=payload.model_dump(),
                auth=self._auth,
            ) as resp:
                body = await resp.text()
                reason = resp.reason or ""
                if resp.status != 200:
                    logger.warning(f"Repository creation failed: {resp.status} {reason}")
                    raise BitbucketAPIError(resp.status, reason, body[:MAX_ERROR_BODY])
                logger.info(f"Created repository {self.workspace}/{slug}")
                return f"{resp.status} {reason}".strip()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BitbucketError(f"Request to {url} failed: {e}") from e
