"""Google Cloud project id discovery.

Every API call is addressed to a project. The id comes from a
``ProjectIdProvider``: an explicit override, the environment, or the GCE
metadata server. ``ProjectIdResolver`` wraps a provider in a single-flight
lazy initializer shared by concurrent export calls.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence
from typing import Protocol

import httpx

from gcpotel.exceptions import IdentityError

logger = logging.getLogger(__name__)

PROJECT_ID_ENV_VARS = ("GOOGLE_CLOUD_PROJECT", "GCLOUD_PROJECT", "GCP_PROJECT")

METADATA_HOST = "http://metadata.google.internal"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}
PROJECT_ID_PATH = "/computeMetadata/v1/project/project-id"


class ProjectIdProvider(Protocol):
    """Source of the project id all backend calls are addressed to."""

    async def get_project_id(self) -> str | None:
        """Return the project id, or None if this source does not know it."""
        ...


class StaticProjectId:
    """Explicit project id override."""

    def __init__(self, project_id: str) -> None:
        self._project_id = project_id

    async def get_project_id(self) -> str | None:
        return self._project_id or None


class EnvironmentProjectId:
    """Read the project id from the first set environment variable."""

    def __init__(self, env_vars: Sequence[str] = PROJECT_ID_ENV_VARS) -> None:
        self._env_vars = tuple(env_vars)

    async def get_project_id(self) -> str | None:
        for name in self._env_vars:
            value = os.environ.get(name)
            if value:
                logger.debug("Project id read from %s", name)
                return value
        return None


class MetadataServerProjectId:
    """Ask the GCE metadata server for the project id."""

    def __init__(self, host: str = METADATA_HOST, timeout: float = 3.0) -> None:
        self._url = host.rstrip("/") + PROJECT_ID_PATH
        self._timeout = timeout

    async def get_project_id(self) -> str | None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(self._url, headers=METADATA_HEADERS)
        except httpx.HTTPError as exc:
            logger.debug("Metadata server unreachable: %s", exc)
            return None
        if response.status_code != 200:
            logger.debug("Metadata server returned HTTP %d", response.status_code)
            return None
        return response.text.strip() or None


class ChainedProjectIdProvider:
    """Try providers in order and return the first non-empty answer."""

    def __init__(self, *providers: ProjectIdProvider) -> None:
        self._providers = providers

    async def get_project_id(self) -> str | None:
        for provider in self._providers:
            project_id = await provider.get_project_id()
            if project_id:
                return project_id
        return None


def default_project_id_provider(project_id: str | None = None) -> ProjectIdProvider:
    """Explicit id if given, else environment, else metadata server."""
    if project_id:
        return StaticProjectId(project_id)
    return ChainedProjectIdProvider(EnvironmentProjectId(), MetadataServerProjectId())


class ProjectIdResolver:
    """Single-flight, memoizing wrapper around a ProjectIdProvider.

    The first ``resolve()`` starts one resolution task; concurrent callers
    await that same task. A successful result is kept for the resolver's
    lifetime. A failed attempt is forgotten so the next call retries.

    The resolver must be used from a single event loop.
    """

    def __init__(self, provider: ProjectIdProvider) -> None:
        self._provider = provider
        self._project_id: str | None = None
        self._pending: asyncio.Task[str] | None = None

    @property
    def project_id(self) -> str | None:
        """The memoized project id, if resolution has succeeded."""
        return self._project_id

    async def resolve(self) -> str:
        if self._project_id is not None:
            return self._project_id

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._resolve_once())
            self._pending.add_done_callback(self._on_done)
        # Shield so one cancelled caller does not abort the shared attempt
        return await asyncio.shield(self._pending)

    def reset(self) -> None:
        """Forget the memoized project id."""
        self._project_id = None

    async def _resolve_once(self) -> str:
        try:
            project_id = await self._provider.get_project_id()
        except IdentityError:
            raise
        except Exception as exc:
            raise IdentityError(f"failed to resolve project id: {exc}") from exc
        if not project_id:
            raise IdentityError("no project id could be resolved")
        self._project_id = project_id
        logger.debug("Resolved project id %s", project_id)
        return project_id

    def _on_done(self, task: asyncio.Task[str]) -> None:
        if self._pending is task:
            self._pending = None
        # Retrieve the exception so an attempt nobody awaited is not reported
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Project id resolution failed: %s", task.exception())
