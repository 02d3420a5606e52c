"""Export coordination shared by the metric and trace exporters.

One ``export()`` call runs this state machine once:

    IDLE -> RESOLVING_IDENTITY -> CONVERTING -> SENDING -> COMPLETED

Identity failures end the call immediately as FAILED. Per-record
conversion failures are dropped by the subclass; per-batch outcomes are
folded into one result by ``aggregate_outcomes``. ``export()`` never
raises: every failure becomes a failed ExportResult.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Generic, TypeVar

from gcpotel._internal.batching import BatchOutcome, aggregate_outcomes
from gcpotel._internal.identity import ProjectIdResolver
from gcpotel.api.types import ExportResult
from gcpotel.client.base import BackendClient
from gcpotel.exceptions import ExportError, IdentityError

logger = logging.getLogger(__name__)

BatchT = TypeVar("BatchT")
PreparedT = TypeVar("PreparedT")


class ExportState(Enum):
    IDLE = "idle"
    RESOLVING_IDENTITY = "resolving_identity"
    CONVERTING = "converting"
    SENDING = "sending"
    COMPLETED = "completed"


class ExportCoordinator(ABC, Generic[BatchT, PreparedT]):
    """Resolve identity, convert, send in batches and aggregate outcomes.

    Subclasses implement ``_convert`` (pure, drops malformed records) and
    ``_send`` (issues backend calls, returns one outcome per batch).
    """

    signal = "telemetry"

    def __init__(
        self,
        client: BackendClient,
        resolver: ProjectIdResolver,
        max_batch_size: int,
        tolerate_partial_failure: bool = False,
    ) -> None:
        if max_batch_size < 1:
            raise ValueError(f"max_batch_size must be at least 1, got {max_batch_size}")
        self._client = client
        self._resolver = resolver
        self._max_batch_size = max_batch_size
        self._tolerate_partial_failure = tolerate_partial_failure

    @property
    def client(self) -> BackendClient:
        return self._client

    @property
    def resolver(self) -> ProjectIdResolver:
        return self._resolver

    async def export(self, batch: BatchT, timeout: float | None = None) -> ExportResult:
        """Run one export. Never raises.

        Args:
            batch: The records to export.
            timeout: Deadline in seconds. In-flight calls are cancelled when
                it expires and the export is reported as failed.
        """
        try:
            if timeout is None:
                return await self._export(batch)
            return await asyncio.wait_for(self._export(batch), timeout)
        except asyncio.TimeoutError:
            logger.error("%s export timed out after %ss", self.signal, timeout)
            return ExportResult.failure(TimeoutError(f"export timed out after {timeout}s"))
        except asyncio.CancelledError:
            logger.warning("%s export cancelled", self.signal)
            return ExportResult.failure(ExportError("export cancelled"))
        except Exception as exc:
            logger.exception("Unexpected error during %s export", self.signal)
            return ExportResult.failure(exc)

    async def _export(self, batch: BatchT) -> ExportResult:
        self._transition(ExportState.IDLE, ExportState.RESOLVING_IDENTITY)
        try:
            project_id = await self._resolver.resolve()
        except IdentityError as exc:
            logger.error("Cannot export %s: %s", self.signal, exc)
            self._transition(ExportState.RESOLVING_IDENTITY, ExportState.COMPLETED)
            return ExportResult.failure(exc)

        self._transition(ExportState.RESOLVING_IDENTITY, ExportState.CONVERTING)
        prepared = self._convert(batch, project_id)

        self._transition(ExportState.CONVERTING, ExportState.SENDING)
        outcomes = await self._send(prepared, project_id)

        result = aggregate_outcomes(outcomes, self._tolerate_partial_failure)
        self._transition(ExportState.SENDING, ExportState.COMPLETED, result.code.value)
        return result

    @abstractmethod
    def _convert(self, batch: BatchT, project_id: str) -> PreparedT:
        """Convert a batch into backend requests, dropping malformed records."""

    @abstractmethod
    async def _send(self, prepared: PreparedT, project_id: str) -> list[BatchOutcome]:
        """Issue backend calls for converted requests."""

    def _transition(self, source: ExportState, target: ExportState, *detail: Any) -> None:
        logger.debug(
            "%s export: %s -> %s%s",
            self.signal,
            source.value,
            target.value,
            f" ({', '.join(map(str, detail))})" if detail else "",
        )

    async def aclose(self) -> None:
        """Release the backend client."""
        await self._client.aclose()
