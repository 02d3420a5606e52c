"""Splitting converted requests into backend-sized batches.

Every chunk is sent, even after an earlier chunk failed; outcomes are
collected per chunk and folded into one ExportResult by
``aggregate_outcomes``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import TypeVar

from gcpotel.api.types import ExportResult
from gcpotel.exceptions import TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_CONCURRENCY = 4


@dataclass(frozen=True)
class BatchOutcome:
    """Result of one backend call for one chunk."""

    index: int
    size: int
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive chunks of at most ``size`` items, preserving order."""
    if size < 1:
        raise ValueError(f"batch size must be at least 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


async def send_batched(
    requests: Sequence[T],
    max_batch_size: int,
    send: Callable[[list[T]], Awaitable[object]],
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> list[BatchOutcome]:
    """Issue one ``send`` call per chunk and collect every outcome.

    At most ``max_concurrency`` calls are in flight at once. Outcomes are
    returned in chunk order. Cancellation propagates to in-flight calls.
    """
    chunks = list(chunked(requests, max_batch_size))
    if not chunks:
        return []

    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _send_one(index: int, chunk: list[T]) -> BatchOutcome:
        async with semaphore:
            try:
                await send(chunk)
            except Exception as exc:
                logger.error(
                    "Batch %d of %d (%d entries) failed: %s",
                    index + 1,
                    len(chunks),
                    len(chunk),
                    exc,
                )
                return BatchOutcome(index, len(chunk), exc)
        logger.debug("Batch %d of %d sent (%d entries)", index + 1, len(chunks), len(chunk))
        return BatchOutcome(index, len(chunk))

    return list(
        await asyncio.gather(*(_send_one(i, chunk) for i, chunk in enumerate(chunks)))
    )


def aggregate_outcomes(
    outcomes: Sequence[BatchOutcome], tolerate_partial_failure: bool = False
) -> ExportResult:
    """Fold per-batch outcomes into a single export result.

    By default any failed batch fails the export. With
    ``tolerate_partial_failure`` the export only fails when every batch
    failed.
    """
    failed = [outcome for outcome in outcomes if not outcome.ok]
    if not failed:
        return ExportResult.success()
    if tolerate_partial_failure and len(failed) < len(outcomes):
        logger.warning(
            "%d of %d batches failed; reporting success (partial failure tolerated)",
            len(failed),
            len(outcomes),
        )
        return ExportResult.success()

    cause = failed[0].error
    error = TransportError(
        f"{len(failed)} of {len(outcomes)} batches failed: {cause}",
        status_code=getattr(cause, "status_code", None),
    )
    error.__cause__ = cause
    return ExportResult.failure(error)
