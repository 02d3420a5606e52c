"""Backend client Protocol definition."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol


class BackendClient(Protocol):
    """Protocol that every Cloud Monitoring / Cloud Trace client must satisfy.

    Request bodies are REST JSON shaped dicts. Every call raises
    TransportError on failure. A client is long-lived: it is created once
    per exporter and reused across export calls.
    """

    async def create_metric_descriptor(
        self, project_id: str, descriptor: dict[str, Any]
    ) -> None:
        """Create (or confirm) one metric descriptor."""
        ...

    async def create_time_series(
        self, project_id: str, time_series: Sequence[dict[str, Any]]
    ) -> None:
        """Write one batch of time series."""
        ...

    async def batch_write_spans(
        self, project_id: str, spans: Sequence[dict[str, Any]]
    ) -> None:
        """Write one batch of spans."""
        ...

    async def aclose(self) -> None:
        """Release connections held by the client."""
        ...
