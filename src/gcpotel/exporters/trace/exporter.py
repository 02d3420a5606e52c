"""Cloud Trace span exporter.

This module provides the OpenTelemetry ``SpanExporter`` that writes spans
to Cloud Trace v2 through ``traces:batchWrite``.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Sequence
from typing import Any

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from gcpotel._internal.batching import BatchOutcome, send_batched
from gcpotel._internal.bridge import SyncExportBridge
from gcpotel._internal.coordinator import ExportCoordinator
from gcpotel._internal.identity import (
    ProjectIdProvider,
    ProjectIdResolver,
    default_project_id_provider,
)
from gcpotel.api.types import DEFAULT_MAX_SPANS_PER_REQUEST, ExportResult
from gcpotel.client.base import BackendClient
from gcpotel.client.http import HttpBackendClient, TokenSource
from gcpotel.exceptions import ConversionError
from gcpotel.exporters.trace.transform import SpanConverter

logger = logging.getLogger(__name__)


class TraceExportCoordinator(ExportCoordinator[Sequence[ReadableSpan], list[dict[str, Any]]]):
    """Convert spans and write them in batches."""

    signal = "span"

    def __init__(
        self,
        client: BackendClient,
        resolver: ProjectIdResolver,
        converter: SpanConverter | None = None,
        max_batch_size: int = DEFAULT_MAX_SPANS_PER_REQUEST,
        tolerate_partial_failure: bool = False,
    ) -> None:
        super().__init__(client, resolver, max_batch_size, tolerate_partial_failure)
        self._converter = converter if converter is not None else SpanConverter()

    def _convert(self, batch: Sequence[ReadableSpan], project_id: str) -> list[dict[str, Any]]:
        spans: list[dict[str, Any]] = []
        for span in batch:
            try:
                spans.append(self._converter.convert(span, project_id))
            except ConversionError as exc:
                logger.warning("Dropping span %s: %s", span.name, exc)
        return spans

    async def _send(self, prepared: list[dict[str, Any]], project_id: str) -> list[BatchOutcome]:
        return await send_batched(
            prepared,
            self._max_batch_size,
            functools.partial(self._client.batch_write_spans, project_id),
        )


class CloudTraceSpanExporter(SpanExporter):
    """Export OpenTelemetry spans to Google Cloud Trace.

    Args:
        project_id: Project to write to. Discovered from the environment or
            the GCE metadata server when omitted.
        credentials: Access token source. Defaults to Application Default
            Credentials through google-auth.
        endpoint: Alternate Cloud Trace API root.
        client: BackendClient to use instead of the default HTTP client.
        project_id_provider: Custom project id discovery.
        max_batch_size: Spans per batchWrite request.
        resource_attribute_prefix: Prefix of the monitored resource
            attributes added to every span.
        tolerate_partial_failure: Report success when some batches failed
            but at least one went through.
        timeout: Upper bound in seconds for one export.
    """

    def __init__(
        self,
        project_id: str | None = None,
        *,
        credentials: TokenSource | None = None,
        endpoint: str | None = None,
        client: BackendClient | None = None,
        project_id_provider: ProjectIdProvider | None = None,
        max_batch_size: int = DEFAULT_MAX_SPANS_PER_REQUEST,
        resource_attribute_prefix: str = "g.co/r",
        tolerate_partial_failure: bool = False,
        timeout: float = 10.0,
    ) -> None:
        if client is None:
            client = HttpBackendClient(
                credentials=credentials, trace_endpoint=endpoint, timeout=timeout
            )
        if project_id_provider is None:
            project_id_provider = default_project_id_provider(project_id)

        self._timeout = timeout
        self._coordinator = TraceExportCoordinator(
            client,
            ProjectIdResolver(project_id_provider),
            SpanConverter(resource_attribute_prefix),
            max_batch_size=max_batch_size,
            tolerate_partial_failure=tolerate_partial_failure,
        )
        self._bridge: SyncExportBridge[Sequence[ReadableSpan]] = SyncExportBridge(
            self._coordinator, "gcpotel-span-exporter"
        )

    @property
    def coordinator(self) -> TraceExportCoordinator:
        return self._coordinator

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        result = self._bridge.export(list(spans), self._timeout)
        return SpanExportResult.SUCCESS if result.ok else SpanExportResult.FAILURE

    def export_with_callback(
        self,
        spans: Sequence[ReadableSpan],
        callback: Callable[[ExportResult], Any],
    ) -> None:
        """Export without blocking; ``callback`` receives the ExportResult once."""
        self._bridge.export_with_callback(list(spans), callback, self._timeout)

    def force_flush(self, timeout_millis: int = 30_000) -> bool:
        return True

    def shutdown(self) -> None:
        self._bridge.shutdown(self._timeout)
