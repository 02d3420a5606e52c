"""Cloud Monitoring metric exporter.

This module provides the OpenTelemetry ``MetricExporter`` that writes
metrics to Cloud Monitoring v3. Each new metric type is registered as a
metric descriptor once per process before its time series are written.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Sequence
from typing import Any

from opentelemetry.sdk.metrics import (
    Counter,
    Histogram,
    ObservableCounter,
    ObservableGauge,
    ObservableUpDownCounter,
    UpDownCounter,
)
from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    MetricExporter,
    MetricExportResult,
    MetricsData,
)
from opentelemetry.sdk.metrics.view import Aggregation

from gcpotel._internal.batching import BatchOutcome, send_batched
from gcpotel._internal.bridge import SyncExportBridge
from gcpotel._internal.coordinator import ExportCoordinator
from gcpotel._internal.descriptor_cache import DescriptorCache
from gcpotel._internal.identity import (
    ProjectIdProvider,
    ProjectIdResolver,
    default_project_id_provider,
)
from gcpotel._internal.resource import get_monitored_resource
from gcpotel.api.types import (
    DEFAULT_METRIC_PREFIX,
    DEFAULT_RESOURCE_LABEL_KEYS,
    MAX_TIME_SERIES_PER_REQUEST,
    ExportResult,
)
from gcpotel.client.base import BackendClient
from gcpotel.client.http import HttpBackendClient, TokenSource
from gcpotel.exceptions import ConversionError, DescriptorRegistrationError
from gcpotel.exporters.monitoring.transform import MetricConversion, MetricConverter

logger = logging.getLogger(__name__)

# Cloud Monitoring only accepts cumulative counters and distributions
CUMULATIVE_TEMPORALITY: dict[type, AggregationTemporality] = {
    Counter: AggregationTemporality.CUMULATIVE,
    UpDownCounter: AggregationTemporality.CUMULATIVE,
    Histogram: AggregationTemporality.CUMULATIVE,
    ObservableCounter: AggregationTemporality.CUMULATIVE,
    ObservableUpDownCounter: AggregationTemporality.CUMULATIVE,
    ObservableGauge: AggregationTemporality.CUMULATIVE,
}


class MetricExportCoordinator(ExportCoordinator[MetricsData, list[MetricConversion]]):
    """Convert metrics, register new descriptors and write time series."""

    signal = "metric"

    def __init__(
        self,
        client: BackendClient,
        resolver: ProjectIdResolver,
        converter: MetricConverter | None = None,
        max_batch_size: int = MAX_TIME_SERIES_PER_REQUEST,
        tolerate_partial_failure: bool = False,
        descriptor_cache: DescriptorCache | None = None,
    ) -> None:
        super().__init__(client, resolver, max_batch_size, tolerate_partial_failure)
        self._converter = converter if converter is not None else MetricConverter()
        self._descriptors = descriptor_cache if descriptor_cache is not None else DescriptorCache()

    @property
    def descriptors(self) -> DescriptorCache:
        return self._descriptors

    def _convert(self, batch: MetricsData, project_id: str) -> list[MetricConversion]:
        conversions: list[MetricConversion] = []
        for resource_metrics in batch.resource_metrics:
            resource = resource_metrics.resource
            monitored_resource = get_monitored_resource(resource)
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    try:
                        conversions.append(
                            self._converter.convert(metric, resource, monitored_resource)
                        )
                    except ConversionError as exc:
                        logger.warning("Dropping metric %s: %s", metric.name, exc)
        return conversions

    async def _send(
        self, prepared: list[MetricConversion], project_id: str
    ) -> list[BatchOutcome]:
        time_series: list[dict[str, Any]] = []
        for conversion in prepared:
            register = functools.partial(
                self._client.create_metric_descriptor, project_id, conversion.descriptor
            )
            try:
                await self._descriptors.ensure_registered(conversion.metric_type, register)
            except DescriptorRegistrationError as exc:
                logger.warning(
                    "Skipping %d time series of %s: %s",
                    len(conversion.time_series),
                    exc.metric_type,
                    exc.__cause__ or exc,
                )
                continue
            time_series.extend(conversion.time_series)

        return await send_batched(
            time_series,
            self._max_batch_size,
            functools.partial(self._client.create_time_series, project_id),
        )


class CloudMonitoringMetricExporter(MetricExporter):
    """Export OpenTelemetry metrics to Google Cloud Monitoring.

    Args:
        project_id: Project to write to. Discovered from the environment or
            the GCE metadata server when omitted.
        credentials: Access token source. Defaults to Application Default
            Credentials through google-auth.
        endpoint: Alternate Cloud Monitoring API root.
        client: BackendClient to use instead of the default HTTP client.
        project_id_provider: Custom project id discovery.
        prefix: Metric type prefix; types are ``{prefix}/{metric name}``.
        max_batch_size: Time series per createTimeSeries request.
        resource_label_keys: Resource attributes copied onto every series.
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
        prefix: str = DEFAULT_METRIC_PREFIX,
        max_batch_size: int = MAX_TIME_SERIES_PER_REQUEST,
        resource_label_keys: Sequence[str] = DEFAULT_RESOURCE_LABEL_KEYS,
        tolerate_partial_failure: bool = False,
        timeout: float = 10.0,
        preferred_aggregation: dict[type, Aggregation] | None = None,
    ) -> None:
        super().__init__(
            preferred_temporality=CUMULATIVE_TEMPORALITY,
            preferred_aggregation=preferred_aggregation,
        )
        if client is None:
            client = HttpBackendClient(
                credentials=credentials, monitoring_endpoint=endpoint, timeout=timeout
            )
        if project_id_provider is None:
            project_id_provider = default_project_id_provider(project_id)

        self._timeout = timeout
        self._coordinator = MetricExportCoordinator(
            client,
            ProjectIdResolver(project_id_provider),
            MetricConverter(prefix, resource_label_keys),
            max_batch_size=max_batch_size,
            tolerate_partial_failure=tolerate_partial_failure,
        )
        self._bridge: SyncExportBridge[MetricsData] = SyncExportBridge(
            self._coordinator, "gcpotel-metric-exporter"
        )

    @property
    def coordinator(self) -> MetricExportCoordinator:
        return self._coordinator

    def export(
        self,
        metrics_data: MetricsData,
        timeout_millis: float = 10_000,
        **kwargs: Any,
    ) -> MetricExportResult:
        result = self._bridge.export(metrics_data, self._deadline(timeout_millis))
        return MetricExportResult.SUCCESS if result.ok else MetricExportResult.FAILURE

    def export_with_callback(
        self,
        metrics_data: MetricsData,
        callback: Callable[[ExportResult], Any],
        timeout_millis: float = 10_000,
    ) -> None:
        """Export without blocking; ``callback`` receives the ExportResult once."""
        self._bridge.export_with_callback(metrics_data, callback, self._deadline(timeout_millis))

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        # Nothing is buffered between exports
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs: Any) -> None:
        self._bridge.shutdown(timeout_millis / 1000)

    def _deadline(self, timeout_millis: float) -> float:
        return min(timeout_millis / 1000, self._timeout)
