"""Pipeline composition: exporter construction + provider wiring.

This module is responsible for:
- Building the Cloud Monitoring and Cloud Trace exporters from a Config
- Wrapping them in a MeterProvider / TracerProvider with the service resource
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)

from gcpotel.client.http import StaticTokenSource
from gcpotel.exporters.monitoring.exporter import CloudMonitoringMetricExporter
from gcpotel.exporters.trace.exporter import CloudTraceSpanExporter

if TYPE_CHECKING:
    from gcpotel.api.types import Config
    from gcpotel.client.base import BackendClient

logger = logging.getLogger(__name__)


def create_resource(config: Config) -> Resource:
    """Build the SDK Resource identifying the configured service."""
    attributes: dict[str, str] = {}
    if config.service.name:
        attributes[SERVICE_NAME] = config.service.name
    if config.service.version:
        attributes[SERVICE_VERSION] = config.service.version
    return Resource.create(attributes)


def _credentials(config: Config) -> StaticTokenSource | None:
    if config.credentials_token:
        return StaticTokenSource(config.credentials_token)
    return None


def create_metric_exporter(
    config: Config, client: BackendClient | None = None
) -> CloudMonitoringMetricExporter:
    """Create the Cloud Monitoring exporter described by ``config``."""
    return CloudMonitoringMetricExporter(
        config.project_id,
        credentials=_credentials(config),
        endpoint=config.monitoring_endpoint,
        client=client,
        prefix=config.monitoring.prefix,
        max_batch_size=config.monitoring.max_batch_size,
        resource_label_keys=config.monitoring.resource_label_keys,
        tolerate_partial_failure=config.tolerate_partial_failure,
        timeout=config.timeout_seconds,
    )


def create_span_exporter(
    config: Config, client: BackendClient | None = None
) -> CloudTraceSpanExporter:
    """Create the Cloud Trace exporter described by ``config``."""
    return CloudTraceSpanExporter(
        config.project_id,
        credentials=_credentials(config),
        endpoint=config.trace_endpoint,
        client=client,
        max_batch_size=config.trace.max_batch_size,
        tolerate_partial_failure=config.tolerate_partial_failure,
        timeout=config.timeout_seconds,
    )


def create_meter_provider(
    config: Config, exporter: MetricExporter | None = None
) -> MeterProvider:
    """Create a MeterProvider exporting periodically to Cloud Monitoring.

    Args:
        config: Exporter configuration.
        exporter: Exporter to use instead of one built from ``config``.

    Returns:
        MeterProvider with one PeriodicExportingMetricReader. The caller
        decides whether to install it globally.
    """
    if exporter is None:
        exporter = create_metric_exporter(config)
    reader = PeriodicExportingMetricReader(
        exporter,
        export_interval_millis=config.monitoring.export_interval_millis,
        export_timeout_millis=config.timeout_seconds * 1000,
    )
    logger.debug(
        "MeterProvider configured (interval=%dms)", config.monitoring.export_interval_millis
    )
    return MeterProvider(resource=create_resource(config), metric_readers=[reader])


def create_tracer_provider(
    config: Config, exporter: SpanExporter | None = None
) -> TracerProvider:
    """Create a TracerProvider exporting to Cloud Trace.

    Args:
        config: Exporter configuration.
        exporter: Exporter to use instead of one built from ``config``.

    Returns:
        TracerProvider with a BatchSpanProcessor, or a SimpleSpanProcessor
        when ``trace.batch_spans`` is false.
    """
    if exporter is None:
        exporter = create_span_exporter(config)
    provider = TracerProvider(resource=create_resource(config))
    if config.trace.batch_spans:
        provider.add_span_processor(
            BatchSpanProcessor(exporter, max_export_batch_size=config.trace.max_batch_size)
        )
    else:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    logger.debug("TracerProvider configured (batch_spans=%s)", config.trace.batch_spans)
    return provider
