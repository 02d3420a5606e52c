"""Cloud Monitoring metric exporter."""

from gcpotel.exporters.monitoring.exporter import (
    CloudMonitoringMetricExporter,
    MetricExportCoordinator,
)
from gcpotel.exporters.monitoring.transform import MetricConversion, MetricConverter

__all__ = [
    "CloudMonitoringMetricExporter",
    "MetricConversion",
    "MetricConverter",
    "MetricExportCoordinator",
]
