"""Google Cloud Monitoring and Cloud Trace exporters for OpenTelemetry.

    from gcpotel import CloudMonitoringMetricExporter, CloudTraceSpanExporter

    reader = PeriodicExportingMetricReader(CloudMonitoringMetricExporter())
    processor = BatchSpanProcessor(CloudTraceSpanExporter())

Or build providers from a YAML file:

    import gcpotel
    config = gcpotel.load_config("/path/to/gcpotel.yaml")
    tracer_provider = gcpotel.create_tracer_provider(config)
"""

from __future__ import annotations

from gcpotel.exceptions import ConfigurationError
from gcpotel.version import __version__

__all__ = [
    "CloudMonitoringMetricExporter",
    "CloudTraceSpanExporter",
    "ConfigurationError",
    "__version__",
    "create_meter_provider",
    "create_tracer_provider",
    "load_config",
]

# Public name -> defining module, imported on first access
_LAZY_ATTRIBUTES = {
    "CloudMonitoringMetricExporter": "gcpotel.exporters.monitoring.exporter",
    "CloudTraceSpanExporter": "gcpotel.exporters.trace.exporter",
    "create_meter_provider": "gcpotel.sdk.pipeline",
    "create_tracer_provider": "gcpotel.sdk.pipeline",
    "load_config": "gcpotel.sdk.config.load",
}


def __getattr__(name: str):
    if name in _LAZY_ATTRIBUTES:
        import importlib

        return getattr(importlib.import_module(_LAZY_ATTRIBUTES[name]), name)
    raise AttributeError(f"module 'gcpotel' has no attribute '{name}'")


def __dir__() -> list[str]:
    return sorted(__all__)
