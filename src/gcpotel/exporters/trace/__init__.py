"""Cloud Trace span exporter."""

from gcpotel.exporters.trace.exporter import CloudTraceSpanExporter, TraceExportCoordinator
from gcpotel.exporters.trace.transform import SpanConverter

__all__ = ["CloudTraceSpanExporter", "SpanConverter", "TraceExportCoordinator"]
