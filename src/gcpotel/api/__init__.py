"""Public API types for the gcpotel exporters.

This module re-exports the stable public interface:
- Config and related types - Programmatic configuration
- ExportResult / ExportResultCode - Outcome of one export call
"""

from __future__ import annotations

from gcpotel.api.types import (
    Config,
    ExportResult,
    ExportResultCode,
    MonitoringConfig,
    ServiceConfig,
    TraceConfig,
    ValidationConfig,
)

__all__ = [
    "Config",
    "ServiceConfig",
    "MonitoringConfig",
    "TraceConfig",
    "ValidationConfig",
    "ExportResult",
    "ExportResultCode",
]
