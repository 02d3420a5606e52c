"""Public configuration and result types for the gcpotel exporters.

These types are part of the stable public API and follow semver guarantees.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Cloud Monitoring rejects createTimeSeries requests with more than 200 series
MAX_TIME_SERIES_PER_REQUEST = 200
DEFAULT_MAX_SPANS_PER_REQUEST = 500

DEFAULT_METRIC_PREFIX = "workload.googleapis.com"
DEFAULT_RESOURCE_LABEL_KEYS = (
    "service.name",
    "service.namespace",
    "service.instance.id",
)


class ExportResultCode(Enum):
    """Outcome of one export call."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ExportResult:
    """Aggregate result of one export call.

    Partial failures below the export level (one dropped record, one
    failed descriptor) are resolved into this single outcome; ``error``
    carries the cause when the export failed.
    """

    code: ExportResultCode
    error: BaseException | None = None

    @classmethod
    def success(cls) -> ExportResult:
        return cls(ExportResultCode.SUCCESS)

    @classmethod
    def failure(cls, error: BaseException) -> ExportResult:
        return cls(ExportResultCode.FAILED, error)

    @property
    def ok(self) -> bool:
        """Return True if the export succeeded."""
        return self.code is ExportResultCode.SUCCESS


@dataclass
class ServiceConfig:
    """Service identification configuration."""

    name: str
    version: str | None = None


@dataclass
class MonitoringConfig:
    """Cloud Monitoring metric exporter configuration."""

    enabled: bool = True
    # Metric types are "{prefix}/{metric name}"
    prefix: str = DEFAULT_METRIC_PREFIX
    max_batch_size: int = MAX_TIME_SERIES_PER_REQUEST
    export_interval_millis: int = 60_000
    # Resource attributes copied onto every metric as labels
    resource_label_keys: list[str] = field(
        default_factory=lambda: list(DEFAULT_RESOURCE_LABEL_KEYS)
    )


@dataclass
class TraceConfig:
    """Cloud Trace span exporter configuration."""

    enabled: bool = True
    max_batch_size: int = DEFAULT_MAX_SPANS_PER_REQUEST
    # Span processor: True for BatchSpanProcessor (default), False for SimpleSpanProcessor
    batch_spans: bool = True


@dataclass
class ValidationConfig:
    """Validation mode configuration."""

    mode: str = "permissive"  # "strict" | "permissive"


@dataclass
class Config:
    """Complete exporter configuration.

    Every field is optional: an empty config discovers the project id and
    credentials from the environment and the GCE metadata server.
    """

    service: ServiceConfig = field(default_factory=lambda: ServiceConfig(name=""))
    # Explicit project id; skips environment and metadata server discovery
    project_id: str | None = None
    # Explicit OAuth2 access token; skips the metadata server token source
    credentials_token: str | None = None
    # Alternate API roots (e.g. a regional endpoint or a local emulator)
    monitoring_endpoint: str | None = None
    trace_endpoint: str | None = None
    timeout_seconds: float = 10.0
    # Report SUCCESS when at least one batch of an export went through
    tolerate_partial_failure: bool = False
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    trace: TraceConfig = field(default_factory=TraceConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)

    @property
    def is_strict(self) -> bool:
        """Return True if validation mode is strict."""
        return self.validation.mode == "strict"
