"""Exception classes for the gcpotel exporters."""

from __future__ import annotations


class ConfigurationError(Exception):
    """Raised when exporter configuration is invalid.

    This exception is only raised while loading configuration in strict
    validation mode. In permissive mode, invalid values are logged and
    replaced with defaults.
    """


class ExportError(Exception):
    """Base class for failures inside a single export call.

    Export errors never propagate out of ``export()``; they are reported
    as the ``error`` of a failed ``ExportResult`` or logged and absorbed.
    """


class IdentityError(ExportError):
    """Raised when the Google Cloud project id cannot be resolved."""


class ConversionError(ExportError):
    """Raised when one metric or span cannot be converted.

    The record is dropped; the rest of the export continues.
    """


class DescriptorRegistrationError(ExportError):
    """Raised when creating a metric descriptor fails.

    Time series for that metric type are skipped for the current export.
    """

    def __init__(self, metric_type: str, message: str | None = None) -> None:
        self.metric_type = metric_type
        super().__init__(message or f"failed to register metric descriptor {metric_type}")


class TransportError(ExportError):
    """Raised when a backend call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
