"""Timestamp conversion from SDK nanoseconds to RFC 3339 strings."""

from __future__ import annotations

from datetime import datetime, timezone

NANOS_PER_SECOND = 1_000_000_000

# Both Cloud Monitoring and Cloud Trace reject intervals whose end time is
# not strictly after the start time. Equal (or inverted) timestamps are
# nudged forward by the smallest unit the RFC 3339 format can carry.
MIN_INTERVAL_NANOS = 1


def format_timestamp(nanos: int) -> str:
    """Render nanoseconds since the Unix epoch as ``YYYY-MM-DDTHH:MM:SS.nnnnnnnnnZ``."""
    seconds, fraction = divmod(int(nanos), NANOS_PER_SECOND)
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return f"{moment:%Y-%m-%dT%H:%M:%S}.{fraction:09d}Z"


def ensure_interval(start_nanos: int, end_nanos: int) -> tuple[int, int]:
    """Return a (start, end) pair where end is strictly after start."""
    if end_nanos <= start_nanos:
        end_nanos = start_nanos + MIN_INTERVAL_NANOS
    return start_nanos, end_nanos
