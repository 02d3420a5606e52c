"""Conversion of SDK metrics into Cloud Monitoring v3 requests.

One ``Metric`` becomes one ``MetricDescriptor`` and one ``TimeSeries`` per
data point. Bodies follow the REST JSON mapping: camelCase keys, int64
values as decimal strings and RFC 3339 timestamps.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    ExponentialHistogram,
    ExponentialHistogramDataPoint,
    Gauge,
    Histogram,
    HistogramDataPoint,
    Metric,
    NumberDataPoint,
    Sum,
)
from opentelemetry.sdk.resources import Resource

from gcpotel._internal.labels import map_attributes, sanitize_key, select_resource_attributes
from gcpotel._internal.resource import MonitoredResource, get_monitored_resource
from gcpotel._internal.timestamps import ensure_interval, format_timestamp
from gcpotel.api.types import DEFAULT_METRIC_PREFIX, DEFAULT_RESOURCE_LABEL_KEYS
from gcpotel.exceptions import ConversionError

logger = logging.getLogger(__name__)

CUMULATIVE = "CUMULATIVE"
GAUGE = "GAUGE"
INT64 = "INT64"
DOUBLE = "DOUBLE"
DISTRIBUTION = "DISTRIBUTION"


@dataclass
class MetricConversion:
    """A converted metric: its descriptor and one time series per point."""

    descriptor: dict[str, Any]
    time_series: list[dict[str, Any]] = field(default_factory=list)

    @property
    def metric_type(self) -> str:
        return self.descriptor["type"]


def _metric_kind(metric: Metric) -> str:
    data = metric.data
    if isinstance(data, Gauge):
        return GAUGE
    if not isinstance(data, (Sum, Histogram, ExponentialHistogram)):
        raise ConversionError(
            f"metric {metric.name!r} has unsupported data type {type(data).__name__}"
        )
    if data.aggregation_temporality != AggregationTemporality.CUMULATIVE:
        raise ConversionError(
            f"metric {metric.name!r} uses {data.aggregation_temporality.name} "
            "temporality; only CUMULATIVE sums and histograms are supported"
        )
    if isinstance(data, Sum) and not data.is_monotonic:
        return GAUGE
    return CUMULATIVE


def _value_type(metric: Metric) -> str:
    data = metric.data
    if isinstance(data, (Histogram, ExponentialHistogram)):
        return DISTRIBUTION

    values = [point.value for point in data.data_points]
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConversionError(
                f"metric {metric.name!r} has a point value of unsupported type {type(value).__name__}"
            )
    # DOUBLE when there is nothing to infer from
    if values and all(isinstance(value, int) for value in values):
        return INT64
    return DOUBLE


def _number_value(value: int | float, value_type: str) -> dict[str, Any]:
    if value_type == INT64:
        return {"int64Value": str(int(value))}
    return {"doubleValue": float(value)}


def _histogram_value(point: HistogramDataPoint) -> dict[str, Any]:
    count = int(point.count)
    return {
        "distributionValue": {
            "count": str(count),
            "mean": point.sum / count if count else 0.0,
            "sumOfSquaredDeviation": 0.0,
            "bucketOptions": {"explicitBuckets": {"bounds": list(point.explicit_bounds)}},
            "bucketCounts": [str(int(c)) for c in point.bucket_counts],
        }
    }


def _exponential_histogram_value(point: ExponentialHistogramDataPoint) -> dict[str, Any]:
    # OTel bucket i covers (base**(offset+i), base**(offset+i+1)]; Cloud
    # Monitoring bucket i (1..N) covers [scale*g**(i-1), scale*g**i)
    count = int(point.count)
    growth_factor = 2.0 ** (2.0 ** -point.scale)
    positive = list(point.positive.bucket_counts)
    underflow = int(point.zero_count) + sum(int(c) for c in point.negative.bucket_counts)
    return {
        "distributionValue": {
            "count": str(count),
            "mean": point.sum / count if count else 0.0,
            "sumOfSquaredDeviation": 0.0,
            "bucketOptions": {
                "exponentialBuckets": {
                    "numFiniteBuckets": max(1, len(positive)),
                    "growthFactor": growth_factor,
                    "scale": growth_factor ** point.positive.offset,
                }
            },
            "bucketCounts": [str(underflow)]
            + [str(int(c)) for c in positive or [0]]
            + ["0"],
        }
    }


def _point_value(point: Any, value_type: str) -> dict[str, Any]:
    if isinstance(point, NumberDataPoint):
        return _number_value(point.value, value_type)
    if isinstance(point, HistogramDataPoint):
        return _histogram_value(point)
    if isinstance(point, ExponentialHistogramDataPoint):
        return _exponential_histogram_value(point)
    raise ConversionError(f"unsupported data point type {type(point).__name__}")


def _interval(point: Any, metric_kind: str) -> dict[str, str]:
    end = int(point.time_unix_nano)
    if metric_kind == GAUGE:
        return {"endTime": format_timestamp(end)}
    start = int(point.start_time_unix_nano or end)
    start, end = ensure_interval(start, end)
    return {"startTime": format_timestamp(start), "endTime": format_timestamp(end)}


def _label_descriptors(label_sets: Iterable[dict[str, str]]) -> list[dict[str, str]]:
    keys: dict[str, None] = {}
    for labels in label_sets:
        keys.update(dict.fromkeys(labels))
    return [{"key": key, "valueType": "STRING"} for key in keys]


class MetricConverter:
    """Convert SDK ``Metric`` objects into descriptor and time series bodies.

    The value type of a metric type is fixed by its first conversion, since
    the descriptor registered from that conversion is never re-created.
    Later points are written in that type: an INT64 value fits a DOUBLE
    metric exactly, a float written to an INT64 metric is truncated.
    """

    def __init__(
        self,
        prefix: str = DEFAULT_METRIC_PREFIX,
        resource_label_keys: Sequence[str] = DEFAULT_RESOURCE_LABEL_KEYS,
    ) -> None:
        self._prefix = prefix.rstrip("/")
        self._resource_label_keys = tuple(resource_label_keys)
        self._value_types: dict[str, str] = {}

    def metric_type(self, metric: Metric) -> str:
        return f"{self._prefix}/{metric.name}"

    def value_type(self, metric_type: str) -> str | None:
        """The value type ``metric_type`` was first converted with, if any."""
        return self._value_types.get(metric_type)

    def _pinned_value_type(self, metric: Metric, metric_type: str) -> str:
        inferred = _value_type(metric)
        pinned = self._value_types.setdefault(metric_type, inferred)
        if pinned == inferred:
            return pinned
        if DISTRIBUTION in (pinned, inferred):
            raise ConversionError(
                f"metric {metric.name!r} was first exported as {pinned}, now {inferred}"
            )
        if pinned == INT64:
            logger.warning(
                "Metric %s was first exported as INT64; truncating float values", metric_type
            )
        return pinned

    def convert(
        self,
        metric: Metric,
        resource: Resource | None = None,
        monitored_resource: MonitoredResource | None = None,
    ) -> MetricConversion:
        """Convert one metric.

        Raises:
            ConversionError: If the metric's data or a point value is of
                an unsupported kind.
        """
        metric_kind = _metric_kind(metric)
        metric_type = self.metric_type(metric)
        value_type = self._pinned_value_type(metric, metric_type)
        if monitored_resource is None:
            monitored_resource = get_monitored_resource(resource)
        resource_labels = select_resource_attributes(resource, self._resource_label_keys)

        time_series: list[dict[str, Any]] = []
        label_sets: list[dict[str, str]] = []
        for point in metric.data.data_points:
            labels = map_attributes(resource_labels, point.attributes)
            label_sets.append(labels)
            series: dict[str, Any] = {
                "metric": {"type": metric_type, "labels": labels},
                "resource": {
                    "type": monitored_resource["type"],
                    "labels": dict(monitored_resource["labels"]),
                },
                "metricKind": metric_kind,
                "valueType": value_type,
                "points": [
                    {
                        "interval": _interval(point, metric_kind),
                        "value": _point_value(point, value_type),
                    }
                ],
            }
            if metric.unit:
                series["unit"] = metric.unit
            time_series.append(series)

        if not label_sets:
            # No points: still declare the resource labels every series will carry
            label_sets.append({sanitize_key(key): "" for key in resource_labels})

        descriptor: dict[str, Any] = {
            "type": metric_type,
            "displayName": metric.name,
            "description": metric.description or "",
            "metricKind": metric_kind,
            "valueType": value_type,
            "labels": _label_descriptors(label_sets),
        }
        if metric.unit:
            descriptor["unit"] = metric.unit

        return MetricConversion(descriptor=descriptor, time_series=time_series)
