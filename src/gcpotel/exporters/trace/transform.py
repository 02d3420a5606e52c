"""Conversion of SDK spans into Cloud Trace v2 ``Span`` bodies.

Cloud Trace limits the size of everything it stores. Strings are
TruncatableStrings (cut on a UTF-8 boundary, with the number of dropped
bytes reported) and collections over their limit are cut with a dropped
count.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import Event, ReadableSpan
from opentelemetry.trace import Link, SpanKind, StatusCode, format_span_id, format_trace_id

from gcpotel._internal.resource import GENERIC_NODE, GENERIC_TASK, get_monitored_resource
from gcpotel._internal.timestamps import ensure_interval, format_timestamp
from gcpotel.client.http import user_agent
from gcpotel.exceptions import ConversionError

logger = logging.getLogger(__name__)

MAX_NUM_LINKS = 128
MAX_NUM_EVENTS = 32
MAX_SPAN_ATTRS = 32
MAX_LINK_ATTRS = 32
MAX_EVENT_ATTRS = 4
MAX_ATTR_KEY_BYTES = 128
MAX_ATTR_VAL_BYTES = 16 * 1024
MAX_DISPLAY_NAME_BYTES = 128
MAX_EVENT_DESCRIPTION_BYTES = 256

AGENT_ATTRIBUTE = "g.co/agent"

# Cloud Trace shows these under its own well-known label names
HTTP_ATTRIBUTE_MAPPING = {
    "http.host": "/http/host",
    "http.method": "/http/method",
    "http.route": "/http/route",
    "http.status_code": "/http/status_code",
    "http.target": "/http/path",
    "http.url": "/http/url",
    "http.user_agent": "/http/user_agent",
}

SPAN_KIND_MAPPING = {
    SpanKind.INTERNAL: "INTERNAL",
    SpanKind.SERVER: "SERVER",
    SpanKind.CLIENT: "CLIENT",
    SpanKind.PRODUCER: "PRODUCER",
    SpanKind.CONSUMER: "CONSUMER",
}

# google.rpc.Code
RPC_CODE_OK = 0
RPC_CODE_UNKNOWN = 2

# Generic resources say nothing a trace viewer can use
_UNLABELED_RESOURCE_TYPES = {GENERIC_TASK, GENERIC_NODE}


def truncatable_string(text: str, limit: int) -> dict[str, Any]:
    """Build a TruncatableString of at most ``limit`` UTF-8 bytes."""
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return {"value": text, "truncatedByteCount": 0}
    # errors="ignore" drops a multi-byte character split by the cut
    value = encoded[:limit].decode("utf-8", errors="ignore")
    return {
        "value": value,
        "truncatedByteCount": len(encoded) - len(value.encode("utf-8")),
    }


def _truncate_key(key: str) -> str:
    return truncatable_string(key, MAX_ATTR_KEY_BYTES)["value"]


def attribute_value(value: Any) -> dict[str, Any] | None:
    """Convert one attribute value, or return None if it cannot be sent."""
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, int):
        return {"intValue": str(value)}
    if isinstance(value, str):
        return {"stringValue": truncatable_string(value, MAX_ATTR_VAL_BYTES)}
    if isinstance(value, float):
        return {"stringValue": truncatable_string(f"{value:.4f}", MAX_ATTR_VAL_BYTES)}
    if isinstance(value, Sequence):
        joined = ",".join(str(item) for item in value)
        return {"stringValue": truncatable_string(joined, MAX_ATTR_VAL_BYTES)}
    return None


def convert_attributes(
    attributes: Mapping[str, Any] | None,
    limit: int,
    add_agent: bool = False,
    dropped: int = 0,
) -> dict[str, Any]:
    """Build an ``Attributes`` message holding at most ``limit`` entries."""
    attribute_map: dict[str, Any] = {}
    dropped_count = dropped
    for key, value in (attributes or {}).items():
        if len(attribute_map) >= limit:
            dropped_count += 1
            continue
        converted = attribute_value(value)
        if converted is None:
            logger.debug("Dropping attribute %s of unsupported type %s", key, type(value).__name__)
            dropped_count += 1
            continue
        key = HTTP_ATTRIBUTE_MAPPING.get(key, key)
        attribute_map[_truncate_key(key)] = converted

    if add_agent:
        attribute_map[AGENT_ATTRIBUTE] = {
            "stringValue": truncatable_string(user_agent("trace"), MAX_ATTR_VAL_BYTES)
        }

    return {"attributeMap": attribute_map, "droppedAttributesCount": dropped_count}


def resource_attributes(resource: Resource | None, prefix: str = "g.co/r") -> dict[str, str]:
    """Monitored resource labels as ``{prefix}/{type}/{label}`` span attributes."""
    if resource is None:
        return {}
    monitored = get_monitored_resource(resource)
    if monitored["type"] in _UNLABELED_RESOURCE_TYPES:
        return {}
    return {
        f"{prefix}/{monitored['type']}/{label}": value
        for label, value in monitored["labels"].items()
        if value
    }


def _time_events(events: Sequence[Event], dropped: int = 0) -> dict[str, Any]:
    time_events = [
        {
            "time": format_timestamp(event.timestamp),
            "annotation": {
                "description": truncatable_string(event.name, MAX_EVENT_DESCRIPTION_BYTES),
                "attributes": convert_attributes(event.attributes, MAX_EVENT_ATTRS),
            },
        }
        for event in events[:MAX_NUM_EVENTS]
    ]
    return {
        "timeEvent": time_events,
        "droppedAnnotationsCount": dropped + max(0, len(events) - MAX_NUM_EVENTS),
    }


def _links(links: Sequence[Link], dropped: int = 0) -> dict[str, Any]:
    converted = [
        {
            "traceId": format_trace_id(link.context.trace_id),
            "spanId": format_span_id(link.context.span_id),
            "type": "TYPE_UNSPECIFIED",
            "attributes": convert_attributes(link.attributes, MAX_LINK_ATTRS),
        }
        for link in links[:MAX_NUM_LINKS]
    ]
    return {"link": converted, "droppedLinksCount": dropped + max(0, len(links) - MAX_NUM_LINKS)}


def _status(span: ReadableSpan) -> dict[str, Any] | None:
    status_code = span.status.status_code
    if status_code is StatusCode.OK:
        return {"code": RPC_CODE_OK}
    if status_code is StatusCode.ERROR:
        status: dict[str, Any] = {"code": RPC_CODE_UNKNOWN}
        if span.status.description:
            status["message"] = span.status.description
        return status
    return None


class SpanConverter:
    """Convert finished SDK spans into Cloud Trace v2 ``Span`` dicts."""

    def __init__(self, resource_attribute_prefix: str = "g.co/r") -> None:
        self._resource_attribute_prefix = resource_attribute_prefix

    def convert(self, span: ReadableSpan, project_id: str) -> dict[str, Any]:
        """Convert one span.

        Raises:
            ConversionError: If the span has not ended or its context is invalid.
        """
        context = span.context
        if context is None or not context.is_valid:
            raise ConversionError(f"span {span.name!r} has an invalid trace or span id")
        if span.start_time is None or span.end_time is None:
            raise ConversionError(f"span {span.name!r} has not ended")

        trace_id = format_trace_id(context.trace_id)
        span_id = format_span_id(context.span_id)
        start, end = ensure_interval(span.start_time, span.end_time)

        # Span attributes win over resource labels
        attributes = resource_attributes(span.resource, self._resource_attribute_prefix)
        attributes.update(span.attributes or {})

        converted: dict[str, Any] = {
            "name": f"projects/{project_id}/traces/{trace_id}/spans/{span_id}",
            "spanId": span_id,
            "displayName": truncatable_string(span.name, MAX_DISPLAY_NAME_BYTES),
            "startTime": format_timestamp(start),
            "endTime": format_timestamp(end),
            "spanKind": SPAN_KIND_MAPPING.get(span.kind, "SPAN_KIND_UNSPECIFIED"),
            "attributes": convert_attributes(
                attributes,
                MAX_SPAN_ATTRS,
                add_agent=True,
                dropped=span.dropped_attributes,
            ),
            "timeEvents": _time_events(list(span.events), span.dropped_events),
            "links": _links(list(span.links), span.dropped_links),
        }

        parent = span.parent
        if parent is not None and parent.is_valid:
            converted["parentSpanId"] = format_span_id(parent.span_id)
            converted["sameProcessAsParentSpan"] = not parent.is_remote
        else:
            converted["sameProcessAsParentSpan"] = True

        status = _status(span)
        if status is not None:
            converted["status"] = status

        return converted
