"""Resource and record attribute mapping to Cloud Monitoring labels.

Cloud Monitoring labels are string-keyed and string-valued. Keys must
match ``[a-zA-Z][a-zA-Z0-9_]*`` and are limited to 100 characters; values
are limited to 1024 characters. Mapping never fails: keys are sanitized,
values stringified and both truncated.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from opentelemetry.sdk.resources import Resource

MAX_LABEL_KEY_LENGTH = 100
MAX_LABEL_VALUE_LENGTH = 1024

_INVALID_KEY_CHARS = re.compile(r"[^A-Za-z0-9_]")


def sanitize_key(key: str) -> str:
    """Convert an attribute key into a valid label key."""
    sanitized = _INVALID_KEY_CHARS.sub("_", str(key))
    if not sanitized:
        sanitized = "key"
    elif sanitized[0].isdigit():
        sanitized = "key_" + sanitized
    elif sanitized[0] == "_":
        sanitized = "key" + sanitized
    return sanitized[:MAX_LABEL_KEY_LENGTH]


def stringify_value(value: Any) -> str | None:
    """Render an attribute value as a label value, or None to omit it."""
    if value is None:
        return None
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, str):
        text = value
    elif isinstance(value, Sequence):
        try:
            text = json.dumps(list(value))
        except (TypeError, ValueError):
            text = str(list(value))
    else:
        text = str(value)
    return text[:MAX_LABEL_VALUE_LENGTH]


def map_attributes(
    resource_attributes: Mapping[str, Any] | None,
    record_attributes: Mapping[str, Any] | None,
) -> dict[str, str]:
    """Merge resource and record attributes into backend labels.

    Record attributes win on key collisions, including collisions that
    only appear after sanitization.
    """
    labels: dict[str, str] = {}
    # Record attributes are applied last so they overwrite resource ones
    for attributes in (resource_attributes, record_attributes):
        if not attributes:
            continue
        for key, value in attributes.items():
            text = stringify_value(value)
            if text is None:
                continue
            labels[sanitize_key(key)] = text
    return labels


def select_resource_attributes(
    resource: Resource | None, keys: Iterable[str]
) -> dict[str, Any]:
    """Return the subset of resource attributes listed in ``keys``."""
    if resource is None:
        return {}
    attributes = resource.attributes
    return {key: attributes[key] for key in keys if key in attributes}
