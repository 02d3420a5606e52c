"""Unit tests for attribute to label mapping."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.resources import Resource

from gcpotel._internal.labels import (
    MAX_LABEL_KEY_LENGTH,
    MAX_LABEL_VALUE_LENGTH,
    map_attributes,
    sanitize_key,
    select_resource_attributes,
    stringify_value,
)


@pytest.mark.unit
class TestSanitizeKey:
    """Tests for label key sanitization."""

    @pytest.mark.parametrize(
        ("key", "expected"),
        [
            ("http.method", "http_method"),
            ("already_valid", "already_valid"),
            ("9lives", "key_9lives"),
            ("_private", "key_private"),
            ("", "key"),
            ("a-b c", "a_b_c"),
        ],
    )
    def test_invalid_characters_are_replaced(self, key: str, expected: str) -> None:
        """
        GIVEN an attribute key
        WHEN it is sanitized
        THEN the result is a valid label key
        """
        assert sanitize_key(key) == expected

    def test_long_keys_are_truncated(self) -> None:
        """
        GIVEN a key longer than the label key limit
        WHEN it is sanitized
        THEN it is cut to the limit
        """
        assert len(sanitize_key("k" * 500)) == MAX_LABEL_KEY_LENGTH


@pytest.mark.unit
class TestStringifyValue:
    """Tests for label value rendering."""

    def test_booleans_are_lowercase(self) -> None:
        """
        GIVEN boolean values
        WHEN stringified
        THEN they render as 'true' and 'false'
        """
        assert stringify_value(True) == "true"
        assert stringify_value(False) == "false"

    def test_sequences_render_as_json(self) -> None:
        """
        GIVEN a sequence value
        WHEN stringified
        THEN it renders as a JSON array
        """
        assert stringify_value(("a", "b")) == '["a", "b"]'
        assert stringify_value([1, 2]) == "[1, 2]"

    def test_none_is_omitted(self) -> None:
        """
        GIVEN None
        WHEN stringified
        THEN None is returned so the label is omitted
        """
        assert stringify_value(None) is None

    def test_long_values_are_truncated(self) -> None:
        """
        GIVEN a value longer than the label value limit
        WHEN stringified
        THEN it is cut to the limit
        """
        assert len(stringify_value("v" * 5000)) == MAX_LABEL_VALUE_LENGTH


@pytest.mark.unit
class TestMapAttributes:
    """Tests for merging resource and record attributes."""

    def test_record_attributes_win_on_collision(self) -> None:
        """
        GIVEN a resource and a record attribute with the same key
        WHEN they are mapped
        THEN the record value is kept
        """
        labels = map_attributes({"env": "prod", "zone": "a"}, {"env": "canary"})

        assert labels == {"env": "canary", "zone": "a"}

    def test_collision_after_sanitization_prefers_record(self) -> None:
        """
        GIVEN keys that only collide once sanitized
        WHEN they are mapped
        THEN the record value is kept
        """
        labels = map_attributes({"service.name": "from-resource"}, {"service_name": "from-record"})

        assert labels == {"service_name": "from-record"}

    def test_none_values_are_dropped(self) -> None:
        """
        GIVEN a record attribute with a None value
        WHEN attributes are mapped
        THEN no label is produced for it
        """
        assert map_attributes(None, {"a": None, "b": 1}) == {"b": "1"}

    def test_empty_inputs_give_no_labels(self) -> None:
        """
        GIVEN no attributes at all
        WHEN they are mapped
        THEN the result is empty
        """
        assert map_attributes(None, None) == {}


@pytest.mark.unit
class TestSelectResourceAttributes:
    """Tests for picking resource attributes copied onto metrics."""

    def test_only_listed_keys_are_kept(self) -> None:
        """
        GIVEN a resource with several attributes
        WHEN a subset of keys is selected
        THEN only those present are returned
        """
        resource = Resource({"service.name": "svc", "host.name": "h1"})

        selected = select_resource_attributes(resource, ["service.name", "service.namespace"])

        assert selected == {"service.name": "svc"}

    def test_missing_resource_gives_nothing(self) -> None:
        """
        GIVEN no resource
        WHEN keys are selected
        THEN the result is empty
        """
        assert select_resource_attributes(None, ["service.name"]) == {}
