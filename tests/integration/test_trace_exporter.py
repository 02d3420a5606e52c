"""Integration tests for CloudTraceSpanExporter against a fake backend."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor, SpanExportResult

from gcpotel.api.types import ExportResultCode
from gcpotel.exceptions import IdentityError
from gcpotel.exporters.trace.exporter import CloudTraceSpanExporter
from tests.builders import START_NANOS, make_span
from tests.fakes import FakeBackendClient, FakeProjectIdProvider, RecordingCallback


@pytest.mark.integration
class TestSpanExport:
    """Tests for exporting spans through the SDK interface."""

    def test_exports_span(
        self, span_exporter: CloudTraceSpanExporter, fake_client: FakeBackendClient
    ) -> None:
        """
        GIVEN a finished span
        WHEN it is exported
        THEN one batchWrite call carries it with its display name
        """
        result = span_exporter.export([make_span()])

        assert result is SpanExportResult.SUCCESS
        assert len(fake_client.span_calls) == 1
        assert fake_client.span_calls[0].project_id == "test-project"
        assert fake_client.written_spans[0]["displayName"]["value"] == "my-span"

    def test_equal_timestamps_are_nudged(
        self, span_exporter: CloudTraceSpanExporter, fake_client: FakeBackendClient
    ) -> None:
        """
        GIVEN a span whose start and end times are equal
        WHEN it is exported
        THEN the written end time is strictly later than the start time
        """
        span_exporter.export([make_span(start=START_NANOS, end=START_NANOS)])

        written = fake_client.written_spans[0]
        assert written["endTime"] > written["startTime"]

    def test_spans_are_batched(self, fake_project: FakeProjectIdProvider) -> None:
        """
        GIVEN a batch size of 2 and five spans
        WHEN they are exported
        THEN three batchWrite calls of 2, 2 and 1 spans are made in order
        """
        client = FakeBackendClient()
        exporter = CloudTraceSpanExporter(
            client=client, project_id_provider=fake_project, max_batch_size=2
        )
        spans = [make_span(name=f"s{i}", span_id=i + 1) for i in range(5)]
        try:
            assert exporter.export(spans) is SpanExportResult.SUCCESS
        finally:
            exporter.shutdown()

        assert [len(call.spans) for call in client.span_calls] == [2, 2, 1]
        assert [s["displayName"]["value"] for s in client.written_spans] == [
            "s0",
            "s1",
            "s2",
            "s3",
            "s4",
        ]

    def test_unended_span_is_dropped(
        self, span_exporter: CloudTraceSpanExporter, fake_client: FakeBackendClient
    ) -> None:
        """
        GIVEN one span that never ended next to a finished one
        WHEN both are exported
        THEN only the finished span is written and the export succeeds
        """
        result = span_exporter.export([make_span(name="open", end=None), make_span(name="done")])

        assert result is SpanExportResult.SUCCESS
        assert [s["displayName"]["value"] for s in fake_client.written_spans] == ["done"]

    def test_client_is_reused_across_exports(
        self, span_exporter: CloudTraceSpanExporter, fake_client: FakeBackendClient
    ) -> None:
        """
        GIVEN two exports
        WHEN they complete
        THEN both went through the same client and the project id was resolved once
        """
        span_exporter.export([make_span()])
        span_exporter.export([make_span()])

        assert span_exporter.coordinator.client is fake_client
        assert len(fake_client.span_calls) == 2
        assert span_exporter.coordinator.resolver.project_id == "test-project"

    def test_works_behind_a_span_processor(
        self, span_exporter: CloudTraceSpanExporter, fake_client: FakeBackendClient
    ) -> None:
        """
        GIVEN the exporter behind a SimpleSpanProcessor
        WHEN a span is started and ended
        THEN it is written to the backend
        """
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(span_exporter))

        with provider.get_tracer("tests").start_as_current_span("operation"):
            pass

        assert [s["displayName"]["value"] for s in fake_client.written_spans] == ["operation"]


@pytest.mark.integration
class TestSpanExportFailures:
    """Tests for failure reporting."""

    def test_write_failure_fails_export(self, fake_project: FakeProjectIdProvider) -> None:
        """
        GIVEN a backend rejecting span writes
        WHEN a span is exported
        THEN the export fails
        """
        client = FakeBackendClient(fail_all_spans=True)
        exporter = CloudTraceSpanExporter(client=client, project_id_provider=fake_project)
        try:
            assert exporter.export([make_span()]) is SpanExportResult.FAILURE
        finally:
            exporter.shutdown()

    def test_missing_project_id_fails_without_calls(self, fake_client: FakeBackendClient) -> None:
        """
        GIVEN no project id can be found
        WHEN spans are exported with a callback
        THEN the callback gets a failure with IdentityError and no span call is made
        """
        exporter = CloudTraceSpanExporter(
            client=fake_client, project_id_provider=FakeProjectIdProvider(None)
        )
        callback = RecordingCallback()
        try:
            exporter.export_with_callback([make_span()], callback)
            result = callback.wait()
        finally:
            exporter.shutdown()

        assert result.code is ExportResultCode.FAILED
        assert isinstance(result.error, IdentityError)
        fake_client.assert_no_calls()

    def test_shutdown_never_raises(self, fake_client: FakeBackendClient) -> None:
        """
        GIVEN an exporter
        WHEN it is shut down twice and then asked to export
        THEN shutdown does not raise and the export fails
        """
        exporter = CloudTraceSpanExporter(
            client=fake_client, project_id_provider=FakeProjectIdProvider()
        )
        exporter.export([make_span()])

        exporter.shutdown()
        exporter.shutdown()

        assert exporter.export([make_span()]) is SpanExportResult.FAILURE
        assert fake_client.close_count == 1
