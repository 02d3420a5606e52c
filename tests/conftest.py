"""Shared pytest configuration and fixtures.

This module provides test fixtures that:
1. Provide typed fakes (FakeBackendClient, FakeProjectIdProvider) instead of MagicMock
2. Build exporters wired to those fakes and shut them down after each test
3. Keep project id discovery away from the real environment and metadata server
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Generator

import pytest

from gcpotel.exporters.monitoring.exporter import CloudMonitoringMetricExporter
from gcpotel.exporters.trace.exporter import CloudTraceSpanExporter
from tests.fakes import FakeBackendClient, FakeProjectIdProvider

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove project id and config path variables set on the host."""
    for name in ("GOOGLE_CLOUD_PROJECT", "GCLOUD_PROJECT", "GCP_PROJECT", "GCPOTEL_CONFIG_PATH"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_client() -> FakeBackendClient:
    """Provide a FakeBackendClient that records every backend call."""
    return FakeBackendClient()


@pytest.fixture
def fake_project() -> FakeProjectIdProvider:
    """Provide a project id provider answering 'test-project'."""
    return FakeProjectIdProvider("test-project")


@pytest.fixture
def metric_exporter(
    fake_client: FakeBackendClient, fake_project: FakeProjectIdProvider
) -> Generator[CloudMonitoringMetricExporter, None, None]:
    """Create a metric exporter wired to the fakes."""
    exporter = CloudMonitoringMetricExporter(
        client=fake_client, project_id_provider=fake_project
    )
    yield exporter
    exporter.shutdown()


@pytest.fixture
def span_exporter(
    fake_client: FakeBackendClient, fake_project: FakeProjectIdProvider
) -> Generator[CloudTraceSpanExporter, None, None]:
    """Create a span exporter wired to the fakes."""
    exporter = CloudTraceSpanExporter(client=fake_client, project_id_provider=fake_project)
    yield exporter
    exporter.shutdown()


@pytest.fixture
def valid_config_content() -> str:
    """Return valid YAML config content for tests."""
    return """service:
  name: test-service
  version: "1.0.0"

project_id: test-project
timeout_seconds: 5

monitoring:
  prefix: custom.googleapis.com/app
  max_batch_size: 100
  export_interval_millis: 30000

trace:
  max_batch_size: 250
  batch_spans: false

validation:
  mode: permissive
"""


@pytest.fixture
def valid_config_file(tmp_path: "Path", valid_config_content: str) -> "Path":
    """Create a valid config file and return its path."""
    config_path = tmp_path / "gcpotel.yaml"
    config_path.write_text(valid_config_content)
    return config_path
