"""Unit tests for the httpx backend client."""

from __future__ import annotations

import json

import google.auth
import google.auth.exceptions
import httpx
import pytest

from gcpotel.client.http import (
    DEFAULT_SCOPES,
    GoogleAuthTokenSource,
    HttpBackendClient,
    StaticTokenSource,
    user_agent,
)
from gcpotel.exceptions import TransportError
from tests.fakes import FakeCredentials


class RecordingTransport:
    """httpx.MockTransport handler that records requests and replies with a fixed status."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={})

    @property
    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


def _client(handler: RecordingTransport) -> HttpBackendClient:
    return HttpBackendClient(
        credentials=StaticTokenSource("token-123"),
        monitoring_endpoint="https://monitoring.test/",
        trace_endpoint="https://trace.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
class TestHttpBackendClient:
    """Tests for request shapes, headers and error mapping."""

    @pytest.mark.asyncio
    async def test_create_time_series(self) -> None:
        """
        GIVEN a client pointed at a test endpoint
        WHEN time series are written
        THEN one POST hits the timeSeries URL with the series in the body
        """
        handler = RecordingTransport()
        client = _client(handler)

        await client.create_time_series("p1", [{"metric": {"type": "t"}}])
        await client.aclose()

        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://monitoring.test/v3/projects/p1/timeSeries"
        assert handler.last_body == {"timeSeries": [{"metric": {"type": "t"}}]}
        assert request.headers["Authorization"] == "Bearer token-123"
        assert request.headers["user-agent"] == user_agent("monitoring")

    @pytest.mark.asyncio
    async def test_create_metric_descriptor(self) -> None:
        """
        GIVEN a client
        WHEN a descriptor is created
        THEN the descriptor is posted as the request body
        """
        handler = RecordingTransport()
        client = _client(handler)

        await client.create_metric_descriptor("p1", {"type": "workload.googleapis.com/x"})
        await client.aclose()

        assert str(handler.requests[0].url) == "https://monitoring.test/v3/projects/p1/metricDescriptors"
        assert handler.last_body == {"type": "workload.googleapis.com/x"}

    @pytest.mark.asyncio
    async def test_batch_write_spans(self) -> None:
        """
        GIVEN a client
        WHEN spans are written
        THEN they are posted to traces:batchWrite with the trace user agent
        """
        handler = RecordingTransport()
        client = _client(handler)

        await client.batch_write_spans("p1", [{"spanId": "1"}])
        await client.aclose()

        request = handler.requests[0]
        assert str(request.url) == "https://trace.test/v2/projects/p1/traces:batchWrite"
        assert handler.last_body == {"spans": [{"spanId": "1"}]}
        assert "google-cloud-trace-exporter" in request.headers["user-agent"]

    @pytest.mark.asyncio
    async def test_error_status_raises_transport_error(self) -> None:
        """
        GIVEN a backend answering 403
        WHEN a call is made
        THEN TransportError carries the status code
        """
        client = _client(RecordingTransport(status_code=403))

        with pytest.raises(TransportError) as exc_info:
            await client.create_time_series("p1", [])
        await client.aclose()

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_connection_error_raises_transport_error(self) -> None:
        """
        GIVEN a transport that cannot connect
        WHEN a call is made
        THEN TransportError is raised without a status code
        """

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = HttpBackendClient(
            credentials=StaticTokenSource("t"), transport=httpx.MockTransport(refuse)
        )

        with pytest.raises(TransportError) as exc_info:
            await client.batch_write_spans("p1", [])
        await client.aclose()

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_http_client_is_reused(self) -> None:
        """
        GIVEN a client used for several calls
        WHEN the calls complete
        THEN the same httpx.AsyncClient served all of them
        """
        client = _client(RecordingTransport())

        await client.create_time_series("p1", [])
        first = client._client
        await client.batch_write_spans("p1", [])

        assert first is not None
        assert client._client is first
        await client.aclose()
        assert client._client is None


@pytest.mark.unit
class TestGoogleAuthTokenSource:
    """Tests for tokens backed by google-auth credentials."""

    @pytest.mark.asyncio
    async def test_refreshes_only_when_invalid(self) -> None:
        """
        GIVEN credentials that start without a token
        WHEN tokens are requested twice and then after expiry
        THEN credentials are refreshed on the first request and after expiry only
        """
        credentials = FakeCredentials()
        source = GoogleAuthTokenSource(credentials)

        assert await source.get_token() == "fresh-token"
        assert await source.get_token() == "fresh-token"
        assert credentials.refresh_count == 1

        credentials.expire()
        await source.get_token()
        assert credentials.refresh_count == 2

    @pytest.mark.asyncio
    async def test_application_default_credentials_are_looked_up_once(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """
        GIVEN no explicit credentials
        WHEN tokens are requested twice
        THEN google.auth.default is called once with the cloud-platform scope
        """
        credentials = FakeCredentials()
        lookups: list[tuple[str, ...]] = []

        def fake_default(scopes=None, **kwargs):
            lookups.append(tuple(scopes))
            return credentials, "adc-project"

        monkeypatch.setattr(google.auth, "default", fake_default)
        source = GoogleAuthTokenSource()

        await source.get_token()
        await source.get_token()

        assert lookups == [DEFAULT_SCOPES]

    @pytest.mark.asyncio
    async def test_missing_credentials_raise_transport_error(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """
        GIVEN no application default credentials are available
        WHEN a token is requested
        THEN TransportError is raised with the google-auth error as cause
        """

        def no_credentials(scopes=None, **kwargs):
            raise google.auth.exceptions.DefaultCredentialsError("not found")

        monkeypatch.setattr(google.auth, "default", no_credentials)

        with pytest.raises(TransportError) as exc_info:
            await GoogleAuthTokenSource().get_token()

        assert isinstance(exc_info.value.__cause__, google.auth.exceptions.DefaultCredentialsError)

    @pytest.mark.asyncio
    async def test_refresh_failure_fails_the_request(self) -> None:
        """
        GIVEN credentials whose refresh is rejected
        WHEN a client call is made
        THEN TransportError is raised before anything is sent
        """
        handler = RecordingTransport()
        client = HttpBackendClient(
            credentials=GoogleAuthTokenSource(
                FakeCredentials(error=google.auth.exceptions.RefreshError("revoked"))
            ),
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(TransportError):
            await client.create_time_series("p1", [])
        await client.aclose()

        assert handler.requests == []
