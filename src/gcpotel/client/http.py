"""Cloud Monitoring v3 and Cloud Trace v2 REST client built on httpx.

Credentials come from a ``TokenSource``: an explicit access token, or
google-auth Application Default Credentials (key file, gcloud user
credentials or the metadata server). Transport-level retries are left to
the caller's scheduling (the SDK exports again on its next interval).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Protocol

import google.auth
import google.auth.credentials
import google.auth.exceptions
import google.auth.transport.requests
import httpx
from opentelemetry.sdk.version import __version__ as _SDK_VERSION

from gcpotel.exceptions import TransportError
from gcpotel.version import __version__

logger = logging.getLogger(__name__)

MONITORING_ENDPOINT = "https://monitoring.googleapis.com"
TRACE_ENDPOINT = "https://cloudtrace.googleapis.com"
DEFAULT_SCOPES = ("https://www.googleapis.com/auth/cloud-platform",)


def user_agent(exporter: str) -> str:
    """User agent naming the OpenTelemetry SDK and exporter versions."""
    return f"opentelemetry-python {_SDK_VERSION}; google-cloud-{exporter}-exporter {__version__}"


class TokenSource(Protocol):
    """Source of OAuth2 access tokens for the Authorization header."""

    async def get_token(self) -> str:
        ...


class StaticTokenSource:
    """A fixed access token supplied by the caller."""

    def __init__(self, token: str) -> None:
        self._token = token

    async def get_token(self) -> str:
        return self._token


class GoogleAuthTokenSource:
    """Access tokens from google-auth credentials.

    Without explicit ``credentials`` the Application Default Credentials are
    looked up on first use: ``GOOGLE_APPLICATION_CREDENTIALS``, gcloud user
    credentials, then the metadata server. Tokens are refreshed only once
    google-auth reports them invalid. Lookup and refresh block, so they run
    in a worker thread.
    """

    def __init__(
        self,
        credentials: google.auth.credentials.Credentials | None = None,
        scopes: Sequence[str] = DEFAULT_SCOPES,
    ) -> None:
        self._credentials = credentials
        self._scopes = tuple(scopes)
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        async with self._lock:
            try:
                return await asyncio.to_thread(self._refresh)
            except google.auth.exceptions.GoogleAuthError as exc:
                raise TransportError(f"failed to obtain access token: {exc}") from exc

    def _refresh(self) -> str:
        if self._credentials is None:
            self._credentials, _ = google.auth.default(scopes=self._scopes)
            logger.debug("Using application default credentials")
        if not self._credentials.valid:
            self._credentials.refresh(google.auth.transport.requests.Request())
        return self._credentials.token


class HttpBackendClient:
    """BackendClient talking to the Google Cloud REST APIs.

    The underlying ``httpx.AsyncClient`` is created on first use and
    reused for every call until ``aclose()``.
    """

    def __init__(
        self,
        credentials: TokenSource | None = None,
        monitoring_endpoint: str | None = None,
        trace_endpoint: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credentials = credentials if credentials is not None else GoogleAuthTokenSource()
        self._monitoring_endpoint = (monitoring_endpoint or MONITORING_ENDPOINT).rstrip("/")
        self._trace_endpoint = (trace_endpoint or TRACE_ENDPOINT).rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def create_metric_descriptor(
        self, project_id: str, descriptor: dict[str, Any]
    ) -> None:
        url = f"{self._monitoring_endpoint}/v3/projects/{project_id}/metricDescriptors"
        await self._post(url, descriptor, user_agent("monitoring"))

    async def create_time_series(
        self, project_id: str, time_series: Sequence[dict[str, Any]]
    ) -> None:
        url = f"{self._monitoring_endpoint}/v3/projects/{project_id}/timeSeries"
        await self._post(url, {"timeSeries": list(time_series)}, user_agent("monitoring"))

    async def batch_write_spans(
        self, project_id: str, spans: Sequence[dict[str, Any]]
    ) -> None:
        url = f"{self._trace_endpoint}/v2/projects/{project_id}/traces:batchWrite"
        await self._post(url, {"spans": list(spans)}, user_agent("trace"))

    async def aclose(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def _post(self, url: str, body: dict[str, Any], agent: str) -> None:
        token = await self._credentials.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "user-agent": agent,
        }
        try:
            response = await self._get_client().post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {url} failed: {exc}") from exc

        if response.is_error:
            raise TransportError(
                f"POST {url} returned HTTP {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        logger.debug("POST %s -> %d", url, response.status_code)
