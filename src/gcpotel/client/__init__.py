"""Backend clients for Cloud Monitoring and Cloud Trace."""

from gcpotel.client.base import BackendClient
from gcpotel.client.http import (
    GoogleAuthTokenSource,
    HttpBackendClient,
    StaticTokenSource,
    TokenSource,
)

__all__ = [
    "BackendClient",
    "GoogleAuthTokenSource",
    "HttpBackendClient",
    "StaticTokenSource",
    "TokenSource",
]
