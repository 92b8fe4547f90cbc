"""Outbound HTTP helpers shared by the calls made to the identity provider."""

from urllib.parse import urlparse

import httpx

from proconnect_rp.config import Settings
from proconnect_rp.auth.errors import InsecureTransportError


def ensure_secure_url(url: str, settings: Settings) -> str:
    """Reject plain http:// URLs unless explicitly allowed."""
    scheme = urlparse(url).scheme.lower()
    if scheme == "https":
        return url
    if scheme == "http" and settings.allow_insecure_requests:
        return url
    raise InsecureTransportError(
        f"Refusing to call {url}: set ALLOW_INSECURE_REQUESTS=true to allow plain HTTP"
    )


def provider_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build a short-lived client bounded by the configured timeout."""
    return httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(settings.http_timeout_s),
        headers={"Accept": "application/json"},
    )
