"""Discovery metadata and signing key resolution for the configured issuer."""

import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from proconnect_rp.config import Settings, get_settings
from proconnect_rp.auth.errors import DiscoveryError, UnknownKeyError
from proconnect_rp.auth.models import ProviderMetadata
from proconnect_rp.auth.transport import ensure_secure_url, provider_client

logger = logging.getLogger(__name__)


class MetadataResolver:
    """Fetches and caches the discovery document and JWKS of one issuer.

    Both caches are populated on first use and expire after
    ``metadata_cache_ttl_s``. A key miss forces exactly one JWKS refresh.
    Population is not locked: concurrent callers may fetch twice and the
    last one wins.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._metadata: ProviderMetadata | None = None
        self._metadata_time: float = 0.0
        self._jwks: dict | None = None
        self._jwks_time: float = 0.0

    def _is_fresh(self, fetched_at: float) -> bool:
        return (time.monotonic() - fetched_at) < self.settings.metadata_cache_ttl_s

    async def _get_json(self, url: str, what: str) -> dict[str, Any]:
        ensure_secure_url(url, self.settings)
        try:
            async with provider_client(self.settings, self._transport) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as e:
            raise DiscoveryError(f"Timed out fetching {what} from {url}") from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch {what} from {url}: {e}")
            raise DiscoveryError(f"Unable to fetch {what}: {e}") from e
        except ValueError as e:
            raise DiscoveryError(f"Malformed {what} at {url}") from e

        if not isinstance(data, dict):
            raise DiscoveryError(f"Malformed {what} at {url}")
        return data

    async def resolve(self, force_refresh: bool = False) -> ProviderMetadata:
        """Return the provider metadata, fetching it if needed."""
        if self._metadata and self._is_fresh(self._metadata_time) and not force_refresh:
            return self._metadata

        data = await self._get_json(self.settings.discovery_url, "discovery document")
        try:
            metadata = ProviderMetadata.model_validate(data)
        except ValidationError as e:
            raise DiscoveryError(f"Malformed discovery document: {e}") from e

        if metadata.issuer != self.settings.issuer:
            raise DiscoveryError(
                f"Issuer mismatch: expected {self.settings.issuer}, got {metadata.issuer}"
            )

        self._metadata = metadata
        self._metadata_time = time.monotonic()
        logger.info(f"Loaded provider metadata for {metadata.issuer}")
        return metadata

    async def get_jwks(self, force_refresh: bool = False) -> dict:
        """Fetch JSON Web Key Set for token validation."""
        if self._jwks and self._is_fresh(self._jwks_time) and not force_refresh:
            return self._jwks

        metadata = await self.resolve()
        jwks = await self._get_json(metadata.jwks_uri, "JWKS")
        if not isinstance(jwks.get("keys"), list):
            raise DiscoveryError("Invalid JWKS response: missing 'keys' field")

        self._jwks = jwks
        self._jwks_time = time.monotonic()
        return jwks

    @staticmethod
    def _find_key(jwks: dict, kid: str | None, alg: str) -> dict | None:
        keys = [k for k in jwks.get("keys", []) if k.get("use", "sig") == "sig"]
        if kid is not None:
            for key in keys:
                if key.get("kid") == kid:
                    return key
            return None

        # No kid in the header: only unambiguous when a single key fits.
        candidates = [k for k in keys if k.get("alg") in (None, alg)]
        return candidates[0] if len(candidates) == 1 else None

    async def get_key(self, kid: str | None, alg: str) -> dict:
        """Return the JWK matching ``kid``.

        A miss refreshes the metadata and the JWKS exactly once, so a rotated
        ``jwks_uri`` is picked up too.
        """
        key = self._find_key(await self.get_jwks(), kid, alg)
        if key is None:
            logger.info(f"Signing key {kid!r} not cached, refreshing provider metadata and JWKS")
            await self.resolve(force_refresh=True)
            key = self._find_key(await self.get_jwks(force_refresh=True), kid, alg)

        if key is None:
            raise UnknownKeyError(f"Unable to find signing key {kid!r} in provider JWKS")
        return key

    def refresh(self) -> None:
        """Drop cached metadata and keys."""
        self._metadata = None
        self._jwks = None

