"""Authorization code exchange, ID token validation and userinfo retrieval."""

import logging
from datetime import timedelta
from typing import Any

import httpx
from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError, JWTClaimsError
from pydantic import ValidationError

from proconnect_rp.config import Settings, get_settings
from proconnect_rp.auth.csrf import verify_nonce
from proconnect_rp.auth.discovery import MetadataResolver
from proconnect_rp.auth.errors import TokenExchangeError, TokenValidationError
from proconnect_rp.auth.models import IdentityClaims, PendingLogin, TokenSet, utcnow
from proconnect_rp.auth.transport import ensure_secure_url, provider_client

logger = logging.getLogger(__name__)


def _error_fields(resp: httpx.Response) -> tuple[str | None, str | None]:
    try:
        body = resp.json()
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    return body.get("error"), body.get("error_description")


class TokenClient:
    """Talks to the token and userinfo endpoints and validates what they return."""

    def __init__(
        self,
        settings: Settings | None = None,
        resolver: MetadataResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.resolver = resolver or MetadataResolver(self.settings, transport)
        self._transport = transport

    async def exchange_code(self, code: str, code_verifier: str | None = None) -> TokenSet:
        """Exchange an authorization code for tokens (client_secret_post)."""
        metadata = await self.resolver.resolve()
        token_endpoint = ensure_secure_url(metadata.token_endpoint, self.settings)

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.redirect_uri,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
        }
        if code_verifier:
            data["code_verifier"] = code_verifier

        try:
            async with provider_client(self.settings, self._transport) as client:
                resp = await client.post(token_endpoint, data=data)
        except httpx.TimeoutException as e:
            raise TokenExchangeError("Token endpoint timed out") from e
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Token endpoint unreachable: {e}") from e

        if not resp.is_success:
            error, description = _error_fields(resp)
            logger.error(f"Token exchange failed with HTTP {resp.status_code}: {error}")
            raise TokenExchangeError(
                f"Token exchange failed: {description or error or f'HTTP {resp.status_code}'}",
                error=error,
                error_description=description,
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise TokenExchangeError("Token endpoint returned a non-JSON body") from e
        if not isinstance(body, dict):
            raise TokenExchangeError("Token endpoint returned a malformed body")

        for field in ("access_token", "id_token"):
            if not body.get(field):
                raise TokenExchangeError(f"Token response is missing {field}")

        expires_in = body.get("expires_in")
        try:
            return TokenSet(
                access_token=body["access_token"],
                token_type=body.get("token_type") or "Bearer",
                id_token=body["id_token"],
                refresh_token=body.get("refresh_token"),
                scope=body.get("scope"),
                expires_at=utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None,
            )
        except (TypeError, ValueError) as e:
            raise TokenExchangeError(f"Malformed token response: {e}") from e

    async def _decode(
        self,
        token: str,
        algorithm: str,
        access_token: str | None = None,
    ) -> dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise TokenValidationError(f"Malformed token: {e}") from e

        if header.get("alg") != algorithm:
            raise TokenValidationError(
                f"Unexpected signing algorithm {header.get('alg')!r}, expected {algorithm!r}"
            )

        key = await self.resolver.get_key(header.get("kid"), algorithm)
        try:
            return jwt.decode(
                token,
                key,
                algorithms=[algorithm],
                audience=self.settings.client_id,
                issuer=self.settings.issuer,
                access_token=access_token,
                options={"leeway": self.settings.clock_leeway_s},
            )
        except ExpiredSignatureError as e:
            raise TokenValidationError("Token has expired") from e
        except JWTClaimsError as e:
            raise TokenValidationError(f"Invalid token claims: {e}") from e
        except JWTError as e:
            logger.error(f"JWT validation error: {e}")
            raise TokenValidationError(f"Invalid token: {e}") from e

    async def validate_id_token(self, tokens: TokenSet, pending: PendingLogin) -> IdentityClaims:
        """Verify signature and standard claims, then close the nonce loop."""
        payload = await self._decode(
            tokens.id_token,
            self.settings.id_token_signed_response_alg,
            access_token=tokens.access_token,
        )

        aud = payload.get("aud")
        if isinstance(aud, list) and len(aud) > 1 and payload.get("azp") != self.settings.client_id:
            raise TokenValidationError("Authorized party (azp) does not match client id")

        verify_nonce(payload.get("nonce"), pending)

        try:
            return IdentityClaims.model_validate(payload)
        except ValidationError as e:
            raise TokenValidationError(f"ID token is missing required claims: {e}") from e

    async def fetch_userinfo(self, access_token: str, subject: str) -> dict[str, Any] | None:
        """Fetch userinfo claims; returns None when the provider has no endpoint."""
        metadata = await self.resolver.resolve()
        if not metadata.userinfo_endpoint:
            return None
        userinfo_endpoint = ensure_secure_url(metadata.userinfo_endpoint, self.settings)

        try:
            async with provider_client(self.settings, self._transport) as client:
                resp = await client.get(
                    userinfo_endpoint,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.TimeoutException as e:
            raise TokenExchangeError("Userinfo endpoint timed out") from e
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Userinfo endpoint unreachable: {e}") from e

        if not resp.is_success:
            error, description = _error_fields(resp)
            raise TokenExchangeError(
                f"Userinfo request failed with HTTP {resp.status_code}",
                error=error,
                error_description=description,
            )

        content_type = resp.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type == "application/jwt":
            if not self.settings.userinfo_signed_response_alg:
                raise TokenValidationError("Received a signed userinfo response that was not requested")
            userinfo = await self._decode(resp.text.strip(), self.settings.userinfo_signed_response_alg)
        else:
            try:
                userinfo = resp.json()
            except ValueError as e:
                raise TokenExchangeError("Userinfo endpoint returned a non-JSON body") from e

        if not isinstance(userinfo, dict):
            raise TokenExchangeError("Userinfo endpoint returned a malformed body")
        if userinfo.get("sub") != subject:
            raise TokenValidationError("Userinfo subject does not match the ID token subject")
        return userinfo


def merge_claims(id_token_claims: IdentityClaims, userinfo: dict[str, Any] | None) -> IdentityClaims:
    """Combine userinfo with ID token claims; signed ID token values win."""
    if not userinfo:
        return id_token_claims
    try:
        return IdentityClaims.model_validate(
            {**userinfo, **id_token_claims.model_dump(exclude_unset=True)}
        )
    except ValidationError as e:
        raise TokenValidationError(f"Userinfo claims are malformed: {e}") from e
