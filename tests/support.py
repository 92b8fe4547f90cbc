"""Test support: signing keys and an in-process fake identity provider."""

import time
from typing import Any
from urllib.parse import parse_qs, parse_qsl, urlparse

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt

from proconnect_rp.config import Settings

ISSUER = "https://idp.example.com"
CLIENT_ID = "test-client-id"
CLIENT_SECRET = "test-client-secret"
HOST = "https://rp.example.com"
SUBJECT = "user-sub-123"
ACCESS_TOKEN = "access-token-xyz"
TEST_KID = "test-key-2024"


def generate_private_key() -> str:
    """Generate an RSA private key in PEM format."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def public_jwk(private_pem: str, kid: str) -> dict[str, Any]:
    """Public JWK matching ``private_pem``."""
    key = jwk.construct(private_pem, "RS256").public_key().to_dict()
    key.update({"kid": kid, "use": "sig", "alg": "RS256"})
    return key


# Generated once; RSA key generation is slow.
TEST_PRIVATE_KEY = generate_private_key()
OTHER_PRIVATE_KEY = generate_private_key()


def make_settings(**overrides: Any) -> Settings:
    values = {
        "issuer": ISSUER,
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
        "host": HOST,
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)


def id_token_claims(**overrides: Any) -> dict[str, Any]:
    """Standard ID token claims; an override of None removes the claim."""
    now = int(time.time())
    claims = {
        "iss": ISSUER,
        "sub": SUBJECT,
        "aud": CLIENT_ID,
        "exp": now + 300,
        "iat": now,
        "amr": ["pwd"],
        "acr": "eidas1",
        "email": "jean.dupont@example.gouv.fr",
    }
    claims.update(overrides)
    return {k: v for k, v in claims.items() if v is not None}


def sign(claims: dict[str, Any], private_key: str = TEST_PRIVATE_KEY, kid: str | None = TEST_KID) -> str:
    headers = {"kid": kid} if kid else None
    return jwt.encode(claims, private_key, algorithm="RS256", headers=headers)


class FakeProvider:
    """Identity provider served through ``httpx.MockTransport``.

    It behaves correctly by default: the nonce sent to ``authorize`` comes back
    in the ID token issued for the returned code.
    """

    def __init__(self, issuer: str = ISSUER):
        self.issuer = issuer
        self.metadata: dict[str, Any] = {
            "issuer": issuer,
            "authorization_endpoint": f"{issuer}/authorize",
            "token_endpoint": f"{issuer}/token",
            "userinfo_endpoint": f"{issuer}/userinfo",
            "jwks_uri": f"{issuer}/jwks",
            "end_session_endpoint": f"{issuer}/session/end",
            "id_token_signing_alg_values_supported": ["RS256"],
        }
        self.keys: list[dict[str, Any]] = [public_jwk(TEST_PRIVATE_KEY, TEST_KID)]
        self.claims: dict[str, Any] = {}
        self.userinfo: dict[str, Any] = {"given_name": "Jean", "usual_name": "Dupont"}
        self.token_response: httpx.Response | None = None
        self.fail_with: Exception | None = None
        self.nonces: dict[str, str | None] = {}
        self.requests: list[httpx.Request] = []
        self.token_forms: list[dict[str, str]] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def authorize(self, url: str, code: str = "abc") -> dict[str, str]:
        """Simulate the user logging in; returns the callback query."""
        query = {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}
        self.nonces[code] = query.get("nonce")
        return {"code": code, "state": query["state"]}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with

        path = request.url.path
        if path == "/.well-known/openid-configuration":
            return httpx.Response(200, json=self.metadata)
        if path == "/jwks":
            return httpx.Response(200, json={"keys": self.keys})
        if path == "/token":
            form = dict(parse_qsl(request.content.decode()))
            self.token_forms.append(form)
            if self.token_response is not None:
                return self.token_response
            claims = id_token_claims(**{"nonce": self.nonces.get(form.get("code")), **self.claims})
            return httpx.Response(
                200,
                json={
                    "access_token": ACCESS_TOKEN,
                    "token_type": "Bearer",
                    "expires_in": 60,
                    "id_token": sign(claims),
                },
            )
        if path == "/userinfo":
            if request.headers.get("authorization") != f"Bearer {ACCESS_TOKEN}":
                return httpx.Response(401, json={"error": "invalid_token"})
            return httpx.Response(200, json={"sub": SUBJECT, **self.userinfo})
        return httpx.Response(404)
