"""Authentication data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderMetadata(BaseModel):
    """Subset of the OIDC discovery document used by the relying party."""

    model_config = ConfigDict(frozen=True, extra="allow")

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    userinfo_endpoint: str | None = None
    end_session_endpoint: str | None = None
    id_token_signing_alg_values_supported: list[str] = Field(default_factory=list)


class PendingLogin(BaseModel):
    """Correlation values bound to an authorization request in flight."""

    model_config = ConfigDict(frozen=True)

    state: str
    nonce: str
    requested_claims: dict[str, Any] = Field(default_factory=dict)
    policy: str | None = None
    code_verifier: str | None = None  # For PKCE
    created_at: datetime = Field(default_factory=utcnow)


class TokenSet(BaseModel):
    """Tokens returned by the token endpoint."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "Bearer"
    id_token: str
    refresh_token: str | None = None
    scope: str | None = None
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and utcnow() > self.expires_at


class IdentityClaims(BaseModel):
    """Validated ID token claims, optionally merged with userinfo."""

    model_config = ConfigDict(frozen=True, extra="allow")

    sub: str = Field(..., description="Subject identifier")
    iss: str = Field(..., description="Issuer")
    aud: str | list[str] = Field(..., description="Audience (client ID)")
    exp: int = Field(..., description="Expiration timestamp")
    iat: int = Field(..., description="Issued at timestamp")
    nonce: str | None = None
    amr: list[str] = Field(default_factory=list, description="Authentication methods")
    acr: str | None = Field(None, description="Achieved assurance level")
    auth_time: int | None = None
    email: str | None = None
    given_name: str | None = None
    usual_name: str | None = None

    @property
    def display_name(self) -> str:
        names = [n for n in (self.given_name, self.usual_name) if n]
        return " ".join(names) or self.email or self.sub


class StepUpRequest(BaseModel):
    """A named authentication requirement sent with the authorization request."""

    model_config = ConfigDict(frozen=True)

    name: str
    claims: dict[str, Any] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    acr_values: list[str] = Field(default_factory=list)
    require_mfa: bool = False


class StepUpEvaluation(BaseModel):
    """Outcome of checking achieved claims against a step-up request."""

    policy: str
    satisfied: bool
    reason: str | None = None
    mfa: bool = False


class LoginState(str, Enum):
    """States of a single authorization-code login attempt."""

    PENDING = "pending"
    STATE_VALIDATED = "state_validated"
    CODE_EXCHANGED = "code_exchanged"
    TOKEN_VALIDATED = "token_validated"
    CLAIMS_FETCHED = "claims_fetched"
    ESTABLISHED = "established"
    REJECTED = "rejected"


class LoginResult(BaseModel):
    """Result of a completed login."""

    state: LoginState
    tokens: TokenSet
    claims: IdentityClaims
    id_token_claims: IdentityClaims
    userinfo: dict[str, Any] | None = None
    evaluation: StepUpEvaluation


class Session(BaseModel):
    """Per-user authentication state stored server-side."""

    pending_login: PendingLogin | None = None
    tokens: TokenSet | None = None
    claims: IdentityClaims | None = None
    id_token_claims: IdentityClaims | None = None
    userinfo: dict[str, Any] | None = None
    evaluation: StepUpEvaluation | None = None
    session_created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_authenticated(self) -> bool:
        return self.tokens is not None and self.claims is not None

    def begin(self, pending: PendingLogin) -> None:
        """Replace any previous pending login."""
        self.pending_login = pending

    def take_pending_login(self) -> PendingLogin | None:
        """Remove and return the pending login; a state is usable once."""
        pending, self.pending_login = self.pending_login, None
        return pending

    def establish(self, result: LoginResult) -> None:
        self.pending_login = None
        self.tokens = result.tokens
        self.claims = result.claims
        self.id_token_claims = result.id_token_claims
        self.userinfo = result.userinfo
        self.evaluation = result.evaluation
