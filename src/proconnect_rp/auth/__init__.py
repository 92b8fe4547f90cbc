"""Authentication module for the ProConnect relying party."""

from proconnect_rp.auth.errors import (
    AuthError,
    AuthorizationResponseError,
    CorrelationError,
    DiscoveryError,
    InsecureTransportError,
    MissingPendingLoginError,
    NonceMismatchError,
    StateMismatchError,
    TokenExchangeError,
    TokenValidationError,
    UnknownKeyError,
    UnknownPolicyError,
)
from proconnect_rp.auth.models import (
    IdentityClaims,
    LoginResult,
    LoginState,
    PendingLogin,
    ProviderMetadata,
    Session,
    StepUpEvaluation,
    StepUpRequest,
    TokenSet,
)
from proconnect_rp.auth.discovery import MetadataResolver
from proconnect_rp.auth.step_up import StepUpPolicies
from proconnect_rp.auth.oidc import RelyingParty, get_relying_party
from proconnect_rp.auth.session import SessionManager, get_session_manager

__all__ = [
    # Errors
    "AuthError",
    "AuthorizationResponseError",
    "CorrelationError",
    "DiscoveryError",
    "InsecureTransportError",
    "MissingPendingLoginError",
    "NonceMismatchError",
    "StateMismatchError",
    "TokenExchangeError",
    "TokenValidationError",
    "UnknownKeyError",
    "UnknownPolicyError",
    # Models
    "IdentityClaims",
    "LoginResult",
    "LoginState",
    "PendingLogin",
    "ProviderMetadata",
    "Session",
    "StepUpEvaluation",
    "StepUpRequest",
    "TokenSet",
    # Engine
    "MetadataResolver",
    "StepUpPolicies",
    "RelyingParty",
    "get_relying_party",
    # Session
    "SessionManager",
    "get_session_manager",
]
