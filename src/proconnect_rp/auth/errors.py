"""Authentication error taxonomy.

Every failure of the login engine is raised as a subclass of :class:`AuthError`.
The HTTP layer renders them using ``status_code``.
"""

from typing import Any, Mapping


class AuthError(Exception):
    """Base class for all relying party authentication failures."""

    status_code: int = 400


class DiscoveryError(AuthError):
    """Provider metadata or JWKS is unreachable or malformed."""

    status_code = 502


class UnknownKeyError(AuthError):
    """No signing key matches the token, even after a forced JWKS refresh."""

    status_code = 401


class InsecureTransportError(AuthError):
    """A plain http:// call was attempted without explicit opt-in."""

    status_code = 500


class CorrelationError(AuthError):
    """The callback could not be correlated with a pending login."""


class MissingPendingLoginError(CorrelationError):
    """No pending login exists for this session (replayed or expired)."""


class StateMismatchError(CorrelationError):
    """The returned ``state`` does not match the pending login."""


class AuthorizationResponseError(AuthError):
    """The identity provider reported an error in the callback."""

    def __init__(
        self,
        error: str,
        error_description: str | None = None,
        params: Mapping[str, Any] | None = None,
    ):
        self.error = error
        self.error_description = error_description
        self.params = dict(params or {})
        super().__init__(f"{error} - {error_description}" if error_description else error)


class TokenExchangeError(AuthError):
    """The token or userinfo endpoint returned an error or malformed response."""

    status_code = 502

    def __init__(
        self,
        message: str,
        error: str | None = None,
        error_description: str | None = None,
    ):
        self.error = error
        self.error_description = error_description
        super().__init__(message)


class TokenValidationError(AuthError):
    """A token failed signature or claims validation."""

    status_code = 401


class NonceMismatchError(CorrelationError, TokenValidationError):
    """The ID token ``nonce`` does not match the pending login."""

    status_code = 400


class UnknownPolicyError(AuthError):
    """The requested step-up policy is not registered."""
