"""State and nonce correlation between authorization request and callback."""

import base64
import hashlib
import logging
import secrets
from typing import Any

from proconnect_rp.auth.errors import (
    MissingPendingLoginError,
    NonceMismatchError,
    StateMismatchError,
)
from proconnect_rp.auth.models import PendingLogin

logger = logging.getLogger(__name__)

# 32 random bytes, well above the 128 bits required for state and nonce.
TOKEN_BYTES = 32


def begin(
    requested_claims: dict[str, Any] | None = None,
    policy: str | None = None,
    *,
    pkce: bool = False,
) -> PendingLogin:
    """Generate fresh correlation values for a new authorization request."""
    return PendingLogin(
        state=secrets.token_urlsafe(TOKEN_BYTES),
        nonce=secrets.token_urlsafe(TOKEN_BYTES),
        requested_claims=requested_claims or {},
        policy=policy,
        code_verifier=secrets.token_urlsafe(64) if pkce else None,
    )


def code_challenge(code_verifier: str) -> str:
    """S256 PKCE challenge for ``code_verifier``."""
    digest = hashlib.sha256(code_verifier.encode()).digest()
    return base64.urlsafe_b64encode(digest).decode().rstrip("=")


def _equal(a: str | None, b: str) -> bool:
    if not a:
        return False
    return secrets.compare_digest(a.encode(), b.encode())


def verify(returned_state: str | None, pending: PendingLogin | None) -> PendingLogin:
    """Check the callback ``state`` against the pending login."""
    if pending is None:
        raise MissingPendingLoginError("No login in progress for this session")
    if not _equal(returned_state, pending.state):
        logger.warning("Callback state does not match the pending login")
        raise StateMismatchError("State mismatch")
    return pending


def verify_nonce(token_nonce: str | None, pending: PendingLogin) -> None:
    """Check the ID token ``nonce`` against the pending login."""
    if not _equal(token_nonce, pending.nonce):
        logger.warning("ID token nonce does not match the pending login")
        raise NonceMismatchError("Nonce mismatch")
