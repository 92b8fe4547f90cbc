"""OIDC relying party: authorization code flow with step-up policies."""

import logging
from typing import Any, Mapping

import httpx

from proconnect_rp.config import Settings, get_settings
from proconnect_rp.auth import csrf
from proconnect_rp.auth.discovery import MetadataResolver
from proconnect_rp.auth.errors import AuthError, AuthorizationResponseError
from proconnect_rp.auth.models import LoginResult, LoginState, PendingLogin, TokenSet
from proconnect_rp.auth.params import AuthorizationPolicy, bind_request, build_url, compose
from proconnect_rp.auth.step_up import StepUpPolicies
from proconnect_rp.auth.tokens import TokenClient, merge_claims

logger = logging.getLogger(__name__)


class LoginAttempt:
    """Tracks the state of one callback as it moves through validation."""

    def __init__(self, pending: PendingLogin | None):
        self.pending = pending
        self.state = LoginState.PENDING

    def advance(self, state: LoginState) -> None:
        logger.info(f"Login {self.state.value} -> {state.value}")
        self.state = state

    def reject(self, error: Exception) -> None:
        logger.warning(f"Login rejected in state {self.state.value}: {error.__class__.__name__}: {error}")
        self.state = LoginState.REJECTED


class RelyingParty:
    """Single-provider OpenID Connect relying party."""

    def __init__(
        self,
        settings: Settings | None = None,
        resolver: MetadataResolver | None = None,
        policies: StepUpPolicies | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.resolver = resolver or MetadataResolver(self.settings, transport)
        self.policies = policies or StepUpPolicies(self.settings)
        self.tokens = TokenClient(self.settings, self.resolver, transport)
        self.default_policy = AuthorizationPolicy.from_settings(self.settings)

    def default_params(self) -> dict[str, Any]:
        return self.default_policy.as_params()

    async def begin_login(
        self,
        policy_name: str | None = None,
        *,
        replace: Mapping[str, Any] | None = None,
    ) -> tuple[str, PendingLogin]:
        """Build the authorization URL and the pending login to store in the session.

        ``replace`` sends the given parameters instead of the defaults; it is
        exclusive with ``policy_name``.
        """
        if replace is not None:
            if policy_name is not None:
                raise ValueError("Replaced parameters cannot be combined with a policy")
            policy = None
            params = compose(self.default_policy, replace=replace)
        else:
            policy = self.policies.request_level(policy_name)
            params = compose(self.default_policy, policy)

        metadata = await self.resolver.resolve()
        pending = csrf.begin(
            params.get("claims") if isinstance(params.get("claims"), dict) else None,
            policy.name if policy else None,
            pkce=self.settings.use_pkce,
        )
        challenge = csrf.code_challenge(pending.code_verifier) if pending.code_verifier else None

        url = build_url(
            metadata.authorization_endpoint,
            bind_request(params, pending, self.settings, code_challenge=challenge),
        )
        logger.info(f"Starting login with policy {pending.policy or 'custom'}")
        return url, pending

    async def complete_login(
        self,
        callback_query: Mapping[str, Any],
        pending: PendingLogin | None,
    ) -> LoginResult:
        """Validate the callback and return the established identity.

        ``pending`` must already be removed from the session so that its
        state cannot be used twice.
        """
        attempt = LoginAttempt(pending)
        try:
            return await self._run(attempt, callback_query)
        except AuthError as e:
            attempt.reject(e)
            raise

    async def _run(self, attempt: LoginAttempt, query: Mapping[str, Any]) -> LoginResult:
        if query.get("error"):
            raise AuthorizationResponseError(
                query["error"], query.get("error_description"), params=query
            )
        if not query.get("code"):
            raise AuthorizationResponseError(
                "invalid_request", "Callback is missing the authorization code", params=query
            )

        pending = csrf.verify(query.get("state"), attempt.pending)
        attempt.advance(LoginState.STATE_VALIDATED)

        tokens = await self.tokens.exchange_code(query["code"], pending.code_verifier)
        attempt.advance(LoginState.CODE_EXCHANGED)

        id_token_claims = await self.tokens.validate_id_token(tokens, pending)
        attempt.advance(LoginState.TOKEN_VALIDATED)

        userinfo = None
        if self.settings.fetch_userinfo:
            userinfo = await self.tokens.fetch_userinfo(tokens.access_token, id_token_claims.sub)
        claims = merge_claims(id_token_claims, userinfo)
        attempt.advance(LoginState.CLAIMS_FETCHED)

        # Custom connections have no registered policy and are checked against
        # the default one plus the claims they actually requested.
        evaluation = self.policies.evaluate(
            claims,
            pending.policy,
            requested_at=pending.created_at,
            requested_claims=pending.requested_claims,
        )
        attempt.advance(LoginState.ESTABLISHED)
        logger.info(f"User {claims.sub} logged in (acr={claims.acr}, amr={claims.amr})")

        return LoginResult(
            state=attempt.state,
            tokens=tokens,
            claims=claims,
            id_token_claims=id_token_claims,
            userinfo=userinfo,
            evaluation=evaluation,
        )

    async def logout(self, tokens: TokenSet | None = None) -> str:
        """Return where to send the browser once the local session is gone."""
        home = self.settings.post_logout_redirect_uri
        if tokens is None:
            return home

        metadata = await self.resolver.resolve()
        if not metadata.end_session_endpoint:
            return home

        return build_url(
            metadata.end_session_endpoint,
            {"id_token_hint": tokens.id_token, "post_logout_redirect_uri": home},
        )


# Singleton instance
_relying_party: RelyingParty | None = None


def get_relying_party() -> RelyingParty:
    """Get or create the relying party instance."""
    global _relying_party
    if _relying_party is None:
        _relying_party = RelyingParty()
    return _relying_party
