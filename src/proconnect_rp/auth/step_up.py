"""Step-up authentication policies and evaluation of achieved claims."""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable

from proconnect_rp.config import Settings, get_settings
from proconnect_rp.auth.errors import UnknownPolicyError
from proconnect_rp.auth.models import IdentityClaims, StepUpEvaluation, StepUpRequest

logger = logging.getLogger(__name__)

DEFAULT_POLICY = "login"

MfaPredicate = Callable[[IdentityClaims], bool]


def acr_claim(values: list[str]) -> dict[str, Any]:
    """Essential ``acr`` claim request for one or several accepted values."""
    if len(values) == 1:
        return {"essential": True, "value": values[0]}
    return {"essential": True, "values": list(values)}


def is_essential(claims_request: dict[str, Any], claim: str) -> bool:
    """Whether the ``claims`` request marks an ID token claim as essential."""
    id_token = claims_request.get("id_token")
    if not isinstance(id_token, dict):
        return False
    requested = id_token.get(claim)
    return isinstance(requested, dict) and bool(requested.get("essential"))


def requested_acr(claims_request: dict[str, Any]) -> list[str]:
    """ACR values an essential ``acr`` claim request accepts, or an empty list."""
    id_token = claims_request.get("id_token")
    acr = id_token.get("acr") if isinstance(id_token, dict) else None
    if not isinstance(acr, dict) or not acr.get("essential"):
        return []
    if acr.get("value"):
        return [acr["value"]]
    values = acr.get("values")
    return [v for v in values if v] if isinstance(values, list) else []


def amr_predicate(mfa_methods: Iterable[str]) -> MfaPredicate:
    """Treat a login as multi-factor when ``amr`` contains any of ``mfa_methods``."""
    methods = frozenset(mfa_methods)

    def is_mfa(claims: IdentityClaims) -> bool:
        return bool(methods.intersection(claims.amr))

    return is_mfa


class StepUpPolicies:
    """Closed registry of the named login policies this client can request."""

    def __init__(
        self,
        settings: Settings | None = None,
        mfa_predicate: MfaPredicate | None = None,
    ):
        self.settings = settings or get_settings()
        self.is_mfa = mfa_predicate or amr_predicate(self.settings.mfa_amr_values)
        self._policies = {p.name: p for p in self._build()}

    def _acr(self, name: str, *defaults: str) -> list[str]:
        return list(self.settings.step_up_acr_values.get(name) or defaults)

    def _build(self) -> list[StepUpRequest]:
        s = self.settings
        two_fa = self._acr(
            "force-2fa",
            s.acr_value_for_self_asserted_2fa,
            s.acr_value_for_consistency_checked_2fa,
        )
        self_asserted = self._acr("force-self-asserted-2fa", s.acr_value_for_self_asserted_2fa)
        consistency_checked = self._acr(
            "force-consistency-checked-2fa", s.acr_value_for_consistency_checked_2fa
        )
        dirigeant = self._acr(
            "force-certification-dirigeant", s.acr_value_for_certification_dirigeant
        )

        return [
            StepUpRequest(name=DEFAULT_POLICY),
            StepUpRequest(name="select-organization", params={"prompt": "select_organization"}),
            StepUpRequest(name="update-userinfo", params={"prompt": "update_userinfo"}),
            StepUpRequest(
                name="force-login",
                claims={
                    "id_token": {
                        "amr": {"essential": True},
                        "auth_time": {"essential": True},
                    }
                },
                params={"prompt": "login"},
            ),
            StepUpRequest(
                name="force-2fa",
                claims={"id_token": {"amr": {"essential": True}, "acr": acr_claim(two_fa)}},
                acr_values=two_fa,
                require_mfa=True,
            ),
            StepUpRequest(
                name="force-self-asserted-2fa",
                claims={"id_token": {"amr": {"essential": True}, "acr": acr_claim(self_asserted)}},
                acr_values=self_asserted,
            ),
            StepUpRequest(
                name="force-consistency-checked-2fa",
                claims={
                    "id_token": {"amr": {"essential": True}, "acr": acr_claim(consistency_checked)}
                },
                acr_values=consistency_checked,
            ),
            StepUpRequest(
                name="force-certification-dirigeant",
                claims={"id_token": {"acr": acr_claim(dirigeant)}},
                acr_values=dirigeant,
            ),
        ]

    @property
    def names(self) -> list[str]:
        return list(self._policies)

    def request_level(self, name: str | None = None) -> StepUpRequest:
        """Look up a registered policy by name."""
        try:
            return self._policies[name or DEFAULT_POLICY]
        except KeyError:
            raise UnknownPolicyError(f"Unknown login policy: {name}") from None

    def evaluate(
        self,
        claims: IdentityClaims,
        policy: StepUpRequest | str | None = None,
        requested_at: datetime | None = None,
        requested_claims: dict[str, Any] | None = None,
    ) -> StepUpEvaluation:
        """Check achieved ``acr``/``amr`` claims against the policy that was requested.

        ``requested_claims`` is the ``claims`` parameter actually sent, which
        includes the defaults merged under the policy; without it only the
        policy's own claims are checked.
        """
        if not isinstance(policy, StepUpRequest):
            policy = self.request_level(policy)
        if requested_claims is None:
            requested_claims = policy.claims

        mfa = self.is_mfa(claims)
        reason = self._unmet_requirement(claims, policy, requested_claims, requested_at, mfa)
        if reason:
            logger.info(f"Policy {policy.name} not satisfied for {claims.sub}: {reason}")
        return StepUpEvaluation(policy=policy.name, satisfied=reason is None, reason=reason, mfa=mfa)

    def _unmet_requirement(
        self,
        claims: IdentityClaims,
        policy: StepUpRequest,
        requested_claims: dict[str, Any],
        requested_at: datetime | None,
        mfa: bool,
    ) -> str | None:
        accepted_acr = policy.acr_values or requested_acr(requested_claims)
        if accepted_acr and claims.acr not in accepted_acr:
            return "acr_not_accepted"
        if is_essential(requested_claims, "amr") and not claims.amr:
            return "amr_missing"
        if is_essential(requested_claims, "auth_time"):
            if claims.auth_time is None:
                return "auth_time_missing"
            leeway = self.settings.clock_leeway_s
            if requested_at and claims.auth_time < int(requested_at.timestamp()) - leeway:
                return "stale_authentication"
        if policy.require_mfa and not mfa:
            return "mfa_required"
        return None
