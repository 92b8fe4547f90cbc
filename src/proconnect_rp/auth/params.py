"""Authorization request parameters.

Parameters are composed from a default policy and an optional step-up
request (merge mode), or taken verbatim from the caller (replace mode).
"""

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from proconnect_rp.config import Settings
from proconnect_rp.auth.models import PendingLogin, StepUpRequest

# The provider must always return the authentication methods it used.
DEFAULT_CLAIMS: dict[str, Any] = {"id_token": {"amr": {"essential": True}}}


@dataclass(frozen=True)
class AuthorizationPolicy:
    """Default parameters sent with every merged authorization request."""

    redirect_uri: str
    scope: str
    login_hint: str | None = None
    acr_values: list[str] = field(default_factory=list)
    claims: dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CLAIMS))

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthorizationPolicy":
        return cls(
            redirect_uri=settings.redirect_uri,
            scope=settings.scopes,
            login_hint=settings.login_hint,
            acr_values=list(settings.acr_values),
        )

    def as_params(self) -> dict[str, Any]:
        return {
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "login_hint": self.login_hint,
            "acr_values": list(self.acr_values),
            "claims": copy.deepcopy(self.claims),
        }


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into ``base`` recursively.

    Nested dicts merge key by key; any other value, lists included, replaces
    the base value.
    """
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def compose(
    base: AuthorizationPolicy,
    override: StepUpRequest | None = None,
    *,
    replace: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Compose the authorization parameters, before correlation values."""
    if replace is not None:
        if override is not None:
            raise ValueError("A step-up request cannot be combined with replaced parameters")
        return dict(replace)

    params = base.as_params()
    if override is None:
        return params

    params["claims"] = deep_merge(params["claims"], override.claims)
    # The provider must choose among exactly the policy's ACR values.
    if override.acr_values:
        params["acr_values"] = list(override.acr_values)
    params.update(copy.deepcopy(override.params))
    return params


def bind_request(
    params: Mapping[str, Any],
    pending: PendingLogin,
    settings: Settings,
    code_challenge: str | None = None,
) -> dict[str, Any]:
    """Add the client and correlation values that callers cannot override."""
    bound = {"response_type": "code", **params}
    bound["client_id"] = settings.client_id
    bound["state"] = pending.state
    bound["nonce"] = pending.nonce
    if code_challenge:
        bound["code_challenge"] = code_challenge
        bound["code_challenge_method"] = "S256"
    if settings.extra_param_sp_name:
        bound["sp_name"] = settings.extra_param_sp_name
    return bound


def _encode_value(value: Any) -> str:
    if isinstance(value, Mapping):
        return json.dumps(value, separators=(",", ":"))
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    if value is True:
        return "true"
    return str(value)


def to_query(params: Mapping[str, Any]) -> dict[str, str]:
    """Flatten parameters for a query string, dropping empty values."""
    return {key: _encode_value(value) for key, value in params.items() if value}


def build_url(endpoint: str, params: Mapping[str, Any]) -> str:
    """Append encoded parameters to an endpoint, keeping its own query."""
    parsed = urlparse(endpoint)
    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query.update(to_query(params))
    return urlunparse(parsed._replace(query=urlencode(query)))
