"""Authentication routes for the OIDC login/logout flow."""

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from proconnect_rp.config import Settings, get_settings
from proconnect_rp.auth.middleware import (
    ActiveSession,
    AuthenticatedSession,
    CurrentSession,
    OptionalSession,
)
from proconnect_rp.auth.models import PendingLogin
from proconnect_rp.auth.oidc import RelyingParty, get_relying_party
from proconnect_rp.auth.session import SessionManager, get_session_manager
from proconnect_rp.auth.step_up import StepUpPolicies

logger = logging.getLogger(__name__)

RelyingPartyDep = Annotated[RelyingParty, Depends(get_relying_party)]
SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


def _set_session_cookie(response: RedirectResponse, session_id: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.session_expire_minutes * 60,
    )


async def _redirect_to_provider(
    url: str,
    pending: PendingLogin,
    current: CurrentSession,
    session_manager: SessionManager,
    settings: Settings,
) -> RedirectResponse:
    # Overwrites any login still in progress in this session.
    current.session.begin(pending)
    await session_manager.save_session(current.session_id, current.session)

    response = RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)
    _set_session_cookie(response, current.session_id, settings)
    return response


def _login_endpoint(policy_name: str):
    async def start_login(
        current: ActiveSession,
        relying_party: RelyingPartyDep,
        session_manager: SessionManagerDep,
        settings: SettingsDep,
    ) -> RedirectResponse:
        url, pending = await relying_party.begin_login(policy_name)
        return await _redirect_to_provider(url, pending, current, session_manager, settings)

    start_login.__name__ = f"login_{policy_name.replace('-', '_')}"
    start_login.__doc__ = f"Start a login with the {policy_name!r} policy."
    return start_login


def build_router(settings: Settings) -> APIRouter:
    """Build the router; one login route per registered policy."""
    router = APIRouter(tags=["authentication"])

    @router.get("/")
    async def index(current: OptionalSession, relying_party: RelyingPartyDep) -> dict[str, Any]:
        """Show the state of the current session."""
        session = current.session if current else None
        claims = session.claims if session else None
        return {
            "title": relying_party.settings.site_title,
            "userinfo": session.userinfo if session else None,
            "idtoken": session.id_token_claims.model_dump() if session and session.id_token_claims else None,
            "oauth2token": session.tokens.model_dump(mode="json") if session and session.tokens else None,
            "default_params": relying_party.default_params(),
            "evaluation": session.evaluation.model_dump() if session and session.evaluation else None,
            "is_mfa": relying_party.policies.is_mfa(claims) if claims else False,
            "policies": relying_party.policies.names,
        }

    for name in StepUpPolicies(settings).names:
        router.add_api_route(
            f"/{name}",
            _login_endpoint(name),
            methods=["POST"],
            name=f"login_{name.replace('-', '_')}",
        )

    @router.post("/custom-connection")
    async def custom_connection(
        custom_params: Annotated[str, Form(alias="custom-params")],
        current: ActiveSession,
        relying_party: RelyingPartyDep,
        session_manager: SessionManagerDep,
        settings: SettingsDep,
    ) -> RedirectResponse:
        """Start a login with caller-supplied parameters instead of the defaults."""
        try:
            params = json.loads(custom_params)
        except json.JSONDecodeError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"custom-params is not valid JSON: {e}",
            )
        if not isinstance(params, dict):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="custom-params must be a JSON object",
            )

        url, pending = await relying_party.begin_login(replace=params)
        return await _redirect_to_provider(url, pending, current, session_manager, settings)

    @router.get(settings.callback_path, name="login_callback")
    async def login_callback(
        request: Request,
        current: OptionalSession,
        relying_party: RelyingPartyDep,
        session_manager: SessionManagerDep,
    ) -> RedirectResponse:
        """Complete the login and store the identity in the session."""
        pending = None
        if current is not None:
            # Consume before any network call so the state cannot be replayed.
            pending = current.session.take_pending_login()
            await session_manager.save_session(current.session_id, current.session)

        result = await relying_party.complete_login(dict(request.query_params), pending)

        current.session.establish(result)
        await session_manager.save_session(current.session_id, current.session)
        return RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)

    @router.post("/logout")
    async def logout(
        current: OptionalSession,
        relying_party: RelyingPartyDep,
        session_manager: SessionManagerDep,
        settings: SettingsDep,
    ) -> RedirectResponse:
        """Destroy the session and redirect to the provider's end-session endpoint."""
        tokens = None
        if current is not None:
            tokens = current.session.tokens
            await session_manager.delete_session(current.session_id)

        url = await relying_party.logout(tokens)
        response = RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)
        response.delete_cookie(settings.session_cookie_name)
        return response

    @router.get("/me")
    async def get_current_user(current: AuthenticatedSession) -> dict[str, Any]:
        """Get information about the currently authenticated user."""
        claims = current.session.claims
        return {
            "sub": claims.sub,
            "display_name": claims.display_name,
            "email": claims.email,
            "acr": claims.acr,
            "amr": claims.amr,
            "evaluation": current.session.evaluation.model_dump() if current.session.evaluation else None,
            "token_expires_at": (
                current.session.tokens.expires_at.isoformat()
                if current.session.tokens.expires_at
                else None
            ),
        }

    return router
