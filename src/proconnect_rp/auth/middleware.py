"""Session cookie dependencies for FastAPI."""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from proconnect_rp.config import Settings, get_settings
from proconnect_rp.auth.models import Session
from proconnect_rp.auth.session import SessionManager, get_session_manager

logger = logging.getLogger(__name__)


@dataclass
class CurrentSession:
    """A loaded session together with the ID it is stored under."""

    session_id: str
    session: Session
    is_new: bool = False


async def get_session_from_cookie(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> str | None:
    """Extract session ID from cookie."""
    return request.cookies.get(settings.session_cookie_name)


async def get_current_session(
    session_id: Annotated[str | None, Depends(get_session_from_cookie)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> CurrentSession | None:
    """Get the session named by the cookie, or None if it is unknown or expired."""
    session = await session_manager.get_session(session_id)
    if session is None:
        return None
    return CurrentSession(session_id=session_id, session=session)


async def get_or_create_session(
    current: Annotated[CurrentSession | None, Depends(get_current_session)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> CurrentSession:
    """Get the current session, starting a new one when there is none."""
    if current is not None:
        return current
    session_id, session = await session_manager.create_session()
    return CurrentSession(session_id=session_id, session=session, is_new=True)


async def require_authenticated(
    current: Annotated[CurrentSession | None, Depends(get_current_session)],
) -> CurrentSession:
    """Require a session holding an established identity."""
    if current is None or not current.session.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return current


# Type aliases for dependency injection
OptionalSession = Annotated[CurrentSession | None, Depends(get_current_session)]
ActiveSession = Annotated[CurrentSession, Depends(get_or_create_session)]
AuthenticatedSession = Annotated[CurrentSession, Depends(require_authenticated)]
