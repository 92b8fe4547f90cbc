"""Session management for the login round trip and authenticated users."""

import logging
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from proconnect_rp.config import Settings, get_settings
from proconnect_rp.auth.models import Session, utcnow

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Abstract base class for session storage."""

    @abstractmethod
    async def save_session(self, session_id: str, session: Session, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Session | None:
        pass

    @abstractmethod
    async def delete_session(self, session_id: str) -> None:
        pass


class InMemorySessionStore(SessionStore):
    """In-memory session store for development."""

    def __init__(self):
        self._sessions: dict[str, tuple[str, datetime]] = {}

    async def save_session(self, session_id: str, session: Session, ttl_seconds: int) -> None:
        expires_at = utcnow() + timedelta(seconds=ttl_seconds)
        # Stored serialized so callers never share a mutable instance.
        self._sessions[session_id] = (session.model_dump_json(), expires_at)

    async def get_session(self, session_id: str) -> Session | None:
        if session_id not in self._sessions:
            return None

        data, expires_at = self._sessions[session_id]
        if utcnow() > expires_at:
            del self._sessions[session_id]
            return None

        return Session.model_validate_json(data)

    async def delete_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class RedisSessionStore(SessionStore):
    """Redis-backed session store for production."""

    def __init__(self, redis_url: str):
        import redis.asyncio as redis
        self._redis = redis.from_url(redis_url, decode_responses=True)
        self._session_prefix = "proconnect:session:"

    async def save_session(self, session_id: str, session: Session, ttl_seconds: int) -> None:
        key = f"{self._session_prefix}{session_id}"
        await self._redis.setex(key, ttl_seconds, session.model_dump_json())

    async def get_session(self, session_id: str) -> Session | None:
        key = f"{self._session_prefix}{session_id}"
        data = await self._redis.get(key)
        if not data:
            return None
        return Session.model_validate_json(data)

    async def delete_session(self, session_id: str) -> None:
        key = f"{self._session_prefix}{session_id}"
        await self._redis.delete(key)


class SessionManager:
    """Creates, loads, saves and destroys user sessions."""

    def __init__(self, settings: Settings | None = None, store: SessionStore | None = None):
        self.settings = settings or get_settings()

        # Use Redis in production, in-memory for development
        if store is not None:
            self._store = store
        elif self.settings.redis_url and self.settings.is_production:
            self._store = RedisSessionStore(self.settings.redis_url)
        else:
            logger.warning("Using in-memory session store - not suitable for production")
            self._store = InMemorySessionStore()

    @property
    def ttl_seconds(self) -> int:
        return self.settings.session_expire_minutes * 60

    def generate_session_id(self) -> str:
        """Generate a secure random session ID."""
        return secrets.token_urlsafe(32)

    async def create_session(self) -> tuple[str, Session]:
        """Create and store an empty session."""
        session_id = self.generate_session_id()
        session = Session()
        await self._store.save_session(session_id, session, self.ttl_seconds)
        return session_id, session

    async def get_session(self, session_id: str | None) -> Session | None:
        """Retrieve a session by ID."""
        if not session_id:
            return None
        return await self._store.get_session(session_id)

    async def save_session(self, session_id: str, session: Session) -> None:
        """Persist session changes and extend its lifetime."""
        await self._store.save_session(session_id, session, self.ttl_seconds)

    async def delete_session(self, session_id: str | None) -> None:
        """Delete a session (logout). Unknown IDs are ignored."""
        if not session_id:
            return
        await self._store.delete_session(session_id)
        logger.info("Deleted session")


# Singleton instance
_session_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    """Get or create session manager instance."""
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager
