"""FastAPI application for the ProConnect relying party."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from proconnect_rp import __version__
from proconnect_rp.config import Settings, get_settings
from proconnect_rp.auth.errors import AuthError
from proconnect_rp.auth.oidc import RelyingParty, get_relying_party
from proconnect_rp.auth.routes import build_router
from proconnect_rp.auth.session import SessionManager, get_session_manager

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render authentication failures with their error class and message."""
    logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.__class__.__name__, "error_description": str(exc)},
    )


def create_app(
    settings: Settings | None = None,
    *,
    relying_party: RelyingParty | None = None,
    session_manager: SessionManager | None = None,
) -> FastAPI:
    """Create the application around one settings value.

    Every route dependency resolves to ``settings`` and to services built from
    it; the process-wide getters are never consulted.
    """
    settings = settings or get_settings()
    relying_party = relying_party or RelyingParty(settings)
    session_manager = session_manager or SessionManager(settings)
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info(f"Starting relying party for issuer {settings.issuer}")
        logger.info(f"Redirect URI: {settings.redirect_uri}")
        yield
        logger.info("Shutting down relying party...")

    app = FastAPI(
        title=settings.site_title,
        description="OpenID Connect relying party with step-up authentication",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(build_router(settings))
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_relying_party] = lambda: relying_party
    app.dependency_overrides[get_session_manager] = lambda: session_manager
    app.add_exception_handler(AuthError, auth_error_handler)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "proconnect-rp"}

    return app


def run() -> None:
    """Run with Uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "proconnect_rp.main:create_app",
        factory=True,
        host=settings.server_host,
        port=settings.server_port,
    )


if __name__ == "__main__":
    run()
