from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI

from sessiongate.api.error_handling import register_exception_handlers
from sessiongate.api.pages import build_pages_router
from sessiongate.api.routes import router as auth_router
from sessiongate.config import Settings, get_settings
from sessiongate.identity.base import IdentityProvider
from sessiongate.logging import get_logger, set_correlation_id
from sessiongate.service.runtime import Runtime, build_runtime, get_runtime

logger = get_logger(__name__)

__version__ = "0.1.0"

_CONTENT_SECURITY_POLICY = (
    "default-src 'self'; script-src 'self'; style-src 'self'; img-src 'self' data:; "
    "connect-src 'self'; font-src 'self'; frame-ancestors 'none'; base-uri 'self'; "
    "form-action 'self'"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    runtime: Runtime = app.state.runtime
    logger.info(
        "gateway_started",
        version=__version__,
        build=runtime.settings.build_sha,
        environment=runtime.settings.environment.value,
    )
    yield
    logger.info("gateway_stopped")


def create_app(
    settings: Optional[Settings] = None,
    identity_provider: Optional[IdentityProvider] = None,
) -> FastAPI:
    settings = settings or get_settings()
    runtime = build_runtime(settings, identity_provider)

    app = FastAPI(title="Session Gateway", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime

    # Middleware registered last runs first: correlation id, headers, gate
    app.middleware("http")(runtime.gate.dispatch)

    @app.middleware("http")
    async def add_security_headers(request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        if request.url.path.startswith(settings.api_prefix + "/"):
            response.headers.setdefault("Cache-Control", "no-store")
        response.headers.setdefault(
            "Permissions-Policy", "camera=(), microphone=(), geolocation=(), payment=()"
        )
        if request.url.scheme == "https" and settings.enable_hsts:
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=63072000; includeSubDomains"
            )
        response.headers.setdefault("Content-Security-Policy", _CONTENT_SECURITY_POLICY)
        return response

    @app.middleware("http")
    async def add_correlation_id(request, call_next):
        """Tag each request with X-Request-ID (client supplied or generated)."""
        correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        return response

    register_exception_handlers(app)
    app.include_router(auth_router, prefix=f"{settings.api_prefix}/auth")
    app.include_router(build_pages_router(settings))

    @app.get("/healthz")
    async def health(runtime: Runtime = Depends(get_runtime)) -> Dict[str, Any]:
        """Liveness plus whether the identity provider has credentials.

        Does not call the provider; an unconfigured provider reports degraded.
        """
        configured = runtime.identity.configured
        return {
            "status": "healthy" if configured else "degraded",
            "checks": {
                "identity_provider": {
                    "status": "configured" if configured else "not_configured",
                    "backend": runtime.settings.identity_backend.value,
                }
            },
            "version": __version__,
            "build": runtime.settings.build_sha,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


app = create_app()
