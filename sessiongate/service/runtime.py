from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from sessiongate.config import IdentityBackend, Settings
from sessiongate.identity.base import IdentityProvider
from sessiongate.identity.memory import MemoryIdentityProvider
from sessiongate.logging import get_logger
from sessiongate.service.csrf import CsrfService
from sessiongate.service.gate import RoutingGate
from sessiongate.service.sessions import SessionService

logger = get_logger(__name__)


@dataclass
class Runtime:
    """Service instances wired for one application.

    Everything here is immutable configuration or a client for the identity
    provider; request handling never stores per-session state on it.
    """

    settings: Settings
    identity: IdentityProvider
    csrf: CsrfService
    sessions: SessionService
    gate: RoutingGate


def build_identity_provider(settings: Settings) -> IdentityProvider:
    """Instantiate the identity provider selected by ``IDENTITY_BACKEND``."""
    if settings.identity_backend == IdentityBackend.MEMORY:
        return MemoryIdentityProvider(
            settings.memory_identity_secret or "",
            issuer=settings.memory_identity_issuer,
        )
    # Imported lazily so memory-backed deployments never load the SDK
    from sessiongate.identity.firebase import FirebaseIdentityProvider

    return FirebaseIdentityProvider(settings)


def build_runtime(settings: Settings, identity: IdentityProvider | None = None) -> Runtime:
    if identity is None:
        identity = build_identity_provider(settings)
    csrf = CsrfService(settings)
    runtime = Runtime(
        settings=settings,
        identity=identity,
        csrf=csrf,
        sessions=SessionService(identity, settings, csrf),
        gate=RoutingGate(settings, csrf),
    )
    logger.info(
        "runtime_initialized",
        environment=settings.environment.value,
        identity_backend=type(identity).__name__,
        identity_configured=identity.configured,
    )
    if not identity.configured:
        logger.warning("identity_provider_not_configured")
    return runtime


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime
