import asyncio
import inspect
import os
import sys
import time
from pathlib import Path

# Pin configuration before any imports that build the module-level app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("IDENTITY_BACKEND", "memory")
os.environ.setdefault("MEMORY_IDENTITY_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("LOG_JSON", "false")

import pytest  # noqa: E402
from fastapi import Depends  # noqa: E402
from fastapi.responses import HTMLResponse  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sessiongate.app import create_app  # noqa: E402
from sessiongate.config import Settings, reset_settings_cache  # noqa: E402
from sessiongate.identity.memory import MemoryIdentityProvider  # noqa: E402
from sessiongate.service.guard import require_user  # noqa: E402
from sessiongate.service.sessions import Principal  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-only-do-not-use-in-production"


class CountingIdentityProvider:
    """Wraps a provider and records every call made to it."""

    def __init__(self, inner, *, fail_with: Exception | None = None):
        self.inner = inner
        self.fail_with = fail_with
        self.calls: list[str] = []

    @property
    def configured(self) -> bool:
        return self.inner.configured

    async def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    async def verify_id_token(self, id_token, *, check_revoked=True):
        await self._maybe_fail("verify_id_token")
        return await self.inner.verify_id_token(id_token, check_revoked=check_revoked)

    async def create_session_cookie(self, id_token, *, expires_in):
        await self._maybe_fail("create_session_cookie")
        return await self.inner.create_session_cookie(id_token, expires_in=expires_in)

    async def verify_session_cookie(self, session_cookie, *, check_revoked=True):
        await self._maybe_fail("verify_session_cookie")
        return await self.inner.verify_session_cookie(
            session_cookie, check_revoked=check_revoked
        )

    async def revoke_refresh_tokens(self, uid):
        await self._maybe_fail("revoke_refresh_tokens")
        return await self.inner.revoke_refresh_tokens(uid)


@pytest.fixture(autouse=True)
def reset_settings_state():
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        identity_backend="memory",
        memory_identity_secret=TEST_SECRET,
    )


class FakeClock:
    """Controllable stand-in for time.time, starting at the real current time."""

    def __init__(self, now: float | None = None):
        self.now = time.time() if now is None else now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_identity(clock):
    return MemoryIdentityProvider(TEST_SECRET, clock=clock)


@pytest.fixture
def identity(memory_identity):
    return CountingIdentityProvider(memory_identity)


@pytest.fixture
def app(settings, identity):
    application = create_app(settings=settings, identity_provider=identity)

    @application.get("/reports", response_class=HTMLResponse)
    async def reports(principal: Principal = Depends(require_user)):
        return HTMLResponse(f"<p>reports for {principal.uid}</p>")

    return application


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def csrf_headers(client):
    """Obtain the CSRF cookie and build the headers the login script sends."""
    response = client.get("/api/auth/csrf")
    assert response.status_code == 200
    token = response.json()["data"]["token"]
    return {"X-Requested-With": "XMLHttpRequest", "X-CSRF-Token": token}


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
