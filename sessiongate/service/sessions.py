from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sessiongate.config import Settings
from sessiongate.identity.base import (
    IdentityClaims,
    IdentityProvider,
    IdentityProviderError,
)
from sessiongate.logging import get_logger
from sessiongate.service.cookies import CookieJar, CookieSpec, session_cookie_spec
from sessiongate.service.csrf import CsrfService
from sessiongate.service.errors import AuthenticationError, BadRequestError
from sessiongate.service.redirects import sanitize_redirect

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class Principal:
    """An authenticated caller, as vouched for by the identity provider."""

    uid: str
    email: Optional[str]
    auth_time: datetime
    expires_at: datetime
    claims: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: IdentityClaims) -> "Principal":
        return cls(
            uid=claims.uid,
            email=claims.email,
            auth_time=datetime.fromtimestamp(claims.auth_time, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(claims.expires_at, tz=timezone.utc),
            claims=claims.claims,
        )


@dataclass
class IssuedSession:
    cookie_value: str
    max_age: int
    redirect: str
    uid: str


class SessionService:
    """Issues, verifies and revokes session credentials.

    Authority lives entirely in the credential and the identity provider;
    nothing about a session is remembered between requests.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        settings: Settings,
        csrf: CsrfService,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.identity = identity
        self.settings = settings
        self.csrf = csrf
        self.cookie: CookieSpec = session_cookie_spec(settings)
        self._clock = clock

    async def _bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, self.settings.identity_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise IdentityProviderError(f"{operation} timed out", cause=exc) from exc

    async def create_session(
        self,
        jar: CookieJar,
        id_token: Any,
        redirect_candidate: Any = None,
        *,
        marker: Optional[str],
        csrf_header: Optional[str],
        csrf_cookie: Optional[str],
    ) -> IssuedSession:
        """Exchange a freshly issued identity token for a session credential.

        Raises:
            CsrfError: marker or double-submit pair invalid (checked first)
            BadRequestError: identity token missing or not a string
            AuthenticationError: the identity provider rejected the token,
                the sign-in is stale, or the provider was unreachable
        """
        self.csrf.require_valid(marker, csrf_header, csrf_cookie)
        if not isinstance(id_token, str) or not id_token.strip():
            raise BadRequestError("invalid request")

        max_age = self.settings.session_max_age_seconds
        try:
            claims = await self._bounded(
                "verify_id_token",
                self.identity.verify_id_token(id_token, check_revoked=True),
            )
            self._require_recent_sign_in(claims)
            cookie_value = await self._bounded(
                "create_session_cookie",
                self.identity.create_session_cookie(
                    id_token, expires_in=timedelta(seconds=max_age)
                ),
            )
        except IdentityProviderError as exc:
            logger.warning("session_create_rejected", reason=exc.reason)
            raise AuthenticationError("invalid credentials") from exc
        except Exception as exc:
            logger.error("session_create_provider_error", error_type=type(exc).__name__)
            raise AuthenticationError("invalid credentials") from exc

        issued = IssuedSession(
            cookie_value=cookie_value,
            max_age=max_age,
            redirect=sanitize_redirect(redirect_candidate),
            uid=claims.uid,
        )
        jar.set(self.cookie, issued.cookie_value)
        logger.info("session_created", uid=claims.uid, max_age=max_age)
        return issued

    def _require_recent_sign_in(self, claims: IdentityClaims) -> None:
        age = self._clock() - claims.auth_time
        if age > self.settings.recent_sign_in_seconds:
            raise IdentityProviderError(f"sign-in too old ({int(age)}s)")

    async def revoke_session(self, jar: CookieJar, session_cookie: Optional[str]) -> None:
        """Log out. Never fails; the session cookie is always cleared."""
        try:
            if not session_cookie:
                logger.info("session_revoke_without_cookie")
                return
            claims = await self._bounded(
                "verify_session_cookie",
                self.identity.verify_session_cookie(session_cookie, check_revoked=True),
            )
            await self._bounded(
                "revoke_refresh_tokens", self.identity.revoke_refresh_tokens(claims.uid)
            )
            logger.info("session_revoked", uid=claims.uid)
        except IdentityProviderError as exc:
            logger.warning("session_revoke_failed", reason=exc.reason)
        except Exception as exc:
            logger.error("session_revoke_provider_error", error_type=type(exc).__name__)
        finally:
            jar.clear(self.cookie)

    async def verify_session(self, session_cookie: Optional[str]) -> Optional[Principal]:
        """Return the principal behind a session credential, or None if unusable."""
        if not session_cookie:
            return None
        try:
            claims = await self._bounded(
                "verify_session_cookie",
                self.identity.verify_session_cookie(session_cookie, check_revoked=True),
            )
        except IdentityProviderError as exc:
            logger.info("session_verify_failed", reason=exc.reason)
            return None
        except Exception as exc:
            logger.error("session_verify_provider_error", error_type=type(exc).__name__)
            return None
        return Principal.from_claims(claims)
