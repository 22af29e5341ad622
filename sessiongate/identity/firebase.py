from __future__ import annotations

import asyncio
import threading
from datetime import timedelta
from typing import Any, Callable, Optional

import firebase_admin
from firebase_admin import auth, credentials
from firebase_admin.exceptions import FirebaseError

from sessiongate.config import Settings
from sessiongate.identity.base import (
    IdentityClaims,
    IdentityProviderError,
    IdentityProviderNotConfigured,
)
from sessiongate.logging import get_logger

logger = get_logger(__name__)

_TOKEN_URI = "https://oauth2.googleapis.com/token"


class FirebaseIdentityProvider:
    """Identity provider backed by the firebase-admin SDK.

    The SDK is synchronous and performs network I/O (public key fetches,
    session cookie minting, revocation), so each call runs in a worker thread.
    The SDK app is initialized lazily on first use.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._app: Optional[firebase_admin.App] = None
        self._init_lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return self.settings.firebase_configured

    def _get_app(self) -> firebase_admin.App:
        if self._app is not None:
            return self._app
        if not self.configured:
            raise IdentityProviderNotConfigured(
                "missing FIREBASE_PROJECT_ID, FIREBASE_CLIENT_EMAIL or FIREBASE_PRIVATE_KEY"
            )
        with self._init_lock:
            if self._app is not None:
                return self._app
            name = f"sessiongate-{self.settings.firebase_project_id}"
            try:
                self._app = firebase_admin.get_app(name)
            except ValueError:
                cert = credentials.Certificate(
                    {
                        "type": "service_account",
                        "project_id": self.settings.firebase_project_id,
                        "client_email": self.settings.firebase_client_email,
                        "private_key": self.settings.firebase_private_key,
                        "token_uri": _TOKEN_URI,
                    }
                )
                self._app = firebase_admin.initialize_app(
                    cert,
                    {"projectId": self.settings.firebase_project_id},
                    name=name,
                )
                logger.info(
                    "firebase_app_initialized", project_id=self.settings.firebase_project_id
                )
        return self._app

    async def _call(self, operation: str, func: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            app = self._get_app()
            return await asyncio.to_thread(func, *args, app=app, **kwargs)
        except IdentityProviderError:
            raise
        except (FirebaseError, ValueError) as exc:
            # Invalid/expired/revoked tokens surface as FirebaseError or ValueError
            raise IdentityProviderError(
                f"{operation} failed: {type(exc).__name__}", cause=exc
            ) from exc

    async def verify_id_token(
        self, id_token: str, *, check_revoked: bool = True
    ) -> IdentityClaims:
        decoded = await self._call(
            "verify_id_token", auth.verify_id_token, id_token, check_revoked=check_revoked
        )
        return IdentityClaims.from_decoded(decoded)

    async def create_session_cookie(
        self, id_token: str, *, expires_in: timedelta
    ) -> str:
        cookie = await self._call(
            "create_session_cookie",
            auth.create_session_cookie,
            id_token,
            expires_in=expires_in,
        )
        if isinstance(cookie, bytes):
            cookie = cookie.decode("utf-8")
        return cookie

    async def verify_session_cookie(
        self, session_cookie: str, *, check_revoked: bool = True
    ) -> IdentityClaims:
        decoded = await self._call(
            "verify_session_cookie",
            auth.verify_session_cookie,
            session_cookie,
            check_revoked=check_revoked,
        )
        return IdentityClaims.from_decoded(decoded)

    async def revoke_refresh_tokens(self, uid: str) -> None:
        await self._call("revoke_refresh_tokens", auth.revoke_refresh_tokens, uid)
