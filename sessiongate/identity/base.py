from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional, Protocol


class IdentityProviderError(Exception):
    """Any failure reported by, or while talking to, the identity provider.

    ``reason`` is for logs only; it is never surfaced to HTTP callers.
    """

    def __init__(self, reason: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.cause = cause


class IdentityProviderNotConfigured(IdentityProviderError):
    """Provider credentials are missing, so no token can be verified."""


@dataclass
class IdentityClaims:
    """Verified claims of an identity token or session credential."""

    uid: str
    auth_time: float
    issued_at: float
    expires_at: float
    email: Optional[str] = None
    claims: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_decoded(cls, decoded: dict[str, Any]) -> "IdentityClaims":
        uid = decoded.get("uid") or decoded.get("sub")
        if not isinstance(uid, str) or not uid:
            raise IdentityProviderError("token has no subject")
        try:
            auth_time = float(decoded.get("auth_time", decoded.get("iat")))
            issued_at = float(decoded["iat"])
            expires_at = float(decoded["exp"])
        except (KeyError, TypeError, ValueError) as exc:
            raise IdentityProviderError("token timestamps missing", cause=exc) from exc
        email = decoded.get("email")
        return cls(
            uid=uid,
            auth_time=auth_time,
            issued_at=issued_at,
            expires_at=expires_at,
            email=email if isinstance(email, str) else None,
            claims=dict(decoded),
        )


class IdentityProvider(Protocol):
    """Operations the gateway needs from an external identity provider.

    Every method raises ``IdentityProviderError`` on failure.
    """

    @property
    def configured(self) -> bool: ...

    async def verify_id_token(
        self, id_token: str, *, check_revoked: bool = True
    ) -> IdentityClaims: ...

    async def create_session_cookie(
        self, id_token: str, *, expires_in: timedelta
    ) -> str: ...

    async def verify_session_cookie(
        self, session_cookie: str, *, check_revoked: bool = True
    ) -> IdentityClaims: ...

    async def revoke_refresh_tokens(self, uid: str) -> None: ...
