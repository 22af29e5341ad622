from __future__ import annotations

import base64
import hashlib
import hmac
import json
import threading
import time
import uuid
from datetime import timedelta
from typing import Any, Callable, Optional

from sessiongate.identity.base import IdentityClaims, IdentityProviderError
from sessiongate.logging import get_logger

logger = get_logger(__name__)

_ID_TOKEN_TTL_SECONDS = 60 * 60


class MemoryIdentityProvider:
    """Self-contained identity provider for development and tests.

    Identity tokens and session credentials are HS256 JWTs signed with a
    shared secret. Revocation state lives here, standing in for the external
    provider's user records; the gateway itself keeps none.
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str = "sessiongate-memory",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("secret is required")
        self._secret = secret.encode()
        self.issuer = issuer
        self._clock = clock
        self._lock = threading.Lock()
        self._valid_since: dict[str, float] = {}
        self._disabled: set[str] = set()

    @property
    def configured(self) -> bool:
        return True

    def mint_id_token(
        self,
        uid: str,
        *,
        email: Optional[str] = None,
        auth_time: Optional[float] = None,
        ttl_seconds: int = _ID_TOKEN_TTL_SECONDS,
    ) -> str:
        """Issue an identity token as a sign-in flow would hand to the client."""
        now = self._clock()
        payload: dict[str, Any] = {
            "iss": self.issuer,
            "sub": uid,
            "uid": uid,
            "token_type": "id",
            "auth_time": now if auth_time is None else auth_time,
            "iat": now,
            "exp": now + ttl_seconds,
            "jti": str(uuid.uuid4()),
        }
        if email:
            payload["email"] = email
        return self._encode_jwt(payload)

    def disable_user(self, uid: str) -> None:
        with self._lock:
            self._disabled.add(uid)

    async def verify_id_token(
        self, id_token: str, *, check_revoked: bool = True
    ) -> IdentityClaims:
        return self._verify(id_token, "id", check_revoked=check_revoked)

    async def create_session_cookie(
        self, id_token: str, *, expires_in: timedelta
    ) -> str:
        claims = self._verify(id_token, "id", check_revoked=True)
        now = self._clock()
        payload: dict[str, Any] = {
            "iss": self.issuer,
            "sub": claims.uid,
            "uid": claims.uid,
            "token_type": "session",
            "auth_time": claims.auth_time,
            "iat": now,
            "exp": now + expires_in.total_seconds(),
            "jti": str(uuid.uuid4()),
        }
        if claims.email:
            payload["email"] = claims.email
        return self._encode_jwt(payload)

    async def verify_session_cookie(
        self, session_cookie: str, *, check_revoked: bool = True
    ) -> IdentityClaims:
        return self._verify(session_cookie, "session", check_revoked=check_revoked)

    async def revoke_refresh_tokens(self, uid: str) -> None:
        with self._lock:
            self._valid_since[uid] = self._clock()
        logger.info("memory_identity_tokens_revoked", uid=uid)

    def _verify(self, token: str, token_type: str, *, check_revoked: bool) -> IdentityClaims:
        payload = self._decode_jwt(token)
        if payload is None:
            raise IdentityProviderError("invalid token")
        if payload.get("token_type") != token_type:
            raise IdentityProviderError("unexpected token type")
        claims = IdentityClaims.from_decoded(payload)
        if claims.expires_at <= self._clock():
            raise IdentityProviderError("token expired")
        if check_revoked:
            with self._lock:
                disabled = claims.uid in self._disabled
                valid_since = self._valid_since.get(claims.uid)
            if disabled:
                raise IdentityProviderError("user disabled")
            if valid_since is not None and claims.auth_time < valid_since:
                raise IdentityProviderError("token revoked")
        return claims

    def _encode_segment(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    def _decode_segment(self, segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)

    def _encode_jwt(self, payload: dict[str, Any]) -> str:
        header = {"alg": "HS256", "typ": "JWT"}
        header_enc = self._encode_segment(
            json.dumps(header, separators=(",", ":")).encode()
        )
        payload_enc = self._encode_segment(
            json.dumps(payload, separators=(",", ":")).encode()
        )
        signing_input = f"{header_enc}.{payload_enc}"
        signature = hmac.new(self._secret, signing_input.encode(), hashlib.sha256).digest()
        return f"{signing_input}.{self._encode_segment(signature)}"

    def _decode_jwt(self, token: str) -> Optional[dict[str, Any]]:
        if not isinstance(token, str):
            return None
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            return None

        # Reject anything but HS256 to prevent algorithm confusion
        try:
            header = json.loads(self._decode_segment(header_b64))
            if not isinstance(header, dict) or header.get("alg") != "HS256":
                logger.warning("jwt_invalid_algorithm")
                return None
        except (ValueError, UnicodeDecodeError):
            logger.warning("jwt_header_decode_failed")
            return None

        signing_input = f"{header_b64}.{payload_b64}"
        expected_sig = self._encode_segment(
            hmac.new(self._secret, signing_input.encode(), hashlib.sha256).digest()
        )
        if not hmac.compare_digest(expected_sig.encode(), sig_b64.encode("utf-8", "replace")):
            return None
        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except (ValueError, UnicodeDecodeError) as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            return None
        if not isinstance(payload, dict) or payload.get("iss") != self.issuer:
            return None
        return payload
