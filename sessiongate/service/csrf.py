from __future__ import annotations

import hmac
import uuid
from typing import Optional

from sessiongate.config import Settings
from sessiongate.logging import get_logger
from sessiongate.service.cookies import CookieJar, CookieSpec, csrf_cookie_spec
from sessiongate.service.errors import CsrfError

logger = get_logger(__name__)

REQUESTED_WITH_HEADER = "X-Requested-With"
CSRF_HEADER = "X-CSRF-Token"


class CsrfService:
    """Double-submit CSRF tokens: a script-readable cookie echoed in a header."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.cookie: CookieSpec = csrf_cookie_spec(settings)

    def ensure_token(self, jar: CookieJar) -> str:
        """Return the jar's CSRF token, minting and writing one if absent.

        An existing token is never rotated.
        """
        token = jar.get(self.cookie.name)
        if token:
            return token
        token = str(uuid.uuid4())
        jar.set(self.cookie, token)
        logger.info("csrf_token_issued")
        return token

    def validate(
        self,
        marker: Optional[str],
        csrf_header: Optional[str],
        csrf_cookie: Optional[str],
    ) -> bool:
        if marker != self.settings.requested_with_marker:
            return False
        if not csrf_header or not csrf_cookie:
            return False
        return hmac.compare_digest(csrf_header.encode(), csrf_cookie.encode())

    def require_valid(
        self,
        marker: Optional[str],
        csrf_header: Optional[str],
        csrf_cookie: Optional[str],
    ) -> None:
        if not self.validate(marker, csrf_header, csrf_cookie):
            logger.warning(
                "csrf_validation_failed",
                marker_ok=marker == self.settings.requested_with_marker,
                header_present=bool(csrf_header),
                cookie_present=bool(csrf_cookie),
            )
            raise CsrfError("invalid request")
