from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from sessiongate.config import Settings
from sessiongate.logging import get_logger
from sessiongate.service.cookies import CookieJar
from sessiongate.service.csrf import CsrfService
from sessiongate.service.redirects import (
    login_redirect_url,
    redirect_path,
    sanitize_redirect,
)

logger = get_logger(__name__)

_FILE_EXTENSION = re.compile(r"\.[a-zA-Z0-9]+$")


class GateAction(str, Enum):
    PASS = "pass"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class GateDecision:
    action: GateAction
    reason: str
    location: Optional[str] = None
    ensure_csrf: bool = False


def _matches(path: str, prefix: str) -> bool:
    # "/" names only the root page, not the whole site
    if prefix == "/":
        return path == "/"
    return path == prefix or path.startswith(prefix + "/")


class RoutingGate:
    """Per-request routing decisions made from cookie presence alone.

    The gate never contacts the identity provider. It only steers browsers
    between the login surface and pages; pages that render protected content
    must still depend on ``require_user``.
    """

    def __init__(self, settings: Settings, csrf: CsrfService) -> None:
        self.settings = settings
        self.csrf = csrf
        self.session_cookie_name = settings.effective_session_cookie_name

    def is_excluded(self, path: str) -> bool:
        if _matches(path, self.settings.api_prefix):
            return True
        if any(_matches(path, bypass) for bypass in self.settings.gate_bypass_paths):
            return True
        if any(path.startswith(prefix) for prefix in self.settings.asset_prefixes):
            return True
        return bool(_FILE_EXTENSION.search(path))

    def is_public(self, path: str) -> bool:
        return any(_matches(path, public) for public in self.settings.public_paths)

    def _away_from(self, path: str, redirect_param: Optional[str]) -> Optional[str]:
        target = sanitize_redirect(redirect_param)
        if redirect_path(target) == path:
            return None
        return target

    def decide(
        self,
        path: str,
        query: str,
        redirect_param: Optional[str],
        has_session: bool,
    ) -> GateDecision:
        if self.is_excluded(path):
            return GateDecision(GateAction.PASS, "excluded")

        if path == self.settings.login_path:
            if has_session:
                target = self._away_from(path, redirect_param)
                if target is not None:
                    return GateDecision(
                        GateAction.REDIRECT, "login_with_session", target, ensure_csrf=True
                    )
            return GateDecision(GateAction.PASS, "login", ensure_csrf=True)

        public = self.is_public(path)
        if not has_session:
            if public:
                return GateDecision(GateAction.PASS, "public")
            return GateDecision(
                GateAction.REDIRECT,
                "no_session",
                login_redirect_url(self.settings.login_path, path, query),
            )

        if public:
            target = self._away_from(path, redirect_param)
            if target is not None:
                return GateDecision(GateAction.REDIRECT, "public_with_session", target)
        return GateDecision(GateAction.PASS, "session_present")

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        jar = CookieJar(request.cookies)
        decision = self.decide(
            path,
            request.url.query,
            request.query_params.get("redirect"),
            has_session=bool(jar.get(self.session_cookie_name)),
        )

        if decision.ensure_csrf:
            self.csrf.ensure_token(jar)

        if decision.action == GateAction.REDIRECT:
            logger.info(
                "gate_redirect", path=path, reason=decision.reason, location=decision.location
            )
            response: Response = RedirectResponse(decision.location, status_code=302)
        else:
            response = await call_next(request)
        return jar.apply(response)
