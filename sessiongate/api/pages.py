from __future__ import annotations

import html

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from sessiongate.config import Settings
from sessiongate.service.csrf import CSRF_HEADER, REQUESTED_WITH_HEADER
from sessiongate.service.guard import require_user
from sessiongate.service.redirects import sanitize_redirect
from sessiongate.service.runtime import Runtime, get_runtime
from sessiongate.service.sessions import Principal

_LOGIN_TEMPLATE = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>Sign in</title></head>
<body>
<main id="login"
      data-session-endpoint="{session_endpoint}"
      data-csrf-cookie="{csrf_cookie}"
      data-csrf-header="{csrf_header}"
      data-requested-with-header="{requested_with_header}"
      data-requested-with="{requested_with}"
      data-redirect="{redirect}">
  <h1>Sign in</h1>
  <p>Sign in with your identity provider to continue.</p>
</main>
</body>
</html>
"""

_HOME_TEMPLATE = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>Home</title></head>
<body>
<main id="home" data-session-endpoint="{session_endpoint}">
  <h1>Signed in</h1>
  <p>Signed in as <span id="principal">{who}</span>.</p>
</main>
</body>
</html>
"""


def _session_endpoint(settings: Settings) -> str:
    return f"{settings.api_prefix}/auth/session"


async def login_page(request: Request, runtime: Runtime = Depends(get_runtime)) -> HTMLResponse:
    """Login surface. The routing gate has already ensured the CSRF cookie."""
    settings = runtime.settings
    body = _LOGIN_TEMPLATE.format(
        session_endpoint=html.escape(_session_endpoint(settings)),
        csrf_cookie=html.escape(settings.csrf_cookie_name),
        csrf_header=html.escape(CSRF_HEADER),
        requested_with_header=html.escape(REQUESTED_WITH_HEADER),
        requested_with=html.escape(settings.requested_with_marker),
        redirect=html.escape(sanitize_redirect(request.query_params.get("redirect"))),
    )
    return HTMLResponse(body, headers={"Cache-Control": "no-store"})


async def home_page(
    principal: Principal = Depends(require_user),
    runtime: Runtime = Depends(get_runtime),
) -> HTMLResponse:
    body = _HOME_TEMPLATE.format(
        session_endpoint=html.escape(_session_endpoint(runtime.settings)),
        who=html.escape(principal.email or principal.uid),
    )
    return HTMLResponse(body, headers={"Cache-Control": "no-store, private"})


def build_pages_router(settings: Settings) -> APIRouter:
    """Page routes; the login path is configurable so it is registered here."""
    router = APIRouter(tags=["pages"])
    router.add_api_route(
        settings.login_path, login_page, methods=["GET"], response_class=HTMLResponse
    )
    router.add_api_route("/", home_page, methods=["GET"], response_class=HTMLResponse)
    return router
