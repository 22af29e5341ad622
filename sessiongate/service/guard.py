from __future__ import annotations

from fastapi import Depends, Request

from sessiongate.logging import get_logger
from sessiongate.service.redirects import login_redirect_url
from sessiongate.service.runtime import Runtime, get_runtime
from sessiongate.service.sessions import Principal

logger = get_logger(__name__)


class LoginRequired(Exception):
    """Raised to send the browser to the login surface instead of rendering.

    ``clear_session`` is set when a cookie was presented but failed
    verification, so the gate stops treating the browser as signed in.
    """

    def __init__(self, location: str, *, clear_session: bool = False) -> None:
        super().__init__(location)
        self.location = location
        self.clear_session = clear_session


async def require_user(request: Request, runtime: Runtime = Depends(get_runtime)) -> Principal:
    """Fully verify the session cookie before protected content is produced.

    Missing, expired, invalid and revoked credentials all lead to the same
    redirect so the caller learns nothing about why access was denied.

    A presented cookie that fails verification is cleared on the way out,
    including when the provider timed out or was unreachable. Without the
    clear, the gate would send the browser from the login page straight back
    here for as long as the cookie exists. The cost is that a provider outage
    signs out users who load a protected page during it.
    """
    sessions = runtime.sessions
    location = login_redirect_url(
        runtime.settings.login_path, request.url.path, request.url.query
    )
    session_cookie = request.cookies.get(sessions.cookie.name)
    if not session_cookie:
        logger.info("guard_redirect_no_session", path=request.url.path)
        raise LoginRequired(location)

    principal = await sessions.verify_session(session_cookie)
    if principal is None:
        logger.warning("guard_denied", path=request.url.path)
        raise LoginRequired(location, clear_session=True)

    request.state.principal = principal
    return principal
