from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response
from pydantic import ValidationError

from sessiongate.api.schemas import (
    CsrfTokenResponse,
    Envelope,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionRevokeResponse,
)
from sessiongate.logging import get_logger
from sessiongate.service.cookies import CookieJar
from sessiongate.service.csrf import CSRF_HEADER, REQUESTED_WITH_HEADER
from sessiongate.service.errors import BadRequestError
from sessiongate.service.runtime import Runtime, get_runtime

logger = get_logger(__name__)

router = APIRouter(tags=["auth"])


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"


async def _parse_session_body(request: Request) -> SessionCreateRequest:
    raw = await request.body()
    try:
        return SessionCreateRequest.model_validate_json(raw)
    except ValidationError as exc:
        logger.info("session_body_rejected", error_count=exc.error_count())
        raise BadRequestError("invalid request") from exc


@router.get("/csrf", response_model=Envelope)
async def get_csrf_token(
    request: Request,
    response: Response,
    runtime: Runtime = Depends(get_runtime),
):
    """Return the caller's CSRF token, issuing the cookie if it is missing."""
    jar = CookieJar(request.cookies)
    token = runtime.csrf.ensure_token(jar)
    jar.apply(response)
    _no_store(response)
    return Envelope(status="ok", data=CsrfTokenResponse(token=token).model_dump())


@router.post("/session", response_model=Envelope)
async def create_session(
    request: Request,
    response: Response,
    runtime: Runtime = Depends(get_runtime),
    x_requested_with: Optional[str] = Header(None, alias=REQUESTED_WITH_HEADER),
    x_csrf_token: Optional[str] = Header(None, alias=CSRF_HEADER),
):
    """Exchange an identity token for a session cookie.

    Requires ``X-Requested-With`` and an ``X-CSRF-Token`` header equal to the
    CSRF cookie. Body: ``{"idToken": str, "redirect": str?}``.

    Raises:
        400: CSRF check failed, malformed JSON, or missing idToken
        401: identity token rejected
    """
    jar = CookieJar(request.cookies)
    csrf_cookie = jar.get(runtime.csrf.cookie.name)
    # Forged requests are turned away before the body is even read
    runtime.csrf.require_valid(x_requested_with, x_csrf_token, csrf_cookie)
    body = await _parse_session_body(request)
    issued = await runtime.sessions.create_session(
        jar,
        body.id_token,
        body.redirect,
        marker=x_requested_with,
        csrf_header=x_csrf_token,
        csrf_cookie=csrf_cookie,
    )
    jar.apply(response)
    _no_store(response)
    return Envelope(
        status="ok", data=SessionCreateResponse(redirect=issued.redirect).model_dump()
    )


@router.delete("/session", response_model=Envelope)
async def revoke_session(
    request: Request,
    response: Response,
    runtime: Runtime = Depends(get_runtime),
    x_requested_with: Optional[str] = Header(None, alias=REQUESTED_WITH_HEADER),
    x_csrf_token: Optional[str] = Header(None, alias=CSRF_HEADER),
):
    """Log out: revoke the caller's session and clear the cookie.

    Succeeds whenever the CSRF check passes, whatever state the session
    cookie is in.
    """
    jar = CookieJar(request.cookies)
    runtime.csrf.require_valid(
        x_requested_with, x_csrf_token, jar.get(runtime.csrf.cookie.name)
    )
    await runtime.sessions.revoke_session(jar, jar.get(runtime.sessions.cookie.name))
    jar.apply(response)
    _no_store(response)
    return Envelope(status="ok", data=SessionRevokeResponse().model_dump())
