from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping, Optional

from starlette.responses import Response

from sessiongate.config import Settings

_EXPIRED = "Thu, 01 Jan 1970 00:00:00 GMT"


@dataclass(frozen=True)
class CookieSpec:
    """Attributes shared by every write of one first-party cookie."""

    name: str
    max_age: int
    httponly: bool
    secure: bool
    samesite: Literal["lax", "strict", "none"] = "lax"
    path: str = "/"


def session_cookie_spec(settings: Settings) -> CookieSpec:
    return CookieSpec(
        name=settings.effective_session_cookie_name,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.secure_cookies,
    )


def csrf_cookie_spec(settings: Settings) -> CookieSpec:
    # Client script must read this cookie to echo it in a header
    return CookieSpec(
        name=settings.csrf_cookie_name,
        max_age=settings.csrf_max_age_seconds,
        httponly=False,
        secure=settings.secure_cookies,
    )


@dataclass
class _PendingCookie:
    spec: CookieSpec
    value: str
    clear: bool = False


class CookieJar:
    """Request cookies overlaid with writes still to be sent on the response.

    Reads observe earlier writes made through the same jar, so a value set
    during this request is returned by ``get`` before it reaches the client.
    """

    def __init__(self, request_cookies: Optional[Mapping[str, str]] = None) -> None:
        self._incoming = dict(request_cookies or {})
        self._pending: dict[str, _PendingCookie] = {}

    def get(self, name: str) -> Optional[str]:
        pending = self._pending.get(name)
        if pending is not None:
            return None if pending.clear else pending.value
        value = self._incoming.get(name)
        return value or None

    def set(self, spec: CookieSpec, value: str) -> None:
        self._pending[spec.name] = _PendingCookie(spec=spec, value=value)

    def clear(self, spec: CookieSpec) -> None:
        self._pending[spec.name] = _PendingCookie(spec=spec, value="", clear=True)

    @property
    def pending_names(self) -> list[str]:
        return list(self._pending)

    def apply(self, response: Response) -> Response:
        for pending in self._pending.values():
            spec = pending.spec
            if pending.clear:
                response.set_cookie(
                    spec.name,
                    "",
                    max_age=0,
                    expires=_EXPIRED,
                    path=spec.path,
                    secure=spec.secure,
                    httponly=spec.httponly,
                    samesite=spec.samesite,
                )
            else:
                response.set_cookie(
                    spec.name,
                    pending.value,
                    max_age=spec.max_age,
                    path=spec.path,
                    secure=spec.secure,
                    httponly=spec.httponly,
                    samesite=spec.samesite,
                )
        return response
