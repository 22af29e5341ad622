from __future__ import annotations

from typing import Any
from urllib.parse import urlencode, urlsplit

ROOT_PATH = "/"


def sanitize_redirect(candidate: Any) -> str:
    """Return ``candidate`` if it is a same-origin absolute path, else ``/``.

    ``//host`` is protocol-relative in browsers, so it is rejected along with
    anything that does not start with a single slash.
    """
    if not isinstance(candidate, str):
        return ROOT_PATH
    if not candidate.startswith("/") or candidate.startswith("//"):
        return ROOT_PATH
    return candidate


def redirect_path(target: str) -> str:
    """Path component of a sanitized redirect target, used for loop checks."""
    return urlsplit(target).path or ROOT_PATH


def login_redirect_url(login_path: str, path: str, query: str = "") -> str:
    """Login URL carrying the originally requested ``path?query`` as ``redirect``."""
    original = f"{path}?{query}" if query else path
    return f"{login_path}?{urlencode({'redirect': original})}"
