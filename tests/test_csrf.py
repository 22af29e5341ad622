"""Tests for the double-submit CSRF token service and the cookie jar it writes to."""

import pytest
from starlette.responses import Response

from sessiongate.config import Settings
from sessiongate.service.cookies import CookieJar, csrf_cookie_spec, session_cookie_spec
from sessiongate.service.csrf import CsrfService
from sessiongate.service.errors import BadRequestError, CsrfError


@pytest.fixture
def csrf(settings):
    return CsrfService(settings)


class TestEnsureToken:
    def test_issues_token_when_missing(self, csrf):
        jar = CookieJar({})
        token = csrf.ensure_token(jar)

        assert token
        assert jar.get("csrf_token") == token
        assert jar.pending_names == ["csrf_token"]

    def test_idempotent_on_same_jar(self, csrf):
        jar = CookieJar({})
        first = csrf.ensure_token(jar)
        second = csrf.ensure_token(jar)

        assert first == second

    def test_existing_cookie_is_not_rotated(self, csrf):
        jar = CookieJar({"csrf_token": "existing-value"})

        assert csrf.ensure_token(jar) == "existing-value"
        assert jar.pending_names == []

    def test_tokens_are_unique(self, csrf):
        tokens = {csrf.ensure_token(CookieJar({})) for _ in range(50)}
        assert len(tokens) == 50

    def test_cookie_attributes(self, csrf):
        jar = CookieJar({})
        csrf.ensure_token(jar)
        response = jar.apply(Response())
        header = response.headers["set-cookie"]

        assert header.startswith("csrf_token=")
        assert "HttpOnly" not in header
        assert "Max-Age=172800" in header
        assert "Path=/" in header
        assert "samesite=lax" in header.lower()
        assert "Secure" not in header


class TestValidate:
    def test_matching_pair_passes(self, csrf):
        assert csrf.validate("XMLHttpRequest", "abc123", "abc123") is True

    def test_mismatch_fails(self, csrf):
        assert csrf.validate("XMLHttpRequest", "xyz", "abc") is False

    @pytest.mark.parametrize(
        "marker,header,cookie",
        [
            (None, "abc", "abc"),
            ("fetch", "abc", "abc"),
            ("XMLHttpRequest", None, "abc"),
            ("XMLHttpRequest", "", "abc"),
            ("XMLHttpRequest", "abc", None),
            ("XMLHttpRequest", "abc", ""),
            ("XMLHttpRequest", "", ""),
        ],
    )
    def test_missing_parts_fail(self, csrf, marker, header, cookie):
        assert csrf.validate(marker, header, cookie) is False

    def test_require_valid_raises_bad_request(self, csrf):
        with pytest.raises(CsrfError) as exc_info:
            csrf.require_valid("XMLHttpRequest", "xyz", "abc")

        assert isinstance(exc_info.value, BadRequestError)
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "invalid request"


class TestCookieJar:
    def test_clear_overrides_incoming(self, settings):
        spec = session_cookie_spec(settings)
        jar = CookieJar({spec.name: "value"})
        jar.clear(spec)

        assert jar.get(spec.name) is None
        header = jar.apply(Response()).headers["set-cookie"]
        assert header.startswith(f"{spec.name}=")
        assert "Max-Age=0" in header
        assert "1970" in header
        assert "HttpOnly" in header

    def test_empty_incoming_value_reads_as_missing(self):
        assert CookieJar({"csrf_token": ""}).get("csrf_token") is None


class TestProductionCookies:
    def test_production_hardens_cookies(self):
        prod = Settings(environment="production", identity_backend="memory")

        session_spec = session_cookie_spec(prod)
        csrf_spec = csrf_cookie_spec(prod)

        assert session_spec.name == "__Secure-session"
        assert session_spec.secure is True
        assert session_spec.httponly is True
        assert csrf_spec.name == "csrf_token"
        assert csrf_spec.secure is True
        assert csrf_spec.httponly is False
