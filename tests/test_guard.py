"""Tests for full session verification on protected pages."""

import asyncio
from datetime import timedelta


def _session_cookie(memory_identity, uid="user-1", email=None):
    return asyncio.run(
        memory_identity.create_session_cookie(
            memory_identity.mint_id_token(uid, email=email), expires_in=timedelta(days=1)
        )
    )


class TestRequireUser:
    def test_missing_cookie_redirects_to_login(self, client):
        response = client.get("/reports?tab=2", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/login?redirect=%2Freports%3Ftab%3D2"

    def test_forged_cookie_redirects_and_clears(self, client, identity):
        client.cookies.set("session", "forged-value")
        response = client.get("/reports", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/login?redirect=%2Freports"
        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith("session=")
        assert "Max-Age=0" in set_cookie
        assert identity.calls == ["verify_session_cookie"]

    def test_valid_cookie_renders(self, client, memory_identity):
        client.cookies.set("session", _session_cookie(memory_identity))

        response = client.get("/reports", follow_redirects=False)

        assert response.status_code == 200
        assert "reports for user-1" in response.text

    def test_home_page_shows_principal(self, client, memory_identity):
        client.cookies.set("session", _session_cookie(memory_identity, email="u1@example.com"))

        response = client.get("/", follow_redirects=False)

        assert response.status_code == 200
        assert "u1@example.com" in response.text
        assert "private" in response.headers["cache-control"]

    def test_revoked_cookie_redirects(self, client, memory_identity, clock):
        cookie = _session_cookie(memory_identity)
        clock.advance(1)
        asyncio.run(memory_identity.revoke_refresh_tokens("user-1"))
        client.cookies.set("session", cookie)

        response = client.get("/reports", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"].startswith("/login?redirect=")

    def test_provider_outage_redirects(self, client, identity):
        identity.fail_with = RuntimeError("provider down")
        client.cookies.set("session", "whatever")

        response = client.get("/reports", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/login?redirect=%2Freports"
        assert "Max-Age=0" in response.headers["set-cookie"]

    def test_provider_outage_does_not_loop_through_login(self, client, identity):
        identity.fail_with = RuntimeError("provider down")
        # Same domain key the server-side clear will target
        client.cookies.set("session", "whatever", domain="testserver.local")

        first = client.get("/reports", follow_redirects=False)
        assert first.status_code == 302

        login = client.get(first.headers["location"], follow_redirects=False)

        assert login.status_code == 200
        assert "Sign in" in login.text
