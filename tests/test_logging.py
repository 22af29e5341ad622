"""Tests for log redaction and request correlation."""

from sessiongate.logging import (
    _redact_credentials,
    get_correlation_id,
    set_correlation_id,
)


def test_credentials_are_masked():
    event = {
        "event": "session_created",
        "session_cookie": "eyJhbGciOiJIUzI1NiJ9.payload.sig",
        "id_token": "abcdefghijkl",
        "csrf_header": "5b1f7c8e-8f0e",
        "uid": "user-1",
    }

    redacted = _redact_credentials(None, "info", dict(event))

    assert redacted["event"] == "session_created"
    assert redacted["session_cookie"] == "ey***ig"
    assert redacted["id_token"] == "ab***kl"
    assert redacted["csrf_header"] == "5b***0e"
    assert redacted["uid"] == "user-1"


def test_short_and_non_string_values_untouched():
    redacted = _redact_credentials(None, "info", {"token": "abc", "session_max_age": 300})

    assert redacted == {"token": "abc", "session_max_age": 300}


def test_correlation_id_generated_or_kept():
    assert set_correlation_id("req-123") == "req-123"
    assert get_correlation_id() == "req-123"

    generated = set_correlation_id()
    assert len(generated) == 36
    assert get_correlation_id() == generated


def test_request_id_echoed(client):
    response = client.get("/healthz", headers={"X-Request-ID": "trace-1"})

    assert response.headers["x-request-id"] == "trace-1"
