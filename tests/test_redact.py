from __future__ import annotations

from ticketgate._redact import mask_secret, redact_for_log
from ticketgate.models.token import Token


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "grant_type": "refresh_token",
        "refresh_token": "rt-0123456789abcdef",
        "client_secret": "short",
        "code": None,
        "nested": {"access_token": "at-0123456789abcdef", "token": {"deep": "value"}},
    }

    redacted = redact_for_log(payload)
    assert redacted["grant_type"] == "refresh_token"
    assert redacted["refresh_token"] == "…cdef"
    assert redacted["client_secret"] == "<redacted>"
    assert redacted["code"] == "<none>"
    assert redacted["nested"]["access_token"] == "…cdef"
    assert redacted["nested"]["token"] == "<redacted>"


def test_redact_for_log_handles_models() -> None:
    redacted = redact_for_log(Token(access_value="at-0123456789abcdef", refresh_value=None))

    assert redacted == {"access_value": "…cdef", "refresh_value": "<none>", "expires_at": None}


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_mask_secret() -> None:
    assert mask_secret(None) == "<none>"
    assert mask_secret("12345678") == "<redacted>"
    assert mask_secret("123456789") == "…6789"
