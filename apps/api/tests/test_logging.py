import json
import logging

from waghl.core.logging import JsonLogFormatter, mask_email, reset_request_id, set_request_id


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("waghl.test", logging.INFO, __file__, 1, "entitlements.denied", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_json_with_request_id() -> None:
    token = set_request_id("req-123")
    try:
        line = JsonLogFormatter(service="waghl-api").format(_record(component="entitlements", code="TRIAL_EXPIRED"))
    finally:
        reset_request_id(token)

    payload = json.loads(line)
    assert payload["event"] == "entitlements.denied"
    assert payload["service"] == "waghl-api"
    assert payload["component"] == "entitlements"
    assert payload["request_id"] == "req-123"
    assert payload["code"] == "TRIAL_EXPIRED"


def test_formatter_redacts_sensitive_fields() -> None:
    line = JsonLogFormatter().format(
        _record(access_token="abc", password_hash="$2b$", email="owner@example.com", fields=["plan"])
    )

    payload = json.loads(line)
    assert payload["access_token"] == "[redacted]"
    assert payload["password_hash"] == "[redacted]"
    assert payload["email"] == "o***@example.com"
    assert payload["fields"] == ["plan"]


def test_mask_email() -> None:
    assert mask_email("Someone@Example.COM") == "S***@example.com"
    assert mask_email("not-an-email") == "[redacted]"
