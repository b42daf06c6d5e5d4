from __future__ import annotations

from pylivesync._redact import redact_for_log
from pylivesync.models import PresenceUser


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "user_name": "Ada",
        "password": "pw",
        "meta": {"api_key": "k", "Session-Token": "s"},
        "accessToken": "abc",
    }

    redacted = redact_for_log(payload)
    assert redacted["user_name"] == "Ada"
    assert redacted["password"] == "<redacted>"
    assert redacted["meta"]["api_key"] == "<redacted>"
    assert redacted["meta"]["Session-Token"] == "<redacted>"
    assert redacted["accessToken"] == "<redacted>"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_shortens_large_lists() -> None:
    redacted = redact_for_log(list(range(30)), max_items=5)
    assert redacted == [0, 1, 2, 3, 4, "<+25 more>"]


def test_redact_for_log_dumps_models_by_alias() -> None:
    redacted = redact_for_log(PresenceUser(id="u1", online_at=1.0, token="t"))
    assert redacted["onlineAt"] == 1.0
    assert redacted["token"] == "<redacted>"
