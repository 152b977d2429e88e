"""Redaction: sensitive keys replaced at any depth, values never inspected."""

from kindling.audit.redaction import REDACTION_MARKER, SENSITIVE_FIELDS, is_sensitive_key, redact


def test_nested_password_redacted():
    body = {"user": {"email": "a@b.co", "password": "hunter2"}}
    assert redact(body) == {"user": {"email": "a@b.co", "password": REDACTION_MARKER}}


def test_key_match_is_case_insensitive_substring():
    out = redact({"newPassword": "x", "ApiKey": "k", "refresh_token": "r", "clientSecretValue": "s"})
    assert all(v == REDACTION_MARKER for v in out.values())


def test_bank_account_redacted_bank_name_kept():
    out = redact({"bankAccountNumber": "12345", "bankName": "Chase"})
    assert out == {"bankAccountNumber": REDACTION_MARKER, "bankName": "Chase"}


def test_routing_number_and_tax_id_redacted():
    out = redact({"routingNumber": "021000021", "taxId": "12-3456789", "city": "Austin"})
    assert out["routingNumber"] == REDACTION_MARKER
    assert out["taxId"] == REDACTION_MARKER
    assert out["city"] == "Austin"


def test_lists_are_walked():
    out = redact([{"ssn": "123-45-6789", "name": "A"}, {"cvv": "123"}, "plain"])
    assert out == [{"ssn": REDACTION_MARKER, "name": "A"}, {"cvv": REDACTION_MARKER}, "plain"]


def test_values_that_look_sensitive_are_kept():
    """Only keys are matched; a value containing 'password' stays."""
    assert redact({"note": "my password is long"}) == {"note": "my password is long"}


def test_sensitive_key_with_nested_object_redacted_whole():
    out = redact({"token": {"value": "abc", "expires": 10}})
    assert out == {"token": REDACTION_MARKER}


def test_scalars_pass_through():
    assert redact(None) is None
    assert redact(42) == 42
    assert redact("text") == "text"


def test_input_not_mutated():
    body = {"password": "p", "inner": {"secret": "s"}}
    redact(body)
    assert body == {"password": "p", "inner": {"secret": "s"}}


def test_non_string_keys_are_not_sensitive():
    assert is_sensitive_key(1) is False
    assert redact({1: "one"}) == {1: "one"}


def test_redaction_is_idempotent():
    body = {
        "email": "a@b.co",
        "password": "hunter2",
        "profile": {"token": {"value": "abc"}, "tags": ["x", {"apiKey": "k", "n": 1}]},
        "accounts": [{"routingNumber": "021000021", "label": "primary"}, None, 3],
    }
    once = redact(body)
    assert redact(once) == once
    assert once["profile"]["tags"][1] == {"apiKey": REDACTION_MARKER, "n": 1}


def test_marker_matches_no_sensitive_fragment():
    lowered = REDACTION_MARKER.lower()
    assert not any(field.lower() in lowered for field in SENSITIVE_FIELDS)
    assert redact({"note": REDACTION_MARKER}) == {"note": REDACTION_MARKER}
