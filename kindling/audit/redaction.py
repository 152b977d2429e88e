"""Key-based redaction of sensitive fields before anything is persisted or logged."""

from typing import Any

REDACTION_MARKER = "[REDACTED]"

# Matched case-insensitively as substrings of dict keys, never against values.
SENSITIVE_FIELDS = (
    "password",
    "passwordHash",
    "token",
    "accessToken",
    "refreshToken",
    "secret",
    "apiKey",
    "ssn",
    "socialSecurityNumber",
    "creditCardNumber",
    "cvv",
    # Banking and tax identifiers on lender/borrower payloads.
    "bankAccountNumber",
    "routingNumber",
    "taxId",
)

_SENSITIVE_FRAGMENTS = tuple(f.lower() for f in SENSITIVE_FIELDS)


def is_sensitive_key(key: Any) -> bool:
    if not isinstance(key, str):
        return False
    lowered = key.lower()
    return any(fragment in lowered for fragment in _SENSITIVE_FRAGMENTS)


def redact(value: Any) -> Any:
    """
    Return a copy of value with sensitive dict fields replaced by REDACTION_MARKER.
    Recurses into dicts, lists and tuples; scalars pass through unchanged. Never raises.
    """
    if isinstance(value, dict):
        redacted = {}
        for key, item in value.items():
            if is_sensitive_key(key):
                redacted[key] = REDACTION_MARKER
            else:
                redacted[key] = redact(item)
        return redacted
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value
