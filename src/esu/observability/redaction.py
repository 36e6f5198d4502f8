"""Redaction helpers for safe logging. Request data must pass through these."""

import re
from typing import Any

# Patterns that should never appear in logs
_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_JWT_PATTERN = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+")

# Keys whose values are never logged, whatever they look like
_SECRET_KEYS = frozenset({"password", "password_hash", "token", "authorization"})

_REDACTED = "[REDACTED]"


def redact_string(value: str) -> str:
    """Redact tokens, e-mails and phone numbers from a string."""
    result = _JWT_PATTERN.sub(_REDACTED, value)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    result = _PHONE_PATTERN.sub(_REDACTED, result)
    return result


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # For dicts, only log keys (structure), never values
        return f"dict(keys={sorted(value.keys())})"
    if isinstance(value, (list, tuple, set, frozenset)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging.

    Values are redacted; values under secret-looking keys are dropped
    entirely.
    """
    return {
        k: _REDACTED if k.lower() in _SECRET_KEYS else redact_value(v)
        for k, v in kwargs.items()
    }
