"""Helpers for logging credentials without leaking them."""

from __future__ import annotations

from typing import Mapping, Optional

_SECRET_FIELDS = {"client_secret"}
_TOKEN_FIELDS = {"code", "refresh_token", "access_token", "code_verifier", "token"}


def redact(value: Optional[str], keep: int = 6) -> str:
    """First ``keep`` characters of *value*, then the total length."""
    if not value:
        return "<empty>"
    return f"{value[:keep]}…[{len(value)} chars]"


def redact_form(form: Mapping[str, str]) -> dict:
    """Copy of a token-request body that is safe to log."""
    safe = {}
    for key, value in form.items():
        if key in _SECRET_FIELDS:
            safe[key] = f"[REDACTED - {len(value)} chars]"
        elif key in _TOKEN_FIELDS:
            safe[key] = redact(value)
        else:
            safe[key] = value
    return safe
