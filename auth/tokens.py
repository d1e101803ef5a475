"""
Session token creation and verification.

Tokens are base64url-encoded JSON payloads signed with HMAC-SHA256.  The
secret and lifetime are passed in by the caller; see ``auth.dependencies``
for the values taken from ``config``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Callable, Optional


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _sign(secret: str, raw: bytes) -> str:
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def create_session_token(
    user_id: str,
    secret: str,
    expiry_seconds: int,
    clock: Callable[[], float] = time.time,
) -> str:
    """Create a signed token containing ``user_id`` and expiry."""
    payload = {"user_id": user_id, "exp": int(clock()) + expiry_seconds}
    raw = json.dumps(payload, separators=(",", ":")).encode()
    return _b64encode(raw) + "." + _sign(secret, raw)


def verify_session_token(
    token: str,
    secret: str,
    clock: Callable[[], float] = time.time,
) -> Optional[str]:
    """Return the ``user_id`` of a valid token, ``None`` otherwise."""
    encoded, sep, signature = (token or "").partition(".")
    if not sep or not encoded or not signature:
        return None
    try:
        raw = _b64decode(encoded)
    except (binascii.Error, ValueError):
        return None
    if not hmac.compare_digest(signature, _sign(secret, raw)):
        return None
    try:
        payload = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    exp = payload.get("exp")
    user_id = payload.get("user_id")
    if not isinstance(exp, int) or not isinstance(user_id, str) or exp < clock():
        return None
    return user_id
