"""PKCE (RFC 7636) helpers — S256 only."""

from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Tuple

CODE_CHALLENGE_METHOD = "S256"


def generate_code_verifier() -> str:
    """32 random bytes, base64url without padding (43 characters)."""
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode("ascii")


def code_challenge(verifier: str) -> str:
    """BASE64URL(SHA256(verifier))."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> Tuple[str, str]:
    """Return ``(code_verifier, code_challenge)``."""
    verifier = generate_code_verifier()
    return verifier, code_challenge(verifier)
