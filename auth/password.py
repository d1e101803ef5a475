"""
Password hashing and verification.

Uses bcrypt for password hashing with automatic salting; the work factor
comes from ``config.password_hash_rounds``.
"""

from __future__ import annotations

from typing import Optional

import bcrypt

from config.settings import config


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    return bcrypt.hashpw(
        password.encode(), bcrypt.gensalt(rounds=rounds or config.password_hash_rounds)
    ).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time comparison against a bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except (ValueError, TypeError):
        return False
