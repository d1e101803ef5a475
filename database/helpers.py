"""
Database helper functions shared by the stores.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def to_uuid(value: str | uuid.UUID) -> uuid.UUID:
    """Coerce a UUID string; raises ``ValueError`` for malformed ids."""
    return uuid.UUID(value) if isinstance(value, str) else value


def parse_uuid(value: str | uuid.UUID | None) -> uuid.UUID | None:
    """Like :func:`to_uuid` but returns ``None`` for missing or malformed ids."""
    if value is None:
        return None
    try:
        return to_uuid(value)
    except (ValueError, AttributeError, TypeError):
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
