"""
OAuth ``state`` parameter — signed, time-limited, self-contained.

Format::

    <base64url(compact JSON)>.<first 16 hex chars of HMAC-SHA256(payload)>

The payload carries ``userId``, ``platform``, ``oauthAppId``, ``timestamp``
(ms since epoch) and, for PKCE platforms, ``codeVerifier``.  Nothing is
persisted when a state is issued; the redirect round trip carries it back.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from database.helpers import to_uuid
from database.models import OAuthStateUse
from database.session import SessionFactory, async_session_factory, session_scope

logger = logging.getLogger(__name__)

_SEPARATOR = "."
_SIGNATURE_CHARS = 16


@dataclass(frozen=True)
class OAuthState:
    user_id: str
    platform: str
    oauth_app_id: str
    timestamp: int
    code_verifier: Optional[str] = None


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(f"{data}{padding}")


class StateCodec:
    """Builds and validates OAuth state tokens with a server-side secret."""

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = 600,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("StateCodec requires a non-empty secret")
        self._secret = secret.encode("utf-8")
        self._ttl_ms = ttl_seconds * 1000
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_ms // 1000

    def _sign(self, encoded: str) -> str:
        digest = hmac.new(self._secret, encoded.encode("ascii"), hashlib.sha256).hexdigest()
        return digest[:_SIGNATURE_CHARS]

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def encode(
        self,
        user_id: str,
        platform: str,
        oauth_app_id: str,
        code_verifier: Optional[str] = None,
    ) -> str:
        payload = {
            "userId": str(user_id),
            "platform": platform,
            "oauthAppId": str(oauth_app_id),
            "timestamp": self._now_ms(),
        }
        if code_verifier:
            payload["codeVerifier"] = code_verifier

        raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        encoded = _b64url_encode(raw)
        return f"{encoded}{_SEPARATOR}{self._sign(encoded)}"

    def decode(self, token: Optional[str]) -> Optional[OAuthState]:
        """
        Return the verified state, or ``None``.

        Tampered, expired and malformed tokens all yield ``None``; the caller
        is not told which.
        """
        if not token or not isinstance(token, str):
            return None

        encoded, sep, signature = token.partition(_SEPARATOR)
        if not sep or not encoded or not signature:
            return None

        try:
            expected = self._sign(encoded)
        except UnicodeEncodeError:
            return None
        if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("ascii")):
            logger.info("Rejected OAuth state: signature mismatch")
            return None

        try:
            payload = json.loads(_b64url_decode(encoded))
        except (binascii.Error, ValueError):
            return None
        if not isinstance(payload, dict):
            return None

        user_id = payload.get("userId")
        platform = payload.get("platform")
        app_id = payload.get("oauthAppId")
        timestamp = payload.get("timestamp")
        verifier = payload.get("codeVerifier")
        if not all(isinstance(v, str) and v for v in (user_id, platform, app_id)):
            return None
        if not isinstance(timestamp, int) or isinstance(timestamp, bool):
            return None
        if verifier is not None and not isinstance(verifier, str):
            return None

        if self._now_ms() - timestamp > self._ttl_ms:
            logger.info("Rejected OAuth state: expired (platform=%s)", platform)
            return None

        return OAuthState(
            user_id=user_id,
            platform=platform,
            oauth_app_id=app_id,
            timestamp=timestamp,
            code_verifier=verifier,
        )


class StateReplayGuard:
    """
    One-time-use ledger for state tokens.

    The signature check and age limit already bound a state to ten minutes;
    this additionally refuses a second callback carrying the same token.
    """

    def __init__(
        self,
        ttl_seconds: int = 600,
        session_factory: SessionFactory = async_session_factory,
    ):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._session_factory = session_factory

    @staticmethod
    def fingerprint(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    async def consume(
        self,
        token: str,
        state: OAuthState,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> bool:
        """Record *token* as used. Returns ``False`` if it was used before."""
        now = datetime.now(timezone.utc)
        async with session_scope(db_session, self._session_factory) as session:
            await session.execute(
                delete(OAuthStateUse).where(OAuthStateUse.expires_at < now)
            )
            result = await session.execute(
                pg_insert(OAuthStateUse)
                .values(
                    signature=self.fingerprint(token),
                    user_id=to_uuid(state.user_id),
                    consumed_at=now,
                    expires_at=now + self._ttl,
                )
                .on_conflict_do_nothing(index_elements=["signature"])
            )
        first_use = bool(result.rowcount)
        if not first_use:
            logger.warning(
                "Rejected replayed OAuth state for user %s platform %s",
                state.user_id,
                state.platform,
            )
        return first_use
