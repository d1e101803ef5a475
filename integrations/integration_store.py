"""
Integration store — persist the tokens (or API-key credentials) obtained
for a user + platform.

Access and refresh tokens are always written as ``SecretCipher``
ciphertext, on every path.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.helpers import to_uuid, utcnow
from database.models import Integration
from database.session import SessionFactory, async_session_factory, session_scope
from integrations.encryption import SecretCipher
from integrations.normalizers import NormalizedTokens

logger = logging.getLogger(__name__)


class IntegrationStore:
    """Reads and writes ``integrations`` rows."""

    def __init__(
        self,
        cipher: SecretCipher,
        session_factory: SessionFactory = async_session_factory,
    ):
        self._cipher = cipher
        self._session_factory = session_factory

    @staticmethod
    def _expiry(tokens: NormalizedTokens):
        if tokens.expires_in is None:
            return None
        return utcnow() + timedelta(seconds=tokens.expires_in)

    async def get_integration(
        self,
        user_id: str,
        platform: str,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> Optional[Integration]:
        async with session_scope(db_session, self._session_factory) as session:
            result = await session.execute(
                select(Integration)
                .where(
                    Integration.user_id == to_uuid(user_id),
                    Integration.platform == platform,
                )
                .order_by(Integration.updated_at.desc())
                .limit(1)
            )
            return result.scalars().first()

    async def upsert_integration(
        self,
        user_id: str,
        platform: str,
        tokens: NormalizedTokens,
        oauth_app_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> Integration:
        """
        Create or update the (user, platform) integration after a successful
        exchange.

        ``expires_at`` is ``now + expires_in`` or ``None``.  A previously
        stored refresh token survives when the new response has none.
        """
        now = utcnow()
        meta = {
            "tokenType": tokens.token_type,
            "scope": tokens.scope,
            "connectedAt": now.isoformat(),
            "type": "oauth",
        }
        meta.update(metadata or {})

        async with session_scope(db_session, self._session_factory) as session:
            existing = await self.get_integration(user_id, platform, db_session=session)
            if existing:
                existing.access_token = self._cipher.encrypt(tokens.access_token)
                if tokens.refresh_token:
                    existing.refresh_token = self._cipher.encrypt(tokens.refresh_token)
                existing.expires_at = self._expiry(tokens)
                existing.is_active = True
                existing.oauth_app_id = to_uuid(oauth_app_id)
                existing.metadata_ = meta
                existing.updated_at = now
                integration = existing
                logger.info("Updated %s integration for user %s", platform, user_id)
            else:
                integration = Integration(
                    user_id=to_uuid(user_id),
                    platform=platform,
                    access_token=self._cipher.encrypt(tokens.access_token),
                    refresh_token=self._cipher.encrypt_optional(tokens.refresh_token),
                    expires_at=self._expiry(tokens),
                    is_active=True,
                    oauth_app_id=to_uuid(oauth_app_id),
                    metadata_=meta,
                )
                session.add(integration)
                logger.info("Created %s integration for user %s", platform, user_id)
        return integration

    async def upsert_api_key_credentials(
        self,
        user_id: str,
        platform: str,
        credentials: Dict[str, str],
        metadata: Optional[Dict[str, Any]] = None,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> Integration:
        """
        Create or update the (user, platform) integration for an API-key
        platform.  The credentials are stored as encrypted JSON in
        ``access_token``; there is no refresh token, expiry or OAuth app.
        """
        now = utcnow()
        meta = {"connectedAt": now.isoformat(), "type": "api_key"}
        meta.update(metadata or {})
        secret = self._cipher.encrypt(json.dumps(credentials, sort_keys=True))

        async with session_scope(db_session, self._session_factory) as session:
            integration = await self.get_integration(user_id, platform, db_session=session)
            if integration is None:
                integration = Integration(user_id=to_uuid(user_id), platform=platform)
                session.add(integration)
                logger.info("Created %s API-key integration for user %s", platform, user_id)
            integration.access_token = secret
            integration.refresh_token = None
            integration.expires_at = None
            integration.is_active = True
            integration.oauth_app_id = None
            integration.metadata_ = meta
            integration.updated_at = now
        return integration

    def decrypt_api_key_credentials(self, integration: Integration) -> Optional[Dict[str, str]]:
        raw = self._cipher.decrypt_optional(integration.access_token)
        return json.loads(raw) if raw else None

    async def apply_refresh(
        self,
        integration: Integration,
        tokens: NormalizedTokens,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> Integration:
        """Store refreshed tokens on an existing row, in place."""
        async with session_scope(db_session, self._session_factory) as session:
            integration = await session.merge(integration) if db_session is None else integration
            integration.access_token = self._cipher.encrypt(tokens.access_token)
            if tokens.refresh_token:
                integration.refresh_token = self._cipher.encrypt(tokens.refresh_token)
            integration.expires_at = self._expiry(tokens)
            meta = dict(integration.metadata_ or {})
            meta["lastRefreshedAt"] = utcnow().isoformat()
            if tokens.scope:
                meta["scope"] = tokens.scope
            if tokens.token_type:
                meta["tokenType"] = tokens.token_type
            integration.metadata_ = meta
            integration.updated_at = utcnow()
        return integration

    async def mark_disconnected(
        self,
        user_id: str,
        platform: str,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> Optional[Integration]:
        """
        Clear the tokens and flag the integration inactive.  The OAuth app
        link stays so the user can reconnect without reconfiguring.
        """
        async with session_scope(db_session, self._session_factory) as session:
            integration = await self.get_integration(user_id, platform, db_session=session)
            if integration is None:
                return None
            meta = dict(integration.metadata_ or {})
            meta.update(
                {
                    "disconnectedAt": utcnow().isoformat(),
                    "disconnectedManually": True,
                }
            )
            integration.access_token = None
            integration.refresh_token = None
            integration.expires_at = None
            integration.is_active = False
            integration.metadata_ = meta
            integration.updated_at = utcnow()
        logger.info("Disconnected %s for user %s", platform, user_id)
        return integration

    async def reset_for_application(
        self,
        oauth_app_id: str,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> int:
        """Null the tokens of every integration issued by *oauth_app_id*."""
        async with session_scope(db_session, self._session_factory) as session:
            result = await session.execute(
                select(Integration).where(Integration.oauth_app_id == to_uuid(oauth_app_id))
            )
            rows = result.scalars().all()
            for integration in rows:
                integration.access_token = None
                integration.refresh_token = None
                integration.expires_at = None
                integration.is_active = False
                meta = dict(integration.metadata_ or {})
                meta["resetReason"] = "oauth_app_removed"
                integration.metadata_ = meta
                integration.updated_at = utcnow()
        return len(rows)

    async def list_integrations(
        self,
        user_id: str,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> List[Integration]:
        async with session_scope(db_session, self._session_factory) as session:
            result = await session.execute(
                select(Integration).where(Integration.user_id == to_uuid(user_id))
            )
            return list(result.scalars().all())

    def decrypt_access_token(self, integration: Integration) -> Optional[str]:
        return self._cipher.decrypt_optional(integration.access_token)

    def decrypt_refresh_token(self, integration: Integration) -> Optional[str]:
        return self._cipher.decrypt_optional(integration.refresh_token)
