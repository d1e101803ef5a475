"""
OAuth application store — per-user, per-platform client credentials.

Client secrets are stored as ``SecretCipher`` ciphertext and decrypted on
read.  Removing an application deactivates it (rows are kept) and resets
every integration whose tokens it issued.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.helpers import parse_uuid, to_uuid, utcnow
from database.models import OAuthApp
from database.session import SessionFactory, async_session_factory, session_scope
from integrations.encryption import SecretCipher
from integrations.errors import ConfigurationMissing, CryptoError
from integrations.integration_store import IntegrationStore

logger = logging.getLogger(__name__)

SECRET_MASK = "••••••••"


class DuplicateApplication(ConfigurationMissing):
    status_code = 409
    default_user_message = "OAuth app already exists for this platform."


@dataclass(frozen=True)
class OAuthApplicationConfig:
    """An OAuth application with its client secret already decrypted."""

    id: str
    user_id: str
    platform: str
    client_id: str
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    scopes: List[str] = field(default_factory=list)


class OAuthApplicationStore:
    """Reads and writes ``oauth_apps`` rows."""

    def __init__(
        self,
        cipher: SecretCipher,
        integrations: Optional[IntegrationStore] = None,
        session_factory: SessionFactory = async_session_factory,
    ):
        self._cipher = cipher
        self._integrations = integrations or IntegrationStore(cipher, session_factory)
        self._session_factory = session_factory

    def _to_config(self, app: OAuthApp) -> OAuthApplicationConfig:
        try:
            secret = self._cipher.decrypt_optional(app.client_secret)
        except CryptoError:
            logger.error("Stored client secret for OAuth app %s could not be decrypted", app.id)
            raise
        return OAuthApplicationConfig(
            id=str(app.id),
            user_id=str(app.user_id),
            platform=app.platform,
            client_id=app.client_id,
            client_secret=secret,
            redirect_uri=app.redirect_uri or None,
            scopes=list(app.scopes or []),
        )

    # ── Reads used by the OAuth flow ────────────────────────────────────

    async def get_active_application(
        self,
        user_id: str,
        platform: str,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> Optional[OAuthApplicationConfig]:
        """The user's active application for *platform*, or ``None``."""
        uid = parse_uuid(user_id)
        if uid is None:
            return None
        async with session_scope(db_session, self._session_factory) as session:
            result = await session.execute(
                select(OAuthApp)
                .where(
                    OAuthApp.user_id == uid,
                    OAuthApp.platform == platform,
                    OAuthApp.is_active.is_(True),
                )
                .order_by(OAuthApp.updated_at.desc())
                .limit(1)
            )
            app = result.scalars().first()
        return self._to_config(app) if app else None

    async def get_application(
        self,
        app_id: str,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> Optional[OAuthApplicationConfig]:
        """
        Active application by primary key, or ``None``.

        A deactivated application is treated as missing: tokens and states
        issued through it are no longer honoured.
        """
        aid = parse_uuid(app_id)
        if aid is None:
            return None
        async with session_scope(db_session, self._session_factory) as session:
            result = await session.execute(
                select(OAuthApp).where(OAuthApp.id == aid, OAuthApp.is_active.is_(True))
            )
            app = result.scalar_one_or_none()
        return self._to_config(app) if app else None

    # ── Settings CRUD ───────────────────────────────────────────────────

    async def list_applications(
        self,
        user_id: str,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> List[Dict[str, Any]]:
        """All of a user's applications; secrets are masked, never decrypted."""
        async with session_scope(db_session, self._session_factory) as session:
            result = await session.execute(
                select(OAuthApp)
                .where(OAuthApp.user_id == to_uuid(user_id))
                .order_by(OAuthApp.created_at)
            )
            rows = result.scalars().all()
        return [self.describe(app) for app in rows]

    @staticmethod
    def describe(app: OAuthApp) -> Dict[str, Any]:
        return {
            "id": str(app.id),
            "platform": app.platform,
            "clientId": app.client_id,
            "clientSecret": SECRET_MASK if app.client_secret else None,
            "redirectUri": app.redirect_uri,
            "scopes": list(app.scopes or []),
            "isActive": bool(app.is_active),
            "createdAt": app.created_at.isoformat() if app.created_at else None,
            "updatedAt": app.updated_at.isoformat() if app.updated_at else None,
        }

    async def create_application(
        self,
        user_id: str,
        platform: str,
        client_id: str,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        scopes: Optional[List[str]] = None,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> OAuthApp:
        uid = to_uuid(user_id)
        async with session_scope(db_session, self._session_factory) as session:
            await self._ensure_no_active(session, uid, platform)

            app = OAuthApp(
                user_id=uid,
                platform=platform,
                client_id=client_id,
                client_secret=self._cipher.encrypt_optional(client_secret),
                redirect_uri=redirect_uri or None,
                scopes=list(scopes or []),
                is_active=True,
            )
            session.add(app)
            await session.flush()
        logger.info("Created OAuth app %s (%s) for user %s", app.id, platform, user_id)
        return app

    async def update_application(
        self,
        user_id: str,
        app_id: str,
        *,
        client_id: str,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        scopes: Optional[List[str]] = None,
        is_active: Optional[bool] = None,
        db_session: Optional[AsyncSession] = None,
    ) -> Optional[OAuthApp]:
        """
        Rotate credentials. The secret is only replaced when a new one is
        supplied. Returns ``None`` if the user owns no such application.
        """
        aid = parse_uuid(app_id)
        if aid is None:
            return None
        async with session_scope(db_session, self._session_factory) as session:
            app = await self._owned(session, user_id, aid)
            if app is None:
                return None
            if is_active and not app.is_active:
                await self._ensure_no_active(session, app.user_id, app.platform, exclude=app.id)
            app.client_id = client_id
            app.redirect_uri = redirect_uri or None
            app.scopes = list(scopes or [])
            if client_secret:
                app.client_secret = self._cipher.encrypt(client_secret)
            if is_active is not None:
                app.is_active = is_active
            app.updated_at = utcnow()
            if is_active is False:
                await self._integrations.reset_for_application(str(app.id), db_session=session)
        logger.info("Updated OAuth app %s for user %s", app_id, user_id)
        return app

    async def deactivate_application(
        self,
        user_id: str,
        app_id: str,
        *,
        db_session: Optional[AsyncSession] = None,
    ) -> bool:
        """Deactivate and reset linked integrations. ``False`` if not found."""
        aid = parse_uuid(app_id)
        if aid is None:
            return False
        async with session_scope(db_session, self._session_factory) as session:
            app = await self._owned(session, user_id, aid)
            if app is None:
                return False
            app.is_active = False
            app.updated_at = utcnow()
            reset = await self._integrations.reset_for_application(str(app.id), db_session=session)
        logger.info(
            "Deactivated OAuth app %s for user %s (%d integration(s) reset)", app_id, user_id, reset
        )
        return True

    @staticmethod
    async def _ensure_no_active(session: AsyncSession, user_id, platform: str, exclude=None) -> None:
        query = select(OAuthApp.id).where(
            OAuthApp.user_id == user_id,
            OAuthApp.platform == platform,
            OAuthApp.is_active.is_(True),
        )
        if exclude is not None:
            query = query.where(OAuthApp.id != exclude)
        result = await session.execute(query)
        if result.first() is not None:
            raise DuplicateApplication(f"Active OAuth app already exists for {platform}")

    @staticmethod
    async def _owned(session: AsyncSession, user_id: str, app_id) -> Optional[OAuthApp]:
        result = await session.execute(
            select(OAuthApp).where(OAuthApp.id == app_id, OAuthApp.user_id == to_uuid(user_id))
        )
        return result.scalar_one_or_none()
