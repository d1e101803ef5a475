"""
SQLAlchemy ORM models for users, per-user OAuth applications and the
platform integrations obtained through them.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    user_id = Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255))
    password_hash = Column("password", String(255), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    oauth_apps = relationship("OAuthApp", back_populates="user", cascade="all, delete-orphan")
    integrations = relationship("Integration", back_populates="user", cascade="all, delete-orphan")


class OAuthApp(Base):
    """A user's own OAuth client registration for one platform."""

    __tablename__ = "oauth_apps"
    __table_args__ = (
        Index("ix_oauth_apps_user_platform_active", "user_id", "platform", "is_active"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(50), nullable=False)
    client_id = Column(Text, nullable=False)
    client_secret = Column(Text)          # SecretCipher ciphertext
    redirect_uri = Column(Text)
    scopes = Column(ARRAY(Text))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    user = relationship("User", back_populates="oauth_apps")
    integrations = relationship("Integration", back_populates="oauth_app")


class Integration(Base):
    """A connected platform account; tokens are SecretCipher ciphertext."""

    __tablename__ = "integrations"
    __table_args__ = (
        Index("ix_integrations_user_platform", "user_id", "platform"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(50), nullable=False)
    access_token = Column(Text)
    refresh_token = Column(Text)
    expires_at = Column(DateTime(timezone=True))
    metadata_ = Column("metadata", JSONB, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    oauth_app_id = Column(UUID(as_uuid=True), ForeignKey("oauth_apps.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    user = relationship("User", back_populates="integrations")
    oauth_app = relationship("OAuthApp", back_populates="integrations")


class OAuthStateUse(Base):
    """Ledger of state tokens already accepted by the OAuth callback."""

    __tablename__ = "oauth_state_uses"

    signature = Column(String(64), primary_key=True)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    consumed_at = Column(DateTime(timezone=True), default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
