"""
FastAPI dependencies for authentication.

Provides ``db_session`` and ``get_current_user_id`` dependencies that
are used across all protected routes.  The session token is read from the
``session`` cookie first, then from an ``Authorization: Bearer`` header.
"""

from __future__ import annotations

from typing import AsyncGenerator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from auth.tokens import verify_session_token
from config.settings import config
from database.session import get_db_session

_bearer_scheme = HTTPBearer(auto_error=False)


async def db_session(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session for route handlers."""
    yield session


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> str:
    """Return the authenticated ``user_id`` (UUID string) or raise 401."""
    token = request.cookies.get(config.session_cookie_name)
    if not token and credentials is not None:
        token = credentials.credentials

    user_id = verify_session_token(token, config.session_secret) if token else None
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user_id
