"""
Auth API routes — register, login.

Route prefix: /api/auth
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import db_session
from auth.password import hash_password, verify_password
from auth.tokens import create_session_token
from config.settings import config
from database.models import User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


# ── Request / response schemas ─────────────────────────────────────────


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=5, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    name: Optional[str] = Field(None, max_length=255)


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthResponse(BaseModel):
    userId: str
    email: str
    name: Optional[str] = None
    token: str


def _start_session(response: Response, user: User) -> Dict[str, Any]:
    token = create_session_token(
        str(user.user_id), config.session_secret, config.session_expiry_seconds
    )
    response.set_cookie(
        config.session_cookie_name,
        token,
        max_age=config.session_expiry_seconds,
        httponly=True,
        secure=config.is_production,
        samesite="lax",
    )
    return {
        "userId": str(user.user_id),
        "email": user.email,
        "name": user.name,
        "token": token,
    }


# ── Endpoints ──────────────────────────────────────────────────────────


@router.post("/register", response_model=AuthResponse)
async def register(
    req: RegisterRequest,
    response: Response,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """Register a new user and start a session."""
    email = req.email.strip().lower()
    result = await session.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user = User(
        user_id=uuid.uuid4(),
        email=email,
        name=req.name,
        password_hash=hash_password(req.password),
    )
    session.add(user)
    await session.flush()

    logger.info("Registered user %s", user.user_id)
    return _start_session(response, user)


@router.post("/login", response_model=AuthResponse)
async def login(
    req: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """Login with email + password."""
    result = await session.execute(
        select(User).where(User.email == req.email.strip().lower())
    )
    user = result.scalar_one_or_none()

    if (
        user is None
        or not user.is_active
        or not verify_password(req.password, user.password_hash)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    logger.info("Login: %s", user.user_id)
    return _start_session(response, user)


@router.post("/logout")
async def logout(response: Response) -> Dict[str, bool]:
    response.delete_cookie(config.session_cookie_name)
    return {"success": True}
