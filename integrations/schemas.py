"""Request bodies of the integrations and OAuth-app settings endpoints."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ConnectRequest(BaseModel):
    platform: str = Field(..., min_length=1, max_length=50)


class DisconnectRequest(BaseModel):
    platform: str = Field(..., min_length=1, max_length=50)


class ApiKeyConnectRequest(BaseModel):
    platform: str = Field(..., min_length=1, max_length=50)
    credentials: Dict[str, str]


class OAuthAppCreate(BaseModel):
    platform: str = Field(..., min_length=1, max_length=50)
    clientId: str = Field(..., min_length=1)
    clientSecret: Optional[str] = None
    redirectUri: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)


class OAuthAppUpdate(BaseModel):
    clientId: str = Field(..., min_length=1)
    # Omitted or empty keeps the stored secret.
    clientSecret: Optional[str] = None
    redirectUri: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)
    isActive: Optional[bool] = None
