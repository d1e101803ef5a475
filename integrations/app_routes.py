"""
OAuth application settings routes — each user brings their own client
credentials per platform.

Route prefix: /api/settings/oauth-apps
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, status

from auth.dependencies import get_current_user_id
from integrations.dependencies import get_integration_service
from integrations.errors import UnsupportedPlatform
from integrations.schemas import OAuthAppCreate, OAuthAppUpdate
from integrations.service import IntegrationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth-apps"])


@router.get("")
async def list_oauth_apps(
    user_id: str = Depends(get_current_user_id),
    service: IntegrationService = Depends(get_integration_service),
) -> List[Dict[str, Any]]:
    """The user's applications; client secrets are masked."""
    return await service.apps.list_applications(user_id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_oauth_app(
    req: OAuthAppCreate,
    user_id: str = Depends(get_current_user_id),
    service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    if not service.registry.is_supported(req.platform):
        raise UnsupportedPlatform(req.platform)
    app = await service.apps.create_application(
        user_id,
        req.platform,
        req.clientId,
        client_secret=req.clientSecret,
        redirect_uri=req.redirectUri,
        scopes=req.scopes,
    )
    return service.apps.describe(app)


@router.put("/{app_id}")
async def update_oauth_app(
    app_id: str,
    req: OAuthAppUpdate,
    user_id: str = Depends(get_current_user_id),
    service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    app = await service.apps.update_application(
        user_id,
        app_id,
        client_id=req.clientId,
        client_secret=req.clientSecret,
        redirect_uri=req.redirectUri,
        scopes=req.scopes,
        is_active=req.isActive,
    )
    if app is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "OAuth app not found")
    return service.apps.describe(app)


@router.delete("/{app_id}")
async def delete_oauth_app(
    app_id: str,
    user_id: str = Depends(get_current_user_id),
    service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    """Deactivate the application and reset the integrations it issued."""
    if not await service.apps.deactivate_application(user_id, app_id):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "OAuth app not found")
    return {"success": True, "id": app_id}
