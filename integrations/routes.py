"""
Integration API routes — OAuth connect and callback, API-key connect,
status, disconnect.

Route prefix: /api/integrations
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from auth.dependencies import get_current_user_id
from config.settings import config
from integrations.dependencies import get_integration_service
from integrations.errors import OAuthFlowError
from integrations.schemas import ApiKeyConnectRequest, ConnectRequest, DisconnectRequest
from integrations.service import IntegrationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["integrations"])


def _dashboard_redirect(**params: str) -> RedirectResponse:
    query = urlencode({"tab": "integrations", **params})
    return RedirectResponse(f"{config.dashboard_url}?{query}", status_code=status.HTTP_302_FOUND)


@router.get("/platforms")
async def list_platforms(
    service: IntegrationService = Depends(get_integration_service),
) -> List[Dict[str, Any]]:
    """Every supported platform. No auth required."""
    return service.registry.list_platforms()


@router.get("/api-key/platforms")
async def list_api_key_platforms(
    service: IntegrationService = Depends(get_integration_service),
) -> List[Dict[str, Any]]:
    """Credential forms of the API-key platforms. No auth required."""
    return service.api_keys.list_platforms()


@router.post("/connect")
async def connect(
    req: ConnectRequest,
    user_id: str = Depends(get_current_user_id),
    service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, str]:
    """Authorization URL the dashboard should open for *platform*."""
    request = await service.begin_connect(user_id, req.platform)
    return {"authUrl": request.auth_url}


@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    service: IntegrationService = Depends(get_integration_service),
) -> RedirectResponse:
    """
    Provider redirect target.  The user is identified by the signed state,
    not by the session, and always lands back on the dashboard.
    """
    if error:
        logger.warning("Provider returned error on callback: %s (%s)", error, error_description)
        return _dashboard_redirect(error=error_description or error)
    if not code or not state:
        return _dashboard_redirect(error="Missing authorization code or state")

    try:
        connected = await service.complete_connect(code, state)
    except OAuthFlowError as exc:
        logger.error("OAuth callback failed: %s", exc)
        return _dashboard_redirect(error=exc.user_message)
    except Exception:
        logger.exception("OAuth callback failed unexpectedly")
        return _dashboard_redirect(error="Connection failed")

    return _dashboard_redirect(success=connected.platform)


@router.post("/api-key")
async def connect_api_key(
    req: ApiKeyConnectRequest,
    user_id: str = Depends(get_current_user_id),
    service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    """Store pasted API-key credentials (encrypted) for an API-key platform."""
    metadata = await service.connect_api_key(user_id, req.platform, req.credentials)
    return {"success": True, "metadata": metadata}


@router.get("/status")
async def integration_status(
    user_id: str = Depends(get_current_user_id),
    service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    return {"platforms": await service.status(user_id)}


@router.post("/disconnect")
async def disconnect(
    req: DisconnectRequest,
    user_id: str = Depends(get_current_user_id),
    service: IntegrationService = Depends(get_integration_service),
) -> Dict[str, Any]:
    """Revoke (best effort) and deactivate the user's integration."""
    if not await service.disconnect(user_id, req.platform):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Integration not found")
    return {"success": True, "platform": req.platform}
