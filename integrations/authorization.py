"""
Authorization URL builder — the outbound half of the code flow.

Combines the user's OAuth application with the platform descriptor,
generates a PKCE pair where the platform requires one, and signs the state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urlencode

from integrations.oauth_apps import OAuthApplicationConfig, OAuthApplicationStore
from integrations.pkce import CODE_CHALLENGE_METHOD, generate_pkce_pair
from integrations.registry import PlatformDescriptor, PlatformRegistry
from integrations.state import StateCodec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationRequest:
    auth_url: str
    state: str


def build_query(
    app: OAuthApplicationConfig,
    descriptor: PlatformDescriptor,
    redirect_uri: str,
    state: str,
    code_challenge: Optional[str] = None,
) -> List[tuple]:
    """Ordered query parameters for the provider's authorization endpoint."""
    params: Dict[str, str] = {
        "client_id": app.client_id,
        "redirect_uri": redirect_uri,
        "state": state,
        "response_type": "code",
    }

    scopes = descriptor.effective_scopes(app.scopes)
    if scopes:
        params["scope"] = " ".join(scopes)
    elif descriptor.scope_required:
        params["scope"] = descriptor.fallback_scope

    params.update(descriptor.extra_params)
    if descriptor.client_id_param:
        params[descriptor.client_id_param] = app.client_id

    if code_challenge:
        params["code_challenge"] = code_challenge
        params["code_challenge_method"] = CODE_CHALLENGE_METHOD

    return list(params.items())


class AuthorizationUrlBuilder:
    def __init__(
        self,
        app_store: OAuthApplicationStore,
        registry: PlatformRegistry,
        codec: StateCodec,
    ):
        self._apps = app_store
        self._registry = registry
        self._codec = codec

    async def build(
        self,
        user_id: str,
        platform: str,
        default_redirect_uri: str,
    ) -> Optional[AuthorizationRequest]:
        """
        Authorization URL + state for *platform*, or ``None`` when the user
        has no active OAuth app for it or the platform is unknown.
        """
        app = await self._apps.get_active_application(user_id, platform)
        if app is None:
            logger.info("No OAuth app configured: user=%s platform=%s", user_id, platform)
            return None

        descriptor = self._registry.lookup(platform)
        if descriptor is None:
            logger.error("No registry entry for platform %s", platform)
            return None

        redirect_uri = app.redirect_uri or default_redirect_uri

        verifier = challenge = None
        if descriptor.requires_pkce:
            verifier, challenge = generate_pkce_pair()

        state = self._codec.encode(user_id, platform, app.id, verifier)
        query = build_query(app, descriptor, redirect_uri, state, challenge)
        auth_url = f"{descriptor.authorization_url}?{urlencode(query)}"

        logger.info(
            "Built authorization URL: user=%s platform=%s app=%s pkce=%s",
            user_id,
            platform,
            app.id,
            bool(verifier),
        )
        return AuthorizationRequest(auth_url=auth_url, state=state)
