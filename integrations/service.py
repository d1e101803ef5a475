"""
IntegrationService — the connect / callback / refresh / disconnect flows
the HTTP layer calls into.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from database.helpers import utcnow
from integrations.api_keys import ApiKeyCatalog, get_api_key_catalog
from integrations.authorization import AuthorizationRequest, AuthorizationUrlBuilder
from integrations.errors import (
    ConfigurationMissing,
    CryptoError,
    ExchangeRejected,
    InvalidCredentials,
    InvalidState,
    UnsupportedPlatform,
)
from integrations.exchange import TokenExchanger, TokenRefresher, TokenRevoker
from integrations.integration_store import IntegrationStore
from integrations.oauth_apps import OAuthApplicationStore
from integrations.registry import PlatformRegistry
from integrations.state import OAuthState, StateCodec, StateReplayGuard

logger = logging.getLogger(__name__)

# Refresh a little early so consumers never receive a token about to expire.
REFRESH_SKEW = timedelta(seconds=120)


class IntegrationService:
    def __init__(
        self,
        *,
        registry: PlatformRegistry,
        codec: StateCodec,
        app_store: OAuthApplicationStore,
        integration_store: IntegrationStore,
        builder: AuthorizationUrlBuilder,
        exchanger: TokenExchanger,
        refresher: TokenRefresher,
        revoker: TokenRevoker,
        default_redirect_uri: str,
        replay_guard: Optional[StateReplayGuard] = None,
        api_keys: Optional[ApiKeyCatalog] = None,
    ):
        self.registry = registry
        self.codec = codec
        self.apps = app_store
        self.integrations = integration_store
        self.builder = builder
        self.exchanger = exchanger
        self.refresher = refresher
        self.revoker = revoker
        self.default_redirect_uri = default_redirect_uri
        self.replay_guard = replay_guard
        self.api_keys = api_keys or get_api_key_catalog()

    # ── Connect ─────────────────────────────────────────────────────────

    async def begin_connect(self, user_id: str, platform: str) -> AuthorizationRequest:
        if not self.registry.is_supported(platform):
            raise UnsupportedPlatform(platform)

        request = await self.builder.build(user_id, platform, self.default_redirect_uri)
        if request is None:
            raise ConfigurationMissing(f"No active OAuth app for {platform}")
        return request

    async def verify_state(self, state_token: str) -> OAuthState:
        state = self.codec.decode(state_token)
        if state is None:
            raise InvalidState("State failed verification")
        if self.replay_guard is not None and not await self.replay_guard.consume(state_token, state):
            raise InvalidState("State already used")
        return state

    async def complete_connect(self, code: str, state_token: str) -> OAuthState:
        """
        Handle the provider redirect: verify state, exchange the code and
        persist the integration.  Returns the verified state.
        """
        state = await self.verify_state(state_token)
        tokens = await self.exchanger.exchange(
            state.oauth_app_id,
            state.platform,
            code,
            self.default_redirect_uri,
            state.code_verifier,
        )
        await self.integrations.upsert_integration(
            state.user_id,
            state.platform,
            tokens,
            state.oauth_app_id,
        )
        logger.info("OAuth connected: user=%s platform=%s", state.user_id, state.platform)
        return state

    async def connect_api_key(self, user_id: str, platform: str, credentials: Dict[str, str]) -> Dict[str, Any]:
        """Validate and store API-key credentials.  Returns the stored metadata."""
        entry = self.api_keys.lookup(platform)
        if entry is None:
            if self.registry.is_supported(platform):
                message = "Platform does not use API key authentication"
            else:
                message = "Invalid platform"
            raise InvalidCredentials(f"{message}: {platform}", user_message=message)

        accepted = self.api_keys.validate(entry, credentials)
        metadata: Dict[str, Any] = {"credentials": entry.public_credentials(accepted)}
        metadata.update({name: accepted[name] for name in entry.promoted if name in accepted})

        integration = await self.integrations.upsert_api_key_credentials(
            user_id, platform, accepted, metadata
        )
        logger.info("API key connected: user=%s platform=%s", user_id, platform)
        return dict(integration.metadata_ or {})

    # ── Consumers ───────────────────────────────────────────────────────

    async def get_valid_access_token(self, user_id: str, platform: str) -> Optional[str]:
        """
        Decrypted access token for *user_id* + *platform*, refreshed first if
        it is (about to be) expired.  ``None`` when not connected, when the
        issuing OAuth app is gone, or when refresh is impossible or fails.
        """
        integration = await self.integrations.get_integration(user_id, platform)
        if integration is None or not integration.is_active or not integration.access_token:
            return None
        if integration.oauth_app_id is None:
            return None

        app = await self.apps.get_application(str(integration.oauth_app_id))
        if app is None:
            logger.info("Integration %s/%s belongs to a removed OAuth app", user_id, platform)
            return None

        try:
            if integration.expires_at and integration.expires_at < utcnow() + REFRESH_SKEW:
                refresh_token = self.integrations.decrypt_refresh_token(integration)
                if not refresh_token:
                    logger.info("Token for %s/%s expired and no refresh token stored", user_id, platform)
                    return None
                tokens = await self.refresher.refresh(app.id, platform, refresh_token)
                await self.integrations.apply_refresh(integration, tokens)
                logger.info("Refreshed %s token for user %s", platform, user_id)
                return tokens.access_token
            return self.integrations.decrypt_access_token(integration)
        except (ExchangeRejected, ConfigurationMissing, CryptoError) as exc:
            logger.warning("Could not provide %s token for user %s: %s", platform, user_id, exc)
            return None

    async def get_api_key_credentials(self, user_id: str, platform: str) -> Optional[Dict[str, str]]:
        """Decrypted credentials of an active API-key integration, or ``None``."""
        integration = await self.integrations.get_integration(user_id, platform)
        if integration is None or not integration.is_active:
            return None
        if (integration.metadata_ or {}).get("type") != "api_key":
            return None
        try:
            return self.integrations.decrypt_api_key_credentials(integration)
        except CryptoError as exc:
            logger.warning("Could not provide %s credentials for user %s: %s", platform, user_id, exc)
            return None

    # ── Disconnect / status ─────────────────────────────────────────────

    async def disconnect(self, user_id: str, platform: str) -> bool:
        integration = await self.integrations.get_integration(user_id, platform)
        if integration is None:
            return False

        is_api_key = (integration.metadata_ or {}).get("type") == "api_key"
        if integration.access_token and not is_api_key:
            try:
                access_token = self.integrations.decrypt_access_token(integration)
                app = (
                    await self.apps.get_application(str(integration.oauth_app_id))
                    if integration.oauth_app_id
                    else None
                )
            except CryptoError:
                logger.warning("Skipping revocation for %s/%s: undecryptable token", user_id, platform)
            else:
                revoked = await self.revoker.revoke(platform, access_token, app)
                logger.info("Revocation for %s/%s: %s", user_id, platform, revoked)

        await self.integrations.mark_disconnected(user_id, platform)
        return True

    async def status(self, user_id: str) -> List[Dict[str, Any]]:
        """Every OAuth and API-key platform with the user's configuration/connection state."""
        integrations = {i.platform: i for i in await self.integrations.list_integrations(user_id)}
        configured = {
            a["platform"]
            for a in await self.apps.list_applications(user_id)
            if a["isActive"]
        }
        now = utcnow()
        rows = []
        for descriptor in self.registry.platforms():
            integration = integrations.get(descriptor.platform)
            meta = (integration.metadata_ or {}) if integration else {}
            expires_at = integration.expires_at if integration else None
            rows.append(
                {
                    "id": descriptor.platform,
                    "name": descriptor.display_name,
                    "hasOAuthConfigured": descriptor.platform in configured,
                    "status": "connected" if integration and integration.is_active else "disconnected",
                    "connectedAt": meta.get("connectedAt"),
                    "expiresAt": expires_at.isoformat() if expires_at else None,
                    "needsRefresh": bool(expires_at and expires_at < now),
                }
            )
        for entry in self.api_keys.platforms():
            integration = integrations.get(entry.platform)
            meta = (integration.metadata_ or {}) if integration else {}
            rows.append(
                {
                    "id": entry.platform,
                    "name": entry.display_name,
                    "hasOAuthConfigured": False,
                    "status": "connected" if integration and integration.is_active else "disconnected",
                    "connectedAt": meta.get("connectedAt"),
                    "expiresAt": None,
                    "needsRefresh": False,
                }
            )
        return rows
