"""
Wiring — build the OAuth components from an explicit ``Settings`` object.

Secrets are passed into ``SecretCipher`` and ``StateCodec`` here, once;
nothing in the core reads them from the environment.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from config.settings import Settings, config
from database.session import SessionFactory, async_session_factory
from integrations.api_keys import get_api_key_catalog
from integrations.authorization import AuthorizationUrlBuilder
from integrations.encryption import SecretCipher
from integrations.exchange import TokenExchanger, TokenRefresher, TokenRevoker, TransportSelector
from integrations.integration_store import IntegrationStore
from integrations.oauth_apps import OAuthApplicationStore
from integrations.registry import PlatformRegistry, get_platform_registry
from integrations.service import IntegrationService
from integrations.state import StateCodec, StateReplayGuard
from integrations.transports import (
    CurlTransport,
    FallbackTransport,
    HttpClientTransport,
    HttpxTransport,
)


def build_transport_selector(settings: Settings) -> TransportSelector:
    return TransportSelector(
        standard=HttpxTransport(retries_on_timeout=settings.token_request_retries),
        alternate=FallbackTransport(
            [
                CurlTransport(settings.curl_binary),
                HttpClientTransport(),
                HttpxTransport(retries_on_timeout=0),
            ]
        ),
        timeout=settings.token_request_timeout,
    )


def build_integration_service(
    settings: Settings,
    *,
    registry: Optional[PlatformRegistry] = None,
    transports: Optional[TransportSelector] = None,
    session_factory: SessionFactory = async_session_factory,
) -> IntegrationService:
    registry = registry or get_platform_registry()
    cipher = SecretCipher(settings.encryption_key)
    codec = StateCodec(settings.oauth_state_secret, ttl_seconds=settings.oauth_state_ttl_seconds)
    integration_store = IntegrationStore(cipher, session_factory)
    app_store = OAuthApplicationStore(cipher, integration_store, session_factory)
    transports = transports or build_transport_selector(settings)

    replay_guard = None
    if settings.oauth_state_single_use:
        replay_guard = StateReplayGuard(settings.oauth_state_ttl_seconds, session_factory)

    return IntegrationService(
        registry=registry,
        codec=codec,
        app_store=app_store,
        integration_store=integration_store,
        builder=AuthorizationUrlBuilder(app_store, registry, codec),
        exchanger=TokenExchanger(app_store, registry, transports),
        refresher=TokenRefresher(app_store, registry, transports),
        revoker=TokenRevoker(registry, timeout=settings.token_request_timeout),
        default_redirect_uri=settings.default_redirect_uri,
        replay_guard=replay_guard,
        api_keys=get_api_key_catalog(),
    )


@lru_cache(maxsize=1)
def get_integration_service() -> IntegrationService:
    """FastAPI dependency — one service per process, built from ``config``."""
    return build_integration_service(config)
