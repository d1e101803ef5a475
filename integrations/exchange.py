"""
Token exchange — authorization-code grant, refresh grant and revocation
against each platform's endpoints.

Google-family platforms send token requests through an ordered chain of
transports (curl → http.client → httpx); every other platform uses httpx
with a single retry on timeout.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

import httpx

from integrations.errors import (
    ConfigurationMissing,
    ExchangeRejected,
    RefreshRejected,
    UnsupportedPlatform,
)
from integrations.normalizers import NormalizedTokens, provider_error
from integrations.oauth_apps import OAuthApplicationConfig, OAuthApplicationStore
from integrations.redaction import redact, redact_form
from integrations.registry import PlatformDescriptor, PlatformRegistry
from integrations.transports import (
    CurlTransport,
    FallbackTransport,
    HttpClientTransport,
    HttpxTransport,
    TokenTransport,
    TransportError,
)

logger = logging.getLogger(__name__)

_ERROR_BODY_LIMIT = 2000


class TransportSelector:
    """Picks the transport a platform's token requests go through."""

    def __init__(
        self,
        standard: Optional[TokenTransport] = None,
        alternate: Optional[TokenTransport] = None,
        timeout: float = 30.0,
    ):
        self.standard = standard or HttpxTransport(retries_on_timeout=1)
        self.alternate = alternate or FallbackTransport(
            [CurlTransport(), HttpClientTransport(), HttpxTransport(retries_on_timeout=0)]
        )
        self.timeout = timeout

    def for_platform(self, descriptor: PlatformDescriptor) -> TokenTransport:
        return self.alternate if descriptor.alternate_transport else self.standard


class _TokenEndpointClient:
    """Shared load / lookup / POST / normalise steps of both grants."""

    rejection = ExchangeRejected
    grant_label = "Token exchange"

    def __init__(
        self,
        app_store: OAuthApplicationStore,
        registry: PlatformRegistry,
        transports: Optional[TransportSelector] = None,
    ):
        self._apps = app_store
        self._registry = registry
        self._transports = transports or TransportSelector()

    async def _load(self, oauth_app_id: str, platform: str) -> Tuple[OAuthApplicationConfig, PlatformDescriptor]:
        app = await self._apps.get_application(oauth_app_id)
        if app is None:
            logger.error(
                "%s: OAuth app %s not found or inactive. It was probably removed after "
                "the authorization started; recreate it in Settings > Integrations.",
                self.grant_label,
                oauth_app_id,
            )
            raise ConfigurationMissing(f"OAuth app {oauth_app_id} not found")

        descriptor = self._registry.lookup(platform)
        if descriptor is None:
            logger.error("%s: platform %s is not registered", self.grant_label, platform)
            raise UnsupportedPlatform(platform)
        return app, descriptor

    async def _request(
        self,
        descriptor: PlatformDescriptor,
        form: Dict[str, str],
    ) -> NormalizedTokens:
        platform = descriptor.platform
        transport = self._transports.for_platform(descriptor)
        logger.info(
            "%s for %s via %s: %s",
            self.grant_label,
            platform,
            transport.name,
            redact_form(form),
        )

        try:
            resp = await transport.post_form(descriptor.token_url, form, self._transports.timeout)
        except TransportError as exc:
            logger.error("%s for %s failed in transport: %s", self.grant_label, platform, exc)
            raise self.rejection(
                f"{self.grant_label} for {platform} could not reach the provider: {exc}",
                platform=platform,
            ) from exc

        body = resp.text[:_ERROR_BODY_LIMIT]
        if not resp.ok:
            logger.error(
                "%s for %s rejected: HTTP %d %s", self.grant_label, platform, resp.status_code, body
            )
            raise self.rejection(
                f"{self.grant_label} for {platform} rejected with HTTP {resp.status_code}",
                platform=platform,
                status=resp.status_code,
                body=body,
            )

        try:
            raw = resp.json()
        except ValueError as exc:
            logger.error("%s for %s returned non-JSON body: %s", self.grant_label, platform, body)
            raise self.rejection(
                f"{self.grant_label} for {platform} returned an unreadable body",
                platform=platform,
                status=resp.status_code,
                body=body,
            ) from exc

        error = provider_error(raw)
        if error:
            logger.error("%s for %s returned an error payload: %s", self.grant_label, platform, error)
            raise self.rejection(
                f"{self.grant_label} for {platform} failed: {error}",
                platform=platform,
                status=resp.status_code,
                body=body,
            )

        tokens = descriptor.normalizer(raw)
        if not tokens.access_token:
            logger.error("%s for %s: response has no access token", self.grant_label, platform)
            raise self.rejection(
                f"{self.grant_label} for {platform} returned no access token",
                platform=platform,
                status=resp.status_code,
                body=body,
            )

        logger.info(
            "%s for %s succeeded: access=%s refresh=%s expires_in=%s",
            self.grant_label,
            platform,
            redact(tokens.access_token),
            "yes" if tokens.refresh_token else "no",
            tokens.expires_in,
        )
        return tokens


class TokenExchanger(_TokenEndpointClient):
    """Authorization code → tokens."""

    async def exchange(
        self,
        oauth_app_id: str,
        platform: str,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> NormalizedTokens:
        """
        Exchange *code* using the credentials of *oauth_app_id*.

        Raises ``ConfigurationMissing`` / ``UnsupportedPlatform`` /
        ``ExchangeRejected`` (and ``CryptoError`` if the stored secret cannot
        be decrypted).
        """
        app, descriptor = await self._load(oauth_app_id, platform)

        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": app.client_id,
            "redirect_uri": app.redirect_uri or redirect_uri,
        }
        if app.client_secret:
            form["client_secret"] = app.client_secret
        if code_verifier:
            form["code_verifier"] = code_verifier

        return await self._request(descriptor, form)


class TokenRefresher(_TokenEndpointClient):
    """Refresh token → new tokens."""

    rejection = RefreshRejected
    grant_label = "Token refresh"

    async def refresh(
        self,
        oauth_app_id: str,
        platform: str,
        refresh_token: str,
    ) -> NormalizedTokens:
        """
        Run the refresh grant.  If the provider does not rotate the refresh
        token, the one passed in is carried over into the result.
        """
        app, descriptor = await self._load(oauth_app_id, platform)

        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": app.client_id,
        }
        if app.client_secret:
            form["client_secret"] = app.client_secret

        tokens = await self._request(descriptor, form)
        return tokens.with_fallback_refresh_token(refresh_token)


class TokenRevoker:
    """Best-effort token revocation when a user disconnects."""

    def __init__(
        self,
        registry: PlatformRegistry,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._registry = registry
        self._timeout = timeout
        self._transport = transport

    async def revoke(
        self,
        platform: str,
        access_token: str,
        app: Optional[OAuthApplicationConfig] = None,
    ) -> bool:
        """
        Returns True if the provider confirmed revocation (or has no
        revocation endpoint at all), False otherwise.  Never raises.
        """
        descriptor = self._registry.lookup(platform)
        if descriptor is None or not access_token:
            return False
        if descriptor.revocation_unsupported_ok:
            return True
        if not descriptor.revocation_url:
            return False

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                if descriptor.revocation_method == "delete":
                    resp = await client.delete(
                        descriptor.revocation_url,
                        params={"access_token": access_token},
                    )
                else:
                    data = {"token": access_token}
                    if app is not None:
                        data["client_id"] = app.client_id
                        if app.client_secret:
                            data["client_secret"] = app.client_secret
                    resp = await client.post(descriptor.revocation_url, data=data)
        except httpx.HTTPError as exc:
            logger.warning("Token revocation for %s failed: %s", platform, exc)
            return False

        if not resp.is_success:
            logger.warning(
                "Token revocation for %s rejected: HTTP %d %s",
                platform,
                resp.status_code,
                resp.text[:500],
            )
        return resp.is_success

