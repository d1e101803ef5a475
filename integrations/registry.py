"""
PlatformRegistry — static table of OAuth platforms.

Each platform is one ``PlatformDescriptor`` row: endpoints, default scopes
and the request-shaping rules the authorization URL builder and the token
exchanger interpret.  Adding a platform means adding a row here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from integrations.normalizers import (
    Normalizer,
    normalize_standard,
    normalize_tiktok_business,
    normalize_wrapped,
)

logger = logging.getLogger(__name__)

# ── Provider families ──────────────────────────────────────────────────
META = "meta"
GOOGLE = "google"
TWITTER = "twitter"
LINKEDIN = "linkedin"
TIKTOK = "tiktok"
PINTEREST = "pinterest"
SNAPCHAT = "snapchat"
REDDIT = "reddit"
SPOTIFY = "spotify"
AMAZON = "amazon"
MICROSOFT = "microsoft"
HUBSPOT = "hubspot"
SALESFORCE = "salesforce"
DISCORD = "discord"

_GRAPH_VERSION = "v18.0"
_META_AUTH = f"https://www.facebook.com/{_GRAPH_VERSION}/dialog/oauth"
_META_TOKEN = f"https://graph.facebook.com/{_GRAPH_VERSION}/oauth/access_token"
_META_REVOKE = f"https://graph.facebook.com/{_GRAPH_VERSION}/me/permissions"
_GOOGLE_AUTH = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN = "https://oauth2.googleapis.com/token"
_GOOGLE_REVOKE = "https://oauth2.googleapis.com/revoke"
_GOOGLE_ADS_SCOPE = "https://www.googleapis.com/auth/adwords"
_LINKEDIN_AUTH = "https://www.linkedin.com/oauth/v2/authorization"
_LINKEDIN_TOKEN = "https://www.linkedin.com/oauth/v2/accessToken"
_TWITTER_AUTH = "https://twitter.com/i/oauth2/authorize"
_TWITTER_TOKEN = "https://api.twitter.com/2/oauth2/token"
_MICROSOFT_AUTH = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
_MICROSOFT_TOKEN = "https://login.microsoftonline.com/common/oauth2/v2.0/token"


def _frozen(params: Optional[Mapping[str, str]] = None) -> Mapping[str, str]:
    return MappingProxyType(dict(params or {}))


@dataclass(frozen=True)
class PlatformDescriptor:
    platform: str
    display_name: str
    family: str
    authorization_url: str
    token_url: str
    default_scopes: Tuple[str, ...] = ()
    requires_pkce: bool = False
    # ``scope`` must be sent even when no scopes are configured.
    scope_required: bool = False
    fallback_scope: str = ""
    # Always present in the requested scope, appended if missing.
    required_scopes: Tuple[str, ...] = ()
    extra_params: Mapping[str, str] = field(default_factory=_frozen)
    # Some providers also want the client id under another name (TikTok Ads ``app_id``).
    client_id_param: Optional[str] = None
    # Route token requests through the ordered transport fallback chain.
    alternate_transport: bool = False
    normalizer: Normalizer = normalize_standard
    revocation_url: Optional[str] = None
    revocation_method: Optional[str] = None    # "form" | "delete"
    revocation_unsupported_ok: bool = False    # no endpoint, tokens simply expire

    def effective_scopes(self, configured: Optional[Iterable[str]]) -> List[str]:
        """User scopes if any, else the platform defaults, plus required scopes."""
        scopes = [s for s in (configured or []) if s and s.strip()]
        if not scopes:
            scopes = list(self.default_scopes)
        for required in self.required_scopes:
            if required not in scopes:
                scopes.append(required)
        return scopes


def _meta(platform: str, display_name: str, scopes: Tuple[str, ...]) -> PlatformDescriptor:
    return PlatformDescriptor(
        platform=platform,
        display_name=display_name,
        family=META,
        authorization_url=_META_AUTH,
        token_url=_META_TOKEN,
        default_scopes=scopes,
        extra_params=_frozen({"display": "popup"}),
        revocation_url=_META_REVOKE,
        revocation_method="delete",
    )


def _google(
    platform: str,
    display_name: str,
    scopes: Tuple[str, ...],
    *,
    extra: Optional[Mapping[str, str]] = None,
    required: Tuple[str, ...] = (),
) -> PlatformDescriptor:
    params = {"access_type": "offline", "prompt": "consent"}
    params.update(extra or {})
    return PlatformDescriptor(
        platform=platform,
        display_name=display_name,
        family=GOOGLE,
        authorization_url=_GOOGLE_AUTH,
        token_url=_GOOGLE_TOKEN,
        default_scopes=scopes,
        scope_required=True,
        fallback_scope="openid email profile",
        required_scopes=required,
        extra_params=_frozen(params),
        alternate_transport=True,
        revocation_url=_GOOGLE_REVOKE,
        revocation_method="form",
    )


def _linkedin(platform: str, display_name: str, scopes: Tuple[str, ...]) -> PlatformDescriptor:
    return PlatformDescriptor(
        platform=platform,
        display_name=display_name,
        family=LINKEDIN,
        authorization_url=_LINKEDIN_AUTH,
        token_url=_LINKEDIN_TOKEN,
        default_scopes=scopes,
        scope_required=True,
        fallback_scope=" ".join(scopes),
        revocation_unsupported_ok=True,
    )


def _twitter(platform: str, display_name: str) -> PlatformDescriptor:
    return PlatformDescriptor(
        platform=platform,
        display_name=display_name,
        family=TWITTER,
        authorization_url=_TWITTER_AUTH,
        token_url=_TWITTER_TOKEN,
        default_scopes=("tweet.read", "users.read", "offline.access"),
        requires_pkce=True,
    )


def _simple(
    platform: str,
    display_name: str,
    family: str,
    authorization_url: str,
    token_url: str,
    scopes: Tuple[str, ...],
    **kwargs,
) -> PlatformDescriptor:
    return PlatformDescriptor(
        platform=platform,
        display_name=display_name,
        family=family,
        authorization_url=authorization_url,
        token_url=token_url,
        default_scopes=scopes,
        **kwargs,
    )


# ── All known platforms (add new ones here) ────────────────────────────

_ALL_PLATFORMS: List[PlatformDescriptor] = [
    _meta("facebook", "Facebook", ("email", "public_profile", "pages_show_list", "pages_read_engagement")),
    _meta("meta", "Meta", ("email", "public_profile", "pages_show_list", "pages_read_engagement")),
    _meta("metaAds", "Meta Ads", ("ads_read", "ads_management", "business_management")),
    _meta("instagram", "Instagram", ("instagram_basic", "instagram_manage_insights", "pages_read_engagement")),
    _meta("whatsapp", "WhatsApp Business", ("whatsapp_business_management", "whatsapp_business_messaging")),
    _google(
        "google",
        "Google",
        (
            "https://www.googleapis.com/auth/userinfo.email",
            "https://www.googleapis.com/auth/userinfo.profile",
        ),
    ),
    _google(
        "googleAds",
        "Google Ads",
        (_GOOGLE_ADS_SCOPE,),
        extra={"include_granted_scopes": "true"},
        required=(_GOOGLE_ADS_SCOPE,),
    ),
    _google("googleAnalytics", "Google Analytics", ("https://www.googleapis.com/auth/analytics.readonly",)),
    _google(
        "youtube",
        "YouTube",
        (
            "https://www.googleapis.com/auth/youtube.readonly",
            "https://www.googleapis.com/auth/yt-analytics.readonly",
        ),
    ),
    _google(
        "youtubeAds",
        "YouTube Ads",
        (
            "https://www.googleapis.com/auth/youtube.readonly",
            "https://www.googleapis.com/auth/youtube.force-ssl",
        ),
    ),
    _google("googleSearchConsole", "Google Search Console", ("https://www.googleapis.com/auth/webmasters.readonly",)),
    _linkedin("linkedin", "LinkedIn", ("openid", "profile", "email")),
    _linkedin(
        "linkedinAds",
        "LinkedIn Ads",
        ("r_ads", "r_ads_reporting", "rw_ads", "r_organization_social", "w_organization_social"),
    ),
    _twitter("twitter", "X (Twitter)"),
    _twitter("twitterAds", "X Ads"),
    _simple(
        "tiktok", "TikTok", TIKTOK,
        "https://www.tiktok.com/v2/auth/authorize",
        "https://open.tiktokapis.com/v2/oauth/token",
        ("user.info.basic", "video.list"),
        normalizer=normalize_wrapped,
    ),
    _simple(
        "tiktokAds", "TikTok Ads", TIKTOK,
        "https://business-api.tiktok.com/portal/auth",
        "https://business-api.tiktok.com/open_api/v1.3/oauth2/access_token",
        (),
        client_id_param="app_id",
        normalizer=normalize_tiktok_business,
    ),
    _simple(
        "pinterest", "Pinterest", PINTEREST,
        "https://www.pinterest.com/oauth/",
        "https://api.pinterest.com/v5/oauth/token",
        ("boards:read", "pins:read", "user_accounts:read"),
    ),
    _simple(
        "pinterestAds", "Pinterest Ads", PINTEREST,
        "https://www.pinterest.com/oauth/",
        "https://api.pinterest.com/v5/oauth/token",
        ("ads:read", "catalogs:read", "boards:read", "pins:read"),
    ),
    _simple(
        "snapchat", "Snapchat", SNAPCHAT,
        "https://accounts.snapchat.com/login/oauth2/authorize",
        "https://accounts.snapchat.com/login/oauth2/access_token",
        ("snapchat-marketing-api",),
    ),
    _simple(
        "snapchatAds", "Snapchat Ads", SNAPCHAT,
        "https://accounts.snapchat.com/login/oauth2/authorize",
        "https://accounts.snapchat.com/login/oauth2/access_token",
        ("snapchat-marketing-api",),
    ),
    _simple(
        "reddit", "Reddit", REDDIT,
        "https://www.reddit.com/api/v1/authorize",
        "https://www.reddit.com/api/v1/access_token",
        ("identity", "read"),
    ),
    _simple(
        "redditAds", "Reddit Ads", REDDIT,
        "https://www.reddit.com/api/v1/authorize",
        "https://www.reddit.com/api/v1/access_token",
        ("identity", "read", "ads:read"),
    ),
    _simple(
        "spotify", "Spotify", SPOTIFY,
        "https://accounts.spotify.com/authorize",
        "https://accounts.spotify.com/api/token",
        ("user-read-private", "user-read-email"),
        extra_params=_frozen({"show_dialog": "true"}),
    ),
    _simple(
        "amazonAds", "Amazon Ads", AMAZON,
        "https://www.amazon.com/ap/oa",
        "https://api.amazon.com/auth/o2/token",
        ("advertising::campaign_management",),
    ),
    _simple(
        "microsoftAds", "Microsoft Ads", MICROSOFT,
        _MICROSOFT_AUTH, _MICROSOFT_TOKEN,
        ("https://ads.microsoft.com/msads.manage", "offline_access"),
    ),
    _simple(
        "hubspot", "HubSpot", HUBSPOT,
        "https://app.hubspot.com/oauth/authorize",
        "https://api.hubapi.com/oauth/v1/token",
        ("crm.objects.contacts.read", "crm.objects.contacts.write"),
    ),
    _simple(
        "salesforce", "Salesforce", SALESFORCE,
        "https://login.salesforce.com/services/oauth2/authorize",
        "https://login.salesforce.com/services/oauth2/token",
        ("api", "refresh_token"),
    ),
    _simple(
        "discord", "Discord", DISCORD,
        "https://discord.com/api/oauth2/authorize",
        "https://discord.com/api/oauth2/token",
        ("identify", "guilds"),
    ),
]


class PlatformRegistry:
    """Lookup table from platform identifier to its descriptor."""

    def __init__(self, descriptors: Optional[Iterable[PlatformDescriptor]] = None):
        self._platforms: Dict[str, PlatformDescriptor] = {}
        for descriptor in _ALL_PLATFORMS if descriptors is None else descriptors:
            self.register(descriptor)

    def register(self, descriptor: PlatformDescriptor) -> None:
        if descriptor.platform in self._platforms:
            logger.warning("Platform %s re-registered", descriptor.platform)
        self._platforms[descriptor.platform] = descriptor

    def lookup(self, platform: Optional[str]) -> Optional[PlatformDescriptor]:
        """Descriptor for *platform*, or ``None`` if unknown (a configuration error)."""
        if not platform:
            return None
        return self._platforms.get(platform)

    def is_supported(self, platform: Optional[str]) -> bool:
        return self.lookup(platform) is not None

    def platforms(self) -> List[PlatformDescriptor]:
        return list(self._platforms.values())

    def family_members(self, family: str) -> List[str]:
        return [d.platform for d in self._platforms.values() if d.family == family]

    def list_platforms(self) -> List[Dict[str, object]]:
        """Public info about every platform (no secrets involved)."""
        return [
            {
                "platform": d.platform,
                "displayName": d.display_name,
                "family": d.family,
                "defaultScopes": list(d.default_scopes),
                "requiresPkce": d.requires_pkce,
            }
            for d in self._platforms.values()
        ]


_default_registry: Optional[PlatformRegistry] = None


def get_platform_registry() -> PlatformRegistry:
    """Process-wide registry built from the static table."""
    global _default_registry
    if _default_registry is None:
        _default_registry = PlatformRegistry()
    return _default_registry
