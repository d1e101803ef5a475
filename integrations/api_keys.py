"""
API-key platforms — providers connected by pasting credentials instead of
an OAuth redirect.

Each platform is one ``ApiKeyPlatform`` row listing the form fields the
dashboard renders and the service validates.  The submitted credentials
are stored encrypted as a JSON object in ``integrations.access_token``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from integrations.errors import InvalidCredentials

TEXT = "text"
PASSWORD = "password"
SELECT = "select"


@dataclass(frozen=True)
class ApiKeyField:
    name: str
    label: str
    type: str = TEXT
    required: bool = True
    options: Tuple[str, ...] = ()

    @property
    def is_secret(self) -> bool:
        return self.type == PASSWORD


@dataclass(frozen=True)
class ApiKeyPlatform:
    platform: str
    display_name: str
    fields: Tuple[ApiKeyField, ...]
    # Non-secret fields copied to the top level of the integration metadata.
    promoted: Tuple[str, ...] = ()
    # (field, prefix, message) format checks run after the required-field check.
    prefix_rules: Tuple[Tuple[str, str, str], ...] = ()

    def public_credentials(self, credentials: Mapping[str, str]) -> Dict[str, str]:
        return {
            f.name: credentials[f.name]
            for f in self.fields
            if not f.is_secret and credentials.get(f.name)
        }


def _secret(name: str, label: str) -> ApiKeyField:
    return ApiKeyField(name, label, PASSWORD)


_API_KEY_PLATFORMS: List[ApiKeyPlatform] = [
    # ── Analytics ──
    ApiKeyPlatform(
        "mixpanel",
        "Mixpanel",
        (ApiKeyField("projectId", "Project ID"), _secret("apiSecret", "API Secret")),
        promoted=("projectId",),
    ),
    ApiKeyPlatform(
        "amplitude",
        "Amplitude",
        (_secret("apiKey", "API Key"), _secret("secretKey", "Secret Key")),
    ),
    ApiKeyPlatform("segment", "Segment", (_secret("writeKey", "Write Key"),)),
    ApiKeyPlatform("hotjar", "Hotjar", (ApiKeyField("siteId", "Site ID"),), promoted=("siteId",)),
    # ── CRM / email ──
    ApiKeyPlatform("pipedrive", "Pipedrive", (_secret("apiToken", "API Token"),)),
    ApiKeyPlatform("sendgrid", "SendGrid", (_secret("apiKey", "API Key"),)),
    ApiKeyPlatform(
        "klaviyo",
        "Klaviyo",
        (ApiKeyField("company", "Company"), _secret("privateKey", "Private API Key")),
        promoted=("company",),
        prefix_rules=(
            ("privateKey", "pk_", 'Invalid Klaviyo private key format. It should start with "pk_"'),
        ),
    ),
    ApiKeyPlatform("brevo", "Brevo", (_secret("apiKey", "API Key"),)),
    # ── Commerce ──
    ApiKeyPlatform(
        "shopify",
        "Shopify",
        (ApiKeyField("storeName", "Store Name"), _secret("accessToken", "Admin API Access Token")),
        promoted=("storeName",),
    ),
    ApiKeyPlatform(
        "woocommerce",
        "WooCommerce",
        (
            ApiKeyField("url", "Store URL"),
            ApiKeyField("consumerKey", "Consumer Key"),
            _secret("consumerSecret", "Consumer Secret"),
        ),
    ),
    ApiKeyPlatform(
        "magento",
        "Magento",
        (ApiKeyField("url", "Store URL"), _secret("accessToken", "Access Token")),
    ),
    ApiKeyPlatform(
        "bigcommerce",
        "BigCommerce",
        (ApiKeyField("storeHash", "Store Hash"), _secret("accessToken", "Access Token")),
    ),
    # ── Payments / messaging ──
    ApiKeyPlatform(
        "stripe",
        "Stripe",
        (
            _secret("secretKey", "Secret Key"),
            ApiKeyField("environment", "Environment", SELECT, options=("test", "live")),
        ),
        promoted=("environment",),
    ),
    ApiKeyPlatform(
        "twilio",
        "Twilio",
        (ApiKeyField("accountSid", "Account SID"), _secret("authToken", "Auth Token")),
        promoted=("accountSid",),
    ),
]


class ApiKeyCatalog:
    """Lookup table from platform identifier to its credential form."""

    def __init__(self, entries: Optional[Iterable[ApiKeyPlatform]] = None):
        self._platforms: Dict[str, ApiKeyPlatform] = {
            e.platform: e for e in (_API_KEY_PLATFORMS if entries is None else entries)
        }

    def lookup(self, platform: Optional[str]) -> Optional[ApiKeyPlatform]:
        if not platform:
            return None
        return self._platforms.get(platform)

    def platforms(self) -> List[ApiKeyPlatform]:
        return list(self._platforms.values())

    def list_platforms(self) -> List[Dict[str, object]]:
        return [
            {
                "platform": p.platform,
                "displayName": p.display_name,
                "fields": [
                    {
                        "name": f.name,
                        "label": f.label,
                        "type": f.type,
                        "required": f.required,
                        **({"options": list(f.options)} if f.options else {}),
                    }
                    for f in p.fields
                ],
            }
            for p in self._platforms.values()
        ]

    def validate(self, entry: ApiKeyPlatform, credentials: Mapping[str, str]) -> Dict[str, str]:
        """
        Check *credentials* against the platform's form and return only the
        declared fields.  Raises ``InvalidCredentials`` with a message the
        dashboard can show as is.
        """
        missing = [f.label for f in entry.fields if f.required and not credentials.get(f.name)]
        if missing:
            message = f"Missing required fields: {', '.join(missing)}"
            raise InvalidCredentials(message, user_message=message)

        for f in entry.fields:
            value = credentials.get(f.name)
            if f.options and value and value not in f.options:
                message = f"{f.label} must be one of: {', '.join(f.options)}"
                raise InvalidCredentials(message, user_message=message)

        for name, prefix, message in entry.prefix_rules:
            if not str(credentials.get(name, "")).startswith(prefix):
                raise InvalidCredentials(message, user_message=message)

        return {f.name: credentials[f.name] for f in entry.fields if credentials.get(f.name)}


_default_catalog: Optional[ApiKeyCatalog] = None


def get_api_key_catalog() -> ApiKeyCatalog:
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = ApiKeyCatalog()
    return _default_catalog
