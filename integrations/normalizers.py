"""
Provider token-response adapters.

Every adapter has the signature ``(raw) -> NormalizedTokens`` and accepts
whatever JSON the provider returned.  Adapters never raise: fields they
cannot find or interpret are left as ``None``.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace
from typing import Any, Callable, Dict, Mapping, Optional


@dataclass(frozen=True)
class NormalizedTokens:
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None

    def with_fallback_refresh_token(self, previous: Optional[str]) -> "NormalizedTokens":
        """Keep *previous* when the provider did not rotate the refresh token."""
        if self.refresh_token or not previous:
            return self
        return replace(self, refresh_token=previous)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


Normalizer = Callable[[Any], NormalizedTokens]

_ALIASES = {
    "access_token": ("access_token", "accessToken", "AccessToken"),
    "refresh_token": ("refresh_token", "refreshToken", "RefreshToken"),
    "expires_in": ("expires_in", "expiresIn", "ExpiresIn", "expires"),
    "token_type": ("token_type", "tokenType", "TokenType"),
    "scope": ("scope", "scopes", "Scope"),
}


def _pick(raw: Mapping[str, Any], field: str) -> Any:
    for key in _ALIASES[field]:
        if raw.get(key) not in (None, ""):
            return raw[key]
    return None


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _as_seconds(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float) and math.isfinite(value) and value >= 0:
        return int(value)
    return None


def _as_scope(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value if str(v).strip()]
        return " ".join(items) or None
    if isinstance(value, str):
        # GitHub / Discord style comma lists become space-delimited.
        parts = value.replace(",", " ").split()
        return " ".join(parts) or None
    return None


def _as_token_type(value: Any) -> Optional[str]:
    text = _as_str(value)
    if text is None:
        return None
    return "Bearer" if text.lower() == "bearer" else text


def normalize_standard(raw: Any) -> NormalizedTokens:
    """RFC 6749 shaped responses, tolerant of casing and type variations."""
    if not isinstance(raw, Mapping):
        return NormalizedTokens()
    return NormalizedTokens(
        access_token=_as_str(_pick(raw, "access_token")),
        refresh_token=_as_str(_pick(raw, "refresh_token")),
        expires_in=_as_seconds(_pick(raw, "expires_in")),
        token_type=_as_token_type(_pick(raw, "token_type")),
        scope=_as_scope(_pick(raw, "scope")),
    )


def normalize_wrapped(raw: Any) -> NormalizedTokens:
    """Responses that may nest the token under ``data`` (TikTok)."""
    if isinstance(raw, Mapping) and isinstance(raw.get("data"), Mapping):
        inner = dict(raw["data"])
        for key in ("scope", "token_type"):
            if key not in inner and key in raw:
                inner[key] = raw[key]
        return normalize_standard(inner)
    return normalize_standard(raw)


def normalize_tiktok_business(raw: Any) -> NormalizedTokens:
    """
    TikTok Marketing API: ``{"code": 0, "message": "OK", "data": {...}}``.

    A non-zero ``code`` is an error even though the HTTP status is 200.
    """
    if isinstance(raw, Mapping) and raw.get("code") not in (None, 0, "0"):
        return NormalizedTokens()
    return normalize_wrapped(raw)


def provider_error(raw: Any) -> Optional[str]:
    """Error description embedded in a 2xx body, if the provider did that."""
    if not isinstance(raw, Mapping):
        return None
    error = raw.get("error")
    if error:
        description = raw.get("error_description") or raw.get("message") or ""
        return f"{error}: {description}".rstrip(": ")
    code = raw.get("code")
    if code not in (None, 0, "0") and "data" in raw:
        return f"{code}: {raw.get('message', '')}".rstrip(": ")
    return None
