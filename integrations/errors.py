"""
Failure taxonomy for the OAuth connect / exchange / refresh flow.

Every error carries a ``user_message`` that is safe to show in the
dashboard and a ``status_code`` hint for the HTTP layer.  Nothing else
escapes the core: lower-level failures (JSON, transport, subprocess) are
converted to one of these at the boundary.
"""

from __future__ import annotations

from typing import Optional


class OAuthFlowError(Exception):
    """Base class for all expected failures of the OAuth subsystem."""

    status_code: int = 400
    default_user_message: str = "Something went wrong with this integration."

    def __init__(self, message: str = "", *, user_message: Optional[str] = None):
        super().__init__(message or self.default_user_message)
        self.user_message = user_message or self.default_user_message


class ConfigurationMissing(OAuthFlowError):
    """The OAuth application (or its registry entry) is not available."""

    default_user_message = "No OAuth app configured for this platform. Please configure it in settings first."


class UnsupportedPlatform(ConfigurationMissing):
    default_user_message = "This platform is not supported."

    def __init__(self, platform: str):
        super().__init__(f"Unsupported platform: {platform}")
        self.platform = platform


class InvalidState(OAuthFlowError):
    default_user_message = "Invalid or expired authorization attempt, please retry."


class InvalidCredentials(OAuthFlowError):
    """Submitted API-key credentials failed validation."""

    default_user_message = "Invalid credentials. Please check and try again."


class ExchangeRejected(OAuthFlowError):
    """The provider refused the authorization-code grant, or could not be reached."""

    status_code = 502
    default_user_message = "Connection failed."

    def __init__(
        self,
        message: str,
        *,
        platform: str = "",
        status: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.platform = platform
        self.status = status
        self.body = body


class RefreshRejected(ExchangeRejected):
    default_user_message = "Token refresh failed. Please reconnect this integration."


class CryptoError(OAuthFlowError):
    status_code = 500
    default_user_message = "Unable to decrypt stored credentials. Please re-configure this OAuth app."
