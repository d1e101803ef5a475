"""
Test doubles: an in-memory OAuth application store and mocked
``AsyncSession`` objects.  No database or network is touched.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

from integrations.oauth_apps import OAuthApplicationConfig

USER_ID = "6f1c2b7e-3d4a-4c5b-9e8f-0a1b2c3d4e5f"


class FakeAppStore:
    """Stands in for ``OAuthApplicationStore`` with decrypted configs held in a dict."""

    def __init__(self, *apps: OAuthApplicationConfig):
        self.apps = {app.id: app for app in apps}

    async def get_active_application(self, user_id, platform, *, db_session=None):
        for app in self.apps.values():
            if app.user_id == user_id and app.platform == platform:
                return app
        return None

    async def get_application(self, app_id, *, db_session=None):
        return self.apps.get(app_id)

    async def list_applications(self, user_id, *, db_session=None):
        return [
            {"id": a.id, "platform": a.platform, "isActive": True}
            for a in self.apps.values()
            if a.user_id == user_id
        ]


def make_app(platform: str, **overrides) -> OAuthApplicationConfig:
    fields = {
        "id": str(uuid.uuid4()),
        "user_id": USER_ID,
        "platform": platform,
        "client_id": f"{platform}-client-id",
        "client_secret": f"{platform}-client-secret",
        "redirect_uri": None,
        "scopes": [],
    }
    fields.update(overrides)
    return OAuthApplicationConfig(**fields)


def mock_session(first=None, all_rows=(), rowcount=1):
    """``AsyncSession`` double whose every ``execute`` returns the same result."""
    result = MagicMock()
    result.scalars.return_value.first.return_value = first
    result.scalars.return_value.all.return_value = list(all_rows)
    result.scalar_one_or_none.return_value = first
    result.first.return_value = first
    result.rowcount = rowcount

    session = AsyncMock()
    session.execute.return_value = result
    session.add = MagicMock()
    return session


