"""
Tests for the OAuth application and integration stores against a mocked
``AsyncSession``.
"""

import json
import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from database.helpers import utcnow
from database.models import Integration, OAuthApp
from integrations.errors import CryptoError
from integrations.integration_store import IntegrationStore
from integrations.normalizers import NormalizedTokens
from integrations.oauth_apps import SECRET_MASK, DuplicateApplication, OAuthApplicationStore
from tests.helpers import USER_ID, mock_session

APP_ID = str(uuid.uuid4())


def _integration(cipher, **overrides):
    fields = dict(
        id=uuid.uuid4(),
        user_id=uuid.UUID(USER_ID),
        platform="facebook",
        access_token=cipher.encrypt("old-access"),
        refresh_token=cipher.encrypt("old-refresh"),
        expires_at=None,
        metadata_={"connectedAt": "2024-01-01T00:00:00+00:00"},
        is_active=True,
        oauth_app_id=uuid.UUID(APP_ID),
    )
    fields.update(overrides)
    return Integration(**fields)


def _oauth_app(cipher, **overrides):
    fields = dict(
        id=uuid.UUID(APP_ID),
        user_id=uuid.UUID(USER_ID),
        platform="facebook",
        client_id="client-id",
        client_secret=cipher.encrypt("client-secret"),
        redirect_uri=None,
        scopes=["ads_read"],
        is_active=True,
    )
    fields.update(overrides)
    return OAuthApp(**fields)


class TestIntegrationStore:
    @pytest.mark.asyncio
    async def test_upsert_creates_encrypted_row(self, cipher):
        session = mock_session(first=None)
        tokens = NormalizedTokens(access_token="A", refresh_token="R", expires_in=3600, token_type="Bearer")

        before = utcnow()
        integration = await IntegrationStore(cipher).upsert_integration(
            USER_ID, "facebook", tokens, APP_ID, db_session=session
        )

        session.add.assert_called_once_with(integration)
        assert integration.access_token != "A"
        assert cipher.decrypt(integration.access_token) == "A"
        assert cipher.decrypt(integration.refresh_token) == "R"
        assert before + timedelta(seconds=3599) < integration.expires_at <= utcnow() + timedelta(seconds=3600)
        assert integration.metadata_["type"] == "oauth"
        assert integration.metadata_["tokenType"] == "Bearer"
        assert integration.is_active is True

    @pytest.mark.asyncio
    async def test_upsert_keeps_refresh_token(self, cipher):
        existing = _integration(cipher, is_active=False)
        session = mock_session(first=existing)

        await IntegrationStore(cipher).upsert_integration(
            USER_ID, "facebook", NormalizedTokens(access_token="new-access"), APP_ID, db_session=session
        )

        session.add.assert_not_called()
        assert cipher.decrypt(existing.access_token) == "new-access"
        assert cipher.decrypt(existing.refresh_token) == "old-refresh"
        assert existing.expires_at is None
        assert existing.is_active is True

    @pytest.mark.asyncio
    async def test_apply_refresh(self, cipher):
        integration = _integration(cipher)
        session = mock_session()
        tokens = NormalizedTokens(access_token="A2", refresh_token="R2", expires_in=60)

        await IntegrationStore(cipher).apply_refresh(integration, tokens, db_session=session)

        assert cipher.decrypt(integration.access_token) == "A2"
        assert cipher.decrypt(integration.refresh_token) == "R2"
        assert integration.expires_at is not None
        assert "lastRefreshedAt" in integration.metadata_
        assert integration.metadata_["connectedAt"] == "2024-01-01T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_api_key_credentials_stored_as_ciphertext(self, cipher):
        session = mock_session(first=None)
        creds = {"storeName": "acme", "accessToken": "shpat_secret"}

        integration = await IntegrationStore(cipher).upsert_api_key_credentials(
            USER_ID, "shopify", creds, {"storeName": "acme"}, db_session=session
        )

        session.add.assert_called_once_with(integration)
        assert "shpat_secret" not in integration.access_token
        assert json.loads(cipher.decrypt(integration.access_token)) == creds
        assert integration.refresh_token is None
        assert integration.oauth_app_id is None
        assert integration.is_active is True
        assert integration.metadata_["type"] == "api_key"
        assert integration.metadata_["storeName"] == "acme"

    @pytest.mark.asyncio
    async def test_api_key_credentials_update_existing_row(self, cipher):
        existing = _integration(cipher, platform="stripe", is_active=False)
        session = mock_session(first=existing)

        integration = await IntegrationStore(cipher).upsert_api_key_credentials(
            USER_ID, "stripe", {"secretKey": "sk_test", "environment": "test"}, db_session=session
        )

        assert integration is existing
        session.add.assert_not_called()
        assert integration.is_active is True
        assert integration.refresh_token is None
        assert IntegrationStore(cipher).decrypt_api_key_credentials(integration)["secretKey"] == "sk_test"

    @pytest.mark.asyncio
    async def test_mark_disconnected_clears_tokens(self, cipher):
        integration = _integration(cipher, expires_at=utcnow() + timedelta(hours=1))
        session = mock_session(first=integration)

        await IntegrationStore(cipher).mark_disconnected(USER_ID, "facebook", db_session=session)

        assert integration.is_active is False
        assert integration.metadata_["disconnectedManually"] is True
        assert integration.access_token is None
        assert integration.refresh_token is None
        assert integration.expires_at is None
        assert "disconnectedAt" in integration.metadata_
        assert integration.oauth_app_id == uuid.UUID(APP_ID)

    @pytest.mark.asyncio
    async def test_reset_for_application(self, cipher):
        rows = [_integration(cipher), _integration(cipher, platform="instagram")]
        session = mock_session(all_rows=rows)

        count = await IntegrationStore(cipher).reset_for_application(APP_ID, db_session=session)

        assert count == 2
        for row in rows:
            assert row.access_token is None
            assert row.refresh_token is None
            assert row.is_active is False
            assert row.metadata_["resetReason"] == "oauth_app_removed"


class TestOAuthApplicationStore:
    @pytest.mark.asyncio
    async def test_get_active_application_decrypts_secret(self, cipher):
        session = mock_session(first=_oauth_app(cipher))

        app = await OAuthApplicationStore(cipher).get_active_application(USER_ID, "facebook", db_session=session)

        assert app.id == APP_ID
        assert app.client_secret == "client-secret"
        assert app.scopes == ["ads_read"]

    @pytest.mark.asyncio
    async def test_malformed_ids_return_none(self, cipher):
        session = mock_session(first=_oauth_app(cipher))
        store = OAuthApplicationStore(cipher)

        assert await store.get_active_application("not-a-uuid", "facebook", db_session=session) is None
        assert await store.get_application("not-a-uuid", db_session=session) is None
        session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_undecryptable_secret(self, cipher):
        session = mock_session(first=_oauth_app(cipher, client_secret="00:11:22"))
        with pytest.raises(CryptoError):
            await OAuthApplicationStore(cipher).get_application(APP_ID, db_session=session)

    @pytest.mark.asyncio
    async def test_create_encrypts_secret(self, cipher):
        session = mock_session(first=None)

        app = await OAuthApplicationStore(cipher).create_application(
            USER_ID, "facebook", "cid", client_secret="shh", scopes=["ads_read"], db_session=session
        )

        session.add.assert_called_once_with(app)
        assert app.client_secret != "shh"
        assert cipher.decrypt(app.client_secret) == "shh"

    @pytest.mark.asyncio
    async def test_create_duplicate_refused(self, cipher):
        session = mock_session(first=(uuid.uuid4(),))
        with pytest.raises(DuplicateApplication):
            await OAuthApplicationStore(cipher).create_application(USER_ID, "facebook", "cid", db_session=session)

    @pytest.mark.asyncio
    async def test_update_keeps_secret_when_omitted(self, cipher):
        row = _oauth_app(cipher)
        stored_secret = row.client_secret
        session = mock_session(first=row)

        await OAuthApplicationStore(cipher).update_application(
            USER_ID, APP_ID, client_id="rotated", db_session=session
        )

        assert row.client_id == "rotated"
        assert row.client_secret == stored_secret

    @pytest.mark.asyncio
    async def test_reactivate_conflicts_with_active_app(self, cipher):
        row = _oauth_app(cipher, is_active=False)
        session = mock_session(first=row)
        other_active = MagicMock()
        other_active.first.return_value = (uuid.uuid4(),)
        session.execute.side_effect = [session.execute.return_value, other_active]

        with pytest.raises(DuplicateApplication) as exc_info:
            await OAuthApplicationStore(cipher).update_application(
                USER_ID, APP_ID, client_id="cid", is_active=True, db_session=session
            )

        assert exc_info.value.status_code == 409
        assert row.is_active is False

    @pytest.mark.asyncio
    async def test_reactivate_without_conflict(self, cipher):
        row = _oauth_app(cipher, is_active=False)
        session = mock_session(first=row)
        no_active = MagicMock()
        no_active.first.return_value = None
        session.execute.side_effect = [session.execute.return_value, no_active]

        await OAuthApplicationStore(cipher).update_application(
            USER_ID, APP_ID, client_id="cid", is_active=True, db_session=session
        )

        assert row.is_active is True

    @pytest.mark.asyncio
    async def test_deactivate_cascades(self, cipher):
        row = _oauth_app(cipher)
        linked = _integration(cipher)
        session = mock_session(first=row, all_rows=[linked])

        assert await OAuthApplicationStore(cipher).deactivate_application(USER_ID, APP_ID, db_session=session)

        assert row.is_active is False
        assert linked.access_token is None
        assert linked.is_active is False

    @pytest.mark.asyncio
    async def test_deactivate_unknown(self, cipher):
        session = mock_session(first=None)
        assert await OAuthApplicationStore(cipher).deactivate_application(USER_ID, APP_ID, db_session=session) is False

    def test_describe_masks_secret(self, cipher):
        described = OAuthApplicationStore.describe(_oauth_app(cipher))
        assert described["clientSecret"] == SECRET_MASK
        assert described["isActive"] is True
        assert described["id"] == APP_ID
