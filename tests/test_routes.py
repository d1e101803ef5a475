"""
HTTP-level tests for the integration and OAuth-app routes, with the
service replaced through FastAPI dependency overrides.
"""

import json
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from auth.dependencies import get_current_user_id
from auth.tokens import create_session_token
from config.settings import config
from integrations.authorization import AuthorizationRequest
from integrations.dependencies import get_integration_service
from integrations.errors import ConfigurationMissing, ExchangeRejected, InvalidState
from integrations.integration_store import IntegrationStore
from integrations.registry import PlatformRegistry
from integrations.service import IntegrationService
from integrations.state import OAuthState
from main import create_app
from tests.helpers import USER_ID, mock_session


@pytest.fixture
def service():
    service = MagicMock()
    service.registry = PlatformRegistry()
    service.begin_connect = AsyncMock(
        return_value=AuthorizationRequest(auth_url="https://provider.test/auth?state=s", state="s")
    )
    service.complete_connect = AsyncMock(
        return_value=OAuthState(user_id=USER_ID, platform="twitter", oauth_app_id="app", timestamp=0)
    )
    service.status = AsyncMock(return_value=[])
    service.disconnect = AsyncMock(return_value=True)
    service.apps = MagicMock()
    service.apps.list_applications = AsyncMock(return_value=[])
    service.apps.deactivate_application = AsyncMock(return_value=False)
    return service


@pytest.fixture
def app(service):
    app = create_app()
    app.dependency_overrides[get_integration_service] = lambda: service
    return app


@pytest.fixture
def client(app):
    app.dependency_overrides[get_current_user_id] = lambda: USER_ID
    return TestClient(app)


def _redirect_query(response):
    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith(config.dashboard_url + "?")
    return {k: v[0] for k, v in parse_qs(urlsplit(location).query).items()}


class TestIntegrationRoutes:
    def test_connect(self, client, service):
        resp = client.post("/api/integrations/connect", json={"platform": "twitter"})
        assert resp.status_code == 200
        assert resp.json() == {"authUrl": "https://provider.test/auth?state=s"}
        service.begin_connect.assert_awaited_once_with(USER_ID, "twitter")

    def test_connect_without_app(self, client, service):
        service.begin_connect.side_effect = ConfigurationMissing("none")
        resp = client.post("/api/integrations/connect", json={"platform": "facebook"})
        assert resp.status_code == 400
        assert resp.json() == {"error": ConfigurationMissing.default_user_message}

    def test_connect_requires_session(self, app):
        resp = TestClient(app).post("/api/integrations/connect", json={"platform": "twitter"})
        assert resp.status_code == 401

    def test_connect_with_session_cookie(self, app, service):
        token = create_session_token(USER_ID, config.session_secret, 60)
        client = TestClient(app, cookies={config.session_cookie_name: token})
        resp = client.post("/api/integrations/connect", json={"platform": "twitter"})
        assert resp.status_code == 200
        service.begin_connect.assert_awaited_once_with(USER_ID, "twitter")

    def test_callback_success(self, client, service):
        resp = client.get(
            "/api/integrations/callback",
            params={"code": "c", "state": "s"},
            follow_redirects=False,
        )
        assert _redirect_query(resp) == {"tab": "integrations", "success": "twitter"}
        service.complete_connect.assert_awaited_once_with("c", "s")

    def test_callback_provider_error(self, client, service):
        resp = client.get(
            "/api/integrations/callback",
            params={"error": "access_denied", "error_description": "User denied"},
            follow_redirects=False,
        )
        assert _redirect_query(resp)["error"] == "User denied"
        service.complete_connect.assert_not_awaited()

    def test_callback_invalid_state(self, client, service):
        service.complete_connect.side_effect = InvalidState("bad")
        resp = client.get(
            "/api/integrations/callback", params={"code": "c", "state": "s"}, follow_redirects=False
        )
        assert _redirect_query(resp)["error"] == InvalidState.default_user_message

    def test_callback_exchange_rejected(self, client, service):
        service.complete_connect.side_effect = ExchangeRejected("HTTP 400", platform="google", status=400)
        resp = client.get(
            "/api/integrations/callback", params={"code": "c", "state": "s"}, follow_redirects=False
        )
        assert _redirect_query(resp)["error"] == ExchangeRejected.default_user_message

    def test_callback_missing_code(self, client):
        resp = client.get("/api/integrations/callback", params={"state": "s"}, follow_redirects=False)
        assert "error" in _redirect_query(resp)

    def test_status(self, client, service):
        resp = client.get("/api/integrations/status")
        assert resp.json() == {"platforms": []}
        service.status.assert_awaited_once_with(USER_ID)

    def test_disconnect_unknown(self, client, service):
        service.disconnect.return_value = False
        resp = client.post("/api/integrations/disconnect", json={"platform": "google"})
        assert resp.status_code == 404

    def test_platforms_is_public(self, app):
        resp = TestClient(app).get("/api/integrations/platforms")
        assert resp.status_code == 200
        assert "googleAds" in {p["platform"] for p in resp.json()}


class TestApiKeyRoutes:
    @pytest.fixture
    def session(self):
        return mock_session(first=None)

    @pytest.fixture
    def api_key_client(self, cipher, session):
        real = IntegrationService(
            registry=PlatformRegistry(),
            codec=MagicMock(),
            app_store=MagicMock(),
            integration_store=IntegrationStore(cipher, session_factory=lambda: session),
            builder=MagicMock(),
            exchanger=MagicMock(),
            refresher=MagicMock(),
            revoker=MagicMock(),
            default_redirect_uri=config.default_redirect_uri,
        )
        app = create_app()
        app.dependency_overrides[get_integration_service] = lambda: real
        app.dependency_overrides[get_current_user_id] = lambda: USER_ID
        return TestClient(app)

    def test_stores_encrypted_credentials(self, api_key_client, session, cipher):
        resp = api_key_client.post(
            "/api/integrations/api-key",
            json={"platform": "twilio", "credentials": {"accountSid": "AC123", "authToken": "tw-secret"}},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["metadata"]["type"] == "api_key"
        assert body["metadata"]["credentials"] == {"accountSid": "AC123"}
        assert "tw-secret" not in resp.text

        stored = session.add.call_args.args[0]
        assert "tw-secret" not in stored.access_token
        assert json.loads(cipher.decrypt(stored.access_token)) == {
            "accountSid": "AC123",
            "authToken": "tw-secret",
        }
        session.commit.assert_awaited_once()

    def test_missing_required_fields(self, api_key_client, session):
        resp = api_key_client.post(
            "/api/integrations/api-key",
            json={"platform": "shopify", "credentials": {"storeName": "acme"}},
        )

        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing required fields: Admin API Access Token"}
        session.add.assert_not_called()

    def test_oauth_platform_rejected(self, api_key_client):
        resp = api_key_client.post(
            "/api/integrations/api-key",
            json={"platform": "google", "credentials": {"apiKey": "k"}},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Platform does not use API key authentication"}

    def test_requires_session(self, app):
        resp = TestClient(app).post(
            "/api/integrations/api-key",
            json={"platform": "segment", "credentials": {"writeKey": "w"}},
        )
        assert resp.status_code == 401

    def test_platform_forms_are_public(self, api_key_client):
        resp = api_key_client.get("/api/integrations/api-key/platforms")
        assert resp.status_code == 200
        assert "klaviyo" in {p["platform"] for p in resp.json()}


class TestOAuthAppRoutes:
    def test_create_unsupported_platform(self, client):
        resp = client.post(
            "/api/settings/oauth-apps", json={"platform": "myspace", "clientId": "cid"}
        )
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_delete_unknown(self, client):
        resp = client.delete("/api/settings/oauth-apps/1234")
        assert resp.status_code == 404

    def test_list(self, client, service):
        assert client.get("/api/settings/oauth-apps").json() == []
        service.apps.list_applications.assert_awaited_once_with(USER_ID)


def test_health(app):
    assert TestClient(app).get("/api/health").json() == {"status": "ok"}
