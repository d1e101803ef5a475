"""
Tests for the token-response normalisers.
"""

import pytest

from integrations.normalizers import (
    NormalizedTokens,
    normalize_standard,
    normalize_tiktok_business,
    normalize_wrapped,
    provider_error,
)


class TestNormalizeStandard:
    @pytest.mark.parametrize(
        "raw",
        [
            {"access_token": "A", "refresh_token": "R", "expires_in": 3600, "token_type": "bearer"},
            {"accessToken": "A", "refreshToken": "R", "expiresIn": "3600", "tokenType": "Bearer"},
            {"AccessToken": "A", "RefreshToken": "R", "ExpiresIn": 3600.0, "TokenType": "BEARER"},
        ],
    )
    def test_casing_variants(self, raw):
        tokens = normalize_standard(raw)
        assert tokens.access_token == "A"
        assert tokens.refresh_token == "R"
        assert tokens.expires_in == 3600
        assert tokens.token_type == "Bearer"

    def test_scope_list_and_comma_string(self):
        assert normalize_standard({"access_token": "A", "scope": ["a", "b"]}).scope == "a b"
        assert normalize_standard({"access_token": "A", "scope": "a,b"}).scope == "a b"

    def test_missing_fields_are_none(self):
        tokens = normalize_standard({"access_token": "A"})
        assert tokens == NormalizedTokens(access_token="A")

    @pytest.mark.parametrize(
        "raw",
        [None, [], "text", 42, {"access_token": None}, {"expires_in": "soon"}, {"expires_in": float("inf")},
         {"expires_in": -5}, {"expires_in": True}, {"scope": {"weird": 1}}],
    )
    def test_never_raises(self, raw):
        tokens = normalize_standard(raw)
        assert tokens.access_token is None
        assert tokens.expires_in is None


class TestProviderShapes:
    def test_wrapped_data(self):
        tokens = normalize_wrapped({"data": {"access_token": "A", "expires_in": 86400}, "scope": "x"})
        assert tokens.access_token == "A"
        assert tokens.expires_in == 86400
        assert tokens.scope == "x"

    def test_wrapped_falls_back_to_top_level(self):
        assert normalize_wrapped({"access_token": "A"}).access_token == "A"

    def test_tiktok_business_success(self):
        raw = {"code": 0, "message": "OK", "data": {"access_token": "A", "scope": [1, 2]}}
        tokens = normalize_tiktok_business(raw)
        assert tokens.access_token == "A"
        assert tokens.scope == "1 2"

    def test_tiktok_business_error_code(self):
        raw = {"code": 40001, "message": "bad", "data": {"access_token": "A"}}
        assert normalize_tiktok_business(raw).access_token is None
        assert provider_error(raw) == "40001: bad"


class TestHelpers:
    def test_fallback_refresh_token(self):
        assert NormalizedTokens(access_token="A").with_fallback_refresh_token("old").refresh_token == "old"
        rotated = NormalizedTokens(access_token="A", refresh_token="new")
        assert rotated.with_fallback_refresh_token("old").refresh_token == "new"

    def test_provider_error(self):
        assert provider_error({"error": "invalid_grant", "error_description": "expired"}) == "invalid_grant: expired"
        assert provider_error({"access_token": "A"}) is None
        assert provider_error(["not", "a", "dict"]) is None
