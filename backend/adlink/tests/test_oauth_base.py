"""
Tests for the OAuth attempt state machine and token response parsing.
"""

import pytest

from adlink.constants.providers import OAuthProvider
from adlink.integrations.google_ads.client import GoogleAdsOAuthClient
from adlink.integrations.meta_ads.client import MetaAdsOAuthClient
from adlink.integrations.oauth_base import (
    InvalidStageTransition,
    OAuthAttempt,
    OAuthFlowStage,
    ProviderErrorPayload,
    TokenGrant,
)


class TestOAuthAttempt:

    def test_google_single_hop(self):
        attempt = OAuthAttempt(provider=OAuthProvider.GOOGLE, user_id="u1")

        attempt.advance(OAuthFlowStage.AUTHORIZING)
        attempt.advance(OAuthFlowStage.AUTHENTICATED)

        assert attempt.is_authenticated

    def test_google_has_no_short_lived_stage(self):
        attempt = OAuthAttempt(provider=OAuthProvider.GOOGLE, stage=OAuthFlowStage.AUTHORIZING)

        with pytest.raises(InvalidStageTransition):
            attempt.advance(OAuthFlowStage.SHORT_LIVED)

    def test_meta_requires_short_lived_hop(self):
        attempt = OAuthAttempt(provider=OAuthProvider.META, stage=OAuthFlowStage.AUTHORIZING)

        with pytest.raises(InvalidStageTransition):
            attempt.advance(OAuthFlowStage.AUTHENTICATED)

        attempt.advance(OAuthFlowStage.SHORT_LIVED)
        attempt.advance(OAuthFlowStage.AUTHENTICATED)
        assert attempt.is_authenticated

    def test_authenticated_is_terminal(self):
        attempt = OAuthAttempt(provider=OAuthProvider.META, stage=OAuthFlowStage.AUTHENTICATED)

        with pytest.raises(InvalidStageTransition):
            attempt.advance(OAuthFlowStage.AUTHORIZING)


class TestParseTokenResponse:

    @pytest.fixture
    def google(self, oauth_settings, http_client):
        return GoogleAdsOAuthClient(oauth_settings.google, http_client)

    @pytest.fixture
    def meta(self, oauth_settings, http_client):
        return MetaAdsOAuthClient(oauth_settings.meta, http_client)

    def test_google_grant(self, google):
        parsed = google.parse_token_response(200, {
            "access_token": "ya29.a",
            "refresh_token": "1//r",
            "expires_in": "3599",
            "scope": "scope-a scope-b",
        })

        assert isinstance(parsed, TokenGrant)
        assert parsed.expires_in == 3599
        assert parsed.scopes == ("scope-a", "scope-b")
        assert "1//r" not in repr(parsed)

    def test_google_error(self, google):
        parsed = google.parse_token_response(400, {"error": "invalid_grant", "error_description": "Bad"})

        assert isinstance(parsed, ProviderErrorPayload)
        assert parsed.code == "invalid_grant"

    def test_meta_error(self, meta):
        parsed = meta.parse_token_response(400, {"error": {"code": 190, "message": "expired"}})

        assert isinstance(parsed, ProviderErrorPayload)
        assert parsed.code == "190"

    def test_missing_access_token(self, meta):
        parsed = meta.parse_token_response(200, {"token_type": "bearer"})

        assert isinstance(parsed, ProviderErrorPayload)
        assert parsed.code == "missing_access_token"
