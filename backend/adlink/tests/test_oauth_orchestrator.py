"""
OAuth orchestrator tests.

Tests cover:
- initiate: identity, rate limiting, origin resolution, state creation
- callback: Google single hop, Meta two hops, state cleanup policy
- revoke: best-effort remote revoke and local delete
- app redirect construction
"""

from datetime import timedelta
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from sqlalchemy import func, select

from adlink.config.oauth_settings import OAuthSettings
from adlink.constants.providers import OAuthProvider
from adlink.integrations.google_ads.client import GOOGLE_REVOKE_URL, GOOGLE_TOKEN_URL
from adlink.models.base import ensure_utc
from adlink.models.oauth_state import OAuthState, STATE_TTL_SECONDS
from adlink.models.platform_credential import PlatformCredential
from adlink.platform.errors import ConfigError, ErrorCode, OAuthError
from adlink.platform.secrets import decrypt_token
from adlink.services.oauth_orchestrator import (
    CallbackResult,
    OAuthOrchestrator,
    resolve_origin,
)

ORIGIN = "https://app.example.com"
META_TOKEN_URL = "https://graph.facebook.com/v21.0/oauth/access_token"
META_ME_URL = "https://graph.facebook.com/v21.0/me"
GOOGLE_CODE = "4/0AX4XfWh-valid-code"
META_CODE = "AQD-valid-meta-code"


@pytest.fixture
def orchestrator(db_session, oauth_settings, verifier, http_client, clock):
    return OAuthOrchestrator(db_session, oauth_settings, verifier, http_client, clock=clock)


def _state_from(auth_url: str) -> str:
    return parse_qs(urlsplit(auth_url).query)["state"][0]


def _state_count(db_session) -> int:
    return db_session.execute(select(func.count()).select_from(OAuthState)).scalar()


def _credential(db_session, user_id, provider):
    return db_session.execute(
        select(PlatformCredential)
        .where(PlatformCredential.user_id == user_id)
        .where(PlatformCredential.provider == provider.value)
    ).scalar_one_or_none()


def _stub_google_exchange(provider_stub, refresh_token="1//refresh-token"):
    payload = {
        "access_token": "ya29.access",
        "expires_in": 3599,
        "scope": "https://www.googleapis.com/auth/adwords",
        "token_type": "Bearer",
    }
    if refresh_token:
        payload["refresh_token"] = refresh_token
    provider_stub.add("POST", GOOGLE_TOKEN_URL, json=payload)


def _stub_meta_exchange(provider_stub):
    provider_stub.add("GET", META_TOKEN_URL, json={"access_token": "B", "expires_in": 5184000},
                      params={"grant_type": "fb_exchange_token"})
    provider_stub.add("GET", META_TOKEN_URL, json={"access_token": "A"})
    provider_stub.add("GET", META_ME_URL, json={"id": "10150", "name": "Jordan"})


# =============================================================================
# Origin resolution
# =============================================================================

class TestResolveOrigin:

    @pytest.mark.parametrize("explicit, origin_header, referer, expected", [
        ("https://app.example.com/", None, None, "https://app.example.com"),
        (None, "https://app.example.com", None, "https://app.example.com"),
        (None, None, "https://app.example.com/settings/integrations?tab=ads", "https://app.example.com"),
        ("https://a.example.com", "https://b.example.com", None, "https://a.example.com"),
        ("http://localhost:5173", None, None, "http://localhost:5173"),
    ])
    def test_priority_and_normalisation(self, explicit, origin_header, referer, expected):
        assert resolve_origin(explicit, origin_header, referer) == expected

    def test_missing(self):
        with pytest.raises(OAuthError) as exc_info:
            resolve_origin(None, "", "not a url")
        assert exc_info.value.error_code == ErrorCode.MISSING_ORIGIN

    def test_non_http_origin(self):
        with pytest.raises(OAuthError) as exc_info:
            resolve_origin("javascript:alert(1)")
        assert exc_info.value.error_code == ErrorCode.INVALID_ORIGIN


# =============================================================================
# Initiate
# =============================================================================

class TestInitiate:

    def test_google_url_and_state(self, orchestrator, db_session):
        auth_url = orchestrator.initiate("valid-token-u1", OAuthProvider.GOOGLE, origin_hint=ORIGIN + "/")

        params = parse_qs(urlsplit(auth_url).query)
        assert params["prompt"] == ["consent"]
        assert params["access_type"] == ["offline"]
        assert params["redirect_uri"] == [f"{ORIGIN}/oauth/callback"]

        state = db_session.get(OAuthState, params["state"][0])
        assert state.user_id == "u1"
        assert state.provider == "google"
        assert state.redirect_uri == f"{ORIGIN}/oauth/callback"

    def test_meta_redirect_path(self, orchestrator):
        auth_url = orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_header=ORIGIN)

        params = parse_qs(urlsplit(auth_url).query)
        assert params["redirect_uri"] == [f"{ORIGIN}/oauth/meta/callback"]

    @pytest.mark.parametrize("bearer_token", [None, "", "forged-token"])
    def test_unauthorized(self, orchestrator, db_session, bearer_token):
        with pytest.raises(OAuthError) as exc_info:
            orchestrator.initiate(bearer_token, OAuthProvider.GOOGLE, origin_hint=ORIGIN)

        assert exc_info.value.error_code == ErrorCode.UNAUTHORIZED
        assert _state_count(db_session) == 0

    def test_missing_origin_creates_no_state(self, orchestrator, db_session):
        with pytest.raises(OAuthError) as exc_info:
            orchestrator.initiate("valid-token-u1", OAuthProvider.META)

        assert exc_info.value.error_code == ErrorCode.MISSING_ORIGIN
        assert _state_count(db_session) == 0

    def test_origin_allow_list(self, db_session, oauth_settings, verifier, http_client, clock):
        settings = OAuthSettings(
            google=oauth_settings.google,
            meta=oauth_settings.meta,
            app_base_url=oauth_settings.app_base_url,
            allowed_origins=(ORIGIN,),
        )
        orchestrator = OAuthOrchestrator(db_session, settings, verifier, http_client, clock=clock)

        with pytest.raises(OAuthError) as exc_info:
            orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint="https://evil.example")
        assert exc_info.value.error_code == ErrorCode.INVALID_ORIGIN

        assert orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN)

    @pytest.mark.parametrize("provider", [OAuthProvider.GOOGLE, OAuthProvider.META])
    def test_empty_allow_list_accepts_any_http_origin(self, orchestrator, provider):
        url = orchestrator.initiate("valid-token-u1", provider, origin_hint="https://preview.example.net/")

        redirect_uri = parse_qs(urlsplit(url).query)["redirect_uri"][0]
        assert redirect_uri.startswith("https://preview.example.net/oauth/")

    def test_missing_app_credentials(self, db_session, verifier, http_client, clock):
        orchestrator = OAuthOrchestrator(db_session, OAuthSettings(), verifier, http_client, clock=clock)

        with pytest.raises(ConfigError):
            orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN)
        assert _state_count(db_session) == 0

    def test_sixth_initiate_is_rate_limited(self, orchestrator, clock):
        for _ in range(5):
            assert orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN)
            clock.advance(seconds=1)

        with pytest.raises(OAuthError) as exc_info:
            orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN)
        assert exc_info.value.error_code == ErrorCode.RATE_LIMITED
        assert exc_info.value.http_status == 429

        # Other provider and other user are counted separately
        assert orchestrator.initiate("valid-token-u1", OAuthProvider.GOOGLE, origin_hint=ORIGIN)
        assert orchestrator.initiate("valid-token-u2", OAuthProvider.META, origin_hint=ORIGIN)

        clock.advance(seconds=60)
        assert orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN)


# =============================================================================
# Callback
# =============================================================================

class TestGoogleCallback:

    @pytest.mark.asyncio
    async def test_happy_path(self, orchestrator, provider_stub, db_session):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.GOOGLE, origin_hint=ORIGIN))
        _stub_google_exchange(provider_stub)

        result = await orchestrator.callback(OAuthProvider.GOOGLE, GOOGLE_CODE, state)

        assert result == CallbackResult(user_id="u1", provider=OAuthProvider.GOOGLE)
        credential = _credential(db_session, "u1", OAuthProvider.GOOGLE)
        assert credential.refresh_token == "1//refresh-token"
        assert db_session.get(OAuthState, state) is None

        sent = provider_stub.requests_to(GOOGLE_TOKEN_URL)[0]
        form = parse_qs(sent.content.decode())
        assert form["redirect_uri"] == [f"{ORIGIN}/oauth/callback"]

    @pytest.mark.asyncio
    async def test_no_refresh_token(self, orchestrator, provider_stub, db_session):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.GOOGLE, origin_hint=ORIGIN))
        _stub_google_exchange(provider_stub, refresh_token=None)

        with pytest.raises(OAuthError) as exc_info:
            await orchestrator.callback(OAuthProvider.GOOGLE, GOOGLE_CODE, state)

        assert exc_info.value.error_code == ErrorCode.NO_REFRESH_TOKEN
        assert _credential(db_session, "u1", OAuthProvider.GOOGLE) is None
        # Terminal failure after consumption cleans up the state
        assert db_session.get(OAuthState, state) is None

    @pytest.mark.asyncio
    async def test_reused_state(self, orchestrator, provider_stub):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.GOOGLE, origin_hint=ORIGIN))
        _stub_google_exchange(provider_stub)
        await orchestrator.callback(OAuthProvider.GOOGLE, GOOGLE_CODE, state)

        with pytest.raises(OAuthError) as exc_info:
            await orchestrator.callback(OAuthProvider.GOOGLE, GOOGLE_CODE, state)
        assert exc_info.value.error_code == ErrorCode.STATE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_provider_unavailable_keeps_state(self, orchestrator, provider_stub, db_session):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.GOOGLE, origin_hint=ORIGIN))
        provider_stub.add("POST", GOOGLE_TOKEN_URL, exc=httpx.ConnectError("down"))

        with pytest.raises(OAuthError) as exc_info:
            await orchestrator.callback(OAuthProvider.GOOGLE, GOOGLE_CODE, state)

        assert exc_info.value.error_code == ErrorCode.PROVIDER_UNAVAILABLE
        assert db_session.get(OAuthState, state) is not None

        # Retry of the same callback succeeds once the provider is back
        provider_stub.routes.clear()
        _stub_google_exchange(provider_stub)
        result = await orchestrator.callback(OAuthProvider.GOOGLE, GOOGLE_CODE, state)
        assert result.user_id == "u1"


class TestMetaCallback:

    @pytest.mark.asyncio
    async def test_two_hop_exchange(self, orchestrator, provider_stub, db_session, clock):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN))
        _stub_meta_exchange(provider_stub)

        result = await orchestrator.callback(OAuthProvider.META, META_CODE, state)

        assert result.user_id == "u1"
        credential = _credential(db_session, "u1", OAuthProvider.META)
        assert decrypt_token(credential.encrypted_access_token) == "B"
        assert ensure_utc(credential.expires_at) == clock.now + timedelta(seconds=5184000)
        assert credential.provider_user_id == "10150"
        assert credential.refresh_token is None
        assert db_session.get(OAuthState, state) is None

    @pytest.mark.asyncio
    async def test_identity_failure_does_not_abort(self, orchestrator, provider_stub, db_session):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN))
        provider_stub.add("GET", META_TOKEN_URL, json={"access_token": "B"},
                          params={"grant_type": "fb_exchange_token"})
        provider_stub.add("GET", META_TOKEN_URL, json={"access_token": "A"})
        provider_stub.add("GET", META_ME_URL, status_code=500, content=b"")

        await orchestrator.callback(OAuthProvider.META, META_CODE, state)

        credential = _credential(db_session, "u1", OAuthProvider.META)
        assert credential.provider_user_id is None
        assert decrypt_token(credential.encrypted_access_token) == "B"

    @pytest.mark.asyncio
    async def test_provider_mismatch_leaves_state(self, orchestrator, provider_stub, db_session):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN))

        with pytest.raises(OAuthError) as exc_info:
            await orchestrator.callback(OAuthProvider.GOOGLE, GOOGLE_CODE, state)

        assert exc_info.value.error_code == ErrorCode.STATE_PROVIDER_MISMATCH
        assert db_session.get(OAuthState, state) is not None
        assert provider_stub.requests == []

    @pytest.mark.asyncio
    async def test_expired_state_is_removed(self, orchestrator, provider_stub, db_session, clock):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN))
        clock.advance(seconds=STATE_TTL_SECONDS + 1)

        with pytest.raises(OAuthError) as exc_info:
            await orchestrator.callback(OAuthProvider.META, META_CODE, state)

        assert exc_info.value.error_code == ErrorCode.STATE_EXPIRED
        assert db_session.get(OAuthState, state) is None
        assert provider_stub.requests == []


class TestCallbackValidation:

    @pytest.mark.asyncio
    async def test_provider_error_param(self, orchestrator, provider_stub, db_session):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN))

        with pytest.raises(OAuthError) as exc_info:
            await orchestrator.callback(OAuthProvider.META, None, state, provider_error="access_denied")

        assert exc_info.value.error_code == ErrorCode.OAUTH_DENIED
        assert provider_stub.requests == []
        assert db_session.get(OAuthState, state) is not None

    @pytest.mark.asyncio
    async def test_short_state(self, orchestrator, provider_stub):
        with pytest.raises(OAuthError) as exc_info:
            await orchestrator.callback(OAuthProvider.META, META_CODE, "short")

        assert exc_info.value.error_code == ErrorCode.INVALID_STATE
        assert provider_stub.requests == []

    @pytest.mark.asyncio
    async def test_empty_code(self, orchestrator, db_session):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN))

        with pytest.raises(OAuthError) as exc_info:
            await orchestrator.callback(OAuthProvider.META, "", state)

        assert exc_info.value.error_code == ErrorCode.INVALID_CODE
        # Rejected before consumption
        assert db_session.get(OAuthState, state) is not None


# =============================================================================
# Revoke
# =============================================================================

class TestRevoke:

    @pytest.mark.asyncio
    async def test_google_revoke_and_delete(self, orchestrator, provider_stub, db_session):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.GOOGLE, origin_hint=ORIGIN))
        _stub_google_exchange(provider_stub)
        await orchestrator.callback(OAuthProvider.GOOGLE, GOOGLE_CODE, state)
        provider_stub.add("POST", GOOGLE_REVOKE_URL, json={})

        assert await orchestrator.revoke("valid-token-u1", OAuthProvider.GOOGLE) is True

        assert _credential(db_session, "u1", OAuthProvider.GOOGLE) is None
        revoke_call = provider_stub.requests_to(GOOGLE_REVOKE_URL)[0]
        assert parse_qs(revoke_call.content.decode())["token"] == ["1//refresh-token"]

    @pytest.mark.asyncio
    async def test_remote_failure_still_deletes(self, orchestrator, provider_stub, db_session):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.GOOGLE, origin_hint=ORIGIN))
        _stub_google_exchange(provider_stub)
        await orchestrator.callback(OAuthProvider.GOOGLE, GOOGLE_CODE, state)
        provider_stub.add("POST", GOOGLE_REVOKE_URL, exc=httpx.ConnectError("down"))

        assert await orchestrator.revoke("valid-token-u1", OAuthProvider.GOOGLE) is True
        assert _credential(db_session, "u1", OAuthProvider.GOOGLE) is None

    @pytest.mark.asyncio
    async def test_meta_revoke_is_local(self, orchestrator, provider_stub, db_session):
        state = _state_from(orchestrator.initiate("valid-token-u1", OAuthProvider.META, origin_hint=ORIGIN))
        _stub_meta_exchange(provider_stub)
        await orchestrator.callback(OAuthProvider.META, META_CODE, state)
        calls_before = len(provider_stub.requests)

        assert await orchestrator.revoke("valid-token-u1", OAuthProvider.META) is True

        assert len(provider_stub.requests) == calls_before
        assert _credential(db_session, "u1", OAuthProvider.META) is None

    @pytest.mark.asyncio
    async def test_nothing_connected(self, orchestrator, provider_stub):
        assert await orchestrator.revoke("valid-token-u1", OAuthProvider.GOOGLE) is False
        assert provider_stub.requests == []

    @pytest.mark.asyncio
    async def test_unauthorized(self, orchestrator):
        with pytest.raises(OAuthError) as exc_info:
            await orchestrator.revoke(None, OAuthProvider.META)
        assert exc_info.value.error_code == ErrorCode.UNAUTHORIZED


# =============================================================================
# App redirect
# =============================================================================

class TestBuildAppRedirect:

    def test_success_flags(self, orchestrator):
        url = orchestrator.build_app_redirect(
            OAuthProvider.META, CallbackResult(user_id="u1", provider=OAuthProvider.META)
        )

        assert url == "https://app.example.com/app/integrations?oauth=success&provider=meta&uid=u1"

    def test_failure_flag_only(self, orchestrator):
        url = orchestrator.build_app_redirect(OAuthProvider.GOOGLE)

        assert url == "https://app.example.com/app/integrations?error=oauth_failed&provider=google"

    def test_requires_app_base_url(self, db_session, verifier, http_client):
        orchestrator = OAuthOrchestrator(db_session, OAuthSettings(), verifier, http_client)

        with pytest.raises(ConfigError):
            orchestrator.build_app_redirect(OAuthProvider.GOOGLE)
