"""
OAuth orchestration for connecting ad platforms.

Drives one authorization attempt end to end:
- initiate: identity -> rate limit -> origin -> state -> authorization URL
- callback: format checks -> consume state -> provider exchange chain ->
  store credential -> delete state
- revoke: identity -> best-effort remote revoke -> local delete

Each request builds its own orchestrator from explicit settings and an
injected HTTP client; no state is kept in process memory between requests.

State cleanup after a callback consumed the state:
- success and terminal failures delete it
- PROVIDER_UNAVAILABLE keeps it so the client can re-post the callback
  while the state is still valid
- STATE_EXPIRED deletes the stale record; STATE_PROVIDER_MISMATCH leaves it

SECURITY:
- State values, codes and tokens are never logged
- App redirects carry opaque flags only
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import urlencode, urlsplit

import httpx
from sqlalchemy.orm import Session

from adlink.auth.identity import IdentityVerifier
from adlink.config.oauth_settings import OAuthSettings
from adlink.constants.providers import CALLBACK_PATHS, OAuthProvider, initiate_action
from adlink.integrations import build_provider_client
from adlink.integrations.google_ads import GoogleAdsOAuthClient
from adlink.integrations.meta_ads import META_SCOPES, MetaAdsOAuthClient
from adlink.integrations.oauth_base import OAuthAttempt, OAuthFlowStage
from adlink.platform.errors import (
    ErrorCode,
    OAuthDeniedError,
    OAuthError,
    OriginError,
    RateLimitedError,
    StateError,
    UnauthorizedError,
)
from adlink.services.credential_store import PlatformCredentialStore
from adlink.services.oauth_state_store import (
    OAuthStateStore,
    validate_code_format,
    validate_state_format,
)
from adlink.services.rate_limiter import OAUTH_INITIATE_LIMIT, check_rate_limit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallbackResult:
    user_id: str
    provider: OAuthProvider


def _origin_from_referer(referer: Optional[str]) -> Optional[str]:
    if not referer:
        return None
    parts = urlsplit(referer.strip())
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def resolve_origin(
    explicit: Optional[str],
    origin_header: Optional[str] = None,
    referer_header: Optional[str] = None,
) -> str:
    """
    Pick the callback origin for an initiate request.

    Priority: explicit body value, Origin header, Referer (reduced to
    scheme://host). One trailing slash is stripped.

    Raises:
        OriginError: MISSING_ORIGIN if nothing usable was supplied,
            INVALID_ORIGIN if the value is not an http(s) origin
    """
    origin = None
    for candidate in (explicit, origin_header):
        if candidate and candidate.strip():
            origin = candidate.strip()
            break
    else:
        origin = _origin_from_referer(referer_header)

    if not origin:
        raise OriginError("No origin in body, Origin or Referer", ErrorCode.MISSING_ORIGIN)

    if origin.endswith("/"):
        origin = origin[:-1]

    parts = urlsplit(origin)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise OriginError("Origin is not an http(s) URL", ErrorCode.INVALID_ORIGIN)

    return origin


class OAuthOrchestrator:
    """Coordinates the OAuth flows for one request."""

    def __init__(
        self,
        db: Session,
        settings: OAuthSettings,
        verifier: IdentityVerifier,
        http_client: httpx.AsyncClient,
        clock: Optional[Callable[[], datetime]] = None,
        credentials: Optional[PlatformCredentialStore] = None,
    ):
        self.db = db
        self.settings = settings
        self.verifier = verifier
        self.http = http_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.states = OAuthStateStore(db, clock=self._clock)
        self.credentials = credentials or PlatformCredentialStore(db)

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    def _authenticate(self, bearer_token: Optional[str]) -> str:
        if not bearer_token:
            raise UnauthorizedError("Missing bearer token")
        return self.verifier.verify(bearer_token)

    # =========================================================================
    # Initiate
    # =========================================================================

    def initiate(
        self,
        bearer_token: Optional[str],
        provider: OAuthProvider,
        origin_hint: Optional[str] = None,
        origin_header: Optional[str] = None,
        referer_header: Optional[str] = None,
    ) -> str:
        """
        Start an authorization attempt.

        Returns:
            The provider authorization URL to send the browser to

        Raises:
            UnauthorizedError, RateLimitedError, OriginError, ConfigError
        """
        provider = OAuthProvider(provider)
        user_id = self._authenticate(bearer_token)

        if not check_rate_limit(
            self.db,
            user_id,
            initiate_action(provider),
            OAUTH_INITIATE_LIMIT,
            now_ms=self._now_ms(),
        ):
            raise RateLimitedError()

        origin = resolve_origin(origin_hint, origin_header, referer_header)
        if not self.settings.is_origin_allowed(origin):
            logger.warning(
                "OAuth initiate from origin outside allow-list",
                extra={"user_id": user_id, "provider": provider.value},
            )
            raise OriginError("Origin not in OAUTH_ALLOWED_ORIGINS", ErrorCode.INVALID_ORIGIN)

        redirect_uri = f"{origin}{CALLBACK_PATHS[provider]}"

        client = build_provider_client(provider, self.settings, self.http)
        # Fail on missing app credentials before a state is persisted
        client.config.require_credentials()

        attempt = OAuthAttempt(provider=provider, user_id=user_id)
        state = self.states.create(user_id, provider, redirect_uri)
        auth_url = client.build_authorization_url(redirect_uri, state)
        attempt.advance(OAuthFlowStage.AUTHORIZING)

        logger.info(
            "OAuth flow initiated",
            extra={
                "user_id": user_id,
                "provider": provider.value,
                "stage": attempt.stage.value,
                "origin": origin,
            },
        )
        return auth_url

    # =========================================================================
    # Callback
    # =========================================================================

    async def callback(
        self,
        provider: OAuthProvider,
        code: Optional[str],
        state: Optional[str],
        provider_error: Optional[str] = None,
    ) -> CallbackResult:
        """
        Complete an authorization attempt.

        Raises:
            OAuthDeniedError: The provider reported an error parameter
            StateError / InvalidCodeError: Format or state validation failed
            ProviderError and subclasses: Exchange failed
        """
        provider = OAuthProvider(provider)

        if provider_error:
            logger.warning(
                "Provider returned an authorization error",
                extra={"provider": provider.value, "has_state": bool(state)},
            )
            raise OAuthDeniedError()

        validate_state_format(state)
        validate_code_format(code)

        try:
            record = self.states.consume(state, expected_provider=provider)
        except StateError as e:
            if e.error_code == ErrorCode.STATE_EXPIRED:
                self.states.delete(state)
            raise

        # Copied out before any commit; the row is deleted at the end
        user_id = record.user_id
        redirect_uri = record.redirect_uri

        attempt = OAuthAttempt(
            provider=provider,
            user_id=user_id,
            stage=OAuthFlowStage.AUTHORIZING,
        )

        try:
            if provider == OAuthProvider.GOOGLE:
                await self._complete_google(attempt, code, redirect_uri)
            else:
                await self._complete_meta(attempt, code, redirect_uri)
        except OAuthError as e:
            self._settle_failed_attempt(state, attempt, e)
            raise
        except Exception:
            self.db.rollback()
            self.states.delete(state)
            raise

        self.states.delete(state)

        logger.info(
            "OAuth flow completed",
            extra={
                "user_id": user_id,
                "provider": provider.value,
                "stage": attempt.stage.value,
            },
        )
        return CallbackResult(user_id=user_id, provider=provider)

    def _settle_failed_attempt(self, state: str, attempt: OAuthAttempt, error: OAuthError) -> None:
        logger.warning(
            "OAuth callback failed",
            extra={
                "user_id": attempt.user_id,
                "provider": attempt.provider.value,
                "stage": attempt.stage.value,
                "error_code": error.error_code.value,
                "retryable": error.is_retryable,
            },
        )
        self.db.rollback()
        if not error.is_retryable:
            self.states.delete(state)

    async def _complete_google(self, attempt: OAuthAttempt, code: str, redirect_uri: str) -> None:
        client = GoogleAdsOAuthClient(self.settings.google, self.http)

        token_set = await client.exchange_code(code, redirect_uri)
        attempt.advance(OAuthFlowStage.AUTHENTICATED)

        self.credentials.upsert_google(attempt.user_id, token_set)

    async def _complete_meta(self, attempt: OAuthAttempt, code: str, redirect_uri: str) -> None:
        client = MetaAdsOAuthClient(self.settings.meta, self.http)

        short_lived = await client.exchange_code(code, redirect_uri)
        attempt.advance(OAuthFlowStage.SHORT_LIVED)

        long_lived = await client.extend_token(short_lived)
        attempt.advance(OAuthFlowStage.AUTHENTICATED)

        identity = await client.fetch_identity(long_lived.access_token)
        self.credentials.upsert_meta(
            attempt.user_id,
            long_lived,
            identity=identity,
            scopes=META_SCOPES,
            now=self._clock(),
        )

    # =========================================================================
    # Revoke
    # =========================================================================

    async def revoke(self, bearer_token: Optional[str], provider: OAuthProvider) -> bool:
        """
        Disconnect a provider for the calling user.

        Remote revocation (Google only) is best effort; the local credential
        is deleted regardless.

        Returns:
            True if a stored credential was removed
        """
        provider = OAuthProvider(provider)
        user_id = self._authenticate(bearer_token)

        credential = self.credentials.get(user_id, provider)
        remote_revoked = False
        if provider == OAuthProvider.GOOGLE and credential is not None and credential.refresh_token:
            client = GoogleAdsOAuthClient(self.settings.google, self.http)
            remote_revoked = await client.revoke(credential.refresh_token)

        removed = self.credentials.delete(user_id, provider)

        logger.info(
            "Provider disconnected",
            extra={
                "user_id": user_id,
                "provider": provider.value,
                "had_credential": removed,
                "remote_revoked": remote_revoked,
            },
        )
        return removed

    # =========================================================================
    # Redirect
    # =========================================================================

    def build_app_redirect(
        self,
        provider: OAuthProvider,
        result: Optional[CallbackResult] = None,
    ) -> str:
        """
        Application URL the redirect-style callback lands on.

        Only opaque flags are added; never codes, tokens or provider text.
        """
        provider = OAuthProvider(provider)
        if result is not None:
            params = {"oauth": "success", "provider": provider.value, "uid": result.user_id}
        else:
            params = {"error": "oauth_failed", "provider": provider.value}
        return f"{self.settings.app_redirect_base()}?{urlencode(params)}"
