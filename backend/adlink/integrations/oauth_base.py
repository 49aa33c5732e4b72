"""
Shared building blocks for ad platform OAuth adapters.

- OAuthFlowStage: explicit state machine of one authorization attempt
- TokenGrant / ProviderErrorPayload: tagged union every provider token
  response is parsed into at the adapter boundary
- OAuthProviderClient: base class holding the injected HTTP client and the
  request/classification helpers
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

import httpx

from adlink.constants.providers import OAuthProvider
from adlink.platform.errors import (
    ErrorCode,
    ProviderError,
    ProviderUnavailableError,
    TokenExpiredError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class OAuthFlowStage(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHORIZING = "authorizing"
    SHORT_LIVED = "short_lived"
    AUTHENTICATED = "authenticated"


# Google issues the refresh token in one hop; Meta needs the extra
# short-lived -> long-lived exchange.
ALLOWED_TRANSITIONS: Dict[OAuthProvider, Dict[OAuthFlowStage, FrozenSet[OAuthFlowStage]]] = {
    OAuthProvider.GOOGLE: {
        OAuthFlowStage.UNAUTHENTICATED: frozenset({OAuthFlowStage.AUTHORIZING}),
        OAuthFlowStage.AUTHORIZING: frozenset({OAuthFlowStage.AUTHENTICATED}),
        OAuthFlowStage.AUTHENTICATED: frozenset(),
    },
    OAuthProvider.META: {
        OAuthFlowStage.UNAUTHENTICATED: frozenset({OAuthFlowStage.AUTHORIZING}),
        OAuthFlowStage.AUTHORIZING: frozenset({OAuthFlowStage.SHORT_LIVED}),
        OAuthFlowStage.SHORT_LIVED: frozenset({OAuthFlowStage.AUTHENTICATED}),
        OAuthFlowStage.AUTHENTICATED: frozenset(),
    },
}


class InvalidStageTransition(Exception):
    pass


@dataclass
class OAuthAttempt:
    """Progress of one authorization attempt through its provider's stages."""
    provider: OAuthProvider
    user_id: Optional[str] = None
    stage: OAuthFlowStage = OAuthFlowStage.UNAUTHENTICATED

    def advance(self, to: OAuthFlowStage) -> None:
        allowed = ALLOWED_TRANSITIONS[self.provider].get(self.stage, frozenset())
        if to not in allowed:
            raise InvalidStageTransition(
                f"{self.provider.value}: cannot move from {self.stage.value} to {to.value}"
            )
        self.stage = to

    @property
    def is_authenticated(self) -> bool:
        return self.stage == OAuthFlowStage.AUTHENTICATED


@dataclass(frozen=True)
class TokenGrant:
    """Successful token endpoint response."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scopes: Tuple[str, ...] = ()
    token_type: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"TokenGrant(has_access_token={bool(self.access_token)}, "
            f"has_refresh_token={bool(self.refresh_token)}, expires_in={self.expires_in})"
        )


@dataclass(frozen=True)
class ProviderErrorPayload:
    """Error response from a provider, normalised across Google and Meta."""
    code: str
    message: str
    status_code: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


TokenResponse = Union[TokenGrant, ProviderErrorPayload]


def _parse_scopes(value: Any, separator: str) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(s) for s in value if s)
    return tuple(s for s in str(value).split(separator) if s)


def _parse_expires_in(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class OAuthProviderClient:
    """
    Base class for provider OAuth adapters.

    The httpx.AsyncClient is injected so adapters are built per request and
    tests can mount an httpx.MockTransport.
    """

    provider: OAuthProvider
    scope_separator = " "

    # Provider error codes signalling an invalid/expired token
    expired_token_codes: FrozenSet[str] = frozenset()

    def __init__(self, http_client: httpx.AsyncClient):
        self.http = http_client

    def parse_token_response(self, status_code: int, data: Dict[str, Any]) -> TokenResponse:
        """Turn a token endpoint JSON body into TokenGrant or ProviderErrorPayload."""
        error = self.extract_error(status_code, data)
        if error is not None:
            return error

        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            return ProviderErrorPayload(
                code="missing_access_token",
                message="Token response did not include an access token",
                status_code=status_code,
            )

        refresh_token = data.get("refresh_token")
        return TokenGrant(
            access_token=access_token,
            refresh_token=refresh_token if isinstance(refresh_token, str) and refresh_token else None,
            expires_in=_parse_expires_in(data.get("expires_in")),
            scopes=_parse_scopes(data.get("scope"), self.scope_separator),
            token_type=data.get("token_type"),
        )

    def extract_error(self, status_code: int, data: Dict[str, Any]) -> Optional[ProviderErrorPayload]:
        """Provider specific; return None when the body is not an error."""
        raise NotImplementedError

    def raise_for_error(
        self,
        error: ProviderErrorPayload,
        operation: str,
        allow_token_expired: bool = True,
    ) -> None:
        """
        Raise the classified exception for an error payload.

        Expired-token codes map to TokenExpiredError unless
        allow_token_expired is False (e.g. a rejected authorization code).
        """
        logger.warning(
            "Provider returned an error",
            extra={
                "provider": self.provider.value,
                "operation": operation,
                "provider_code": error.code,
                "status_code": error.status_code,
            },
        )

        if allow_token_expired and error.code in self.expired_token_codes:
            raise TokenExpiredError(
                f"{self.provider.value} {operation}: {error.message}",
                provider=self.provider.value,
                status_code=error.status_code,
                provider_code=error.code,
            )

        if error.status_code is not None and (error.status_code >= 500 or error.status_code == 429):
            raise ProviderUnavailableError(
                f"{self.provider.value} {operation}: {error.message}",
                provider=self.provider.value,
                status_code=error.status_code,
                provider_code=error.code,
            )

        raise ProviderError(
            f"{self.provider.value} {operation} failed: {error.message}",
            ErrorCode.PROVIDER_ERROR,
            provider=self.provider.value,
            status_code=error.status_code,
            provider_code=error.code,
        )

    async def request_json(
        self,
        method: str,
        url: str,
        operation: str,
        **kwargs,
    ) -> Tuple[int, Dict[str, Any]]:
        """
        Perform a request and decode the JSON body.

        Raises:
            ProviderUnavailableError: On network errors, timeouts or a
                non-JSON 5xx response
            ProviderError: On a non-JSON non-5xx response
        """
        try:
            response = await self.http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(
                "Provider request timed out",
                extra={"provider": self.provider.value, "operation": operation},
            )
            raise ProviderUnavailableError(
                f"{self.provider.value} {operation} timed out: {type(e).__name__}",
                provider=self.provider.value,
            )
        except httpx.HTTPError as e:
            logger.error(
                "Provider request failed",
                extra={
                    "provider": self.provider.value,
                    "operation": operation,
                    "error_type": type(e).__name__,
                },
            )
            raise ProviderUnavailableError(
                f"{self.provider.value} {operation} connection error: {type(e).__name__}",
                provider=self.provider.value,
            )

        try:
            data = response.json()
        except ValueError:
            data = None

        if not isinstance(data, dict):
            if response.status_code >= 500:
                raise ProviderUnavailableError(
                    f"{self.provider.value} {operation} returned HTTP {response.status_code}",
                    provider=self.provider.value,
                    status_code=response.status_code,
                )
            if response.is_success and data is None and not response.content:
                return response.status_code, {}
            raise ProviderError(
                f"{self.provider.value} {operation} returned an unexpected body",
                provider=self.provider.value,
                status_code=response.status_code,
            )

        return response.status_code, data
