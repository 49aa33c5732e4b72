"""
Error taxonomy shared by the OAuth flows and token consumers.

Every failure raised by the state store, provider adapters, credential
store and orchestrator carries an ErrorCode the API layer maps to an HTTP
status and the frontend branches on (e.g. TOKEN_EXPIRED -> reconnect UX).

SECURITY:
- message is for server-side logs only
- public_message is what clients see; config and crypto errors never
  expose internal detail
"""

import enum
from typing import Optional


class ErrorCode(str, enum.Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMITED = "RATE_LIMITED"
    MISSING_ORIGIN = "MISSING_ORIGIN"
    INVALID_ORIGIN = "INVALID_ORIGIN"
    INVALID_STATE = "INVALID_STATE"
    STATE_NOT_FOUND = "STATE_NOT_FOUND"
    STATE_EXPIRED = "STATE_EXPIRED"
    STATE_PROVIDER_MISMATCH = "STATE_PROVIDER_MISMATCH"
    INVALID_CODE = "INVALID_CODE"
    OAUTH_DENIED = "OAUTH_DENIED"
    NO_REFRESH_TOKEN = "NO_REFRESH_TOKEN"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    NOT_CONNECTED = "NOT_CONNECTED"
    CONFIG_ERROR = "CONFIG_ERROR"
    DECRYPTION_ERROR = "DECRYPTION_ERROR"


HTTP_STATUS_BY_CODE = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.TOKEN_EXPIRED: 401,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.MISSING_ORIGIN: 400,
    ErrorCode.INVALID_ORIGIN: 400,
    ErrorCode.INVALID_STATE: 400,
    ErrorCode.STATE_NOT_FOUND: 400,
    ErrorCode.STATE_EXPIRED: 400,
    ErrorCode.STATE_PROVIDER_MISMATCH: 400,
    ErrorCode.INVALID_CODE: 400,
    ErrorCode.OAUTH_DENIED: 400,
    ErrorCode.NO_REFRESH_TOKEN: 400,
    ErrorCode.NOT_CONNECTED: 412,
    ErrorCode.PROVIDER_ERROR: 502,
    ErrorCode.PROVIDER_UNAVAILABLE: 503,
    ErrorCode.CONFIG_ERROR: 500,
    ErrorCode.DECRYPTION_ERROR: 500,
}

# Client-facing messages. Anything not listed falls back to a generic one.
PUBLIC_MESSAGES = {
    ErrorCode.UNAUTHORIZED: "Unauthorized",
    ErrorCode.RATE_LIMITED: "Too many requests. Please try again later.",
    ErrorCode.MISSING_ORIGIN: "Missing origin",
    ErrorCode.INVALID_ORIGIN: "Origin is not allowed",
    ErrorCode.INVALID_STATE: "Invalid state parameter",
    ErrorCode.STATE_NOT_FOUND: "State not found. It may have expired or was already used.",
    ErrorCode.STATE_EXPIRED: "State has expired. Please restart the connection.",
    ErrorCode.STATE_PROVIDER_MISMATCH: "Invalid state provider",
    ErrorCode.INVALID_CODE: "Invalid code parameter",
    ErrorCode.OAUTH_DENIED: "Authorization was not granted",
    ErrorCode.NO_REFRESH_TOKEN: (
        "No refresh token received. Please remove the app from your Google "
        "account permissions and connect again."
    ),
    ErrorCode.PROVIDER_ERROR: "The ad platform rejected the request",
    ErrorCode.PROVIDER_UNAVAILABLE: "The ad platform is temporarily unavailable. Please retry.",
    ErrorCode.TOKEN_EXPIRED: "Access token is invalid or expired. Please reconnect your account.",
    ErrorCode.NOT_CONNECTED: "No account connected. Please connect your account first.",
}

GENERIC_PUBLIC_MESSAGE = "An error occurred during authentication. Please try again."

# Failures that leave the consumed state in place so the callback can be
# re-posted within the state TTL.
RETRYABLE_CODES = frozenset({ErrorCode.PROVIDER_UNAVAILABLE})


class OAuthError(Exception):
    """Base exception for OAuth flow errors."""

    def __init__(self, message: str, error_code: ErrorCode):
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.error_code, 500)

    @property
    def public_message(self) -> str:
        return PUBLIC_MESSAGES.get(self.error_code, GENERIC_PUBLIC_MESSAGE)

    @property
    def is_retryable(self) -> bool:
        return self.error_code in RETRYABLE_CODES

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(error_code={self.error_code.value})"


class UnauthorizedError(OAuthError):
    def __init__(self, message: str = "Missing or invalid bearer token"):
        super().__init__(message, ErrorCode.UNAUTHORIZED)


class RateLimitedError(OAuthError):
    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(message, ErrorCode.RATE_LIMITED)


class OriginError(OAuthError):
    """Raised when no usable callback origin can be resolved."""
    pass


class StateError(OAuthError):
    """Raised for malformed, unknown, expired or mismatched state tokens.

    Always terminal for the attempt; the user restarts from initiate.
    """
    pass


class InvalidCodeError(OAuthError):
    def __init__(self, message: str = "Authorization code failed format validation"):
        super().__init__(message, ErrorCode.INVALID_CODE)


class OAuthDeniedError(OAuthError):
    def __init__(self, message: str = "Provider reported an authorization error"):
        super().__init__(message, ErrorCode.OAUTH_DENIED)


class ProviderError(OAuthError):
    """Raised when a provider call fails or returns an error payload."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.PROVIDER_ERROR,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        provider_code: Optional[str] = None,
    ):
        super().__init__(message, error_code)
        self.provider = provider
        self.status_code = status_code
        self.provider_code = provider_code


class NoRefreshTokenError(ProviderError):
    def __init__(self, provider: str = "google"):
        super().__init__(
            "Provider response did not include a refresh token",
            ErrorCode.NO_REFRESH_TOKEN,
            provider=provider,
        )


class TokenExpiredError(ProviderError):
    """Stored or presented token is invalid/expired; the user must reconnect."""

    def __init__(self, message: str = "Token is invalid or expired", **kwargs):
        super().__init__(message, ErrorCode.TOKEN_EXPIRED, **kwargs)


class ProviderUnavailableError(ProviderError):
    """Network failure or 5xx from the provider. Safe to retry the callback."""

    def __init__(self, message: str = "Provider unreachable", **kwargs):
        super().__init__(message, ErrorCode.PROVIDER_UNAVAILABLE, **kwargs)


class NotConnectedError(OAuthError):
    def __init__(self, provider: str):
        super().__init__(f"No stored credential for provider {provider}", ErrorCode.NOT_CONNECTED)
        self.provider = provider


class ConfigError(OAuthError):
    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONFIG_ERROR)
