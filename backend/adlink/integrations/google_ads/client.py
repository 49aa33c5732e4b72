"""
Google Ads OAuth adapter.

Handles:
- Authorization URL with offline access and forced consent
- Authorization code exchange (refresh token required)
- Access token refresh for API calls
- Best-effort remote revocation
- Accessible customer discovery

Stage machine: UNAUTHENTICATED -> AUTHORIZING -> AUTHENTICATED

SECURITY:
- Client secret and tokens are never logged; only presence flags
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from adlink.config.oauth_settings import GoogleAdsAppConfig
from adlink.constants.providers import OAuthProvider
from adlink.integrations.google_ads.models import (
    GoogleAccessToken,
    GoogleAdsCustomer,
    GoogleTokenSet,
    customer_id_from_resource_name,
)
from adlink.integrations.oauth_base import (
    OAuthProviderClient,
    ProviderErrorPayload,
)
from adlink.platform.errors import NoRefreshTokenError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_ADS_API_BASE = "https://googleads.googleapis.com"

GOOGLE_ADS_SCOPES = (
    "https://www.googleapis.com/auth/adwords",
    "https://www.googleapis.com/auth/analytics.readonly",
)

CUSTOMER_DETAILS_QUERY = (
    "SELECT customer.id, customer.descriptive_name, customer.currency_code, "
    "customer.time_zone, customer.manager FROM customer LIMIT 1"
)


class GoogleAdsOAuthClient(OAuthProviderClient):
    """OAuth adapter for Google Ads."""

    provider = OAuthProvider.GOOGLE
    scope_separator = " "

    # invalid_grant on refresh: refresh token revoked or expired.
    # UNAUTHENTICATED from the Ads API: access token rejected.
    expired_token_codes = frozenset({"invalid_grant", "UNAUTHENTICATED"})

    def __init__(self, config: GoogleAdsAppConfig, http_client: httpx.AsyncClient):
        super().__init__(http_client)
        self.config = config

    def extract_error(self, status_code: int, data: Dict[str, Any]) -> Optional[ProviderErrorPayload]:
        error = data.get("error")
        if error is None:
            if status_code >= 400:
                return ProviderErrorPayload(
                    code=f"http_{status_code}",
                    message=f"HTTP {status_code}",
                    status_code=status_code,
                    raw=data,
                )
            return None

        # OAuth endpoints: {"error": "invalid_grant", "error_description": "..."}
        if isinstance(error, str):
            return ProviderErrorPayload(
                code=error,
                message=data.get("error_description") or error,
                status_code=status_code,
                raw=data,
            )

        # Ads API: {"error": {"code": 401, "message": "...", "status": "UNAUTHENTICATED"}}
        return ProviderErrorPayload(
            code=str(error.get("status") or error.get("code") or "unknown"),
            message=error.get("message", "Unknown error"),
            status_code=status_code,
            raw=data,
        )

    # =========================================================================
    # Authorization
    # =========================================================================

    def build_authorization_url(self, redirect_uri: str, state: str) -> str:
        """
        Build the consent screen URL.

        access_type=offline plus prompt=consent makes Google issue a refresh
        token even when the user granted access before.
        """
        self.config.require_credentials()
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_ADS_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> GoogleTokenSet:
        """
        Exchange an authorization code for tokens.

        Raises:
            NoRefreshTokenError: If Google did not return a refresh token
            ProviderError / ProviderUnavailableError: On exchange failure
        """
        self.config.require_credentials()
        status_code, data = await self.request_json(
            "POST",
            GOOGLE_TOKEN_URL,
            "code_exchange",
            data={
                "code": code,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
        )

        result = self.parse_token_response(status_code, data)
        if isinstance(result, ProviderErrorPayload):
            # invalid_grant here means a bad or reused code, not an expired
            # stored credential
            self.raise_for_error(result, "code_exchange", allow_token_expired=False)

        logger.info(
            "Google code exchange completed",
            extra={
                "has_refresh_token": bool(result.refresh_token),
                "scope_count": len(result.scopes),
            },
        )

        if not result.refresh_token:
            raise NoRefreshTokenError(provider=self.provider.value)

        return GoogleTokenSet(
            refresh_token=result.refresh_token,
            scopes=result.scopes,
            access_token=result.access_token,
            expires_in=result.expires_in,
        )

    async def refresh_access_token(self, refresh_token: str) -> GoogleAccessToken:
        """
        Mint a short-lived access token from a stored refresh token.

        Raises:
            TokenExpiredError: If the refresh token was revoked or expired
        """
        self.config.require_credentials()
        status_code, data = await self.request_json(
            "POST",
            GOOGLE_TOKEN_URL,
            "token_refresh",
            data={
                "refresh_token": refresh_token,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "grant_type": "refresh_token",
            },
        )
        result = self.parse_token_response(status_code, data)
        if isinstance(result, ProviderErrorPayload):
            self.raise_for_error(result, "token_refresh")
        return GoogleAccessToken(access_token=result.access_token, expires_in=result.expires_in)

    async def revoke(self, refresh_token: str) -> bool:
        """
        Revoke a refresh token at Google.

        Best effort: any failure is logged and swallowed so local
        disconnect always proceeds.

        Returns:
            True if Google confirmed the revocation
        """
        try:
            response = await self.http.post(
                GOOGLE_REVOKE_URL,
                data={"token": refresh_token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Failed to revoke token with Google",
                extra={"error_type": type(e).__name__},
            )
            return False

        if response.status_code != 200:
            logger.warning(
                "Google token revocation rejected",
                extra={"status_code": response.status_code},
            )
            return False

        logger.info("Google token revoked")
        return True

    # =========================================================================
    # Account discovery
    # =========================================================================

    def _ads_headers(self, access_token: str) -> Dict[str, str]:
        self.config.require_developer_token()
        return {
            "Authorization": f"Bearer {access_token}",
            "developer-token": self.config.developer_token,
        }

    def _ads_url(self, path: str) -> str:
        return f"{GOOGLE_ADS_API_BASE}/{self.config.api_version}/{path.lstrip('/')}"

    async def list_accessible_customers(self, access_token: str) -> List[str]:
        """
        List customer IDs directly accessible with the access token.

        Returns:
            Customer IDs (digits only) in the order Google returns them
        """
        status_code, data = await self.request_json(
            "GET",
            self._ads_url("customers:listAccessibleCustomers"),
            "list_accessible_customers",
            headers=self._ads_headers(access_token),
        )
        error = self.extract_error(status_code, data)
        if error is not None:
            self.raise_for_error(error, "list_accessible_customers")

        return [
            customer_id_from_resource_name(name)
            for name in data.get("resourceNames", [])
        ]

    async def get_customer(self, access_token: str, customer_id: str) -> GoogleAdsCustomer:
        """Fetch descriptive details for one customer."""
        status_code, data = await self.request_json(
            "POST",
            self._ads_url(f"customers/{customer_id}/googleAds:search"),
            "get_customer",
            headers=self._ads_headers(access_token),
            json={"query": CUSTOMER_DETAILS_QUERY},
        )
        error = self.extract_error(status_code, data)
        if error is not None:
            self.raise_for_error(error, "get_customer")

        rows = data.get("results") or [{}]
        return GoogleAdsCustomer.from_search_row(customer_id, rows[0])
