"""
Meta (Facebook) Ads OAuth adapter.

Handles:
- Facebook Login dialog URL
- Code -> short-lived token exchange
- Short-lived -> long-lived token exchange (fb_exchange_token)
- Best-effort identity lookup (/me)
- Ad account and campaign listing for a stored token

Stage machine: UNAUTHENTICATED -> AUTHORIZING -> SHORT_LIVED -> AUTHENTICATED

Revocation is local-only: Meta tokens are left to expire naturally.

API Reference: https://developers.facebook.com/docs/facebook-login/guides/access-tokens/get-long-lived
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from adlink.config.oauth_settings import MetaAppConfig
from adlink.constants.providers import OAuthProvider
from adlink.integrations.meta_ads.models import (
    DEFAULT_LONG_LIVED_EXPIRES_IN,
    MetaAdAccount,
    MetaCampaign,
    MetaIdentity,
    MetaLongLivedToken,
)
from adlink.integrations.oauth_base import (
    OAuthProviderClient,
    ProviderErrorPayload,
)
from adlink.platform.errors import ProviderError

logger = logging.getLogger(__name__)

META_GRAPH_URL = "https://graph.facebook.com"
META_DIALOG_URL = "https://www.facebook.com"

# ads_read covers insights access; read_insights is not a valid scope here
META_SCOPES = (
    "ads_read",
    "ads_management",
    "business_management",
)

# Graph API error code for invalid or expired access tokens
META_INVALID_TOKEN_CODE = "190"

AD_ACCOUNT_FIELDS = "account_id,name,currency,timezone_name,account_status"
AD_ACCOUNTS_PAGE_SIZE = 100
CAMPAIGN_FIELDS = "id,name,status,objective,start_time,stop_time"
CAMPAIGNS_PAGE_SIZE = 500
GRAPH_MAX_PAGES = 10


class MetaAdsOAuthClient(OAuthProviderClient):
    """OAuth adapter for Meta Ads."""

    provider = OAuthProvider.META
    scope_separator = ","
    expired_token_codes = frozenset({META_INVALID_TOKEN_CODE})

    def __init__(self, config: MetaAppConfig, http_client: httpx.AsyncClient):
        super().__init__(http_client)
        self.config = config

    @property
    def graph_base(self) -> str:
        return f"{META_GRAPH_URL}/{self.config.api_version}"

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

        if isinstance(error, str):
            return ProviderErrorPayload(code=error, message=error, status_code=status_code, raw=data)

        return ProviderErrorPayload(
            code=str(error.get("code", "unknown")),
            message=error.get("message", "Unknown Meta API error"),
            status_code=status_code,
            raw=data,
        )

    # =========================================================================
    # Authorization
    # =========================================================================

    def build_authorization_url(self, redirect_uri: str, state: str) -> str:
        """Build the Facebook Login dialog URL."""
        self.config.require_credentials()
        params = {
            "client_id": self.config.app_id,
            "redirect_uri": redirect_uri,
            "scope": ",".join(META_SCOPES),
            "state": state,
            "response_type": "code",
        }
        return f"{META_DIALOG_URL}/{self.config.api_version}/dialog/oauth?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> str:
        """
        Exchange an authorization code for a short-lived user token.

        redirect_uri must match the one used to build the dialog URL.
        """
        self.config.require_credentials()
        status_code, data = await self.request_json(
            "GET",
            f"{self.graph_base}/oauth/access_token",
            "code_exchange",
            params={
                "client_id": self.config.app_id,
                "client_secret": self.config.app_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )
        result = self.parse_token_response(status_code, data)
        if isinstance(result, ProviderErrorPayload):
            self.raise_for_error(result, "code_exchange")

        logger.info("Meta short-lived token obtained")
        return result.access_token

    async def extend_token(self, short_lived_token: str) -> MetaLongLivedToken:
        """
        Exchange a short-lived token for a long-lived one.

        expires_in defaults to 60 days when Meta omits it.
        """
        self.config.require_credentials()
        status_code, data = await self.request_json(
            "GET",
            f"{self.graph_base}/oauth/access_token",
            "token_extend",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.config.app_id,
                "client_secret": self.config.app_secret,
                "fb_exchange_token": short_lived_token,
            },
        )
        result = self.parse_token_response(status_code, data)
        if isinstance(result, ProviderErrorPayload):
            self.raise_for_error(result, "token_extend")

        expires_in = result.expires_in or DEFAULT_LONG_LIVED_EXPIRES_IN
        logger.info("Meta long-lived token obtained", extra={"expires_in": expires_in})
        return MetaLongLivedToken(access_token=result.access_token, expires_in=expires_in)

    async def fetch_identity(self, access_token: str) -> MetaIdentity:
        """
        Look up the Meta user behind a token.

        Best effort: any failure returns an empty identity; the token is
        still valid and storable without it.
        """
        try:
            status_code, data = await self.request_json(
                "GET",
                f"{self.graph_base}/me",
                "fetch_identity",
                params={"fields": "id,name", "access_token": access_token},
            )
        except ProviderError as e:
            logger.warning(
                "Meta identity lookup failed",
                extra={"error_code": e.error_code.value},
            )
            return MetaIdentity()

        if self.extract_error(status_code, data) is not None:
            logger.warning("Meta identity lookup returned an error", extra={"status_code": status_code})
            return MetaIdentity()

        return MetaIdentity(user_id=data.get("id"), name=data.get("name"))

    async def revoke(self, access_token: Optional[str] = None) -> bool:
        """No remote call; the stored credential is deleted locally."""
        return False

    # =========================================================================
    # Ad accounts and campaigns
    # =========================================================================

    async def _get_all_pages(
        self,
        path: str,
        params: Dict[str, Any],
        operation: str,
    ) -> List[Dict[str, Any]]:
        """
        GET a Graph edge and follow paging.next up to GRAPH_MAX_PAGES.

        Raises:
            TokenExpiredError: If Meta reports the token invalid (code 190)
        """
        items: List[Dict[str, Any]] = []
        url: Optional[str] = f"{self.graph_base}/{path}"
        page_params: Optional[Dict[str, Any]] = params

        for _ in range(GRAPH_MAX_PAGES):
            status_code, data = await self.request_json("GET", url, operation, params=page_params)
            error = self.extract_error(status_code, data)
            if error is not None:
                self.raise_for_error(error, operation)

            items.extend(data.get("data", []))

            # paging.next already carries every query parameter
            url = (data.get("paging") or {}).get("next")
            page_params = None
            if not url:
                break

        return items

    async def list_ad_accounts(self, access_token: str) -> List[MetaAdAccount]:
        """
        List ad accounts the token can access.

        Raises:
            TokenExpiredError: If Meta reports the token invalid (code 190)
        """
        items = await self._get_all_pages(
            "me/adaccounts",
            {"fields": AD_ACCOUNT_FIELDS, "limit": AD_ACCOUNTS_PAGE_SIZE, "access_token": access_token},
            "list_ad_accounts",
        )
        return [MetaAdAccount.from_dict(item) for item in items]

    async def list_campaigns(self, access_token: str, ad_account_id: str) -> List[MetaCampaign]:
        """
        List the campaigns of one ad account, sorted by name.

        ad_account_id may be given with or without the act_ prefix.

        Raises:
            TokenExpiredError: If Meta reports the token invalid (code 190)
        """
        account_id = ad_account_id[len("act_"):] if ad_account_id.startswith("act_") else ad_account_id
        items = await self._get_all_pages(
            f"act_{account_id}/campaigns",
            {"fields": CAMPAIGN_FIELDS, "limit": CAMPAIGNS_PAGE_SIZE, "access_token": access_token},
            "list_campaigns",
        )
        campaigns = [MetaCampaign.from_dict(item) for item in items]
        return sorted(campaigns, key=lambda c: c.name.casefold())
