"""
Ad account discovery for connected platforms.

Uses the stored credential to list the ad accounts (Meta) or customers
(Google Ads) a user can reach, caches them in ad_accounts and returns the
normalised list.

Handles:
- Meta: decrypt stored long-lived token, page /me/adaccounts; campaigns
  of one account are listed on demand without caching
- Google: refresh an access token, list accessible customers, fetch details
  for the first MAX_CUSTOMER_DETAILS concurrently
- Cache writes chunked through write_in_batches
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from adlink.config.oauth_settings import OAuthSettings
from adlink.constants.providers import OAuthProvider
from adlink.database.session import write_in_batches
from adlink.integrations.google_ads import GoogleAdsCustomer, GoogleAdsOAuthClient
from adlink.integrations.meta_ads import MetaAdAccount, MetaAdsOAuthClient, MetaCampaign
from adlink.models.ad_account import AdAccount
from adlink.models.base import generate_uuid
from adlink.platform.errors import ProviderError, TokenExpiredError
from adlink.services.credential_store import PlatformCredentialStore

logger = logging.getLogger(__name__)

# Customers whose details are fetched per request; the rest are returned
# with their id only.
MAX_CUSTOMER_DETAILS = 20


class AdAccountService:
    """Lists and caches ad accounts for one user request."""

    def __init__(
        self,
        db: Session,
        settings: OAuthSettings,
        http_client: httpx.AsyncClient,
        credentials: Optional[PlatformCredentialStore] = None,
        clock=None,
    ):
        self.db = db
        self.settings = settings
        self.http = http_client
        self.credentials = credentials or PlatformCredentialStore(db)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # =========================================================================
    # Meta
    # =========================================================================

    async def sync_meta_ad_accounts(self, user_id: str) -> List[dict]:
        """
        Fetch, cache and return the user's Meta ad accounts sorted by name.

        Raises:
            NotConnectedError: No Meta credential stored
            TokenExpiredError: Stored expiry passed or Meta returned code 190
        """
        access_token = self.credentials.get_meta_access_token(user_id, now=self._clock())
        client = MetaAdsOAuthClient(self.settings.meta, self.http)

        try:
            accounts = await client.list_ad_accounts(access_token)
        except TokenExpiredError:
            logger.warning("Meta token rejected while listing ad accounts", extra={"user_id": user_id})
            raise

        rows = self._cache(
            user_id,
            OAuthProvider.META,
            {
                account.account_id: _meta_fields(account)
                for account in accounts
            },
        )

        logger.info(
            "Meta ad accounts synced",
            extra={"user_id": user_id, "account_count": len(rows)},
        )
        return _sorted_by_name(rows)

    async def meta_campaigns(self, user_id: str, ad_account_id: str) -> List[MetaCampaign]:
        """
        Campaigns of one Meta ad account, sorted by name. Not cached.

        Raises:
            NotConnectedError: No Meta credential stored
            TokenExpiredError: Stored expiry passed or Meta returned code 190
        """
        access_token = self.credentials.get_meta_access_token(user_id, now=self._clock())
        client = MetaAdsOAuthClient(self.settings.meta, self.http)

        try:
            campaigns = await client.list_campaigns(access_token, ad_account_id)
        except TokenExpiredError:
            logger.warning("Meta token rejected while listing campaigns", extra={"user_id": user_id})
            raise

        logger.info(
            "Meta campaigns listed",
            extra={"user_id": user_id, "campaign_count": len(campaigns)},
        )
        return campaigns

    # =========================================================================
    # Google Ads
    # =========================================================================

    async def sync_google_customers(self, user_id: str) -> List[dict]:
        """
        Discover, cache and return the user's Google Ads customers.

        Raises:
            NotConnectedError: No Google credential stored
            TokenExpiredError: Refresh token revoked or access token rejected
        """
        refresh_token = self.credentials.get_google_refresh_token(user_id)
        client = GoogleAdsOAuthClient(self.settings.google, self.http)

        access = await client.refresh_access_token(refresh_token)
        customer_ids = await client.list_accessible_customers(access.access_token)

        detailed_ids = customer_ids[:MAX_CUSTOMER_DETAILS]
        results = await asyncio.gather(
            *(client.get_customer(access.access_token, cid) for cid in detailed_ids),
            return_exceptions=True,
        )

        customers: List[GoogleAdsCustomer] = []
        for customer_id, result in zip(detailed_ids, results):
            if isinstance(result, TokenExpiredError):
                raise result
            if isinstance(result, ProviderError):
                logger.warning(
                    "Google customer details unavailable",
                    extra={"customer_id": customer_id, "error_code": result.error_code.value},
                )
                customers.append(GoogleAdsCustomer(customer_id=customer_id))
            elif isinstance(result, BaseException):
                raise result
            else:
                customers.append(result)

        customers.extend(
            GoogleAdsCustomer(customer_id=cid)
            for cid in customer_ids[MAX_CUSTOMER_DETAILS:]
        )

        rows = self._cache(
            user_id,
            OAuthProvider.GOOGLE,
            {customer.customer_id: _google_fields(customer) for customer in customers},
        )

        logger.info(
            "Google Ads customers synced",
            extra={
                "user_id": user_id,
                "customer_count": len(customer_ids),
                "detailed_count": len(detailed_ids),
            },
        )
        return _sorted_by_name(rows)

    # =========================================================================
    # Cache
    # =========================================================================

    def cached_accounts(self, user_id: str, provider: OAuthProvider) -> List[AdAccount]:
        return list(
            self.db.execute(
                select(AdAccount)
                .where(AdAccount.user_id == user_id)
                .where(AdAccount.provider == provider.value)
            ).scalars()
        )

    def _cache(
        self,
        user_id: str,
        provider: OAuthProvider,
        fields_by_account: Dict[str, dict],
    ) -> List[AdAccount]:
        existing = {row.account_id: row for row in self.cached_accounts(user_id, provider)}
        synced_at = self._clock()

        rows: List[AdAccount] = []
        for account_id, fields in fields_by_account.items():
            row = existing.get(account_id)
            if row is None:
                # Explicit id so write_in_batches can merge by primary key
                row = AdAccount(
                    id=generate_uuid(),
                    user_id=user_id,
                    provider=provider.value,
                    account_id=account_id,
                )
            for name, value in fields.items():
                setattr(row, name, value)
            row.last_synced_at = synced_at
            rows.append(row)

        if rows:
            write_in_batches(self.db, rows)
        return rows


def _meta_fields(account: MetaAdAccount) -> dict:
    return {
        "name": account.name,
        "currency": account.currency,
        "timezone": account.timezone,
        "status": account.status,
        "is_manager": False,
    }


def _google_fields(customer: GoogleAdsCustomer) -> dict:
    return {
        "name": customer.display_name,
        "currency": customer.currency_code,
        "timezone": customer.time_zone,
        "status": "active",
        "is_manager": customer.is_manager,
    }


def _sorted_by_name(rows: Sequence[AdAccount]) -> List[dict]:
    return sorted(
        (row.to_dict() for row in rows),
        key=lambda account: (account["name"] or "").lower(),
    )
