"""
Ad account listing routes for connected platforms.

Provides:
- GET /api/meta/ad-accounts: Meta ad accounts for the stored token
- GET /api/meta/campaigns?adAccountId=: campaigns of one Meta ad account
- GET /api/google-ads/customers: Google Ads customers for the stored
  refresh token

The account listings refresh the ad_accounts cache. TOKEN_EXPIRED (401)
tells the frontend to start the reconnect flow; NOT_CONNECTED (412) means
nothing is stored yet.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from adlink.api.dependencies.oauth import (
    get_ad_account_service,
    get_bearer_token,
    get_identity_verifier,
)
from adlink.api.responses import oauth_error_response
from adlink.api.schemas.oauth import (
    ErrorResponse,
    GoogleAdsCustomersResponse,
    MetaAdAccountsResponse,
    MetaCampaignsResponse,
    MetaCampaignSummary,
)
from adlink.auth.identity import IdentityVerifier
from adlink.platform.errors import OAuthError, UnauthorizedError
from adlink.services.ad_account_service import AdAccountService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ad-accounts"])

# Numeric account id, optionally act_-prefixed; it becomes a Graph path segment
META_AD_ACCOUNT_ID_PATTERN = r"^(act_)?\d{1,32}$"

ERROR_RESPONSES = {
    401: {"model": ErrorResponse},
    412: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _authenticate(verifier: IdentityVerifier, bearer_token: Optional[str]) -> str:
    if not bearer_token:
        raise UnauthorizedError("Missing bearer token")
    return verifier.verify(bearer_token)


@router.get(
    "/api/meta/ad-accounts",
    response_model=MetaAdAccountsResponse,
    responses=ERROR_RESPONSES,
)
async def list_meta_ad_accounts(
    bearer_token: Optional[str] = Depends(get_bearer_token),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    service: AdAccountService = Depends(get_ad_account_service),
):
    """List the caller's Meta ad accounts, sorted by name."""
    try:
        user_id = _authenticate(verifier, bearer_token)
        accounts = await service.sync_meta_ad_accounts(user_id)
    except OAuthError as e:
        return oauth_error_response(e)

    return MetaAdAccountsResponse(accounts=accounts)


@router.get(
    "/api/meta/campaigns",
    response_model=MetaCampaignsResponse,
    responses=ERROR_RESPONSES,
)
async def list_meta_campaigns(
    ad_account_id: str = Query(..., alias="adAccountId", pattern=META_AD_ACCOUNT_ID_PATTERN),
    bearer_token: Optional[str] = Depends(get_bearer_token),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    service: AdAccountService = Depends(get_ad_account_service),
):
    """List the campaigns of one of the caller's Meta ad accounts, sorted by name."""
    try:
        user_id = _authenticate(verifier, bearer_token)
        campaigns = await service.meta_campaigns(user_id, ad_account_id)
    except OAuthError as e:
        return oauth_error_response(e)

    return MetaCampaignsResponse(
        campaigns=[
            MetaCampaignSummary(
                id=campaign.campaign_id,
                name=campaign.name,
                status=campaign.status,
                objective=campaign.objective,
                start_time=campaign.start_time,
                stop_time=campaign.stop_time,
            )
            for campaign in campaigns
        ]
    )


@router.get(
    "/api/google-ads/customers",
    response_model=GoogleAdsCustomersResponse,
    responses=ERROR_RESPONSES,
)
async def list_google_ads_customers(
    bearer_token: Optional[str] = Depends(get_bearer_token),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    service: AdAccountService = Depends(get_ad_account_service),
):
    """List the Google Ads customers reachable with the caller's credential."""
    try:
        user_id = _authenticate(verifier, bearer_token)
        customers = await service.sync_google_customers(user_id)
    except OAuthError as e:
        return oauth_error_response(e)

    return GoogleAdsCustomersResponse(customers=customers)
