"""
Google Ads OAuth integration.

Refresh-token model: one authorization code exchange with forced consent
yields a refresh token that does not nominally expire.
"""

from adlink.integrations.google_ads.client import (
    GOOGLE_ADS_SCOPES,
    GoogleAdsOAuthClient,
)
from adlink.integrations.google_ads.models import (
    GoogleAccessToken,
    GoogleAdsCustomer,
    GoogleTokenSet,
)

__all__ = [
    "GOOGLE_ADS_SCOPES",
    "GoogleAdsOAuthClient",
    "GoogleAccessToken",
    "GoogleAdsCustomer",
    "GoogleTokenSet",
]
