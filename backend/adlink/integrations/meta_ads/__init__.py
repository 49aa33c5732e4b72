"""
Meta Ads OAuth integration.

Long-lived token model: the authorization code yields a short-lived token
which is exchanged for a ~60 day long-lived token. There is no refresh
token; renewal means re-authenticating.
"""

from adlink.integrations.meta_ads.client import META_SCOPES, MetaAdsOAuthClient
from adlink.integrations.meta_ads.models import (
    DEFAULT_LONG_LIVED_EXPIRES_IN,
    MetaAdAccount,
    MetaCampaign,
    MetaIdentity,
    MetaLongLivedToken,
)

__all__ = [
    "META_SCOPES",
    "MetaAdsOAuthClient",
    "DEFAULT_LONG_LIVED_EXPIRES_IN",
    "MetaAdAccount",
    "MetaCampaign",
    "MetaIdentity",
    "MetaLongLivedToken",
]
