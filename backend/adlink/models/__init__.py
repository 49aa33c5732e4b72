"""
Database models.

Importing this package registers every table on adlink.db_base.Base.
"""

from adlink.models.ad_account import AdAccount
from adlink.models.oauth_state import OAuthState, STATE_TTL_SECONDS
from adlink.models.platform_credential import PlatformCredential
from adlink.models.rate_limit_window import RateLimitWindow

__all__ = [
    "AdAccount",
    "OAuthState",
    "STATE_TTL_SECONDS",
    "PlatformCredential",
    "RateLimitWindow",
]
