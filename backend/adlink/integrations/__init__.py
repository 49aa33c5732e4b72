"""
Ad platform integrations.

Each provider package exposes an OAuth adapter built per request from
explicit configuration. Use build_provider_client() to get the adapter for
a provider.
"""

import httpx

from adlink.config.oauth_settings import OAuthSettings
from adlink.constants.providers import OAuthProvider
from adlink.integrations.google_ads.client import GoogleAdsOAuthClient
from adlink.integrations.meta_ads.client import MetaAdsOAuthClient


def build_provider_client(
    provider: OAuthProvider,
    settings: OAuthSettings,
    http_client: httpx.AsyncClient,
):
    """Construct the OAuth adapter for a provider."""
    provider = OAuthProvider(provider)
    if provider == OAuthProvider.GOOGLE:
        return GoogleAdsOAuthClient(settings.google, http_client)
    return MetaAdsOAuthClient(settings.meta, http_client)


__all__ = [
    "build_provider_client",
    "GoogleAdsOAuthClient",
    "MetaAdsOAuthClient",
]
