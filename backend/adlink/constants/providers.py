"""
Ad platform identifiers and per-provider constants.

Provider values are persisted in oauth_states.provider and
platform_credentials.provider; do not rename them.
"""

import enum


class OAuthProvider(str, enum.Enum):
    """Third-party ad platforms a user can connect."""
    GOOGLE = "google"
    META = "meta"


# Callback path appended to the resolved request origin. The resulting URL
# must be registered with the provider exactly as built here.
CALLBACK_PATHS = {
    OAuthProvider.GOOGLE: "/oauth/callback",
    OAuthProvider.META: "/oauth/meta/callback",
}


def initiate_action(provider: OAuthProvider) -> str:
    """Rate limit action key for initiate requests."""
    return f"{provider.value}_oauth_initiate"


def parse_provider(value: str) -> OAuthProvider:
    """Parse a provider path/query value. Accepts the legacy *_ads aliases."""
    normalized = (value or "").strip().lower()
    aliases = {
        "google_ads": OAuthProvider.GOOGLE,
        "meta_ads": OAuthProvider.META,
        "facebook": OAuthProvider.META,
    }
    if normalized in aliases:
        return aliases[normalized]
    return OAuthProvider(normalized)
