"""
OAuth and provider configuration loaded from environment variables.

Settings are read per request via OAuthSettings.from_env() and passed
explicitly to the adapters; nothing here is cached at module level.

Environment:
    GOOGLE_ADS_CLIENT_ID, GOOGLE_ADS_CLIENT_SECRET, GOOGLE_ADS_DEVELOPER_TOKEN
    META_APP_ID, META_APP_SECRET, META_API_VERSION (default v21.0)
    APP_BASE_URL            Application URL used for post-callback redirects
    OAUTH_ALLOWED_ORIGINS   Optional comma-separated origin allow-list
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from adlink.platform.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_META_API_VERSION = "v21.0"
DEFAULT_GOOGLE_ADS_API_VERSION = "v17"

# Path on the application the redirect-style callback lands on
APP_INTEGRATIONS_PATH = "/app/integrations"


def _split_csv(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip().rstrip("/") for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class GoogleAdsAppConfig:
    client_id: str = ""
    client_secret: str = ""
    developer_token: str = ""
    api_version: str = DEFAULT_GOOGLE_ADS_API_VERSION

    def require_credentials(self) -> None:
        if not self.client_id or not self.client_secret:
            raise ConfigError("Missing Google Ads credentials (GOOGLE_ADS_CLIENT_ID/SECRET)")

    def require_developer_token(self) -> None:
        if not self.developer_token:
            raise ConfigError("GOOGLE_ADS_DEVELOPER_TOKEN is not configured")


@dataclass(frozen=True)
class MetaAppConfig:
    app_id: str = ""
    app_secret: str = ""
    api_version: str = DEFAULT_META_API_VERSION

    def require_credentials(self) -> None:
        if not self.app_id or not self.app_secret:
            raise ConfigError("Meta App credentials not configured (META_APP_ID/SECRET)")


@dataclass(frozen=True)
class OAuthSettings:
    """Explicit configuration for one request's OAuth handling."""
    google: GoogleAdsAppConfig = field(default_factory=GoogleAdsAppConfig)
    meta: MetaAppConfig = field(default_factory=MetaAppConfig)
    app_base_url: str = ""
    allowed_origins: Tuple[str, ...] = ()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "OAuthSettings":
        env = os.environ if environ is None else environ

        return cls(
            google=GoogleAdsAppConfig(
                client_id=env.get("GOOGLE_ADS_CLIENT_ID", ""),
                client_secret=env.get("GOOGLE_ADS_CLIENT_SECRET", ""),
                developer_token=env.get("GOOGLE_ADS_DEVELOPER_TOKEN", ""),
                api_version=env.get("GOOGLE_ADS_API_VERSION", DEFAULT_GOOGLE_ADS_API_VERSION),
            ),
            meta=MetaAppConfig(
                app_id=env.get("META_APP_ID", ""),
                app_secret=env.get("META_APP_SECRET", ""),
                api_version=env.get("META_API_VERSION", DEFAULT_META_API_VERSION),
            ),
            app_base_url=env.get("APP_BASE_URL", "").rstrip("/"),
            allowed_origins=_split_csv(env.get("OAUTH_ALLOWED_ORIGINS")),
        )

    def is_origin_allowed(self, origin: str) -> bool:
        """An empty allow-list accepts any origin."""
        if not self.allowed_origins:
            return True
        return origin in self.allowed_origins

    def app_redirect_base(self) -> str:
        if not self.app_base_url:
            raise ConfigError("APP_BASE_URL environment variable is required")
        return f"{self.app_base_url}{APP_INTEGRATIONS_PATH}"

    def configuration_status(self) -> dict:
        """Presence flags only; never values."""
        return {
            "google_client": bool(self.google.client_id and self.google.client_secret),
            "google_developer_token": bool(self.google.developer_token),
            "meta_app": bool(self.meta.app_id and self.meta.app_secret),
            "app_base_url": bool(self.app_base_url),
            "origin_allow_list": len(self.allowed_origins),
        }
