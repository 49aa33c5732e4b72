"""
Health check route.

Reports configuration presence flags only; never values.
"""

from fastapi import APIRouter

from adlink.config.oauth_settings import OAuthSettings
from adlink.platform.secrets import validate_encryption_configured

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    return {
        "status": "ok",
        "configuration": {
            **OAuthSettings.from_env().configuration_status(),
            "token_encryption_key": validate_encryption_configured(),
        },
    }
