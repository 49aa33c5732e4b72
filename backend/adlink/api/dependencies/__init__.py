"""
API Dependencies module.

Provides shared FastAPI dependencies for route handlers.
"""

from adlink.api.dependencies.oauth import (
    get_ad_account_service,
    get_bearer_token,
    get_http_client,
    get_identity_verifier,
    get_orchestrator,
    get_settings,
)

__all__ = [
    "get_ad_account_service",
    "get_bearer_token",
    "get_http_client",
    "get_identity_verifier",
    "get_orchestrator",
    "get_settings",
]
