"""
FastAPI dependencies wiring the OAuth services per request.

Settings, the HTTP client and the orchestrator are built for every request
from explicit configuration. Only the identity verifier is reused across
requests so its JWKS cache survives.
"""

from functools import lru_cache
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from adlink.auth.identity import IdentityVerifier, JWTIdentityVerifier, extract_bearer_token
from adlink.config.oauth_settings import OAuthSettings
from adlink.database.session import get_db_session
from adlink.integrations.oauth_base import DEFAULT_TIMEOUT_SECONDS
from adlink.platform.errors import UnauthorizedError
from adlink.services.ad_account_service import AdAccountService
from adlink.services.oauth_orchestrator import OAuthOrchestrator


def get_settings() -> OAuthSettings:
    return OAuthSettings.from_env()


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS) as client:
        yield client


@lru_cache(maxsize=1)
def _verifier_from_env() -> JWTIdentityVerifier:
    return JWTIdentityVerifier.from_env()


def get_identity_verifier() -> IdentityVerifier:
    return _verifier_from_env()


def get_bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    """
    Raw bearer token from the Authorization header, or None.

    Verification happens in the services so a missing token surfaces as
    the structured UNAUTHORIZED error.
    """
    try:
        return extract_bearer_token(authorization)
    except UnauthorizedError:
        return None


def get_orchestrator(
    db: Session = Depends(get_db_session),
    settings: OAuthSettings = Depends(get_settings),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> OAuthOrchestrator:
    return OAuthOrchestrator(db, settings, verifier, http_client)


def get_ad_account_service(
    db: Session = Depends(get_db_session),
    settings: OAuthSettings = Depends(get_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> AdAccountService:
    return AdAccountService(db, settings, http_client)
