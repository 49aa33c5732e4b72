"""
OAuth API routes for connecting ad platforms.

Provides:
- POST /api/oauth/{provider}/initiate: Start OAuth flow, returns authUrl
- GET|POST /api/oauth/{provider}/callback: Complete OAuth flow (JSON)
- GET /api/oauth/{provider}/callback/redirect: Complete OAuth flow and
  redirect back to the application
- POST /api/oauth/{provider}/revoke: Disconnect the provider

provider is "google" or "meta" (the google_ads / meta_ads aliases are
accepted).

SECURITY: initiate and revoke require a bearer identity token. Callbacks
are authenticated by the single-use state token instead.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from adlink.api.dependencies.oauth import get_bearer_token, get_orchestrator
from adlink.api.responses import oauth_error_response
from adlink.api.schemas.oauth import (
    ErrorResponse,
    OAuthCallbackRequest,
    OAuthCallbackResponse,
    OAuthInitiateRequest,
    OAuthInitiateResponse,
    OAuthRevokeResponse,
)
from adlink.constants.providers import OAuthProvider, parse_provider
from adlink.platform.errors import OAuthError
from adlink.services.oauth_orchestrator import CallbackResult, OAuthOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/oauth", tags=["oauth"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _provider_or_404(provider: str) -> OAuthProvider:
    try:
        return parse_provider(provider)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unsupported provider",
        )


@router.post(
    "/{provider}/initiate",
    response_model=OAuthInitiateResponse,
    responses=ERROR_RESPONSES,
)
async def initiate_oauth(
    request: Request,
    provider: str,
    body: Optional[OAuthInitiateRequest] = None,
    bearer_token: Optional[str] = Depends(get_bearer_token),
    orchestrator: OAuthOrchestrator = Depends(get_orchestrator),
):
    """
    Start the OAuth flow for a provider.

    The callback origin comes from the body, the Origin header or the
    Referer header, in that order.
    """
    oauth_provider = _provider_or_404(provider)

    try:
        auth_url = orchestrator.initiate(
            bearer_token,
            oauth_provider,
            origin_hint=body.origin if body else None,
            origin_header=request.headers.get("origin"),
            referer_header=request.headers.get("referer"),
        )
    except OAuthError as e:
        return oauth_error_response(e)

    return OAuthInitiateResponse(auth_url=auth_url)


async def _complete(
    orchestrator: OAuthOrchestrator,
    provider: OAuthProvider,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str],
):
    try:
        result = await orchestrator.callback(provider, code, state, provider_error=error)
    except OAuthError as e:
        return oauth_error_response(e)
    return OAuthCallbackResponse(user_id=result.user_id)


@router.get(
    "/{provider}/callback",
    response_model=OAuthCallbackResponse,
    responses=ERROR_RESPONSES,
)
async def oauth_callback_get(
    provider: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    orchestrator: OAuthOrchestrator = Depends(get_orchestrator),
):
    """Complete the OAuth flow from query parameters."""
    return await _complete(orchestrator, _provider_or_404(provider), code, state, error)


@router.post(
    "/{provider}/callback",
    response_model=OAuthCallbackResponse,
    responses=ERROR_RESPONSES,
)
async def oauth_callback_post(
    provider: str,
    body: OAuthCallbackRequest,
    orchestrator: OAuthOrchestrator = Depends(get_orchestrator),
):
    """
    Complete the OAuth flow from a JSON body.

    A PROVIDER_UNAVAILABLE failure leaves the state valid; the same body can
    be posted again until the state expires.
    """
    return await _complete(
        orchestrator,
        _provider_or_404(provider),
        body.code,
        body.state,
        body.error,
    )


@router.get("/{provider}/callback/redirect")
async def oauth_callback_redirect(
    provider: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    orchestrator: OAuthOrchestrator = Depends(get_orchestrator),
):
    """
    Complete the OAuth flow and send the browser back to the application.

    The redirect carries only success/failure flags.
    """
    oauth_provider = _provider_or_404(provider)

    result: Optional[CallbackResult] = None
    try:
        result = await orchestrator.callback(oauth_provider, code, state, provider_error=error)
    except OAuthError as e:
        logger.warning(
            "OAuth redirect callback failed",
            extra={"provider": oauth_provider.value, "error_code": e.error_code.value},
        )
    except Exception as e:
        # The browser still lands on the app with the failure flag
        logger.error(
            "OAuth redirect callback crashed",
            extra={"provider": oauth_provider.value, "error_type": type(e).__name__},
            exc_info=True,
        )

    try:
        location = orchestrator.build_app_redirect(oauth_provider, result)
    except OAuthError as e:
        return oauth_error_response(e)

    return RedirectResponse(url=location, status_code=status.HTTP_302_FOUND)


@router.post(
    "/{provider}/revoke",
    response_model=OAuthRevokeResponse,
    responses=ERROR_RESPONSES,
)
async def revoke_oauth(
    provider: str,
    bearer_token: Optional[str] = Depends(get_bearer_token),
    orchestrator: OAuthOrchestrator = Depends(get_orchestrator),
):
    """Disconnect a provider. Succeeds even if nothing was connected."""
    oauth_provider = _provider_or_404(provider)

    try:
        await orchestrator.revoke(bearer_token, oauth_provider)
    except OAuthError as e:
        return oauth_error_response(e)

    return OAuthRevokeResponse(message="Access revoked successfully")
