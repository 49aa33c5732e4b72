"""
Ad account linking API.

Serves the OAuth initiate/callback/revoke endpoints for Google Ads and
Meta Ads and the ad account listings built on the stored credentials.

Run locally:
    cd backend && python main.py
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adlink.api.responses import oauth_error_response
from adlink.api.routes import ad_accounts, health, oauth
from adlink.config.oauth_settings import OAuthSettings
from adlink.platform.errors import OAuthError
from adlink.platform.secrets import SecretRedactingFilter, validate_encryption_configured

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Root logging with token redaction on every handler."""
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), format=LOG_FORMAT)
    redactor = SecretRedactingFilter()
    for handler in logging.getLogger().handlers:
        handler.addFilter(redactor)


configure_logging()
logger = logging.getLogger(__name__)


def _cors_origins() -> List[str]:
    raw = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _startup_report() -> dict:
    # Missing values are reported, not fatal: affected endpoints fail with
    # CONFIG_ERROR on use
    report = OAuthSettings.from_env().configuration_status()
    report.update(
        token_encryption_key=validate_encryption_configured(),
        identity_verification=bool(os.getenv("AUTH_JWKS_URL") or os.getenv("AUTH_JWT_SECRET")),
        database=bool(os.getenv("DATABASE_URL")),
    )
    return report


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Ad account linking API starting", extra={"config_status": _startup_report()})
    yield
    logger.info("Ad account linking API stopped")


app = FastAPI(
    title="Ad Account Linking API",
    description="OAuth account linking for Google Ads and Meta Ads",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

for module in (health, oauth, ad_accounts):
    app.include_router(module.router)


@app.exception_handler(OAuthError)
async def handle_oauth_error(request: Request, exc: OAuthError):
    """Structured errors raised outside route bodies (e.g. dependencies)."""
    return oauth_error_response(exc)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        extra={"error_type": type(exc).__name__, "path": request.url.path},
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("ENV") == "development",
    )
