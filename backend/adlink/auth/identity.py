"""
Bearer JWT verification against the external identity provider.

This module handles:
- Bearer header parsing
- JWT signature verification (JWKS/RS256, or a shared HS256 secret for
  self-hosted setups and tests)
- Issuer / audience / expiry validation
- Extracting the user id from the sub claim

Environment:
    AUTH_JWKS_URL       JWKS endpoint of the identity provider
    AUTH_JWT_SECRET     Shared HS256 secret (used when no JWKS URL is set)
    AUTH_JWT_ISSUER     Expected iss claim (optional)
    AUTH_JWT_AUDIENCE   Expected aud claim (optional)

SECURITY:
- Tokens are never logged
- Every verification failure surfaces as UnauthorizedError
"""

import abc
import logging
import os
import time
from threading import Lock
from typing import Any, Dict, Optional

import jwt
from jwt import PyJWKClient, PyJWKClientError
from jwt.exceptions import (
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidTokenError,
)

from adlink.platform.errors import ConfigError, UnauthorizedError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Pull the token out of an Authorization header.

    Raises:
        UnauthorizedError: Header missing or not a Bearer credential
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise UnauthorizedError("Missing bearer token")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise UnauthorizedError("Empty bearer token")
    return token


class IdentityVerifier(abc.ABC):
    """Turns a bearer token into a verified user id."""

    @abc.abstractmethod
    def verify(self, token: str) -> str:
        """Return the user id or raise UnauthorizedError."""


class JWTIdentityVerifier(IdentityVerifier):
    """
    Verifies identity provider JWTs with PyJWT.

    Usage:
        verifier = JWTIdentityVerifier.from_env()
        user_id = verifier.verify(token)
    """

    # JWKS cache duration in seconds
    JWKS_CACHE_DURATION = 3600

    # Clock skew tolerance in seconds (for exp/iat validation)
    CLOCK_SKEW_SECONDS = 60

    def __init__(
        self,
        jwks_url: Optional[str] = None,
        secret: Optional[str] = None,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
    ):
        if not jwks_url and not secret:
            raise ConfigError("AUTH_JWKS_URL or AUTH_JWT_SECRET must be configured")

        self._jwks_url = jwks_url
        self._secret = secret
        self._issuer = issuer
        self._audience = audience

        self._jwks_client: Optional[PyJWKClient] = None
        self._jwks_client_lock = Lock()
        self._jwks_last_refresh: float = 0

    @classmethod
    def from_env(cls) -> "JWTIdentityVerifier":
        return cls(
            jwks_url=os.getenv("AUTH_JWKS_URL") or None,
            secret=os.getenv("AUTH_JWT_SECRET") or None,
            issuer=os.getenv("AUTH_JWT_ISSUER") or None,
            audience=os.getenv("AUTH_JWT_AUDIENCE") or None,
        )

    def _get_jwks_client(self) -> PyJWKClient:
        with self._jwks_client_lock:
            now = time.time()
            if (
                self._jwks_client is None
                or now - self._jwks_last_refresh > self.JWKS_CACHE_DURATION
            ):
                self._jwks_client = PyJWKClient(
                    self._jwks_url,
                    cache_keys=True,
                    lifespan=self.JWKS_CACHE_DURATION,
                )
                self._jwks_last_refresh = now
                logger.debug("Refreshed JWKS client")
            return self._jwks_client

    def _signing_key(self, token: str):
        if self._jwks_url:
            return self._get_jwks_client().get_signing_key_from_jwt(token).key, ["RS256"]
        return self._secret, ["HS256"]

    def decode(self, token: str) -> Dict[str, Any]:
        """
        Verify a JWT and return its claims.

        Raises:
            UnauthorizedError: If verification fails for any reason
        """
        if not token:
            raise UnauthorizedError("Token is required")

        options = {
            "verify_signature": True,
            "verify_exp": True,
            "verify_aud": self._audience is not None,
            "require": ["sub", "exp"],
        }

        try:
            key, algorithms = self._signing_key(token)
            return jwt.decode(
                token,
                key,
                algorithms=algorithms,
                issuer=self._issuer,
                audience=self._audience,
                options=options,
                leeway=self.CLOCK_SKEW_SECONDS,
            )
        except ExpiredSignatureError:
            logger.warning("Identity token has expired")
            raise UnauthorizedError("Identity token has expired")
        except InvalidIssuerError:
            logger.warning("Invalid identity token issuer")
            raise UnauthorizedError("Invalid token issuer")
        except InvalidAudienceError:
            logger.warning("Invalid identity token audience")
            raise UnauthorizedError("Invalid token audience")
        except PyJWKClientError as e:
            logger.error("JWKS client error", extra={"error_type": type(e).__name__})
            raise UnauthorizedError("Failed to fetch signing key")
        except InvalidTokenError as e:
            logger.warning("Invalid identity token", extra={"error_type": type(e).__name__})
            raise UnauthorizedError("Invalid identity token")

    def verify(self, token: str) -> str:
        claims = self.decode(token)
        user_id = claims.get("sub")
        if not isinstance(user_id, str) or not user_id:
            raise UnauthorizedError("Token has no subject")
        return user_id
