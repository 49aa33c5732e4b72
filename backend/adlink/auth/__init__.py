"""
Identity verification for incoming requests.

The identity provider issues bearer JWTs; this service only verifies them
and extracts the user id (sub claim).
"""

from adlink.auth.identity import (
    IdentityVerifier,
    JWTIdentityVerifier,
    extract_bearer_token,
)

__all__ = [
    "IdentityVerifier",
    "JWTIdentityVerifier",
    "extract_bearer_token",
]
