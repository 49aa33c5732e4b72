"""
OAuth state store for CSRF protection.

Handles:
- State token generation (random base-36, lowercase alphanumeric)
- Format validation of state and authorization code before any I/O
- Persisting the (user, provider, redirect_uri) binding with a 10-minute TTL
- Lookup and validation on callback

Single-use is enforced by the orchestrator: consume() validates and returns
the record, the caller deletes it once the attempt is settled. consume() and
delete() are separate statements, so two simultaneous callbacks carrying the
same state can both pass consume(); the provider rejects the second code
exchange because authorization codes are single-use.
"""

import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from adlink.constants.providers import OAuthProvider
from adlink.models.oauth_state import OAuthState, STATE_TTL_SECONDS
from adlink.platform.errors import ErrorCode, InvalidCodeError, StateError

logger = logging.getLogger(__name__)

STATE_MIN_LENGTH = 8
STATE_MAX_LENGTH = 128
STATE_REGEX = re.compile(r"^[a-z0-9]+$")

# Exclusive bounds
CODE_MIN_LENGTH = 10
CODE_MAX_LENGTH = 4096

_BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
STATE_SEGMENTS = 4
STATE_SEGMENT_LENGTH = 10


def generate_state_token() -> str:
    """
    Generate an opaque state token.

    Four 10-character base-36 segments from the OS CSPRNG (~206 bits).
    """
    return "".join(
        "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(STATE_SEGMENT_LENGTH))
        for _ in range(STATE_SEGMENTS)
    )


def is_valid_state(state: object) -> bool:
    """Check state format: lowercase alphanumeric, length 8..128."""
    return (
        isinstance(state, str)
        and STATE_MIN_LENGTH <= len(state) <= STATE_MAX_LENGTH
        and bool(STATE_REGEX.match(state))
    )


def is_valid_oauth_code(code: object) -> bool:
    """Check authorization code format: string, 10 < length < 4096."""
    return (
        isinstance(code, str)
        and CODE_MIN_LENGTH < len(code) < CODE_MAX_LENGTH
    )


def validate_state_format(state: object) -> str:
    if not is_valid_state(state):
        raise StateError("State failed format validation", ErrorCode.INVALID_STATE)
    return state


def validate_code_format(code: object) -> str:
    if not is_valid_oauth_code(code):
        raise InvalidCodeError()
    return code


class OAuthStateStore:
    """Persistence for in-flight OAuth attempts."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Callable[[], datetime]] = None,
        ttl_seconds: int = STATE_TTL_SECONDS,
    ):
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.ttl = timedelta(seconds=ttl_seconds)

    def create(self, user_id: str, provider: OAuthProvider, redirect_uri: str) -> str:
        """
        Create a state record for a new authorization attempt.

        Returns:
            The state token to send as the provider's state parameter
        """
        now = self._clock()
        token = generate_state_token()

        self.db.add(
            OAuthState(
                token=token,
                user_id=user_id,
                provider=OAuthProvider(provider).value,
                redirect_uri=redirect_uri,
                created_at=now,
                expires_at=now + self.ttl,
            )
        )
        self.db.commit()

        logger.info(
            "OAuth state created",
            extra={"user_id": user_id, "provider": OAuthProvider(provider).value},
        )
        return token

    def consume(self, token: object, expected_provider: Optional[OAuthProvider] = None) -> OAuthState:
        """
        Look up and validate a state token from a callback.

        The record is NOT deleted here; see delete().

        Raises:
            StateError: INVALID_STATE (format, no lookup performed),
                STATE_NOT_FOUND, STATE_EXPIRED or STATE_PROVIDER_MISMATCH
        """
        validate_state_format(token)

        record = self.db.execute(
            select(OAuthState).where(OAuthState.token == token)
        ).scalar_one_or_none()

        if record is None:
            logger.warning("OAuth state not found", extra={"state_length": len(token)})
            raise StateError(
                "State not found; it may have expired or was already used",
                ErrorCode.STATE_NOT_FOUND,
            )

        if record.is_expired(self._clock()):
            logger.warning(
                "OAuth state expired",
                extra={"user_id": record.user_id, "provider": record.provider},
            )
            raise StateError("State has expired", ErrorCode.STATE_EXPIRED)

        if expected_provider is not None and record.provider != OAuthProvider(expected_provider).value:
            logger.warning(
                "OAuth state provider mismatch",
                extra={
                    "user_id": record.user_id,
                    "stored_provider": record.provider,
                    "expected_provider": OAuthProvider(expected_provider).value,
                },
            )
            raise StateError("Invalid state provider", ErrorCode.STATE_PROVIDER_MISMATCH)

        return record

    def delete(self, token: str) -> bool:
        """
        Delete a state record.

        Returns:
            True if a record was removed, False if it was already gone
        """
        result = self.db.execute(delete(OAuthState).where(OAuthState.token == token))
        self.db.commit()
        removed = bool(result.rowcount)
        if not removed:
            logger.warning("OAuth state already removed before cleanup")
        return removed

    def purge_expired(self) -> int:
        """
        Delete expired state records.

        Not called by the request path; for a scheduled cleanup job.
        """
        result = self.db.execute(delete(OAuthState).where(OAuthState.expires_at < self._clock()))
        self.db.commit()
        return result.rowcount or 0
