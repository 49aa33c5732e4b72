"""
OAuth state model for CSRF protection during ad platform OAuth flows.

One row per in-flight authorization attempt, keyed by the opaque state
token itself. States are:
- Single-use (deleted after the callback consumes them)
- Short-lived (10-minute absolute expiry)
- Bound to the initiating user, provider and exact redirect URI
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, Text

from adlink.db_base import Base
from adlink.models.base import ensure_utc, utc_now

# Fixed TTL for state tokens
STATE_TTL_SECONDS = 600


class OAuthState(Base):
    """In-flight OAuth authorization attempt."""

    __tablename__ = "oauth_states"

    token = Column(
        String(128),
        primary_key=True,
        comment="Opaque random state token (lowercase alphanumeric)"
    )

    user_id = Column(
        String(255),
        nullable=False,
        index=True,
        comment="User who initiated the flow"
    )

    provider = Column(
        String(32),
        nullable=False,
        comment="google | meta"
    )

    redirect_uri = Column(
        Text,
        nullable=False,
        comment="Exact callback URL sent to the provider for this attempt"
    )

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    expires_at = Column(
        DateTime(timezone=True),
        nullable=False,
        comment="Absolute expiry (created_at + 10 minutes)"
    )

    __table_args__ = (
        Index("ix_oauth_states_expires_at", "expires_at"),
    )

    def is_expired(self, now: datetime = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > ensure_utc(self.expires_at)

    def __repr__(self) -> str:
        # Never include the full token
        return (
            f"<OAuthState(user_id={self.user_id}, provider={self.provider}, "
            f"expires_at={self.expires_at})>"
        )
