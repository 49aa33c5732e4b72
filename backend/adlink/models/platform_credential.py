"""
PlatformCredential model - per-user, per-provider OAuth credential.

At most one row per (user_id, provider); writes are upserts.

SECURITY:
- Meta long-lived access tokens are AES-256-GCM encrypted
  (encrypted_access_token) via adlink.platform.secrets
- Google refresh tokens are currently stored as issued (refresh_token);
  see DESIGN.md for the open sign-off on encrypting them too
- Tokens are NEVER logged or exposed in __repr__ / safe_metadata()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB

from adlink.db_base import Base
from adlink.models.base import TimestampMixin, ensure_utc, generate_uuid

# Use JSONB for PostgreSQL, JSON for other databases (testing)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class PlatformCredential(Base, TimestampMixin):
    """Stored OAuth credential for one connected ad platform."""

    __tablename__ = "platform_credentials"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    user_id = Column(String(255), nullable=False, index=True)

    provider = Column(String(32), nullable=False)

    provider_user_id = Column(
        String(255),
        nullable=True,
        comment="Account id at the provider (informational)"
    )

    provider_user_name = Column(
        String(255),
        nullable=True,
        comment="Display name at the provider (informational)"
    )

    refresh_token = Column(
        Text,
        nullable=True,
        comment="Google refresh token. NEVER log."
    )

    encrypted_access_token = Column(
        Text,
        nullable=True,
        comment="AES-256-GCM blob of the Meta long-lived token. NEVER log."
    )

    scopes = Column(JSONType, nullable=False, default=list)

    expires_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Absolute token expiry (Meta only)"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_platform_credentials_user_provider"),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return ensure_utc(self.expires_at) < now

    def safe_metadata(self) -> dict:
        """Non-sensitive view for API responses."""
        return {
            "provider": self.provider,
            "provider_user_id": self.provider_user_id,
            "provider_user_name": self.provider_user_name,
            "scopes": list(self.scopes or []),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "connected": True,
        }

    def __repr__(self) -> str:
        return f"<PlatformCredential(user_id={self.user_id}, provider={self.provider})>"
