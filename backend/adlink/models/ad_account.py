"""
AdAccount model - cached ad accounts discovered through a stored credential.

Meta ad accounts and Google Ads customers are both cached here so the
frontend can list them without a provider round-trip.
"""

from sqlalchemy import Boolean, Column, DateTime, String, UniqueConstraint

from adlink.db_base import Base
from adlink.models.base import generate_uuid, utc_now


class AdAccount(Base):

    __tablename__ = "ad_accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(255), nullable=False, index=True)
    provider = Column(String(32), nullable=False)
    account_id = Column(String(64), nullable=False)
    name = Column(String(255), nullable=True)
    currency = Column(String(16), nullable=True)
    timezone = Column(String(64), nullable=True)
    status = Column(String(32), nullable=True)
    is_manager = Column(Boolean, nullable=False, default=False)
    last_synced_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "provider", "account_id", name="uq_ad_accounts_user_provider_account"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.account_id,
            "name": self.name,
            "currency": self.currency,
            "timezone": self.timezone,
            "status": self.status,
            "isManager": bool(self.is_manager),
        }
