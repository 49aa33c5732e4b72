"""
RateLimitWindow model - sliding-window request log per (user, action).

requests holds millisecond epoch timestamps in chronological order.
Entries older than the evaluated window are pruned on every check, so the
list never grows beyond max_requests.
"""

from sqlalchemy import JSON, BigInteger, Column, String, UniqueConstraint

from adlink.db_base import Base
from adlink.models.base import generate_uuid


class RateLimitWindow(Base):

    __tablename__ = "rate_limit_windows"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(255), nullable=False)
    action = Column(String(128), nullable=False)
    requests = Column(JSON, nullable=False, default=list)
    last_reset = Column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "action", name="uq_rate_limit_windows_user_action"),
    )
