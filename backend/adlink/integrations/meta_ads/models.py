"""
Meta Ads OAuth, account and campaign response models.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

# Default long-lived token lifetime when Meta omits expires_in (60 days)
DEFAULT_LONG_LIVED_EXPIRES_IN = 5_184_000

# account_status values returned by the Marketing API
META_ACCOUNT_STATUS_ACTIVE = 1


@dataclass(frozen=True)
class MetaLongLivedToken:
    access_token: str
    expires_in: int = DEFAULT_LONG_LIVED_EXPIRES_IN

    def __repr__(self) -> str:
        return f"MetaLongLivedToken(expires_in={self.expires_in})"


@dataclass(frozen=True)
class MetaIdentity:
    """Meta user behind a token. Both fields are optional enrichment."""
    user_id: Optional[str] = None
    name: Optional[str] = None


@dataclass
class MetaAdAccount:
    account_id: str
    name: str
    currency: Optional[str] = None
    timezone: Optional[str] = None
    status: str = "inactive"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetaAdAccount":
        account_id = str(data.get("account_id") or data.get("id", "")).replace("act_", "")
        return cls(
            account_id=account_id,
            name=data.get("name") or f"Ad Account {account_id}",
            currency=data.get("currency"),
            timezone=data.get("timezone_name"),
            status="active" if data.get("account_status") == META_ACCOUNT_STATUS_ACTIVE else "inactive",
        )


@dataclass
class MetaCampaign:
    campaign_id: str
    name: str
    status: Optional[str] = None
    objective: Optional[str] = None
    start_time: Optional[str] = None
    stop_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetaCampaign":
        campaign_id = str(data.get("id", ""))
        return cls(
            campaign_id=campaign_id,
            name=data.get("name") or f"Campaign {campaign_id}",
            status=data.get("status"),
            objective=data.get("objective"),
            start_time=data.get("start_time"),
            stop_time=data.get("stop_time"),
        )
