"""
Google Ads OAuth and account response models.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class GoogleTokenSet:
    """Result of a successful authorization code exchange."""
    refresh_token: str
    scopes: Tuple[str, ...]
    access_token: Optional[str] = None
    expires_in: Optional[int] = None

    def __repr__(self) -> str:
        return f"GoogleTokenSet(scopes={self.scopes!r}, expires_in={self.expires_in})"


@dataclass(frozen=True)
class GoogleAccessToken:
    access_token: str
    expires_in: Optional[int] = None

    def __repr__(self) -> str:
        return f"GoogleAccessToken(expires_in={self.expires_in})"


@dataclass
class GoogleAdsCustomer:
    """A Google Ads customer account reachable with the user's credential."""
    customer_id: str
    descriptive_name: Optional[str] = None
    currency_code: Optional[str] = None
    time_zone: Optional[str] = None
    is_manager: bool = False

    @classmethod
    def from_search_row(cls, customer_id: str, row: Dict[str, Any]) -> "GoogleAdsCustomer":
        customer = row.get("customer", {})
        return cls(
            customer_id=str(customer.get("id") or customer_id),
            descriptive_name=customer.get("descriptiveName"),
            currency_code=customer.get("currencyCode"),
            time_zone=customer.get("timeZone"),
            is_manager=bool(customer.get("manager", False)),
        )

    @property
    def display_name(self) -> str:
        return self.descriptive_name or f"Customer {self.customer_id}"


def customer_id_from_resource_name(resource_name: str) -> str:
    """'customers/1234567890' -> '1234567890'"""
    return resource_name.rsplit("/", 1)[-1]
