"""
Request/response schemas for the OAuth and ad account endpoints.

Field aliases keep the camelCase wire format the frontend consumes.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class OAuthInitiateRequest(BaseModel):
    """Body for POST /api/oauth/{provider}/initiate."""

    origin: Optional[str] = None


class OAuthInitiateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    auth_url: str = Field(alias="authUrl")


class OAuthCallbackRequest(BaseModel):
    """Body for POST /api/oauth/{provider}/callback."""

    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None


class OAuthCallbackResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    user_id: str = Field(alias="userId")


class OAuthRevokeResponse(BaseModel):
    success: bool = True
    message: str


class AdAccountSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: Optional[str] = None
    currency: Optional[str] = None
    timezone: Optional[str] = None
    status: Optional[str] = None
    is_manager: bool = Field(default=False, alias="isManager")


class MetaAdAccountsResponse(BaseModel):
    success: bool = True
    accounts: List[AdAccountSummary]


class GoogleAdsCustomersResponse(BaseModel):
    success: bool = True
    customers: List[AdAccountSummary]


class ErrorResponse(BaseModel):
    """Body of every structured error."""

    success: bool = False
    error: str
    code: str


class MetaCampaignSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    status: Optional[str] = None
    objective: Optional[str] = None
    start_time: Optional[str] = Field(default=None, alias="startTime")
    stop_time: Optional[str] = Field(default=None, alias="stopTime")


class MetaCampaignsResponse(BaseModel):
    success: bool = True
    campaigns: List[MetaCampaignSummary]
