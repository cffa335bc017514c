"""
Schemas for deals
"""
from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List, Dict
from datetime import datetime

from schemas.items import ItemType
from schemas.profiles import ProfileSummary
from services.deals.states import DealStatus


class DealItemSummary(BaseModel):
    """Gig or demand referenced by a deal"""
    id: str = Field(..., description="Item ID")
    type: ItemType = Field(..., description="gig or demand")
    title: str = Field(..., description="Item title ('Unavailable Gig'/'Unavailable Demand' when missing)")
    amount: Optional[Decimal] = Field(None, description="Price or budget, null when the item is missing")
    available: bool = Field(True, description="False when the item no longer exists")


class CreateDealRequest(BaseModel):
    """Request schema for creating a deal"""
    recipient_id: str = Field(..., description="Profile ID of the owner of the target item")
    initiator_item_type: ItemType = Field(..., description="Type of the item offered by the initiator")
    initiator_item_id: str = Field(..., min_length=1, description="Item offered by the initiator")
    recipient_item_type: ItemType = Field(..., description="Type of the target item")
    recipient_item_id: str = Field(..., min_length=1, description="Target item")
    message: str = Field(..., description="Note for the recipient")


class UpdateDealStatusRequest(BaseModel):
    """Request schema for a deal status change"""
    status: str = Field(..., description="New status: active, rejected or completed")

    @field_validator('status')
    @classmethod
    def normalize_status(cls, v: str) -> str:
        return v.strip().lower()


class DealReplyRequest(BaseModel):
    """Request schema for replying to a deal in chat"""
    content: str = Field(..., description="Reply text")


class DealResponse(BaseModel):
    """Response schema for a persisted deal"""
    id: str = Field(..., description="Deal ID (base58 UUID)")
    initiator_id: str = Field(..., description="Initiator profile ID")
    recipient_id: str = Field(..., description="Recipient profile ID")
    initiator_item_type: ItemType = Field(..., description="Initiator item type")
    initiator_item_id: str = Field(..., description="Initiator item ID")
    recipient_item_type: ItemType = Field(..., description="Recipient item type")
    recipient_item_id: str = Field(..., description="Recipient item ID")
    status: DealStatus = Field(..., description="Deal status")
    message: Optional[str] = Field(None, description="Note attached at creation")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")


class DealDetailsResponse(DealResponse):
    """Deal joined with both profiles and both item summaries"""
    initiator: ProfileSummary = Field(..., description="Initiator profile")
    recipient: ProfileSummary = Field(..., description="Recipient profile")
    initiator_item: DealItemSummary = Field(..., description="Item offered by the initiator")
    recipient_item: DealItemSummary = Field(..., description="Target item")


class DealListResponse(BaseModel):
    """Response schema for the deals list"""
    deals: List[DealDetailsResponse] = Field(..., description="Deals, newest first")
    total: int = Field(..., description="Number of deals returned")


class DealSummaryResponse(BaseModel):
    """Deal counts per status for the current user"""
    counts: Dict[str, int] = Field(..., description="status -> number of deals")
    total: int = Field(..., description="Total number of deals")
