"""
Schemas for marketplace items (gigs and demands)
"""
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from datetime import datetime
from enum import Enum


class ItemType(str, Enum):
    """Тип позиции на маркетплейсе"""
    GIG = "gig"  # Услуга, которую предлагают (price)
    DEMAND = "demand"  # Услуга, которую ищут (budget)

    @property
    def complement(self) -> "ItemType":
        return ItemType.DEMAND if self is ItemType.GIG else ItemType.GIG

    @property
    def unavailable_title(self) -> str:
        return "Unavailable Gig" if self is ItemType.GIG else "Unavailable Demand"


class ItemResponse(BaseModel):
    """Gig or demand as returned by the API"""
    id: str = Field(..., description="Item ID")
    type: ItemType = Field(..., description="gig or demand")
    user_id: str = Field(..., description="Owner profile ID")
    title: str = Field(..., description="Title")
    description: Optional[str] = Field(None, description="Description")
    category: Optional[str] = Field(None, description="Category slug")
    amount: Optional[Decimal] = Field(None, description="Price for gigs, budget for demands")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")


class ItemListResponse(BaseModel):
    """List of items with pagination"""
    items: List[ItemResponse] = Field(..., description="List of items")
    total: int = Field(..., description="Total number of matching items")
    page: int = Field(..., description="Current page")
    page_size: int = Field(..., description="Page size")
