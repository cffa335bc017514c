"""
Schemas for public profiles
"""
from pydantic import BaseModel, Field
from typing import Optional

UNKNOWN_USER = "Unknown User"


class ProfileSummary(BaseModel):
    """Public profile snapshot embedded into deals and conversations"""
    id: str = Field(..., description="Profile ID")
    full_name: str = Field(..., description="Display name ('Unknown User' when the profile is missing)")
    username: Optional[str] = Field(None, description="Unique handle")
    avatar_url: Optional[str] = Field(None, description="Avatar URL")
    company_name: Optional[str] = Field(None, description="Company name")
    available: bool = Field(True, description="False when the profile could not be resolved")

    class Config:
        from_attributes = True
