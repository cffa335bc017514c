"""
Schemas for direct messages and conversations
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from schemas.profiles import ProfileSummary


class SendMessageRequest(BaseModel):
    """Request schema for sending a message"""
    recipient_id: str = Field(..., min_length=1, description="Recipient profile ID")
    content: str = Field(..., description="Message text (trimmed, must not be blank)")


class MessageResponse(BaseModel):
    """Response schema for a message"""
    id: str = Field(..., description="Message ID (UUID, or temp-<uuid> while pending in the outbox)")
    sender_id: str = Field(..., description="Sender profile ID")
    recipient_id: str = Field(..., description="Recipient profile ID")
    content: str = Field(..., description="Message text")
    is_read: bool = Field(False, description="Read by the recipient")
    read_at: Optional[datetime] = Field(None, description="When the recipient read the message")
    created_at: datetime = Field(..., description="Creation timestamp")


class ConversationResponse(BaseModel):
    """Conversation with a single counterparty, derived from messages"""
    counterparty_id: str = Field(..., description="Other participant profile ID")
    counterparty: ProfileSummary = Field(..., description="Counterparty profile (placeholder if missing)")
    last_message: Optional[MessageResponse] = Field(None, description="Last message in either direction")
    last_message_at: Optional[datetime] = Field(None, description="Timestamp of the last message")
    unread_count: int = Field(0, description="Unread messages from the counterparty")


class ConversationListResponse(BaseModel):
    """List of conversations, most recent first"""
    conversations: List[ConversationResponse] = Field(..., description="Conversations")
    total: int = Field(..., description="Number of conversations")


class ThreadResponse(BaseModel):
    """All messages between the current user and a counterparty"""
    counterparty_id: str = Field(..., description="Counterparty profile ID")
    messages: List[MessageResponse] = Field(..., description="Messages, oldest first")
    marked_read: int = Field(0, description="Number of messages marked read by this fetch")


class UnreadCountResponse(BaseModel):
    unread_count: int = Field(..., description="Unread messages addressed to the current user")


class MarkReadResponse(BaseModel):
    updated: int = Field(..., description="Number of messages that changed state")


class OpenConversationRequest(BaseModel):
    """Ask the user's open conversation views to focus a counterparty"""
    counterparty_id: str = Field(..., min_length=1, description="Counterparty profile ID")
    counterparty_name: Optional[str] = Field(None, description="Display name (defaults to the profile name)")


class OpenConversationResponse(BaseModel):
    counterparty: ProfileSummary = Field(..., description="Counterparty the views were asked to open")
