"""Conversation and message schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, ConfigDict


class ConversationSchema(BaseModel):
    """Complete conversation schema."""

    id: int = Field(..., description="Conversation ID")
    user_id: int = Field(..., description="Owning user ID")
    title: Optional[str] = Field(default=None, description="Title derived from the first message")
    summary: Optional[str] = Field(default=None, description="Rolling summary of the conversation")
    last_summarized_at: Optional[datetime] = Field(default=None, description="When summary was last refreshed")
    last_processed_at: Optional[datetime] = Field(default=None, description="When facts were last extracted")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last message timestamp")

    model_config = ConfigDict(from_attributes=True)


class MessageBaseSchema(BaseModel):
    """Base message schema."""

    role: Literal["user", "assistant"] = Field(..., description="Message role")
    content: str = Field(..., min_length=1, description="Message content")


class MessageCreateSchema(MessageBaseSchema):
    """Schema for creating a message."""

    conversation_id: int = Field(..., description="Conversation ID")


class MessageSchema(MessageBaseSchema):
    """Complete message schema."""

    id: int = Field(..., description="Message ID")
    conversation_id: int = Field(..., description="Conversation ID")
    created_at: datetime = Field(..., description="Message timestamp")

    model_config = ConfigDict(from_attributes=True)


class ChatRequestSchema(BaseModel):
    """Inbound chat turn."""

    conversation_id: Optional[int] = Field(default=None, description="Existing conversation, or None to start one")
    message: str = Field(..., min_length=1, max_length=10000, description="User message text")
