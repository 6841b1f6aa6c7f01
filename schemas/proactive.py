"""Proactive outreach schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


PROACTIVE_TRIGGER_TYPES = (
    "date_event", "time_based", "goal_check", "emotional_check", "milestone", "re_engagement",
)
PROACTIVE_STATUSES = ("pending", "delivered", "read", "expired")


class ProactiveMessageSchema(BaseModel):
    """Stored outreach message."""

    id: int
    user_id: int
    content: str
    trigger_type: str = Field(..., description="One of PROACTIVE_TRIGGER_TYPES")
    status: str = Field("pending", description="One of PROACTIVE_STATUSES")
    callback_id: Optional[int] = None
    conversation_id: Optional[int] = None
    created_at: datetime
    delivered_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProactiveCandidate(BaseModel):
    """A user picked by one of the trigger sources for this run."""

    user_id: int
    trigger_type: str = Field(..., description="One of PROACTIVE_TRIGGER_TYPES")
    trigger_context: str = Field(..., description="Plain-language reason handed to the model")
    callback_id: Optional[int] = None
    goal_id: Optional[int] = None


class ProactiveReadRequest(BaseModel):
    """Client acknowledgement that a proactive message was read."""

    id: int = Field(..., description="Proactive message ID")
