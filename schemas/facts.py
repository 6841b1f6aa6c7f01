"""
Schemas for the long-lived facts mined from conversations.

The enumerations below are the only values the extraction job will ever
write. Anything else coming back from the model is dropped or normalized.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict


ENTITY_TYPES = (
    "match", "date", "partner", "ex", "friend", "family", "coworker", "therapist", "other",
)
ENTITY_PLATFORMS = ("hinge", "tinder", "bumble", "irl")
ENTITY_STATUSES = ("active", "inactive", "ended", "unknown")

GOAL_CATEGORIES = ("dating", "fitness", "career", "social", "style", "health", "personal")
GOAL_STATUSES = ("active", "completed", "paused", "abandoned")
GOAL_SOURCES = ("explicit", "inferred", "suggested")
CHECK_IN_INTERVALS = ("daily", "weekly", "biweekly", "monthly")

EMOTIONS = (
    "happy", "sad", "anxious", "angry", "hopeful", "frustrated",
    "excited", "neutral", "heartbroken", "confident", "lonely", "grateful",
)

CALLBACK_TRIGGER_TYPES = ("date_event", "time_based", "goal_check", "emotional_check", "milestone")
CALLBACK_PRIORITIES = ("high", "medium", "low")
CALLBACK_STATUSES = ("pending", "delivered", "expired", "cancelled")

INSIGHT_TYPES = (
    "preference", "goal", "context", "personality",
    "life_state", "relationship", "person", "milestone",
)


class EntitySchema(BaseModel):
    """A person in the user's life."""

    id: int
    user_id: int
    name: str = Field(..., description="Name as the user refers to them")
    type: str = Field(..., description="One of ENTITY_TYPES")
    platform: Optional[str] = Field(None, description="Where they met, one of ENTITY_PLATFORMS")
    status: str = Field("unknown", description="One of ENTITY_STATUSES")
    notes: Optional[str] = None
    first_mentioned_at: datetime
    last_mentioned_at: datetime
    active: bool = True

    model_config = ConfigDict(from_attributes=True)


class GoalSchema(BaseModel):
    """Something the user is working toward."""

    id: int
    user_id: int
    category: str = Field(..., description="One of GOAL_CATEGORIES")
    title: str
    status: str = Field("active", description="One of GOAL_STATUSES")
    progress: Optional[str] = None
    target_date: Optional[datetime] = None
    check_in_interval: Optional[str] = Field(None, description="One of CHECK_IN_INTERVALS or None")
    last_checked_in_at: Optional[datetime] = None
    source: str = Field("inferred", description="One of GOAL_SOURCES")
    confidence: float = Field(0.5, ge=0.1, le=1.0)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EmotionalLogSchema(BaseModel):
    """Emotional reading taken from one conversation."""

    id: int
    user_id: int
    conversation_id: Optional[int] = None
    valence: float = Field(..., ge=-1.0, le=1.0)
    arousal: float = Field(..., ge=0.0, le=1.0)
    dominant_emotion: str = Field(..., description="One of EMOTIONS")
    triggers: Optional[List[str]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CallbackSchema(BaseModel):
    """Scheduled follow-up reminder."""

    id: int
    user_id: int
    content: str
    trigger_type: str = Field(..., description="One of CALLBACK_TRIGGER_TYPES")
    trigger_at: datetime
    priority: str = Field("medium", description="One of CALLBACK_PRIORITIES")
    status: str = Field("pending", description="One of CALLBACK_STATUSES")
    source_conversation_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InsightSchema(BaseModel):
    """Atomic fact about the user."""

    id: int
    user_id: int
    type: str = Field(..., description="One of INSIGHT_TYPES")
    content: str
    confidence: float = Field(0.5, ge=0.1, le=1.0)
    active: bool = True
    source_conversation_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemorySnapshotSchema(BaseModel):
    """Versioned narrative about one user."""

    id: int
    user_id: int
    snapshot: str
    version: int = Field(..., ge=1)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
