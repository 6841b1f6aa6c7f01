"""Memory context schemas assembled for every chat turn."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from schemas.user import UserProfileContext


class EntityContext(BaseModel):
    """Entity fields the prompt needs."""

    name: str
    type: str
    platform: Optional[str] = None
    status: str = "unknown"
    notes: str = ""
    last_mentioned_at: datetime


class GoalContext(BaseModel):
    """Goal fields the prompt needs, with the derived check-in flag."""

    title: str
    category: str
    status: str
    progress: Optional[str] = None
    due_for_check_in: bool = False


class EmotionalState(BaseModel):
    """Current mood plus direction of travel."""

    current: str = Field("unknown", description="Latest dominant emotion or 'unknown'")
    trend: Literal["improving", "declining", "stable"] = "stable"
    recent_emotions: List[str] = Field(default_factory=list, description="Up to five, newest first")


class MemoryContext(BaseModel):
    """Everything known about a user, normalized for one chat turn."""

    user_profile: UserProfileContext = Field(default_factory=UserProfileContext)
    active_entities: List[EntityContext] = Field(default_factory=list)
    active_goals: List[GoalContext] = Field(default_factory=list)
    emotional_state: EmotionalState = Field(default_factory=EmotionalState)
    pending_callbacks: List[str] = Field(default_factory=list, description="Follow-ups due this turn")
    conversation_summary: Optional[str] = None
    insights: List[str] = Field(default_factory=list, description="Rendered as '[type] content'")
