"""
Extraction schemas.

ExtractionResult is the raw, fully defaulted shape of one model response.
Its list items are untrusted dicts; the typed models below are what the
validators in agents.extraction_parser produce from them.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExtractionResult(BaseModel):
    """Parsed model output. Every key defaults to empty."""

    new_insights: List[Dict[str, Any]] = Field(default_factory=list)
    updated_insights: List[Dict[str, Any]] = Field(default_factory=list)
    deactivated_insight_ids: List[Any] = Field(default_factory=list)
    new_entities: List[Dict[str, Any]] = Field(default_factory=list)
    entity_updates: List[Dict[str, Any]] = Field(default_factory=list)
    new_goals: List[Dict[str, Any]] = Field(default_factory=list)
    goal_updates: List[Dict[str, Any]] = Field(default_factory=list)
    emotional_state: Optional[Dict[str, Any]] = None
    callbacks: List[Dict[str, Any]] = Field(default_factory=list)

    def is_empty(self) -> bool:
        """True when the response carried nothing to reconcile."""
        return not any([
            self.new_insights,
            self.updated_insights,
            self.deactivated_insight_ids,
            self.new_entities,
            self.entity_updates,
            self.new_goals,
            self.goal_updates,
            self.emotional_state,
            self.callbacks,
        ])


class NewEntity(BaseModel):
    name: str
    type: str
    platform: Optional[str] = None
    status: str = "unknown"
    notes: Optional[str] = None


class EntityUpdate(BaseModel):
    """Only the fields the model supplied (and that validated) are set."""

    name: str
    type: Optional[str] = None
    platform: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class NewGoal(BaseModel):
    category: str
    title: str
    progress: Optional[str] = None
    target_date: Optional[datetime] = None
    check_in_interval: str
    source: str = "inferred"
    confidence: float = 0.5


class GoalUpdate(BaseModel):
    title: str
    status: Optional[str] = None
    progress: Optional[str] = None


class EmotionalReading(BaseModel):
    valence: float
    arousal: float
    dominant_emotion: str
    triggers: Optional[List[str]] = None


class NewCallback(BaseModel):
    content: str
    trigger_type: str = "time_based"
    trigger_at: datetime
    priority: str = "medium"


class NewInsight(BaseModel):
    type: str
    content: str
    confidence: float = 0.5


class InsightUpdate(BaseModel):
    id: int
    content: Optional[str] = None
    confidence: Optional[float] = None
