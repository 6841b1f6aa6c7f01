"""
Pydantic schemas for type-safe data transfer.
"""

from schemas.user import (
    UserSchema,
    UserCreateSchema,
    OnboardingResponseSchema,
    OnboardingRequest,
    UserProfileContext,
)
from schemas.conversation import (
    ConversationSchema,
    MessageSchema,
    MessageCreateSchema,
    ChatRequestSchema,
)
from schemas.facts import (
    EntitySchema,
    GoalSchema,
    EmotionalLogSchema,
    CallbackSchema,
    InsightSchema,
    MemorySnapshotSchema,
)
from schemas.context import EntityContext, GoalContext, EmotionalState, MemoryContext
from schemas.proactive import ProactiveMessageSchema, ProactiveCandidate, ProactiveReadRequest
from schemas.extraction import (
    ExtractionResult,
    NewEntity,
    EntityUpdate,
    NewGoal,
    GoalUpdate,
    EmotionalReading,
    NewCallback,
    NewInsight,
    InsightUpdate,
)
from schemas.stats import JobStats, ExtractionStats, SummaryStats, SnapshotStats, ProactiveStats

__all__ = [
    "UserSchema",
    "UserCreateSchema",
    "OnboardingResponseSchema",
    "OnboardingRequest",
    "UserProfileContext",
    "ConversationSchema",
    "MessageSchema",
    "MessageCreateSchema",
    "ChatRequestSchema",
    "EntitySchema",
    "GoalSchema",
    "EmotionalLogSchema",
    "CallbackSchema",
    "InsightSchema",
    "MemorySnapshotSchema",
    "EntityContext",
    "GoalContext",
    "EmotionalState",
    "MemoryContext",
    "ProactiveMessageSchema",
    "ProactiveCandidate",
    "ProactiveReadRequest",
    "ExtractionResult",
    "NewEntity",
    "EntityUpdate",
    "NewGoal",
    "GoalUpdate",
    "EmotionalReading",
    "NewCallback",
    "NewInsight",
    "InsightUpdate",
    "JobStats",
    "ExtractionStats",
    "SummaryStats",
    "SnapshotStats",
    "ProactiveStats",
]
