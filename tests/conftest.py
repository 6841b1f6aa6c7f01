"""
Shared pytest fixtures for companion memory tests.
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from schemas import (
    CallbackSchema,
    ConversationSchema,
    EmotionalLogSchema,
    EntitySchema,
    GoalSchema,
    InsightSchema,
    MemorySnapshotSchema,
    MessageSchema,
    UserSchema,
)


# --- Time fixtures ---

@pytest.fixture
def fixed_now():
    """A fixed naive-UTC datetime for deterministic time tests."""
    return datetime(2026, 2, 5, 14, 30, 0)  # Thursday 2:30 PM


# --- Mock fact store ---

@pytest.fixture
def mock_db():
    """Mock fact store; list reads default to empty, single reads to None."""
    db = AsyncMock()
    for name in (
        "get_active_entities",
        "get_active_goals",
        "get_active_insights",
        "get_recent_emotions",
        "get_triggered_callbacks",
        "get_all_triggered_callbacks",
        "get_goals_due_for_check_in",
        "get_users_needing_emotional_check_in",
        "get_users_for_re_engagement",
        "get_messages",
        "get_recent_messages_for_user",
        "get_conversation_summaries",
        "get_onboarding_responses",
        "get_conversations_needing_processing",
        "get_conversations_needing_summary",
        "get_active_users",
        "fetch_pending_proactive_messages",
    ):
        setattr(db, name, AsyncMock(return_value=[]))
    for name in ("get_user_by_id", "get_latest_snapshot", "get_conversation_summary", "get_most_recent_conversation"):
        setattr(db, name, AsyncMock(return_value=None))
    db.count_proactive_messages_since = AsyncMock(return_value=0)
    db.expire_stale_callbacks = AsyncMock(return_value=0)
    db.expire_stale_proactive_messages = AsyncMock(return_value=0)
    return db


# --- Mock LLM client ---

@pytest.fixture
def mock_llm():
    """Mock LLM client for testing without API calls."""
    llm = AsyncMock()
    llm.generate = AsyncMock(return_value="")
    return llm


# --- Record builders ---

class RecordFactory:
    """Builds schema rows with sensible defaults around a reference time."""

    def __init__(self, now: datetime):
        self.now = now

    def user(self, id=1, **overrides) -> UserSchema:
        data = dict(
            id=id,
            email=f"user{id}@example.com",
            display_name="Sam",
            profile=None,
            communication_style="balanced",
            onboarding_complete=True,
            created_at=self.now - timedelta(days=60),
            last_active_at=self.now - timedelta(hours=2),
        )
        data.update(overrides)
        return UserSchema(**data)

    def conversation(self, id=10, user_id=1, **overrides) -> ConversationSchema:
        data = dict(id=id, user_id=user_id, created_at=self.now - timedelta(days=1), updated_at=self.now)
        data.update(overrides)
        return ConversationSchema(**data)

    def message(self, id=100, conversation_id=10, role="user", content="hey", minutes_ago=0) -> MessageSchema:
        return MessageSchema(
            id=id,
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=self.now - timedelta(minutes=minutes_ago),
        )

    def messages(self, count: int, conversation_id=10):
        """``count`` alternating messages, oldest first."""
        return [
            self.message(
                id=100 + i,
                conversation_id=conversation_id,
                role="user" if i % 2 == 0 else "assistant",
                content=f"message {i}",
                minutes_ago=count - i,
            )
            for i in range(count)
        ]

    def entity(self, id=1, user_id=1, name="Alex", **overrides) -> EntitySchema:
        data = dict(
            id=id,
            user_id=user_id,
            name=name,
            type="match",
            platform="hinge",
            status="active",
            notes=None,
            first_mentioned_at=self.now - timedelta(days=5),
            last_mentioned_at=self.now - timedelta(days=2),
        )
        data.update(overrides)
        return EntitySchema(**data)

    def goal(self, id=1, user_id=1, title="Get 3 dates this month", **overrides) -> GoalSchema:
        data = dict(
            id=id,
            user_id=user_id,
            category="dating",
            title=title,
            status="active",
            progress="1 so far",
            check_in_interval="weekly",
            last_checked_in_at=self.now - timedelta(days=8),
            created_at=self.now - timedelta(days=20),
            updated_at=self.now - timedelta(days=8),
        )
        data.update(overrides)
        return GoalSchema(**data)

    def emotion(self, id=1, user_id=1, valence=0.0, emotion="neutral", hours_ago=1) -> EmotionalLogSchema:
        return EmotionalLogSchema(
            id=id,
            user_id=user_id,
            valence=valence,
            arousal=0.5,
            dominant_emotion=emotion,
            created_at=self.now - timedelta(hours=hours_ago),
        )

    def emotions(self, valences, emotion="neutral"):
        """Logs newest first, one hour apart."""
        return [
            self.emotion(id=i + 1, valence=v, emotion=emotion, hours_ago=i + 1)
            for i, v in enumerate(valences)
        ]

    def callback(self, id=1, user_id=1, content="Ask how the date with Alex went", **overrides) -> CallbackSchema:
        data = dict(
            id=id,
            user_id=user_id,
            content=content,
            trigger_type="date_event",
            trigger_at=self.now - timedelta(hours=1),
            priority="high",
            created_at=self.now - timedelta(days=1),
        )
        data.update(overrides)
        return CallbackSchema(**data)

    def insight(self, id=1, user_id=1, content="Prefers texting over calls", **overrides) -> InsightSchema:
        data = dict(
            id=id,
            user_id=user_id,
            type="preference",
            content=content,
            confidence=0.7,
            created_at=self.now - timedelta(days=3),
            updated_at=self.now - timedelta(days=3),
        )
        data.update(overrides)
        return InsightSchema(**data)

    def snapshot(self, user_id=1, version=1, text="Sam is a designer in Toronto who is dating again.", hours_ago=30):
        return MemorySnapshotSchema(
            id=version,
            user_id=user_id,
            snapshot=text,
            version=version,
            created_at=self.now - timedelta(hours=hours_ago),
        )


@pytest.fixture
def records(fixed_now):
    """Factory for schema rows anchored at fixed_now."""
    return RecordFactory(fixed_now)
