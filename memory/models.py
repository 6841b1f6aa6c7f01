"""
SQLAlchemy models for the companion memory system.
Defines the user root aggregate, conversations and every long-lived fact table.
"""

from datetime import datetime
from sqlalchemy import (
    Column,
    Index,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Float,
    Boolean,
    JSON,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class User(Base):
    """User table - the root aggregate every fact row belongs to."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=True)
    # Onboarding answers distilled into one document:
    # name, age, location, occupation, life_state, social_style, lifestyle, personality_digest, goals
    profile = Column(JSON, nullable=True)
    communication_style = Column(String(20), default="balanced", nullable=False)  # direct, supportive, balanced
    onboarding_complete = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)
    last_active_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False, index=True)

    # Relationships
    conversations = relationship("Conversation", back_populates="user", cascade="all, delete-orphan")
    onboarding_responses = relationship("OnboardingResponse", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class OnboardingResponse(Base):
    """Raw onboarding answers, one row per question."""

    __tablename__ = "onboarding_responses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    question_key = Column(String(100), nullable=False)
    response = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="onboarding_responses")

    def __repr__(self):
        return f"<OnboardingResponse(user_id={self.user_id}, question_key='{self.question_key}')>"


class Conversation(Base):
    """A chat thread. updated_at moves whenever a message is added."""

    __tablename__ = "conversations"
    __table_args__ = (
        Index("idx_conversations_user_updated", "user_id", "updated_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=True)
    summary = Column(Text, nullable=True)
    last_summarized_at = Column(DateTime, nullable=True)
    last_processed_at = Column(DateTime, nullable=True)  # Set by the extraction job
    created_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False, index=True)

    # Relationships
    user = relationship("User", back_populates="conversations")
    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Conversation(id={self.id}, user_id={self.user_id}, title='{self.title}')>"


class Message(Base):
    """Single chat message in a conversation."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # "user" or "assistant"
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False, index=True)

    # Relationships
    conversation = relationship("Conversation", back_populates="messages")

    def __repr__(self):
        return f"<Message(conversation_id={self.conversation_id}, role='{self.role}')>"


class Entity(Base):
    """A person in the user's life (match, ex, friend...)."""

    __tablename__ = "entities"
    __table_args__ = (
        Index("idx_entities_user_active", "user_id", "active"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)
    platform = Column(String(20), nullable=True)  # hinge, tinder, bumble, irl or null
    status = Column(String(20), default="unknown", nullable=False)
    notes = Column(Text, nullable=True)
    first_mentioned_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)
    last_mentioned_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Entity(user_id={self.user_id}, name='{self.name}', type='{self.type}')>"


class Goal(Base):
    """Something the user is working toward. Due-for-check-in is derived, not stored."""

    __tablename__ = "goals"
    __table_args__ = (
        Index("idx_goals_user_status", "user_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category = Column(String(20), nullable=False)
    title = Column(String(500), nullable=False)
    status = Column(String(20), default="active", nullable=False)
    progress = Column(Text, nullable=True)
    target_date = Column(DateTime, nullable=True)
    check_in_interval = Column(String(20), nullable=True)  # daily, weekly, biweekly, monthly
    last_checked_in_at = Column(DateTime, nullable=True)
    source = Column(String(20), default="inferred", nullable=False)
    confidence = Column(Float, default=0.5, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)

    def __repr__(self):
        return f"<Goal(user_id={self.user_id}, title='{self.title}', status='{self.status}')>"


class EmotionalLog(Base):
    """Append-only emotional reading, at most one per processed conversation."""

    __tablename__ = "emotional_logs"
    __table_args__ = (
        Index("idx_emotional_logs_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=True)
    valence = Column(Float, nullable=False)  # -1.0 to 1.0
    arousal = Column(Float, nullable=False)  # 0.0 to 1.0
    dominant_emotion = Column(String(20), nullable=False)
    triggers = Column(JSON, nullable=True)  # list of short strings
    created_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)

    def __repr__(self):
        return f"<EmotionalLog(user_id={self.user_id}, emotion='{self.dominant_emotion}', valence={self.valence})>"


class Callback(Base):
    """Follow-up reminder tied to something the user said."""

    __tablename__ = "callbacks"
    __table_args__ = (
        Index("idx_callbacks_status_trigger", "status", "trigger_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    trigger_type = Column(String(30), nullable=False)
    trigger_at = Column(DateTime, nullable=False)
    priority = Column(String(10), default="medium", nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    source_conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)

    def __repr__(self):
        return f"<Callback(user_id={self.user_id}, type='{self.trigger_type}', status='{self.status}')>"


class Insight(Base):
    """Atomic fact, preference or trait inferred about the user."""

    __tablename__ = "insights"
    __table_args__ = (
        Index("idx_insights_user_active", "user_id", "active"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    confidence = Column(Float, default=0.5, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    source_conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)

    def __repr__(self):
        return f"<Insight(user_id={self.user_id}, type='{self.type}', active={self.active})>"


class MemorySnapshot(Base):
    """Versioned narrative of everything known about a user. Immutable once written."""

    __tablename__ = "memory_snapshots"
    __table_args__ = (
        Index("idx_memory_snapshots_user_version", "user_id", "version"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    snapshot = Column(Text, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)

    def __repr__(self):
        return f"<MemorySnapshot(user_id={self.user_id}, version={self.version})>"


class ProactiveMessage(Base):
    """Unsolicited outreach drafted by the proactive scheduler."""

    __tablename__ = "proactive_messages"
    __table_args__ = (
        Index("idx_proactive_messages_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    trigger_type = Column(String(30), nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    callback_id = Column(Integer, ForeignKey("callbacks.id"), nullable=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.utcnow(), nullable=False)
    delivered_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ProactiveMessage(user_id={self.user_id}, trigger='{self.trigger_type}', status='{self.status}')>"
