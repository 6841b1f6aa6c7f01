"""
Async fact store for the companion memory system.
Async SQLAlchemy with typed Pydantic results, structured logging and retrying reads.

Every timestamp is naive UTC. Methods that depend on the clock accept ``now``
so scheduled jobs can run against a fixed time.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import List, Optional, AsyncIterator, Dict, Any, Tuple

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine,
)
from sqlalchemy import select, desc, asc, func, or_, and_, case, update
from sqlalchemy.exc import SQLAlchemyError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from config.settings import settings
from core import get_logger, DatabaseException, RecordNotFoundError, UserNotFoundError
from memory.analysis import CHECK_IN_INTERVALS, DEFAULT_CHECK_IN_INTERVAL
from memory.models import (
    Base,
    User,
    OnboardingResponse,
    Conversation,
    Message,
    Entity,
    Goal,
    EmotionalLog,
    Callback,
    Insight,
    MemorySnapshot,
    ProactiveMessage,
)
from schemas import (
    UserSchema,
    OnboardingResponseSchema,
    ConversationSchema,
    MessageSchema,
    EntitySchema,
    GoalSchema,
    EmotionalLogSchema,
    CallbackSchema,
    InsightSchema,
    MemorySnapshotSchema,
    ProactiveMessageSchema,
    NewEntity,
    NewGoal,
    EmotionalReading,
    NewCallback,
    NewInsight,
)

logger = get_logger(__name__)

# Reads are idempotent, so transient failures are retried before surfacing.
db_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(DatabaseException),
    reraise=True,
)

# high < medium < low when sorted ascending
CALLBACK_PRIORITY_ORDER = case(
    (Callback.priority == "high", 0),
    (Callback.priority == "medium", 1),
    else_=2,
)


class AsyncDatabase:
    """
    Async database interface with production-grade features:
    - Connection pooling and retry logic
    - Type-safe operations with Pydantic
    - Proper error handling and logging
    - Transaction management
    """

    def __init__(self, database_url: Optional[str] = None):
        """Initialize async database engine and session factory."""
        # Convert postgresql:// to postgresql+asyncpg://
        db_url = database_url or settings.DATABASE_URL
        if db_url.startswith("postgresql://"):
            db_url = db_url.replace("postgresql://", "postgresql+asyncpg://")

        engine_kwargs: Dict[str, Any] = {"echo": settings.LOG_LEVEL == "DEBUG"}
        if db_url.startswith("postgresql"):
            engine_kwargs.update(
                pool_size=10,
                max_overflow=20,
                pool_pre_ping=True,  # Verify connections before use
                pool_recycle=3600,  # Recycle connections after 1 hour
            )

        self.engine: AsyncEngine = create_async_engine(db_url, **engine_kwargs)

        self.async_session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        logger.info("Async database engine initialized", db_url=db_url.split("@")[-1])

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """
        Context manager for database sessions with automatic cleanup.

        Yields:
            AsyncSession instance
        """
        async with self.async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error("Session rolled back", error=str(e))
                raise
            finally:
                await session.close()

    async def create_tables(self) -> None:
        """Create all database tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def drop_tables(self) -> None:
        """Drop all database tables (use with caution)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("Database tables dropped")

    async def dispose(self) -> None:
        """Close every pooled connection."""
        await self.engine.dispose()

    # ==================== Users ====================

    async def create_user(
        self,
        email: str,
        display_name: Optional[str] = None,
        profile: Optional[Dict[str, Any]] = None,
        communication_style: str = "balanced",
        onboarding_complete: bool = False,
        now: Optional[datetime] = None,
    ) -> UserSchema:
        """Create a user row."""
        now = now or datetime.utcnow()
        try:
            async with self.get_session() as session:
                user = User(
                    email=email,
                    display_name=display_name,
                    profile=profile,
                    communication_style=communication_style,
                    onboarding_complete=onboarding_complete,
                    created_at=now,
                    last_active_at=now,
                )
                session.add(user)
                await session.flush()
                logger.info("Created new user", user_id=user.id)
                return UserSchema.model_validate(user)

        except SQLAlchemyError as e:
            logger.error("Failed to create user", error=str(e))
            raise DatabaseException(f"Failed to create user: {e}")

    @db_retry
    async def get_user_by_id(self, user_id: int) -> Optional[UserSchema]:
        """Get user by internal ID."""
        try:
            async with self.get_session() as session:
                result = await session.execute(select(User).where(User.id == user_id))
                user = result.scalar_one_or_none()
                return UserSchema.model_validate(user) if user else None

        except SQLAlchemyError as e:
            logger.error("Failed to get user", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to get user: {e}")

    async def update_last_active(self, user_id: int, now: Optional[datetime] = None) -> None:
        """Stamp the user's last chat activity."""
        now = now or datetime.utcnow()
        try:
            async with self.get_session() as session:
                await session.execute(
                    update(User).where(User.id == user_id).values(last_active_at=now)
                )

        except SQLAlchemyError as e:
            logger.error("Failed to update last active", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to update last active: {e}")

    async def update_user_profile(
        self,
        user_id: int,
        profile: Dict[str, Any],
        display_name: Optional[str] = None,
        communication_style: Optional[str] = None,
    ) -> UserSchema:
        """
        Replace the profile document, optionally with the display name and style.

        Raises:
            UserNotFoundError: If no such user exists
        """
        values: Dict[str, Any] = {"profile": profile}
        if display_name is not None:
            values["display_name"] = display_name
        if communication_style is not None:
            values["communication_style"] = communication_style

        try:
            async with self.get_session() as session:
                result = await session.execute(select(User).where(User.id == user_id))
                user = result.scalar_one_or_none()
                if user is None:
                    raise UserNotFoundError(user_id)
                for key, value in values.items():
                    setattr(user, key, value)
                await session.flush()
                logger.info("Updated user profile", user_id=user_id, fields=sorted(values))
                return UserSchema.model_validate(user)

        except SQLAlchemyError as e:
            logger.error("Failed to update user profile", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to update user profile: {e}")

    async def set_onboarding_complete(self, user_id: int) -> None:
        """Raises UserNotFoundError if no such user exists."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    update(User).where(User.id == user_id).values(onboarding_complete=True)
                )
                if result.rowcount == 0:
                    raise UserNotFoundError(user_id)

        except SQLAlchemyError as e:
            logger.error("Failed to complete onboarding", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to complete onboarding: {e}")

    async def add_onboarding_response(
        self, user_id: int, question_key: str, response: Any, now: Optional[datetime] = None
    ) -> OnboardingResponseSchema:
        """Store one onboarding answer."""
        try:
            async with self.get_session() as session:
                row = OnboardingResponse(
                    user_id=user_id,
                    question_key=question_key,
                    response=response,
                    created_at=now or datetime.utcnow(),
                )
                session.add(row)
                await session.flush()
                return OnboardingResponseSchema.model_validate(row)

        except SQLAlchemyError as e:
            logger.error("Failed to add onboarding response", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to add onboarding response: {e}")

    @db_retry
    async def get_onboarding_responses(self, user_id: int) -> List[OnboardingResponseSchema]:
        """Get onboarding answers in the order they were given."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(OnboardingResponse)
                    .where(OnboardingResponse.user_id == user_id)
                    .order_by(asc(OnboardingResponse.created_at))
                )
                return [OnboardingResponseSchema.model_validate(r) for r in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get onboarding responses", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to get onboarding responses: {e}")

    @db_retry
    async def get_active_users(self, since: datetime, limit: int) -> List[UserSchema]:
        """Onboarded users active after ``since``, most recent first."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(User)
                    .where(User.onboarding_complete.is_(True), User.last_active_at > since)
                    .order_by(desc(User.last_active_at))
                    .limit(limit)
                )
                return [UserSchema.model_validate(u) for u in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get active users", error=str(e))
            raise DatabaseException(f"Failed to get active users: {e}")

    # ==================== Conversations ====================

    async def create_conversation(
        self, user_id: int, title: Optional[str] = None, now: Optional[datetime] = None
    ) -> ConversationSchema:
        """Start a new conversation."""
        now = now or datetime.utcnow()
        try:
            async with self.get_session() as session:
                conversation = Conversation(
                    user_id=user_id,
                    title=title,
                    created_at=now,
                    updated_at=now,
                )
                session.add(conversation)
                await session.flush()
                logger.debug("Created conversation", user_id=user_id, conversation_id=conversation.id)
                return ConversationSchema.model_validate(conversation)

        except SQLAlchemyError as e:
            logger.error("Failed to create conversation", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to create conversation: {e}")

    @db_retry
    async def get_conversation(
        self, conversation_id: int, user_id: Optional[int] = None
    ) -> Optional[ConversationSchema]:
        """Get a conversation, optionally scoped to its owner."""
        try:
            async with self.get_session() as session:
                query = select(Conversation).where(Conversation.id == conversation_id)
                if user_id is not None:
                    query = query.where(Conversation.user_id == user_id)
                result = await session.execute(query)
                conversation = result.scalar_one_or_none()
                return ConversationSchema.model_validate(conversation) if conversation else None

        except SQLAlchemyError as e:
            logger.error("Failed to get conversation", conversation_id=conversation_id, error=str(e))
            raise DatabaseException(f"Failed to get conversation: {e}")

    @db_retry
    async def get_most_recent_conversation(self, user_id: int) -> Optional[ConversationSchema]:
        """Conversation with the latest activity for a user."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Conversation)
                    .where(Conversation.user_id == user_id)
                    .order_by(desc(Conversation.updated_at))
                    .limit(1)
                )
                conversation = result.scalar_one_or_none()
                return ConversationSchema.model_validate(conversation) if conversation else None

        except SQLAlchemyError as e:
            logger.error("Failed to get recent conversation", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to get recent conversation: {e}")

    @db_retry
    async def get_conversation_summary(self, conversation_id: int) -> Optional[str]:
        """Rolling summary text, if one has been written."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Conversation.summary).where(Conversation.id == conversation_id)
                )
                return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error("Failed to get summary", conversation_id=conversation_id, error=str(e))
            raise DatabaseException(f"Failed to get summary: {e}")

    @db_retry
    async def get_conversation_summaries(self, user_id: int, limit: int = 5) -> List[ConversationSchema]:
        """Summarized conversations for a user, most recently active first."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Conversation)
                    .where(Conversation.user_id == user_id, Conversation.summary.is_not(None))
                    .order_by(desc(Conversation.updated_at))
                    .limit(limit)
                )
                return [ConversationSchema.model_validate(c) for c in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get summaries", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to get summaries: {e}")

    async def set_conversation_title_if_empty(self, conversation_id: int, title: str) -> bool:
        """Set the title only when none exists. Returns True when written."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    update(Conversation)
                    .where(Conversation.id == conversation_id, Conversation.title.is_(None))
                    .values(title=title)
                )
                return result.rowcount > 0

        except SQLAlchemyError as e:
            logger.error("Failed to set title", conversation_id=conversation_id, error=str(e))
            raise DatabaseException(f"Failed to set title: {e}")

    @db_retry
    async def get_conversations_needing_processing(self, limit: int) -> List[ConversationSchema]:
        """Never processed, or updated since the last extraction. Oldest activity first."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Conversation)
                    .where(
                        or_(
                            Conversation.last_processed_at.is_(None),
                            Conversation.updated_at > Conversation.last_processed_at,
                        )
                    )
                    .order_by(asc(Conversation.updated_at))
                    .limit(limit)
                )
                return [ConversationSchema.model_validate(c) for c in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get conversations needing processing", error=str(e))
            raise DatabaseException(f"Failed to get conversations needing processing: {e}")

    async def mark_conversation_processed(self, conversation_id: int, now: Optional[datetime] = None) -> None:
        """Record that extraction has run over this conversation."""
        try:
            async with self.get_session() as session:
                await session.execute(
                    update(Conversation)
                    .where(Conversation.id == conversation_id)
                    .values(last_processed_at=now or datetime.utcnow())
                )

        except SQLAlchemyError as e:
            logger.error("Failed to mark processed", conversation_id=conversation_id, error=str(e))
            raise DatabaseException(f"Failed to mark processed: {e}")

    @db_retry
    async def get_conversations_needing_summary(self, min_messages: int, limit: int) -> List[ConversationSchema]:
        """Long conversations never summarized, or updated since their last summary."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Conversation)
                    .join(Message, Message.conversation_id == Conversation.id)
                    .where(
                        or_(
                            Conversation.last_summarized_at.is_(None),
                            Conversation.updated_at > Conversation.last_summarized_at,
                        )
                    )
                    .group_by(Conversation.id)
                    .having(func.count(Message.id) >= min_messages)
                    .order_by(asc(Conversation.updated_at))
                    .limit(limit)
                )
                return [ConversationSchema.model_validate(c) for c in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get conversations needing summary", error=str(e))
            raise DatabaseException(f"Failed to get conversations needing summary: {e}")

    async def update_conversation_summary(
        self, conversation_id: int, summary: str, now: Optional[datetime] = None
    ) -> None:
        """Store a new rolling summary."""
        try:
            async with self.get_session() as session:
                await session.execute(
                    update(Conversation)
                    .where(Conversation.id == conversation_id)
                    .values(summary=summary, last_summarized_at=now or datetime.utcnow())
                )

        except SQLAlchemyError as e:
            logger.error("Failed to update summary", conversation_id=conversation_id, error=str(e))
            raise DatabaseException(f"Failed to update summary: {e}")

    # ==================== Messages ====================

    async def add_message(
        self, conversation_id: int, role: str, content: str, now: Optional[datetime] = None
    ) -> MessageSchema:
        """Append a message and bump the conversation's updated_at."""
        now = now or datetime.utcnow()
        try:
            async with self.get_session() as session:
                message = Message(
                    conversation_id=conversation_id,
                    role=role,
                    content=content,
                    created_at=now,
                )
                session.add(message)
                await session.execute(
                    update(Conversation)
                    .where(Conversation.id == conversation_id)
                    .values(updated_at=now)
                )
                await session.flush()
                return MessageSchema.model_validate(message)

        except SQLAlchemyError as e:
            logger.error("Failed to add message", conversation_id=conversation_id, error=str(e))
            raise DatabaseException(f"Failed to add message: {e}")

    @db_retry
    async def get_messages(self, conversation_id: int, limit: Optional[int] = None) -> List[MessageSchema]:
        """Messages in chronological order. With ``limit``, the latest ``limit`` of them."""
        try:
            async with self.get_session() as session:
                query = (
                    select(Message)
                    .where(Message.conversation_id == conversation_id)
                    .order_by(desc(Message.created_at), desc(Message.id))
                )
                if limit is not None:
                    query = query.limit(limit)
                result = await session.execute(query)
                messages = result.scalars().all()
                # Reverse to get chronological order
                return [MessageSchema.model_validate(m) for m in reversed(messages)]

        except SQLAlchemyError as e:
            logger.error("Failed to get messages", conversation_id=conversation_id, error=str(e))
            raise DatabaseException(f"Failed to get messages: {e}")

    @db_retry
    async def get_recent_messages_for_user(self, user_id: int, limit: int = 20) -> List[MessageSchema]:
        """Latest messages across all of a user's conversations, newest first."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Message)
                    .join(Conversation, Conversation.id == Message.conversation_id)
                    .where(Conversation.user_id == user_id)
                    .order_by(desc(Message.created_at), desc(Message.id))
                    .limit(limit)
                )
                return [MessageSchema.model_validate(m) for m in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get recent messages", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to get recent messages: {e}")

    # ==================== Entities ====================

    @db_retry
    async def get_active_entities(self, user_id: int) -> List[EntitySchema]:
        """Active entities, most recently mentioned first."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Entity)
                    .where(Entity.user_id == user_id, Entity.active.is_(True))
                    .order_by(desc(Entity.last_mentioned_at))
                )
                return [EntitySchema.model_validate(e) for e in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get entities", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to get entities: {e}")

    async def create_entity(
        self, user_id: int, entity: NewEntity, now: Optional[datetime] = None
    ) -> EntitySchema:
        """Insert a newly mentioned person."""
        now = now or datetime.utcnow()
        try:
            async with self.get_session() as session:
                row = Entity(
                    user_id=user_id,
                    name=entity.name,
                    type=entity.type,
                    platform=entity.platform,
                    status=entity.status,
                    notes=entity.notes,
                    first_mentioned_at=now,
                    last_mentioned_at=now,
                    active=True,
                )
                session.add(row)
                await session.flush()
                return EntitySchema.model_validate(row)

        except SQLAlchemyError as e:
            logger.error("Failed to create entity", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to create entity: {e}")

    async def update_entity(
        self, entity_id: int, changes: Dict[str, Any], now: Optional[datetime] = None
    ) -> None:
        """Apply whitelisted field changes and touch last_mentioned_at."""
        allowed = {k: v for k, v in changes.items() if k in ("type", "platform", "status", "notes")}
        try:
            async with self.get_session() as session:
                await session.execute(
                    update(Entity)
                    .where(Entity.id == entity_id)
                    .values(**allowed, last_mentioned_at=now or datetime.utcnow())
                )

        except SQLAlchemyError as e:
            logger.error("Failed to update entity", entity_id=entity_id, error=str(e))
            raise DatabaseException(f"Failed to update entity: {e}")

    # ==================== Goals ====================

    @db_retry
    async def get_active_goals(self, user_id: int) -> List[GoalSchema]:
        """Active goals, most recently updated first."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Goal)
                    .where(Goal.user_id == user_id, Goal.status == "active")
                    .order_by(desc(Goal.updated_at))
                )
                return [GoalSchema.model_validate(g) for g in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get goals", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to get goals: {e}")

    async def create_goal(self, user_id: int, goal: NewGoal, now: Optional[datetime] = None) -> GoalSchema:
        """Insert a new goal."""
        now = now or datetime.utcnow()
        try:
            async with self.get_session() as session:
                row = Goal(
                    user_id=user_id,
                    category=goal.category,
                    title=goal.title,
                    status="active",
                    progress=goal.progress,
                    target_date=goal.target_date,
                    check_in_interval=goal.check_in_interval,
                    source=goal.source,
                    confidence=goal.confidence,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await session.flush()
                return GoalSchema.model_validate(row)

        except SQLAlchemyError as e:
            logger.error("Failed to create goal", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to create goal: {e}")

    async def update_goal(self, goal_id: int, changes: Dict[str, Any], now: Optional[datetime] = None) -> None:
        """Apply status/progress changes."""
        allowed = {k: v for k, v in changes.items() if k in ("status", "progress")}
        try:
            async with self.get_session() as session:
                await session.execute(
                    update(Goal)
                    .where(Goal.id == goal_id)
                    .values(**allowed, updated_at=now or datetime.utcnow())
                )

        except SQLAlchemyError as e:
            logger.error("Failed to update goal", goal_id=goal_id, error=str(e))
            raise DatabaseException(f"Failed to update goal: {e}")

    @db_retry
    async def get_goals_due_for_check_in(self, now: datetime, limit: int) -> List[GoalSchema]:
        """
        Active goals across all users whose check-in interval has elapsed,
        oldest goals first, at most ``limit`` rows.
        """
        due_before = case(
            *[
                (Goal.check_in_interval == name, now - interval)
                for name, interval in CHECK_IN_INTERVALS.items()
            ],
            else_=now - DEFAULT_CHECK_IN_INTERVAL,
        )
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Goal)
                    .where(
                        Goal.status == "active",
                        Goal.check_in_interval.is_not(None),
                        Goal.check_in_interval != "",
                        or_(
                            Goal.last_checked_in_at.is_(None),
                            Goal.last_checked_in_at <= due_before,
                        ),
                    )
                    .order_by(asc(Goal.created_at))
                    .limit(limit)
                )
                return [GoalSchema.model_validate(g) for g in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get goals due for check-in", error=str(e))
            raise DatabaseException(f"Failed to get goals due for check-in: {e}")

    async def mark_goal_checked_in(self, goal_id: int, now: Optional[datetime] = None) -> None:
        """Consume a goal check-in trigger."""
        now = now or datetime.utcnow()
        try:
            async with self.get_session() as session:
                await session.execute(
                    update(Goal).where(Goal.id == goal_id).values(last_checked_in_at=now, updated_at=now)
                )

        except SQLAlchemyError as e:
            logger.error("Failed to mark goal checked in", goal_id=goal_id, error=str(e))
            raise DatabaseException(f"Failed to mark goal checked in: {e}")

    # ==================== Emotional Logs ====================

    async def add_emotional_log(
        self,
        user_id: int,
        reading: EmotionalReading,
        conversation_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> EmotionalLogSchema:
        """Append an emotional reading."""
        try:
            async with self.get_session() as session:
                row = EmotionalLog(
                    user_id=user_id,
                    conversation_id=conversation_id,
                    valence=reading.valence,
                    arousal=reading.arousal,
                    dominant_emotion=reading.dominant_emotion,
                    triggers=reading.triggers,
                    created_at=now or datetime.utcnow(),
                )
                session.add(row)
                await session.flush()
                return EmotionalLogSchema.model_validate(row)

        except SQLAlchemyError as e:
            logger.error("Failed to log emotion", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to log emotion: {e}")

    @db_retry
    async def get_recent_emotions(self, user_id: int, limit: int = 6) -> List[EmotionalLogSchema]:
        """Latest emotional logs, newest first."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(EmotionalLog)
                    .where(EmotionalLog.user_id == user_id)
                    .order_by(desc(EmotionalLog.created_at), desc(EmotionalLog.id))
                    .limit(limit)
                )
                return [EmotionalLogSchema.model_validate(e) for e in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get emotions", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to get emotions: {e}")

    @db_retry
    async def get_users_needing_emotional_check_in(
        self,
        now: datetime,
        limit: int,
        valence_below: float = -0.5,
        window: timedelta = timedelta(hours=48),
        silence: timedelta = timedelta(hours=24),
    ) -> List[Tuple[EmotionalLogSchema, datetime]]:
        """
        Users whose latest emotional log is strongly negative and recent,
        and who have been quiet since.

        Returns:
            (latest log, user's last_active_at) pairs, newest log first
        """
        try:
            async with self.get_session() as session:
                latest = (
                    select(
                        EmotionalLog.user_id.label("user_id"),
                        func.max(EmotionalLog.created_at).label("latest_at"),
                    )
                    .group_by(EmotionalLog.user_id)
                    .subquery()
                )
                result = await session.execute(
                    select(EmotionalLog, User.last_active_at)
                    .join(
                        latest,
                        and_(
                            latest.c.user_id == EmotionalLog.user_id,
                            latest.c.latest_at == EmotionalLog.created_at,
                        ),
                    )
                    .join(User, User.id == EmotionalLog.user_id)
                    .where(
                        EmotionalLog.valence < valence_below,
                        EmotionalLog.created_at > now - window,
                        User.last_active_at < now - silence,
                    )
                    .order_by(desc(EmotionalLog.created_at))
                    .limit(limit)
                )
                return [
                    (EmotionalLogSchema.model_validate(log), last_active_at)
                    for log, last_active_at in result.all()
                ]

        except SQLAlchemyError as e:
            logger.error("Failed to get emotional check-in users", error=str(e))
            raise DatabaseException(f"Failed to get emotional check-in users: {e}")

    # ==================== Callbacks ====================

    async def create_callback(
        self,
        user_id: int,
        callback: NewCallback,
        source_conversation_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> CallbackSchema:
        """Insert a pending follow-up."""
        try:
            async with self.get_session() as session:
                row = Callback(
                    user_id=user_id,
                    content=callback.content,
                    trigger_type=callback.trigger_type,
                    trigger_at=callback.trigger_at,
                    priority=callback.priority,
                    status="pending",
                    source_conversation_id=source_conversation_id,
                    created_at=now or datetime.utcnow(),
                )
                session.add(row)
                await session.flush()
                return CallbackSchema.model_validate(row)

        except SQLAlchemyError as e:
            logger.error("Failed to create callback", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to create callback: {e}")

    @db_retry
    async def get_triggered_callbacks(self, user_id: int, now: datetime) -> List[CallbackSchema]:
        """Pending callbacks due now, high priority first, then earliest trigger."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Callback)
                    .where(
                        Callback.user_id == user_id,
                        Callback.status == "pending",
                        Callback.trigger_at <= now,
                    )
                    .order_by(CALLBACK_PRIORITY_ORDER, asc(Callback.trigger_at))
                )
                return [CallbackSchema.model_validate(c) for c in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get triggered callbacks", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to get triggered callbacks: {e}")

    @db_retry
    async def get_all_triggered_callbacks(self, now: datetime, limit: int) -> List[CallbackSchema]:
        """Due callbacks across all users, earliest trigger first."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Callback)
                    .where(Callback.status == "pending", Callback.trigger_at <= now)
                    .order_by(asc(Callback.trigger_at))
                    .limit(limit)
                )
                return [CallbackSchema.model_validate(c) for c in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get all triggered callbacks", error=str(e))
            raise DatabaseException(f"Failed to get all triggered callbacks: {e}")

    async def mark_callback_delivered(self, callback_id: int) -> None:
        """Consume a callback trigger."""
        try:
            async with self.get_session() as session:
                await session.execute(
                    update(Callback).where(Callback.id == callback_id).values(status="delivered")
                )

        except SQLAlchemyError as e:
            logger.error("Failed to mark callback delivered", callback_id=callback_id, error=str(e))
            raise DatabaseException(f"Failed to mark callback delivered: {e}")

    async def expire_stale_callbacks(self, cutoff: datetime) -> int:
        """Expire pending callbacks whose trigger_at is at or before ``cutoff``."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    update(Callback)
                    .where(Callback.status == "pending", Callback.trigger_at <= cutoff)
                    .values(status="expired")
                )
                return result.rowcount or 0

        except SQLAlchemyError as e:
            logger.error("Failed to expire callbacks", error=str(e))
            raise DatabaseException(f"Failed to expire callbacks: {e}")

    # ==================== Insights ====================

    @db_retry
    async def get_active_insights(self, user_id: int) -> List[InsightSchema]:
        """Active insights in creation order."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Insight)
                    .where(Insight.user_id == user_id, Insight.active.is_(True))
                    .order_by(asc(Insight.created_at), asc(Insight.id))
                )
                return [InsightSchema.model_validate(i) for i in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get insights", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to get insights: {e}")

    async def create_insight(
        self,
        user_id: int,
        insight: NewInsight,
        source_conversation_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> InsightSchema:
        """Insert a new insight."""
        now = now or datetime.utcnow()
        try:
            async with self.get_session() as session:
                row = Insight(
                    user_id=user_id,
                    type=insight.type,
                    content=insight.content,
                    confidence=insight.confidence,
                    active=True,
                    source_conversation_id=source_conversation_id,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await session.flush()
                return InsightSchema.model_validate(row)

        except SQLAlchemyError as e:
            logger.error("Failed to create insight", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to create insight: {e}")

    async def update_insight(
        self, insight_id: int, changes: Dict[str, Any], now: Optional[datetime] = None
    ) -> None:
        """Change an insight's content and/or confidence."""
        allowed = {k: v for k, v in changes.items() if k in ("content", "confidence")}
        try:
            async with self.get_session() as session:
                await session.execute(
                    update(Insight)
                    .where(Insight.id == insight_id)
                    .values(**allowed, updated_at=now or datetime.utcnow())
                )

        except SQLAlchemyError as e:
            logger.error("Failed to update insight", insight_id=insight_id, error=str(e))
            raise DatabaseException(f"Failed to update insight: {e}")

    async def deactivate_insight(self, insight_id: int, now: Optional[datetime] = None) -> None:
        """Soft-delete an insight."""
        try:
            async with self.get_session() as session:
                await session.execute(
                    update(Insight)
                    .where(Insight.id == insight_id)
                    .values(active=False, updated_at=now or datetime.utcnow())
                )

        except SQLAlchemyError as e:
            logger.error("Failed to deactivate insight", insight_id=insight_id, error=str(e))
            raise DatabaseException(f"Failed to deactivate insight: {e}")

    # ==================== Memory Snapshots ====================

    @db_retry
    async def get_latest_snapshot(self, user_id: int) -> Optional[MemorySnapshotSchema]:
        """Highest-version snapshot for a user."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(MemorySnapshot)
                    .where(MemorySnapshot.user_id == user_id)
                    .order_by(desc(MemorySnapshot.version))
                    .limit(1)
                )
                snapshot = result.scalar_one_or_none()
                return MemorySnapshotSchema.model_validate(snapshot) if snapshot else None

        except SQLAlchemyError as e:
            logger.error("Failed to get snapshot", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to get snapshot: {e}")

    async def create_snapshot(
        self, user_id: int, snapshot: str, now: Optional[datetime] = None
    ) -> MemorySnapshotSchema:
        """Insert the next snapshot version (prior max + 1, starting at 1)."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(func.max(MemorySnapshot.version)).where(MemorySnapshot.user_id == user_id)
                )
                current = result.scalar_one_or_none() or 0
                row = MemorySnapshot(
                    user_id=user_id,
                    snapshot=snapshot,
                    version=current + 1,
                    created_at=now or datetime.utcnow(),
                )
                session.add(row)
                await session.flush()
                logger.info("Created memory snapshot", user_id=user_id, version=row.version)
                return MemorySnapshotSchema.model_validate(row)

        except SQLAlchemyError as e:
            logger.error("Failed to create snapshot", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to create snapshot: {e}")

    # ==================== Proactive Messages ====================

    async def create_proactive_message(
        self,
        user_id: int,
        content: str,
        trigger_type: str,
        callback_id: Optional[int] = None,
        conversation_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ProactiveMessageSchema:
        """Persist a drafted outreach message as pending."""
        try:
            async with self.get_session() as session:
                row = ProactiveMessage(
                    user_id=user_id,
                    content=content,
                    trigger_type=trigger_type,
                    status="pending",
                    callback_id=callback_id,
                    conversation_id=conversation_id,
                    created_at=now or datetime.utcnow(),
                )
                session.add(row)
                await session.flush()
                return ProactiveMessageSchema.model_validate(row)

        except SQLAlchemyError as e:
            logger.error("Failed to create proactive message", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to create proactive message: {e}")

    @db_retry
    async def count_proactive_messages_since(self, user_id: int, since: datetime) -> int:
        """Proactive messages created for a user after ``since``, any status."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(func.count(ProactiveMessage.id)).where(
                        ProactiveMessage.user_id == user_id,
                        ProactiveMessage.created_at > since,
                    )
                )
                return result.scalar_one() or 0

        except SQLAlchemyError as e:
            logger.error("Failed to count proactive messages", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to count proactive messages: {e}")

    async def expire_stale_proactive_messages(self, cutoff: datetime) -> int:
        """Expire pending proactive messages created at or before ``cutoff``."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    update(ProactiveMessage)
                    .where(ProactiveMessage.status == "pending", ProactiveMessage.created_at <= cutoff)
                    .values(status="expired")
                )
                return result.rowcount or 0

        except SQLAlchemyError as e:
            logger.error("Failed to expire proactive messages", error=str(e))
            raise DatabaseException(f"Failed to expire proactive messages: {e}")

    async def fetch_pending_proactive_messages(
        self, user_id: int, now: Optional[datetime] = None
    ) -> List[ProactiveMessageSchema]:
        """Pending messages for a user, newest first. Fetching marks them delivered."""
        now = now or datetime.utcnow()
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(ProactiveMessage)
                    .where(ProactiveMessage.user_id == user_id, ProactiveMessage.status == "pending")
                    .order_by(desc(ProactiveMessage.created_at))
                )
                messages = result.scalars().all()
                for message in messages:
                    message.status = "delivered"
                    message.delivered_at = now
                await session.flush()
                return [ProactiveMessageSchema.model_validate(m) for m in messages]

        except SQLAlchemyError as e:
            logger.error("Failed to fetch proactive messages", user_id=user_id, error=str(e))
            raise DatabaseException(f"Failed to fetch proactive messages: {e}")

    async def mark_proactive_message_read(self, message_id: int, user_id: int) -> ProactiveMessageSchema:
        """
        Acknowledge a message owned by ``user_id``.

        Raises:
            RecordNotFoundError: If no such message belongs to the user
        """
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(ProactiveMessage).where(
                        ProactiveMessage.id == message_id,
                        ProactiveMessage.user_id == user_id,
                    )
                )
                message = result.scalar_one_or_none()
                if message is None:
                    raise RecordNotFoundError("ProactiveMessage", message_id)
                if message.status in ("pending", "delivered"):
                    message.status = "read"
                await session.flush()
                return ProactiveMessageSchema.model_validate(message)

        except SQLAlchemyError as e:
            logger.error("Failed to mark proactive message read", message_id=message_id, error=str(e))
            raise DatabaseException(f"Failed to mark proactive message read: {e}")

    # ==================== Re-engagement ====================

    @db_retry
    async def get_users_for_re_engagement(
        self,
        now: datetime,
        limit: int,
        min_inactive: timedelta = timedelta(days=3),
        max_inactive: timedelta = timedelta(days=14),
        min_messages: int = 5,
    ) -> List[UserSchema]:
        """Onboarded users quiet for a while (but not too long) who used to talk."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(User)
                    .join(Conversation, Conversation.user_id == User.id)
                    .join(Message, Message.conversation_id == Conversation.id)
                    .where(
                        User.onboarding_complete.is_(True),
                        User.last_active_at < now - min_inactive,
                        User.last_active_at > now - max_inactive,
                        Message.role == "user",
                    )
                    .group_by(User.id)
                    .having(func.count(Message.id) >= min_messages)
                    .order_by(desc(User.last_active_at))
                    .limit(limit)
                )
                return [UserSchema.model_validate(u) for u in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error("Failed to get re-engagement users", error=str(e))
            raise DatabaseException(f"Failed to get re-engagement users: {e}")


# Singleton instance
db = AsyncDatabase()
