"""
Async Memory Manager - assembles everything known about a user for one chat turn.

Every turn rebuilds the context from the fact store; nothing is cached
between turns. Onboarding answers are written through here as well.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

from config.settings import settings
from memory.analysis import determine_emotional_trend, is_goal_due_for_check_in
from memory.database_async import db
from memory.onboarding import (
    COACHING_TO_COMMUNICATION_STYLE,
    build_onboarding_profile,
    onboarding_answers,
)
from core import get_logger, ContextAssemblyError
from schemas import (
    OnboardingRequest,
    UserSchema,
    UserProfileContext,
    EntityContext,
    GoalContext,
    MemoryContext,
)

logger = get_logger(__name__)


def _as_text(value: Any) -> Optional[str]:
    """Profile JSON is user-supplied; keep scalars as text, drop everything else."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def build_user_profile(user: Optional[UserSchema]) -> UserProfileContext:
    """Flatten the user row and its profile document."""
    if user is None:
        return UserProfileContext()

    profile: Dict[str, Any] = user.profile if isinstance(user.profile, dict) else {}
    goals = profile.get("goals")
    return UserProfileContext(
        name=_as_text(profile.get("name")) or user.display_name,
        age=_as_text(profile.get("age")),
        location=_as_text(profile.get("location")),
        occupation=_as_text(profile.get("occupation")),
        life_state=_as_text(profile.get("life_state")),
        social_style=_as_text(profile.get("social_style")),
        lifestyle=_as_text(profile.get("lifestyle")),
        personality_digest=_as_text(profile.get("personality_digest")),
        goals=[str(g) for g in goals] if isinstance(goals, list) else None,
        communication_style=user.communication_style,
    )


class AsyncMemoryManager:
    """
    Per-turn memory assembly.

    Reads the profile, active entities, active goals, recent emotions,
    triggered callbacks, the conversation summary and active insights
    concurrently, then normalizes them into a MemoryContext.
    """

    def __init__(self):
        """Initialize memory manager with the shared database."""
        self.db = db

    async def _no_summary(self) -> None:
        return None

    async def assemble_memory_context(
        self,
        user_id: int,
        conversation_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> MemoryContext:
        """
        Build the MemoryContext for a user.

        Args:
            user_id: Owner of the facts
            conversation_id: Include this conversation's rolling summary
            now: Reference time for triggered callbacks and goal due checks

        Returns:
            MemoryContext (empty collections for a user with no facts)

        Raises:
            ContextAssemblyError: If any read fails. No partial context is returned.
        """
        now = now or datetime.utcnow()
        summary_read = (
            self.db.get_conversation_summary(conversation_id)
            if conversation_id is not None
            else self._no_summary()
        )

        try:
            (
                user,
                entity_rows,
                goal_rows,
                emotion_rows,
                callback_rows,
                summary,
                insight_rows,
            ) = await asyncio.gather(
                self.db.get_user_by_id(user_id),
                self.db.get_active_entities(user_id),
                self.db.get_active_goals(user_id),
                self.db.get_recent_emotions(user_id, limit=settings.RECENT_EMOTION_LIMIT),
                self.db.get_triggered_callbacks(user_id, now),
                summary_read,
                self.db.get_active_insights(user_id),
            )
        except Exception as e:
            logger.error("Failed to assemble memory context", user_id=user_id, error=str(e))
            raise ContextAssemblyError(user_id, str(e)) from e

        active_entities: List[EntityContext] = [
            EntityContext(
                name=e.name,
                type=e.type,
                platform=e.platform,
                status=e.status,
                notes=e.notes or "",
                last_mentioned_at=e.last_mentioned_at,
            )
            for e in entity_rows
        ]

        active_goals: List[GoalContext] = [
            GoalContext(
                title=g.title,
                category=g.category,
                status=g.status,
                progress=g.progress,
                due_for_check_in=is_goal_due_for_check_in(g, now),
            )
            for g in goal_rows
        ]

        context = MemoryContext(
            user_profile=build_user_profile(user),
            active_entities=active_entities,
            active_goals=active_goals,
            emotional_state=determine_emotional_trend(emotion_rows),
            pending_callbacks=[c.content for c in callback_rows],
            conversation_summary=summary or None,
            insights=[f"[{i.type}] {i.content}" for i in insight_rows],
        )

        logger.debug(
            "Assembled memory context",
            user_id=user_id,
            entities=len(active_entities),
            goals=len(active_goals),
            callbacks=len(callback_rows),
            insights=len(insight_rows),
        )
        return context

    async def complete_onboarding(
        self, user_id: int, answers: OnboardingRequest, now: Optional[datetime] = None
    ) -> UserSchema:
        """
        Store the profile, the raw answers and the onboarding flag for a user.

        Raises:
            UserNotFoundError: If no such user exists
        """
        now = now or datetime.utcnow()
        communication_style = (
            COACHING_TO_COMMUNICATION_STYLE[answers.coaching_style] if answers.coaching_style else None
        )

        user = await self.db.update_user_profile(
            user_id,
            build_onboarding_profile(answers, now),
            display_name=answers.name,
            communication_style=communication_style,
        )
        for key, value in onboarding_answers(answers):
            await self.db.add_onboarding_response(user_id, key, value, now=now)
        await self.db.set_onboarding_complete(user_id)

        logger.info(
            "Onboarding saved",
            user_id=user_id,
            life_chapter=answers.life_chapter,
            coaching_style=answers.coaching_style,
        )
        return user.model_copy(update={"onboarding_complete": True})


# Singleton instance
memory_manager = AsyncMemoryManager()
