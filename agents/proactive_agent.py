"""
Proactive Agent - decides who gets an unsolicited check-in this run.

Four trigger sources are scanned independently and merged with one
candidate per user, in priority order:
    1. Triggered callbacks
    2. Goals due for check-in
    3. Recent strongly negative mood followed by silence
    4. Re-engagement after a few quiet days

Each surviving candidate is rate limited per user, given a compact memory
context, and drafted a short message that is stored as pending.
"""

import asyncio
import time
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Set

from config.settings import settings
from core import get_logger
from memory.database_async import db
from prompts import PROACTIVE_MESSAGE_PROMPT, PROACTIVE_USER_PROMPT
from schemas import (
    CallbackSchema,
    EmotionalLogSchema,
    GoalSchema,
    ProactiveCandidate,
    ProactiveStats,
    UserSchema,
)
from utils.llm_client import llm_client

logger = get_logger(__name__)

CONTEXT_EMOTION_LIMIT = 5
CONTEXT_MESSAGE_LIMIT = 10
CONTEXT_ENTITY_LIMIT = 10


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


def _goal_lines(goals: Iterable[GoalSchema]) -> str:
    lines = []
    for g in goals:
        line = f"- {g.title} ({g.category}, {g.status})"
        if g.progress:
            line += f": {g.progress}"
        lines.append(line)
    return "\n".join(lines)


def _emotion_lines(emotions: Iterable[EmotionalLogSchema]) -> str:
    return "\n".join(
        f"- {e.dominant_emotion} (valence: {e.valence}) at {_iso(e.created_at)}" for e in emotions
    )


def callback_candidate(callback: CallbackSchema) -> ProactiveCandidate:
    return ProactiveCandidate(
        user_id=callback.user_id,
        trigger_type=callback.trigger_type,
        trigger_context=f"Callback: {callback.content}",
        callback_id=callback.id,
    )


def goal_candidate(goal: GoalSchema) -> ProactiveCandidate:
    return ProactiveCandidate(
        user_id=goal.user_id,
        trigger_type="goal_check",
        trigger_context=(
            f'Goal due for check-in: "{goal.title}" ({goal.category}). '
            f"Progress: {goal.progress or 'unknown'}. "
            f"Check-in interval: {goal.check_in_interval}."
        ),
        goal_id=goal.id,
    )


def emotional_candidate(log: EmotionalLogSchema, last_active_at: datetime) -> ProactiveCandidate:
    return ProactiveCandidate(
        user_id=log.user_id,
        trigger_type="emotional_check",
        trigger_context=(
            f"User's last emotional state was {log.dominant_emotion} (valence: {log.valence}) "
            f"logged at {_iso(log.created_at)}. They haven't messaged since {_iso(last_active_at)}."
        ),
    )


def re_engagement_candidate(user: UserSchema, now: datetime) -> ProactiveCandidate:
    days = (now - user.last_active_at).days
    return ProactiveCandidate(
        user_id=user.id,
        trigger_type="re_engagement",
        trigger_context=f"User hasn't messaged in {days} days. They were previously active.",
    )


def merge_candidates(*sources: Iterable[ProactiveCandidate]) -> List[ProactiveCandidate]:
    """One candidate per user; the earliest source to name a user wins."""
    seen: Set[int] = set()
    merged = []
    for source in sources:
        for candidate in source:
            if candidate.user_id in seen:
                continue
            seen.add(candidate.user_id)
            merged.append(candidate)
    return merged


class ProactiveAgent:
    """Runs the proactive outreach scan."""

    def __init__(self, model: str = settings.MODEL_PROACTIVE):
        self.model = model
        self.db = db
        self.llm = llm_client

    async def run_proactive_batch(
        self,
        now: Optional[datetime] = None,
        max_users: Optional[int] = None,
        max_per_day: Optional[int] = None,
    ) -> ProactiveStats:
        """
        One scheduler run: housekeeping, trigger scan, merge, then per-candidate drafting.

        Housekeeping and trigger selection failures propagate. After that each
        candidate succeeds or fails on its own.
        """
        started = time.monotonic()
        now = now or datetime.utcnow()
        max_users = max_users or settings.PROACTIVE_MAX_USERS_PER_RUN
        max_per_day = max_per_day or settings.MAX_PROACTIVE_PER_DAY
        stats = ProactiveStats()

        stats.callbacks_expired, stats.messages_expired = await asyncio.gather(
            self.db.expire_stale_callbacks(now - timedelta(days=settings.CALLBACK_EXPIRY_DAYS)),
            self.db.expire_stale_proactive_messages(now - timedelta(hours=settings.PROACTIVE_EXPIRY_HOURS)),
        )

        candidates = (await self.collect_candidates(now, max_users))[:max_users]
        logger.info(
            "Proactive batch started",
            candidates=len(candidates),
            callbacks_expired=stats.callbacks_expired,
            messages_expired=stats.messages_expired,
        )

        for candidate in candidates:
            try:
                await self.process_candidate(candidate, now, max_per_day, stats)
            except Exception as e:
                logger.error(
                    "Proactive message failed",
                    user_id=candidate.user_id,
                    trigger_type=candidate.trigger_type,
                    error=str(e),
                )
                stats.errors.append(f"User {candidate.user_id}: {e}")

        stats.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Proactive batch finished",
            generated=stats.generated,
            skipped_rate_limit=stats.skipped_rate_limit,
            skipped_no_context=stats.skipped_no_context,
            error_count=len(stats.errors),
            duration_ms=stats.duration_ms,
        )
        return stats

    async def collect_candidates(self, now: datetime, limit: int) -> List[ProactiveCandidate]:
        """Query all four trigger sources concurrently and merge them."""
        callbacks, goals, emotional, dormant = await asyncio.gather(
            self.db.get_all_triggered_callbacks(now, limit),
            self.db.get_goals_due_for_check_in(now, limit),
            self.db.get_users_needing_emotional_check_in(
                now,
                limit,
                valence_below=settings.EMOTIONAL_CHECK_IN_VALENCE,
                window=timedelta(hours=settings.EMOTIONAL_CHECK_IN_WINDOW_HOURS),
                silence=timedelta(hours=settings.EMOTIONAL_CHECK_IN_SILENCE_HOURS),
            ),
            self.db.get_users_for_re_engagement(
                now,
                limit,
                min_inactive=timedelta(days=settings.RE_ENGAGEMENT_MIN_DAYS),
                max_inactive=timedelta(days=settings.RE_ENGAGEMENT_MAX_DAYS),
                min_messages=settings.RE_ENGAGEMENT_MIN_MESSAGES,
            ),
        )
        return merge_candidates(
            [callback_candidate(c) for c in callbacks],
            [goal_candidate(g) for g in goals],
            [emotional_candidate(log, last_active_at) for log, last_active_at in emotional],
            [re_engagement_candidate(u, now) for u in dormant],
        )

    async def _consume_trigger(self, candidate: ProactiveCandidate, now: datetime) -> None:
        if candidate.callback_id is not None:
            await self.db.mark_callback_delivered(candidate.callback_id)
        if candidate.goal_id is not None:
            await self.db.mark_goal_checked_in(candidate.goal_id, now=now)

    async def process_candidate(
        self,
        candidate: ProactiveCandidate,
        now: datetime,
        max_per_day: int,
        stats: ProactiveStats,
    ) -> None:
        """Rate limit, build context, draft, persist and consume the trigger."""
        sent_today = await self.db.count_proactive_messages_since(candidate.user_id, now - timedelta(hours=24))
        if sent_today >= max_per_day:
            logger.debug("Proactive rate limit reached", user_id=candidate.user_id, sent_today=sent_today)
            stats.skipped_rate_limit += 1
            return

        memory_context = await self.build_compact_context(candidate.user_id)
        if memory_context is None:
            logger.debug("No context for proactive message", user_id=candidate.user_id)
            stats.skipped_no_context += 1
            # Consume anyway so the same trigger does not come back every run
            await self._consume_trigger(candidate, now)
            return

        text = await self.llm.generate(
            model=self.model,
            system_prompt=PROACTIVE_MESSAGE_PROMPT,
            user_prompt=PROACTIVE_USER_PROMPT.format(
                trigger_context=candidate.trigger_context,
                memory_context=memory_context,
            ),
            temperature=0.8,
            max_tokens=300,
        )
        content = (text or "").strip()
        if not content:
            stats.errors.append(f"Empty response for user {candidate.user_id}")
            return

        conversation = await self.db.get_most_recent_conversation(candidate.user_id)
        await self.db.create_proactive_message(
            user_id=candidate.user_id,
            content=content,
            trigger_type=candidate.trigger_type,
            callback_id=candidate.callback_id,
            conversation_id=conversation.id if conversation else None,
            now=now,
        )
        await self._consume_trigger(candidate, now)
        stats.generated += 1
        logger.info("Proactive message created", user_id=candidate.user_id, trigger_type=candidate.trigger_type)

    async def build_compact_context(self, user_id: int) -> Optional[str]:
        """
        Short memory block for drafting an outreach message.

        The latest snapshot is preferred, topped up with current goals and
        moods. Without one, raw facts are used. Returns None when there is
        too little to personalize a message.
        """
        user, snapshot, insights, entities, goals, emotions, recent_messages = await asyncio.gather(
            self.db.get_user_by_id(user_id),
            self.db.get_latest_snapshot(user_id),
            self.db.get_active_insights(user_id),
            self.db.get_active_entities(user_id),
            self.db.get_active_goals(user_id),
            self.db.get_recent_emotions(user_id, limit=CONTEXT_EMOTION_LIMIT),
            self.db.get_recent_messages_for_user(user_id, limit=CONTEXT_MESSAGE_LIMIT),
        )
        if user is None:
            return None

        if snapshot:
            parts = [snapshot.snapshot]
            if goals:
                parts.append(f"\nCurrent goals:\n{_goal_lines(goals)}")
            if emotions:
                parts.append(f"\nRecent emotional states:\n{_emotion_lines(emotions)}")
            return "\n".join(parts)

        if not insights and not recent_messages:
            return None

        parts = []
        if user.display_name:
            parts.append(f"User's name: {user.display_name}")
        parts.append(f"Communication style: {user.communication_style}")

        if insights:
            parts.append("\nInsights:\n" + "\n".join(f"- [{i.type}] {i.content}" for i in insights))

        if entities:
            lines = []
            for e in entities[:CONTEXT_ENTITY_LIMIT]:
                meta = ", ".join(m for m in (e.type, e.platform, e.status) if m)
                line = f"- {e.name} ({meta})"
                if e.notes:
                    line += f": {e.notes}"
                lines.append(line)
            parts.append("\nPeople mentioned:\n" + "\n".join(lines))

        if goals:
            parts.append(f"\nGoals:\n{_goal_lines(goals)}")

        if emotions:
            parts.append(f"\nRecent emotional states:\n{_emotion_lines(emotions)}")

        if recent_messages:
            # Stored newest first; the model reads them in order
            transcript = "\n".join(f"[{m.role}]: {m.content}" for m in reversed(recent_messages))
            parts.append(f"\nRecent conversation:\n{transcript}")

        return "\n".join(parts)


# Singleton instance
proactive_agent = ProactiveAgent()
