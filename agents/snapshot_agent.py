"""
Snapshot Agent - periodically folds everything known about a user into one narrative.

Snapshots are versioned per user. Only the latest is read elsewhere
(the proactive scheduler prefers it over raw facts).
"""

import asyncio
import json
import time
from datetime import datetime, timedelta
from typing import List, Optional

from config.settings import settings
from core import get_logger
from memory.database_async import db
from prompts import SNAPSHOT_SYSTEM_PROMPT
from schemas import (
    ConversationSchema,
    EmotionalLogSchema,
    EntitySchema,
    GoalSchema,
    InsightSchema,
    MemorySnapshotSchema,
    MessageSchema,
    OnboardingResponseSchema,
    SnapshotStats,
    UserSchema,
)
from utils.llm_client import llm_client

logger = get_logger(__name__)

SNAPSHOT_EMOTION_LIMIT = 20
SNAPSHOT_MESSAGE_LIMIT = 30
SNAPSHOT_SUMMARY_LIMIT = 5
MIN_MESSAGES_FOR_SNAPSHOT = 5


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat(timespec="seconds") if value else "unknown"


def build_memory_data_prompt(
    user: UserSchema,
    insights: List[InsightSchema],
    entities: List[EntitySchema],
    goals: List[GoalSchema],
    emotions: List[EmotionalLogSchema],
    summaries: List[ConversationSchema],
    previous: Optional[MemorySnapshotSchema],
    recent_messages: List[MessageSchema],
    onboarding: List[OnboardingResponseSchema],
) -> str:
    """
    Render every memory source for one user. The previous snapshot comes first
    so the model revises it rather than starting over.

    Args:
        recent_messages: Newest first, as returned by the fact store
    """
    parts = []

    if previous:
        parts.append(
            f"## Previous Snapshot (v{previous.version}, {_iso(previous.created_at)})\n\n{previous.snapshot}"
        )

    basics = [
        f"- Name: {user.display_name or 'Unknown'}",
        f"- Communication style: {user.communication_style}",
        f"- Joined: {_iso(user.created_at)}",
        f"- Last active: {_iso(user.last_active_at)}",
    ]
    if user.profile:
        basics.append(f"- Profile data: {json.dumps(user.profile, default=str)}")
    parts.append("## User Basics\n\n" + "\n".join(basics))

    if onboarding:
        lines = [
            f"- {o.question_key}: {o.response if isinstance(o.response, str) else json.dumps(o.response, default=str)}"
            for o in onboarding
        ]
        parts.append("## Onboarding Responses\n\n" + "\n".join(lines))

    if insights:
        lines = [f"- [{i.type}] {i.content} (confidence: {i.confidence})" for i in insights]
        parts.append("## Insights\n\n" + "\n".join(lines))

    if entities:
        lines = []
        for e in entities:
            meta = ", ".join(m for m in (e.type, e.platform, e.status) if m)
            line = f"- {e.name} ({meta})"
            if e.notes:
                line += f": {e.notes}"
            lines.append(line)
        parts.append("## People Mentioned\n\n" + "\n".join(lines))

    if goals:
        lines = []
        for g in goals:
            line = f"- {g.title} ({g.category}, {g.status})"
            if g.progress:
                line += f". Progress: {g.progress}"
            if g.target_date:
                line += f". Target: {_iso(g.target_date)}"
            if g.check_in_interval:
                line += f". Check-in: {g.check_in_interval}"
            lines.append(line)
        parts.append("## Goals\n\n" + "\n".join(lines))

    if emotions:
        lines = []
        for e in emotions:
            line = f"- {_iso(e.created_at)}: {e.dominant_emotion} (valence: {e.valence}, arousal: {e.arousal})"
            if e.triggers:
                line += f". Triggers: {', '.join(e.triggers)}"
            lines.append(line)
        parts.append("## Recent Emotional States\n\n" + "\n".join(lines))

    written = [c for c in summaries if c.summary][:SNAPSHOT_SUMMARY_LIMIT]
    if written:
        lines = [f"### {c.title or 'Untitled'} ({_iso(c.updated_at)})\n{c.summary}" for c in written]
        parts.append("## Conversation Summaries\n\n" + "\n\n".join(lines))

    if recent_messages:
        lines = [f"[{m.role}]: {m.content}" for m in reversed(recent_messages)]
        parts.append("## Recent Messages\n\n" + "\n".join(lines))

    return "\n\n".join(parts)


class SnapshotAgent:
    """Writes a new snapshot version for recently active users."""

    def __init__(self, model: str = settings.MODEL_SNAPSHOT):
        self.model = model
        self.db = db
        self.llm = llm_client

    async def run_snapshot_batch(
        self,
        now: Optional[datetime] = None,
        batch_size: Optional[int] = None,
    ) -> SnapshotStats:
        """Snapshot up to ``batch_size`` active users. Per-user failures are recorded, not raised."""
        started = time.monotonic()
        now = now or datetime.utcnow()
        batch_size = batch_size or settings.SNAPSHOT_BATCH_SIZE
        stats = SnapshotStats()

        users = await self.db.get_active_users(now - timedelta(days=settings.SNAPSHOT_ACTIVE_DAYS), batch_size)
        logger.info("Snapshot batch started", users=len(users), batch_size=batch_size)

        for user in users:
            try:
                created = await self.snapshot_user(user, now)
                if created:
                    stats.snapshots_created += 1
                else:
                    stats.skipped += 1
            except Exception as e:
                logger.error("Snapshot failed for user", user_id=user.id, error=str(e))
                stats.errors.append(f"User {user.id}: {e}")

        stats.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Snapshot batch finished",
            snapshots_created=stats.snapshots_created,
            skipped=stats.skipped,
            error_count=len(stats.errors),
            duration_ms=stats.duration_ms,
        )
        return stats

    async def snapshot_user(self, user: UserSchema, now: datetime) -> bool:
        """
        Write the next snapshot version for one user.

        Returns:
            False when skipped (not enough data, or latest snapshot is fresh)

        Raises:
            ValueError: If the model's snapshot is too short to keep
        """
        (
            insights,
            entities,
            goals,
            emotions,
            summaries,
            previous,
            recent_messages,
            onboarding,
        ) = await asyncio.gather(
            self.db.get_active_insights(user.id),
            self.db.get_active_entities(user.id),
            self.db.get_active_goals(user.id),
            self.db.get_recent_emotions(user.id, limit=SNAPSHOT_EMOTION_LIMIT),
            self.db.get_conversation_summaries(user.id, limit=SNAPSHOT_SUMMARY_LIMIT),
            self.db.get_latest_snapshot(user.id),
            self.db.get_recent_messages_for_user(user.id, limit=SNAPSHOT_MESSAGE_LIMIT),
            self.db.get_onboarding_responses(user.id),
        )

        has_data = bool(insights or entities or goals) or len(recent_messages) >= MIN_MESSAGES_FOR_SNAPSHOT
        if not has_data:
            logger.debug("Not enough data for snapshot", user_id=user.id)
            return False

        if previous and now - previous.created_at < timedelta(hours=settings.SNAPSHOT_MAX_AGE_HOURS):
            logger.debug("Snapshot still fresh", user_id=user.id, version=previous.version)
            return False

        prompt = build_memory_data_prompt(
            user=user,
            insights=insights,
            entities=entities,
            goals=goals,
            emotions=emotions,
            summaries=summaries,
            previous=previous,
            recent_messages=recent_messages,
            onboarding=onboarding,
        )
        text = await self.llm.generate(
            model=self.model,
            system_prompt=SNAPSHOT_SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=0.4,
        )

        snapshot = (text or "").strip()
        if len(snapshot) < settings.SNAPSHOT_MIN_LENGTH:
            raise ValueError(f"Snapshot too short ({len(snapshot)} chars)")

        await self.db.create_snapshot(user.id, snapshot, now=now)
        return True


# Singleton instance
snapshot_agent = SnapshotAgent()
