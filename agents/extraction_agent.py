"""
Extraction Agent - mines conversations into long-lived facts.

Runs as a scheduled batch. A conversation is picked up when it has never
been processed or has new messages since it was last processed. Each one
gets a single model call; the response is parsed defensively and
reconciled against the facts that existed before the call.
"""

import asyncio
import time
from datetime import datetime
from typing import Dict, List, Optional

from config.settings import settings
from core import get_logger
from memory.database_async import db
from prompts import EXTRACTION_SYSTEM_PROMPT, EXTRACTION_USER_PROMPT
from schemas import (
    ConversationSchema,
    EntitySchema,
    ExtractionResult,
    ExtractionStats,
    GoalSchema,
    InsightSchema,
    MessageSchema,
)
from utils.llm_client import llm_client
from agents.extraction_parser import (
    coerce_id,
    extraction_result_from_dict,
    load_json_object,
    validate_callback,
    validate_emotional_state,
    validate_entity_update,
    validate_goal_update,
    validate_insight_update,
    validate_new_entity,
    validate_new_goal,
    validate_new_insight,
)

logger = get_logger(__name__)


def _key(text: str) -> str:
    """Case-insensitive match key for names and titles."""
    return text.strip().lower()


def format_existing_insights(insights: List[InsightSchema]) -> str:
    if not insights:
        return "None yet."
    return "\n".join(
        f"- (id {i.id}) [{i.type}] {i.content} (confidence: {i.confidence})" for i in insights
    )


def format_existing_entities(entities: List[EntitySchema]) -> str:
    if not entities:
        return "None yet."
    lines = []
    for e in entities:
        meta = ", ".join(m for m in (e.type, e.platform, e.status) if m)
        line = f"- {e.name} ({meta})"
        if e.notes:
            line += f": {e.notes}"
        lines.append(line)
    return "\n".join(lines)


def format_existing_goals(goals: List[GoalSchema]) -> str:
    if not goals:
        return "None yet."
    lines = []
    for g in goals:
        line = f"- [{g.category.upper()}] {g.title} ({g.status}"
        if g.progress:
            line += f", {g.progress}"
        lines.append(line + ")")
    return "\n".join(lines)


def format_transcript(messages: List[MessageSchema]) -> str:
    return "\n".join(f"{m.role}: {m.content}" for m in messages)


def build_extraction_prompt(
    messages: List[MessageSchema],
    insights: List[InsightSchema],
    entities: List[EntitySchema],
    goals: List[GoalSchema],
    now: datetime,
) -> str:
    """Render existing facts and the transcript into the user prompt."""
    return EXTRACTION_USER_PROMPT.format(
        current_time=now.isoformat(timespec="minutes"),
        existing_insights=format_existing_insights(insights),
        existing_entities=format_existing_entities(entities),
        existing_goals=format_existing_goals(goals),
        transcript=format_transcript(messages),
    )


class ExtractionAgent:
    """
    Turns conversation text into entities, goals, emotional logs,
    callbacks and insights.

    Dedupe is best-effort: names and titles are matched case-insensitively
    against the facts fetched before the model call, plus anything created
    earlier in the same pass.
    """

    def __init__(self, model: str = settings.MODEL_EXTRACTION):
        """
        Initialize extraction agent.

        Args:
            model: LLM model used for extraction
        """
        self.model = model
        self.db = db
        self.llm = llm_client

    async def run_extraction_batch(
        self,
        now: Optional[datetime] = None,
        batch_size: Optional[int] = None,
    ) -> ExtractionStats:
        """
        Process one batch of conversations that need extraction.

        A failure to select the batch propagates. After that, each
        conversation succeeds or fails on its own.
        """
        started = time.monotonic()
        now = now or datetime.utcnow()
        batch_size = batch_size or settings.EXTRACTION_BATCH_SIZE
        stats = ExtractionStats()

        conversations = await self.db.get_conversations_needing_processing(batch_size)
        logger.info("Extraction batch started", conversations=len(conversations), batch_size=batch_size)

        for conversation in conversations:
            try:
                await self.process_conversation(conversation, now, stats)
            except Exception as e:
                logger.error(
                    "Extraction failed for conversation",
                    conversation_id=conversation.id,
                    user_id=conversation.user_id,
                    error=str(e),
                )
                stats.errors.append(f"Conversation {conversation.id}: {e}")

        stats.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("Extraction batch finished", **stats.model_dump(exclude={"errors"}), error_count=len(stats.errors))
        return stats

    async def process_conversation(
        self,
        conversation: ConversationSchema,
        now: datetime,
        stats: ExtractionStats,
    ) -> None:
        """
        Extract one conversation. It is marked processed whatever happens.

        When extraction fails, that error is the one raised; a failure to
        mark the conversation afterwards is only logged.
        """
        try:
            await self._extract(conversation, now, stats)
        except Exception:
            try:
                await self.db.mark_conversation_processed(conversation.id, now)
            except Exception as mark_error:
                logger.error(
                    "Failed to mark conversation processed",
                    conversation_id=conversation.id,
                    error=str(mark_error),
                )
            raise
        await self.db.mark_conversation_processed(conversation.id, now)

    async def _extract(
        self,
        conversation: ConversationSchema,
        now: datetime,
        stats: ExtractionStats,
    ) -> None:
        user_id = conversation.user_id
        messages, insights, entities, goals = await asyncio.gather(
            self.db.get_messages(conversation.id),
            self.db.get_active_insights(user_id),
            self.db.get_active_entities(user_id),
            self.db.get_active_goals(user_id),
        )

        if len(messages) < settings.EXTRACTION_MIN_MESSAGES:
            logger.debug("Conversation too short to extract", conversation_id=conversation.id, messages=len(messages))
            stats.skipped += 1
            return

        prompt = build_extraction_prompt(messages, insights, entities, goals, now)
        raw = await self.llm.generate(
            model=self.model,
            system_prompt=EXTRACTION_SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=0.2,
        )

        data = load_json_object(raw)
        if data is None:
            logger.warning(
                "Extraction response was not a JSON object",
                conversation_id=conversation.id,
                response_length=len(raw or ""),
            )
            stats.parse_failures += 1
            return

        result = extraction_result_from_dict(data)
        await self.reconcile(
            user_id=user_id,
            conversation_id=conversation.id,
            result=result,
            insights=insights,
            entities=entities,
            goals=goals,
            now=now,
            stats=stats,
        )
        stats.conversations_processed += 1

    async def reconcile(
        self,
        user_id: int,
        conversation_id: int,
        result: ExtractionResult,
        insights: List[InsightSchema],
        entities: List[EntitySchema],
        goals: List[GoalSchema],
        now: datetime,
        stats: ExtractionStats,
    ) -> None:
        """
        Apply a parsed response in a fixed order against the pre-fetched facts.

        Order: new entities, entity updates, new goals, goal updates,
        emotional log, callbacks, new insights, insight updates, deactivations.
        """
        entities_by_name: Dict[str, EntitySchema] = {_key(e.name): e for e in entities}
        goals_by_title: Dict[str, GoalSchema] = {_key(g.title): g for g in goals}
        active_insight_ids = {i.id for i in insights}
        insight_contents = {_key(i.content) for i in insights}

        # New entities
        created_names = set()
        for raw in result.new_entities:
            entity = validate_new_entity(raw)
            if entity is None:
                stats.dropped += 1
                continue
            key = _key(entity.name)
            if key in entities_by_name or key in created_names:
                stats.dropped += 1
                continue
            await self.db.create_entity(user_id, entity, now=now)
            created_names.add(key)
            stats.entities_created += 1

        # Entity updates
        for raw in result.entity_updates:
            update = validate_entity_update(raw)
            existing = entities_by_name.get(_key(update.name)) if update else None
            if existing is None:
                stats.dropped += 1
                continue
            changes = update.model_dump(exclude={"name"}, exclude_none=True)
            await self.db.update_entity(existing.id, changes, now=now)
            stats.entities_updated += 1

        # New goals
        created_titles = set()
        for raw in result.new_goals:
            goal = validate_new_goal(raw, now)
            if goal is None:
                stats.dropped += 1
                continue
            key = _key(goal.title)
            if key in goals_by_title or key in created_titles:
                stats.dropped += 1
                continue
            await self.db.create_goal(user_id, goal, now=now)
            created_titles.add(key)
            stats.goals_created += 1

        # Goal updates
        for raw in result.goal_updates:
            update = validate_goal_update(raw)
            existing = goals_by_title.get(_key(update.title)) if update else None
            if existing is None:
                stats.dropped += 1
                continue
            changes = update.model_dump(exclude={"title"}, exclude_none=True)
            await self.db.update_goal(existing.id, changes, now=now)
            stats.goals_updated += 1

        # Emotional log, at most one per conversation
        if result.emotional_state is not None:
            reading = validate_emotional_state(result.emotional_state)
            if reading is None:
                stats.dropped += 1
            else:
                await self.db.add_emotional_log(user_id, reading, conversation_id=conversation_id, now=now)
                stats.emotions_logged += 1

        # Callbacks
        for raw in result.callbacks:
            callback = validate_callback(raw, now)
            if callback is None:
                stats.dropped += 1
                continue
            await self.db.create_callback(user_id, callback, source_conversation_id=conversation_id, now=now)
            stats.callbacks_created += 1

        # New insights
        for raw in result.new_insights:
            insight = validate_new_insight(raw)
            if insight is None or _key(insight.content) in insight_contents:
                stats.dropped += 1
                continue
            await self.db.create_insight(user_id, insight, source_conversation_id=conversation_id, now=now)
            insight_contents.add(_key(insight.content))
            stats.insights_created += 1

        # Insight updates, only for ids this user actually has
        for raw in result.updated_insights:
            update = validate_insight_update(raw)
            if update is None or update.id not in active_insight_ids:
                stats.dropped += 1
                continue
            changes = update.model_dump(exclude={"id"}, exclude_none=True)
            await self.db.update_insight(update.id, changes, now=now)
            stats.insights_updated += 1

        # Deactivations, same guard
        for raw_id in result.deactivated_insight_ids:
            insight_id = coerce_id(raw_id)
            if insight_id is None or insight_id not in active_insight_ids:
                stats.dropped += 1
                continue
            await self.db.deactivate_insight(insight_id, now=now)
            active_insight_ids.discard(insight_id)
            stats.insights_deactivated += 1

        logger.debug("Reconciled extraction", user_id=user_id, conversation_id=conversation_id)


# Singleton instance
extraction_agent = ExtractionAgent()
