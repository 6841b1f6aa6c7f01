"""
Summary Agent - keeps a rolling summary for long conversations.
"""

import time
from datetime import datetime
from typing import Optional

from config.settings import settings
from core import get_logger
from memory.database_async import db
from prompts import SUMMARY_SYSTEM_PROMPT, SUMMARY_USER_PROMPT
from schemas import ConversationSchema, SummaryStats
from utils.llm_client import llm_client

logger = get_logger(__name__)


class SummaryAgent:
    """Summarizes conversations that crossed the message threshold."""

    def __init__(self, model: str = settings.MODEL_SUMMARY):
        self.model = model
        self.db = db
        self.llm = llm_client

    async def run_summarization_batch(
        self,
        now: Optional[datetime] = None,
        batch_size: Optional[int] = None,
    ) -> SummaryStats:
        started = time.monotonic()
        now = now or datetime.utcnow()
        batch_size = batch_size or settings.SUMMARY_BATCH_SIZE
        stats = SummaryStats()

        conversations = await self.db.get_conversations_needing_summary(settings.SUMMARY_MIN_MESSAGES, batch_size)
        logger.info("Summary batch started", conversations=len(conversations), batch_size=batch_size)

        for conversation in conversations:
            try:
                if await self.summarize_conversation(conversation, now):
                    stats.summarized += 1
                else:
                    stats.skipped += 1
            except Exception as e:
                logger.error("Summary failed", conversation_id=conversation.id, error=str(e))
                stats.errors.append(f"Conversation {conversation.id}: {e}")

        stats.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Summary batch finished",
            summarized=stats.summarized,
            skipped=stats.skipped,
            error_count=len(stats.errors),
            duration_ms=stats.duration_ms,
        )
        return stats

    async def summarize_conversation(self, conversation: ConversationSchema, now: datetime) -> bool:
        """
        Write a new summary for one conversation.

        Returns:
            False when the conversation has no messages

        Raises:
            ValueError: If the model returns nothing usable
        """
        messages = await self.db.get_messages(conversation.id)
        if not messages:
            return False

        transcript = "\n".join(f"{m.role}: {m.content}" for m in messages)
        text = await self.llm.generate(
            model=self.model,
            system_prompt=SUMMARY_SYSTEM_PROMPT,
            user_prompt=SUMMARY_USER_PROMPT.format(
                previous_summary=conversation.summary or "None.",
                transcript=transcript,
            ),
            temperature=0.3,
            max_tokens=500,
        )
        summary = (text or "").strip()
        if not summary:
            raise ValueError("Empty summary")

        await self.db.update_conversation_summary(conversation.id, summary, now=now)
        return True


# Singleton instance
summary_agent = SummaryAgent()
