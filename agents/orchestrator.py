"""
Chat Orchestrator - runs one chat turn end to end.

Flow:
1. Resolve or create the conversation
2. Store the user message
3. Assemble memory context and load history
4. Stream the companion's reply
5. Store the reply once the stream finishes, even if the client left
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Set

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config.settings import settings
from core import get_logger, DatabaseException, RecordNotFoundError
from memory.database_async import db
from memory.formatter import format_memory_for_prompt
from memory.memory_manager_async import memory_manager
from prompts import COMPANION_SYSTEM_PROMPT
from schemas import MessageSchema, ProactiveMessageSchema
from utils.llm_client import llm_client

logger = get_logger(__name__)

# Detached producers; held here so they are not garbage collected mid-stream
_background_tasks: Set[asyncio.Task] = set()

_STREAM_END = object()

persist_retry = retry(
    retry=retry_if_exception_type(DatabaseException),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)


def conversation_title(message: str, max_length: int = settings.CONVERSATION_TITLE_MAX_LENGTH) -> str:
    """Title from the opening message, truncated with an ellipsis."""
    text = " ".join(message.split())
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def to_chat_history(messages: List[MessageSchema]) -> List[Dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in messages]


@dataclass
class ChatTurn:
    """A started chat turn. Iterate ``chunks()`` to read the reply as it streams."""

    conversation_id: int
    queue: asyncio.Queue = field(repr=False)
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    async def chunks(self) -> AsyncIterator[str]:
        while True:
            item = await self.queue.get()
            if item is _STREAM_END:
                return
            yield item


class ChatOrchestrator:
    """Coordinates the memory layer and the companion model for chat turns."""

    def __init__(self, model: str = settings.MODEL_CONVERSATION):
        """Initialize orchestrator."""
        self.model = model
        self.db = db
        self.llm = llm_client
        self.memory = memory_manager
        logger.info("Chat orchestrator initialized")

    async def start_turn(
        self,
        user_id: int,
        message: str,
        conversation_id: Optional[int] = None,
    ) -> ChatTurn:
        """
        Store the user message, build the prompt and start streaming the reply.

        Args:
            user_id: Caller's user id
            message: User's message text
            conversation_id: Existing conversation to continue, or None to start one

        Returns:
            ChatTurn whose chunks can be forwarded to the client

        Raises:
            RecordNotFoundError: If the conversation does not exist for this user
            ContextAssemblyError: If memory could not be assembled
        """
        if conversation_id is not None:
            conversation = await self.db.get_conversation(conversation_id, user_id=user_id)
            if conversation is None:
                raise RecordNotFoundError("Conversation", conversation_id)
        else:
            conversation = await self.db.create_conversation(user_id)

        logger.info(
            "Processing message",
            user_id=user_id,
            conversation_id=conversation.id,
            message_preview=message[:50],
        )

        await self.db.add_message(conversation.id, "user", message)

        context, history = await asyncio.gather(
            self.memory.assemble_memory_context(user_id, conversation_id=conversation.id),
            self.db.get_messages(conversation.id),
        )

        is_first_message = len(history) <= 1
        system_prompt = COMPANION_SYSTEM_PROMPT.format(
            user_context=format_memory_for_prompt(context, is_first_message=is_first_message)
        )

        await self.db.update_last_active(user_id)

        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(
            self._produce_reply(
                conversation_id=conversation.id,
                first_message=message,
                system_prompt=system_prompt,
                history=to_chat_history(history),
                queue=queue,
            )
        )
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

        return ChatTurn(conversation_id=conversation.id, queue=queue, task=task)

    async def _produce_reply(
        self,
        conversation_id: int,
        first_message: str,
        system_prompt: str,
        history: List[Dict[str, str]],
        queue: asyncio.Queue,
    ) -> None:
        """Stream the model into ``queue``, then persist the full reply."""
        parts: List[str] = []
        try:
            async for delta in self.llm.stream_chat(
                model=self.model,
                system_prompt=system_prompt,
                conversation_history=history,
            ):
                parts.append(delta)
                queue.put_nowait(delta)
        except Exception as e:
            logger.error("Reply stream failed", conversation_id=conversation_id, error=str(e))
            return
        finally:
            queue.put_nowait(_STREAM_END)

        reply = "".join(parts)
        try:
            if reply:
                await self._save_reply(conversation_id, reply)
            await self._save_title(conversation_id, conversation_title(first_message))
        except Exception as e:
            logger.error("Failed to persist reply", conversation_id=conversation_id, error=str(e))
            return
        logger.debug("Reply persisted", conversation_id=conversation_id, reply_length=len(reply))

    # Retried separately; add_message is not idempotent
    @persist_retry
    async def _save_reply(self, conversation_id: int, reply: str) -> None:
        await self.db.add_message(conversation_id, "assistant", reply)

    @persist_retry
    async def _save_title(self, conversation_id: int, title: str) -> None:
        await self.db.set_conversation_title_if_empty(conversation_id, title)

    # ==================== Proactive delivery ====================

    async def get_pending_proactive_messages(
        self, user_id: int, now: Optional[datetime] = None
    ) -> List[ProactiveMessageSchema]:
        """Pending outreach for the user, newest first. Marks them delivered."""
        return await self.db.fetch_pending_proactive_messages(user_id, now=now)

    async def mark_proactive_message_read(self, message_id: int, user_id: int) -> ProactiveMessageSchema:
        return await self.db.mark_proactive_message_read(message_id, user_id)


# Singleton instance
orchestrator = ChatOrchestrator()
