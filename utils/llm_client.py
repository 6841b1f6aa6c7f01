"""
LLM Client using LiteLLM for multi-provider support.

Switch providers by changing the model string in settings:
    - "gemini/gemini-2.5-flash" (Google)
    - "gpt-4o" (OpenAI)
    - "claude-3-5-sonnet-20241022" (Anthropic)

Calls are not retried here. Batch jobs treat a failed call as a failed unit
and move on; the next scheduled run picks the work up again.
"""

from typing import Any, AsyncIterator, Dict, List, Optional

import litellm

from core import get_logger, LLMServiceError

logger = get_logger(__name__)

# Configure LiteLLM
litellm.set_verbose = False  # Set True for debugging


def _preview(content: str) -> str:
    if len(content) > 200:
        return f"{content[:100]}...{content[-100:]}"
    return content


class LLMClient:
    """
    Unified LLM client supporting multiple providers via LiteLLM.

    Usage:
        text = await llm_client.generate(model, system_prompt, user_prompt)

        async for chunk in llm_client.stream_chat(model, system_prompt, history):
            ...
    """

    def __init__(self):
        """Initialize LLM client."""
        # LiteLLM automatically picks up API keys from environment:
        # - GEMINI_API_KEY
        # - OPENAI_API_KEY
        # - ANTHROPIC_API_KEY
        # etc.
        logger.info("LLM client initialized")

    async def chat(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: float = 0.7,
        max_tokens: int = 1000,
        **kwargs: Any,
    ) -> str:
        """
        Generate a chat completion.

        Args:
            model: Model identifier
            messages: List of message dicts
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            **kwargs: Additional parameters

        Returns:
            Generated response text ("" when the provider returns no content)

        Raises:
            LLMServiceError: If the provider call fails
        """
        logger.debug(
            "LLM request",
            model=model,
            message_count=len(messages),
            temperature=temperature,
        )

        try:
            response = await litellm.acompletion(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except Exception as e:
            logger.error("LLM request failed", model=model, error=str(e))
            raise LLMServiceError(model, str(e)) from e

        content = response.choices[0].message.content or ""
        finish_reason = response.choices[0].finish_reason

        logger.debug(
            "LLM response",
            model=model,
            tokens_used=response.usage.total_tokens if getattr(response, "usage", None) else None,
            response_length=len(content),
            finish_reason=finish_reason,
            response_preview=_preview(content),
        )
        return content

    async def generate(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        **kwargs: Any,
    ) -> str:
        """Single system + user prompt in, text out."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return await self.chat(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )

    async def stream_chat(
        self,
        model: str,
        system_prompt: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        temperature: float = 0.8,
        max_tokens: int = 1000,
        **kwargs: Any,
    ) -> AsyncIterator[str]:
        """
        Stream a chat completion as text chunks.

        Args:
            model: Model identifier
            system_prompt: System instruction string
            conversation_history: Prior turns as {"role", "content"} dicts, oldest first

        Yields:
            Non-empty text deltas

        Raises:
            LLMServiceError: If the provider call fails before or during streaming
        """
        messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        if conversation_history:
            messages.extend(conversation_history)

        logger.debug("LLM stream request", model=model, message_count=len(messages))

        try:
            response = await litellm.acompletion(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
                **kwargs,
            )
            async for chunk in response:
                delta = chunk.choices[0].delta.content if chunk.choices else None
                if delta:
                    yield delta
        except Exception as e:
            logger.error("LLM stream failed", model=model, error=str(e))
            raise LLMServiceError(model, str(e)) from e


# Singleton instance
llm_client = LLMClient()
