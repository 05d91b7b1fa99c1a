"""History summarizer: compresses old turns so prompts stay bounded."""

import asyncio
import logging
from typing import List, Optional
from pydantic import BaseModel, Field

from llm.base_client import BaseLLMClient, Message
from memory.models import ChatTurn

logger = logging.getLogger(__name__)


class CondensedHistory(BaseModel):
    """Recent turns plus an optional summary of everything older."""
    recent_messages: List[ChatTurn] = Field(default_factory=list)
    summary: Optional[str] = None


class HistorySummarizer:
    """Condenses long conversation histories with one remote call."""

    MAX_CHARS_PER_MESSAGE = 500

    SYSTEM_PROMPT = """You are a conversation summarizer for a creative AI assistant.
Summarize the conversation below in a short paragraph. Capture:
- Business facts (name, industry, audience, brand tone)
- Goals the user stated
- Decisions that were made
- Assets that were created (images, videos, audio, presentations)

Write plain prose, no lists, at most 150 words."""

    def __init__(
        self,
        llm_client: Optional[BaseLLMClient],
        model: Optional[str] = None,
        timeout: float = 30.0
    ):
        """
        Initialize summarizer.

        Args:
            llm_client: LLM client used for summarization
            model: Model to summarize with (default: the client's model)
            timeout: Seconds before the summary call is abandoned
        """
        self.llm_client = llm_client
        self.model = model
        self.timeout = timeout

    async def condense(self, history: List[ChatTurn], max_recent: int = 35) -> CondensedHistory:
        """
        Keep the most recent turns and summarize the rest.

        Args:
            history: Full conversation history, oldest first
            max_recent: Number of most recent turns kept verbatim

        Returns:
            CondensedHistory; within bounds the history is returned unchanged
        """
        if len(history) <= max_recent:
            return CondensedHistory(recent_messages=list(history))

        cutoff = len(history) - max_recent
        older, recent = history[:cutoff], history[cutoff:]

        if not self.llm_client:
            logger.warning("No LLM client available for summarization")
            return CondensedHistory(recent_messages=recent)

        try:
            summary = await asyncio.wait_for(self._summarize(older), timeout=self.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to summarize {len(older)} older messages: {e}")
            return CondensedHistory(recent_messages=recent)

        logger.info(f"Summarized {len(older)} older messages")
        return CondensedHistory(recent_messages=recent, summary=summary or None)

    async def _summarize(self, turns: List[ChatTurn]) -> str:
        turns_text = "\n".join([
            f"{turn.role.upper()}: {turn.content[:self.MAX_CHARS_PER_MESSAGE]}"
            for turn in turns
        ])

        messages = [
            Message(role="system", content=self.SYSTEM_PROMPT),
            Message(role="user", content=f"Summarize this conversation:\n\n{turns_text}")
        ]

        response = await self.llm_client.chat(
            messages=messages,
            model=self.model,
            temperature=0.3,
            max_tokens=500
        )
        return response.content.strip()
