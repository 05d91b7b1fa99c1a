"""Base LLM client interface."""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict
from pydantic import BaseModel


class Message(BaseModel):
    """Chat message."""
    role: str  # "system", "user", "assistant"
    content: str
    images: Optional[List[str]] = None  # Image URLs or data URLs for vision models


class LLMResponse(BaseModel):
    """Response from LLM."""
    content: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None
    model: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        """Reported token usage, estimated from content length when absent."""
        if self.usage and self.usage.get("total_tokens"):
            return int(self.usage["total_tokens"])
        return estimate_tokens(self.content)


def estimate_tokens(text: str) -> int:
    """Rough token count (~4 characters per token)."""
    return max(1, len(text or "") // 4)


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    async def chat(
        self,
        messages: List[Message],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> LLMResponse:
        """
        Send chat completion request.

        Args:
            messages: List of messages in conversation
            model: Model to use for this call (default: the client's model)
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with content and optional usage
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of the LLM provider."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the name of the default model."""
        pass
