"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, Message, LLMResponse, estimate_tokens
from .factory import create_llm_client, LLMProvider

__all__ = [
    "BaseLLMClient",
    "Message",
    "LLMResponse",
    "estimate_tokens",
    "create_llm_client",
    "LLMProvider",
]
