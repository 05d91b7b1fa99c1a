"""LLM client factory."""

from enum import Enum
from typing import Optional

from .base_client import BaseLLMClient
from .openai_client import OpenAIClient
from .anthropic_client import AnthropicClient

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENROUTER = "openrouter"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


def create_llm_client(
    provider: LLMProvider,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: float = 120.0
) -> BaseLLMClient:
    """
    Create an LLM client for the specified provider.

    Args:
        provider: LLM provider (openrouter, openai or anthropic)
        api_key: API key for the provider
        model: Optional default model
        base_url: Endpoint override for OpenAI-compatible providers
        timeout: Request timeout in seconds

    Returns:
        Configured LLM client

    Raises:
        ValueError: If provider is not supported
    """
    if provider == LLMProvider.OPENROUTER:
        return OpenAIClient(
            api_key=api_key,
            model=model,
            base_url=base_url or OPENROUTER_BASE_URL,
            timeout=timeout,
            provider_name="openrouter"
        )
    elif provider == LLMProvider.OPENAI:
        return OpenAIClient(api_key=api_key, model=model, base_url=base_url, timeout=timeout)
    elif provider == LLMProvider.ANTHROPIC:
        return AnthropicClient(api_key=api_key, model=model, timeout=timeout)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")
