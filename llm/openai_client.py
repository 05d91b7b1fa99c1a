"""OpenAI-compatible LLM client (OpenAI or OpenRouter)."""

import os
import logging
from typing import Optional, List, Dict, Any

from openai import AsyncOpenAI

from .base_client import BaseLLMClient, Message, LLMResponse

logger = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """Client for any OpenAI-compatible chat completions endpoint."""

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        provider_name: str = "openai"
    ):
        """
        Initialize OpenAI-compatible client.

        Args:
            api_key: API key (falls back to OPENAI_API_KEY env var)
            model: Default model (default: gpt-4o-mini)
            base_url: Endpoint base URL, e.g. https://openrouter.ai/api/v1
            timeout: Request timeout in seconds
            provider_name: Name reported by get_provider_name()
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.provider_name = provider_name
        self.client = None

        if self.api_key:
            self.client = AsyncOpenAI(api_key=self.api_key, base_url=base_url, timeout=timeout)
            logger.info(f"{provider_name} client initialized with model: {self.model}")
        else:
            logger.warning(f"No {provider_name} API key provided")

    def _convert_message(self, msg: Message) -> Dict[str, Any]:
        if not msg.images:
            return {"role": msg.role, "content": msg.content}

        parts: List[Dict[str, Any]] = [{"type": "text", "text": msg.content}]
        for image_url in msg.images:
            parts.append({"type": "image_url", "image_url": {"url": image_url}})
        return {"role": msg.role, "content": parts}

    async def chat(
        self,
        messages: List[Message],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> LLMResponse:
        """Send chat completion request."""
        if not self.client:
            raise RuntimeError(f"{self.provider_name} client not initialized. Check API key.")

        kwargs = {
            "model": model or self.model,
            "messages": [self._convert_message(msg) for msg in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        try:
            response = await self.client.chat.completions.create(**kwargs)

            if not response.choices:
                raise RuntimeError("Empty completion response")
            choice = response.choices[0]
            content = choice.message.content or ""

            # Some routers omit usage entirely
            usage = None
            if getattr(response, "usage", None):
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens or 0,
                    "completion_tokens": response.usage.completion_tokens or 0,
                    "total_tokens": response.usage.total_tokens or 0,
                }

            return LLMResponse(
                content=content,
                usage=usage,
                finish_reason=choice.finish_reason,
                model=kwargs["model"]
            )

        except Exception as e:
            logger.error(f"{self.provider_name} API error ({kwargs['model']}): {e}")
            raise

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return self.provider_name

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model
