"""Anthropic Claude client for interpretation and chat."""

import os
import logging
from typing import Optional, List, Dict, Any, Tuple

import anthropic

from .base_client import BaseLLMClient, Message, LLMResponse

logger = logging.getLogger(__name__)


def _image_block(image_url: str) -> Dict[str, Any]:
    if image_url.startswith("data:"):
        header, data = image_url.split(",", 1)
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": header[5:].split(";")[0], "data": data}
        }
    return {"type": "image", "source": {"type": "url", "url": image_url}}


class AnthropicClient(BaseLLMClient):
    """Async client for the Anthropic Messages API."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 120.0
    ):
        """
        Args:
            api_key: Anthropic API key (falls back to ANTHROPIC_API_KEY)
            model: Default model when a call names none
            timeout: Request timeout in seconds
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client: Optional[anthropic.AsyncAnthropic] = None

        if not self.api_key:
            logger.warning("Anthropic client created without an API key")
            return
        self.client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=timeout)
        logger.info(f"Anthropic client ready ({self.model})")

    @staticmethod
    def _split_system(messages: List[Message]) -> Tuple[str, List[Dict[str, Any]]]:
        """Anthropic takes the system prompt separately from the turns."""
        system_parts = [m.content for m in messages if m.role == "system"]
        turns = []
        for msg in messages:
            if msg.role == "system":
                continue
            if msg.images:
                content: Any = [_image_block(url) for url in msg.images]
                content.append({"type": "text", "text": msg.content})
            else:
                content = msg.content
            turns.append({"role": msg.role, "content": content})
        return "\n".join(system_parts), turns

    async def chat(
        self,
        messages: List[Message],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> LLMResponse:
        if not self.client:
            raise RuntimeError("Anthropic client has no API key")

        system, turns = self._split_system(messages)
        # Routing ids carry a provider prefix ("anthropic/claude-3.5-sonnet")
        model_name = (model or self.model).split("/")[-1]

        request: Dict[str, Any] = {
            "model": model_name,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": turns,
        }
        if system:
            request["system"] = system

        try:
            response = await self.client.messages.create(**request)
        except anthropic.APIError as e:
            logger.error(f"Anthropic request for {model_name} failed: {e}")
            raise

        text = "".join(block.text for block in response.content if block.type == "text")
        usage = None
        if response.usage:
            prompt_tokens = response.usage.input_tokens
            completion_tokens = response.usage.output_tokens
            usage = {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            }

        return LLMResponse(content=text, usage=usage, finish_reason=response.stop_reason, model=model_name)

    def get_provider_name(self) -> str:
        return "anthropic"

    def get_model_name(self) -> str:
        return self.model
