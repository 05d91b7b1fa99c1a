"""Media generation over a JSON HTTP API."""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from errors import GenerationFailure
from schemas.context import Capability
from schemas.responses import GenerationArtifact
from .base import MediaGenerator

logger = logging.getLogger(__name__)


class HTTPMediaGenerator(MediaGenerator):
    """
    Media generator backed by a unified generation API.

    Each capability maps to one POST endpoint taking
    ``{"model", "prompt", ...params}`` and answering with a JSON body that
    carries the media URL (``url``, ``data.url`` or ``output[0]``).
    """

    ENDPOINTS = {
        Capability.IMAGE: "/images/generate",
        Capability.IMAGE_EDIT: "/images/edit",
        Capability.VIDEO: "/videos/generate",
        Capability.TTS: "/audio/speech",
        Capability.MUSIC: "/music/generate",
    }

    MEDIA_TYPES = {
        Capability.IMAGE: "image",
        Capability.IMAGE_EDIT: "image",
        Capability.VIDEO: "video",
        Capability.TTS: "audio",
        Capability.MUSIC: "audio",
    }

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: int = 240
    ):
        """
        Initialize HTTP media generator.

        Args:
            base_url: Base URL of the generation API
            api_key: Optional bearer token
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout

    def _get_headers(self) -> dict:
        """Build request headers."""
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def generate(
        self,
        capability: Capability,
        prompt: str,
        model: str,
        params: Optional[Dict[str, Any]] = None
    ) -> GenerationArtifact:
        """Generate media; the blocking HTTP call runs in a worker thread."""
        endpoint = self.ENDPOINTS.get(capability)
        if endpoint is None:
            raise GenerationFailure(f"No media endpoint for {capability.value}", capability.value, model)

        payload = {"model": model, "prompt": prompt}
        payload.update({k: v for k, v in (params or {}).items() if v is not None})

        data = await asyncio.to_thread(self._post, f"{self.base_url}{endpoint}", payload, capability, model)
        url = self._extract_url(data)
        if not url:
            raise GenerationFailure(f"No media URL in {capability.value} response", capability.value, model)

        logger.info(f"{capability.value} generated with {model}")
        return GenerationArtifact(
            url=url,
            media_type=self.MEDIA_TYPES[capability],
            metadata={"model": model}
        )

    def _post(self, url: str, payload: dict, capability: Capability, model: str) -> Any:
        try:
            response = requests.post(
                url,
                json=payload,
                headers=self._get_headers(),
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Media API request failed for {capability.value}: {e}")
            raise GenerationFailure(f"Media API request failed: {e}", capability.value, model) from e

        if response.status_code in (401, 403):
            raise GenerationFailure(
                f"Media API authentication failed: {response.status_code}", capability.value, model
            )
        if response.status_code != 200:
            raise GenerationFailure(
                f"Media API returned status {response.status_code}: {response.text[:200]}",
                capability.value,
                model
            )

        try:
            return response.json()
        except ValueError as e:
            raise GenerationFailure(f"Media API returned invalid JSON: {e}", capability.value, model) from e

    @staticmethod
    def _extract_url(data: Any) -> Optional[str]:
        # Handle different response formats
        if isinstance(data, dict):
            if isinstance(data.get("url"), str):
                return data["url"]
            nested = data.get("data")
            if isinstance(nested, dict) and isinstance(nested.get("url"), str):
                return nested["url"]
            if isinstance(nested, list) and nested and isinstance(nested[0], dict):
                return nested[0].get("url")
            output = data.get("output")
            if isinstance(output, list) and output and isinstance(output[0], str):
                return output[0]
        return None
