"""Media generator interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from schemas.context import Capability
from schemas.responses import GenerationArtifact


class MediaGenerator(ABC):
    """Abstract base class for image, video, speech and music generation."""

    @abstractmethod
    async def generate(
        self,
        capability: Capability,
        prompt: str,
        model: str,
        params: Optional[Dict[str, Any]] = None
    ) -> GenerationArtifact:
        """
        Generate one media artifact.

        Args:
            capability: Media capability (image, image_edit, video, tts, music)
            prompt: Prompt, or the text to speak for tts
            model: Downstream model identifier
            params: Capability-specific parameters

        Returns:
            GenerationArtifact referencing the produced media

        Raises:
            GenerationFailure: If the provider errors or returns no media
        """
        pass
