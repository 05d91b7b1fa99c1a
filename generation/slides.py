"""Slide deck generation: LLM-written slide structure plus an optional file serializer."""

import json
import logging
import re
from typing import Callable, List, Optional
from pydantic import BaseModel, Field, ValidationError

from errors import GenerationFailure
from llm.base_client import BaseLLMClient, Message
from schemas.responses import GenerationArtifact

logger = logging.getLogger(__name__)


class Slide(BaseModel):
    """One slide of a deck."""
    title: str
    subtitle: Optional[str] = None
    bullets: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class SlideDeck(BaseModel):
    """Structured slide deck handed to the file serializer."""
    title: str
    slides: List[Slide] = Field(default_factory=list)


# Turns a structured deck into a .pptx (or other) file
DeckSerializer = Callable[[SlideDeck], bytes]


class SlideDeckGenerator:
    """Builds a slide deck outline with an LLM and serializes it."""

    SYSTEM_PROMPT = """You write presentation decks.
Produce exactly {slide_count} slides for the user's request: a title slide first, then content slides.
Each content slide has a short title and 3-5 concise bullets.

Respond with valid JSON only:
{{
  "title": "Deck title",
  "slides": [
    {{"title": "...", "subtitle": "...", "bullets": ["...", "..."], "notes": "..."}}
  ]
}}"""

    def __init__(
        self,
        llm_client: Optional[BaseLLMClient],
        serializer: Optional[DeckSerializer] = None
    ):
        """
        Initialize slide deck generator.

        Args:
            llm_client: LLM client that writes the slide content
            serializer: Optional callable producing the presentation file
        """
        self.llm_client = llm_client
        self.serializer = serializer

    async def generate(self, prompt: str, model: str, slide_count: int = 5) -> GenerationArtifact:
        """
        Generate a deck.

        Args:
            prompt: What the presentation is about
            model: Model that writes the slides
            slide_count: Number of slides to produce

        Returns:
            GenerationArtifact with the deck in metadata and the file in data

        Raises:
            GenerationFailure: If slide content cannot be produced
        """
        if not self.llm_client:
            raise GenerationFailure("No LLM client available for slides", "ppt", model)

        messages = [
            Message(role="system", content=self.SYSTEM_PROMPT.format(slide_count=slide_count)),
            Message(role="user", content=prompt)
        ]
        response = await self.llm_client.chat(messages=messages, model=model, temperature=0.6, max_tokens=3000)
        deck = self._parse_deck(response.content, model)

        file_name = self._file_name(deck.title)
        data = None
        if self.serializer:
            try:
                data = self.serializer(deck)
            except Exception as e:
                raise GenerationFailure(f"Deck serialization failed: {e}", "ppt", model) from e

        logger.info(f"Slide deck '{deck.title}' generated with {len(deck.slides)} slides")
        return GenerationArtifact(
            media_type="ppt",
            file_name=file_name,
            data=data,
            content=deck.model_dump_json(),
            metadata={"model": model, "slide_count": len(deck.slides), "tokens": response.total_tokens}
        )

    def _parse_deck(self, content: str, model: str) -> SlideDeck:
        match = re.search(r"\{[\s\S]*\}", content or "")
        if not match:
            raise GenerationFailure("Slide response contained no JSON", "ppt", model)
        try:
            deck = SlideDeck.model_validate(json.loads(match.group(0)))
        except (json.JSONDecodeError, ValidationError) as e:
            raise GenerationFailure(f"Slide response was malformed: {e}", "ppt", model) from e
        if not deck.slides:
            raise GenerationFailure("Slide response had no slides", "ppt", model)
        return deck

    @staticmethod
    def _file_name(title: str) -> str:
        slug = re.sub(r"[^a-z0-9]+", "_", title.lower()).strip("_")
        return f"{slug or 'presentation'}.pptx"


def format_slide_preview(deck: SlideDeck, max_slides: int = 5) -> str:
    """Markdown preview of the first slides of a deck."""
    lines = ["**Slide Preview:**"]
    for idx, slide in enumerate(deck.slides[:max_slides]):
        lines.append(f"\n**Slide {idx + 1}:** {slide.title}")
        lines.extend(f"  - {bullet}" for bullet in slide.bullets[:3])
        if slide.subtitle:
            lines.append(f"  _{slide.subtitle}_")
    if len(deck.slides) > max_slides:
        lines.append(f"\n_...and {len(deck.slides) - max_slides} more slides_")
    return "\n".join(lines)
