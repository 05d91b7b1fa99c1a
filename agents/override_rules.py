"""Keyword override rules: high-signal phrases that force a capability."""

import re
from typing import List, Optional
from pydantic import BaseModel, Field

from schemas.context import Capability


def _phrases(*phrases: str) -> List[str]:
    return [r"\b" + re.escape(phrase) + r"\b" for phrase in phrases]


class OverrideRule(BaseModel):
    """Pattern group that forces a capability when any pattern matches."""
    name: str
    capability: Capability
    priority: int
    patterns: List[str] = Field(default_factory=list)
    skip_when_analyzing_images: bool = False


IMAGE_ANALYSIS_PATTERNS = _phrases(
    "analyze", "describe", "what is in", "what's in", "tell me about",
    "explain", "identify", "recognize", "look at", "see in",
    "check this", "review this", "my picture", "my image", "my photo",
    "attached image", "attached photo", "attached picture", "this image",
    "the image", "the photo", "the picture", "uploaded",
)

DEFAULT_RULES = [
    OverrideRule(
        name="voice",
        capability=Capability.TTS,
        priority=50,
        patterns=_phrases(
            "text to speech", "tts for", "generate speech", "speak this",
            "read aloud", "convert to speech", "voice this", "generate tts",
            "make audio of", "say this", "narrate this", "voiceover for",
            "make the voice", "change the voice", "use a different voice",
            "female voice", "male voice", "woman voice", "women voice", "man voice",
            "voice of a woman", "voice of a man",
            "deeper voice", "softer voice", "british voice", "american voice",
            "young voice", "older voice", "different voice", "another voice",
            "change voice to", "use voice",
        ),
    ),
    OverrideRule(
        name="slides",
        capability=Capability.PPT,
        priority=40,
        patterns=_phrases(
            "ppt", "pptx", "powerpoint", "pitch deck", "slide deck", "slidedeck",
            "slideshow", "slides total", "title slide", "content slides",
        ) + [r"\b\d+\s+slides\b"],
    ),
    OverrideRule(
        name="music",
        capability=Capability.MUSIC,
        priority=30,
        patterns=_phrases(
            "compose a song", "create music", "generate music", "make a song",
            "write a jingle", "background music", "make beats", "generate a track",
        ),
    ),
    OverrideRule(
        name="video",
        capability=Capability.VIDEO,
        priority=20,
        patterns=_phrases(
            "generate a video", "create a video", "make a video", "generate video",
            "create video", "make video", "video of", "animate this", "animation of",
            "generate clip", "create clip", "make a clip",
            "turn into video", "convert to video", "make this a video",
            "promotional video", "promo video", "ad video", "advertisement video",
            "animated video", "motion graphics", "short video", "video ad",
            "product video", "demo video", "explainer video", "cinematic video",
            "footage of",
        ),
    ),
    OverrideRule(
        name="image",
        capability=Capability.IMAGE,
        priority=10,
        skip_when_analyzing_images=True,
        patterns=_phrases(
            "turn into logo", "turn this into a logo", "turn it into a logo",
            "make a logo", "create a logo", "generate a logo", "design a logo",
            "logo for", "make an image", "create an image", "generate an image",
            "turn this into an image", "create a visual", "make a visual",
            "generate image", "create image", "draw this", "illustrate this",
            "image of", "picture of", "photo of", "artwork of", "illustration of",
            "generate a picture", "create a picture", "make a picture",
            "sketch of", "render of", "photorealistic", "design an image",
            "poster of", "banner of", "flyer for", "mockup of",
            "generate art", "portrait of", "icon for",
        ),
    ),
]


class KeywordOverrides:
    """
    Ordered rule table evaluated as a pure function.

    The matching rule with the highest priority wins; rules never combine.
    """

    def __init__(self, rules: Optional[List[OverrideRule]] = None):
        """
        Initialize with a rule table.

        Args:
            rules: Override rules (default: DEFAULT_RULES)
        """
        self.rules = sorted(rules or DEFAULT_RULES, key=lambda r: r.priority, reverse=True)

    def match(self, text: str, has_images: bool = False) -> Optional[OverrideRule]:
        """
        Find the highest-priority rule matching the text.

        Args:
            text: Raw user message
            has_images: Whether the user attached images

        Returns:
            Matching rule or None
        """
        text_lower = text.lower()
        analyzing = has_images and any(re.search(p, text_lower) for p in IMAGE_ANALYSIS_PATTERNS)

        for rule in self.rules:
            if rule.skip_when_analyzing_images and analyzing:
                continue
            if any(re.search(p, text_lower) for p in rule.patterns):
                return rule
        return None

    def apply(self, text: str, intent: Capability, has_images: bool = False) -> Capability:
        """Return the forced capability, or ``intent`` unchanged when no rule fires."""
        rule = self.match(text, has_images)
        return rule.capability if rule else intent
