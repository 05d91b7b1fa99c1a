"""Generation pathways for media capabilities."""

from .base import MediaGenerator
from .http_generator import HTTPMediaGenerator
from .slides import DeckSerializer, Slide, SlideDeck, SlideDeckGenerator, format_slide_preview

__all__ = [
    "MediaGenerator",
    "HTTPMediaGenerator",
    "DeckSerializer",
    "Slide",
    "SlideDeck",
    "SlideDeckGenerator",
    "format_slide_preview",
]
