"""Heuristic extraction of media parameters and follow-up edits from raw text."""

import re
from typing import List, Optional

from memory.models import ChatTurn
from schemas.context import Capability

DEFAULT_SLIDE_COUNT = 5
MIN_SLIDES = 3
MAX_SLIDES = 10

DEFAULT_VOICE = "aura-2-thalia-en"

# First matching group wins
VOICE_PATTERNS = [
    (r"\b(female|woman|women|girl|lady)\b", "aura-2-luna-en"),
    (r"\b(male|man|men|guy)\b", "aura-2-orion-en"),
    (r"\b(deep|deeper|low|lower)\b", "aura-2-zeus-en"),
    (r"\b(soft|softer|calm|gentle)\b", "aura-2-stella-en"),
    (r"\bbritish\b", "aura-2-helios-en"),
    (r"\b(young|younger)\b", "aura-2-arcas-en"),
    (r"\b(narrator|narrative|storyteller)\b", "aura-2-athena-en"),
]

VOICE_MODIFICATION_PATTERNS = [
    r"\bvoice\b",
    r"\b(female|male|woman|women|man|men)\b",
    r"\b(deeper|softer|slower|faster|louder|british|younger|older)\b",
    r"\bsound like\b",
]

# Each pattern needs a referent to the generated image
IMAGE_NOUN = r"the (image|logo|picture|photo|design|illustration|poster|background)"
IMAGE_REFERENT = rf"(it|this|that|{IMAGE_NOUN})"

IMAGE_MODIFICATION_PATTERNS = [
    rf"\bmake {IMAGE_REFERENT}\b",
    rf"\b(change|swap|replace|recolou?r) (the )?(colou?rs?|background|font|text|style)\b",
    rf"\b(change|redo|regenerate|recolou?r) (it|{IMAGE_NOUN})\b",
    rf"\b(add|put)\b.+\b(to|on|in|into) {IMAGE_REFERENT}\b",
    rf"\bremove\b.+\bfrom {IMAGE_REFERENT}\b",
    rf"\b{IMAGE_NOUN} (but|with|in) \w+",
    r"\bsame (one|image|logo|picture|thing) but\b",
]

BACKGROUND_REMOVAL_PATTERNS = [
    r"\bremove (the )?(background|bg)\b",
    r"\btransparent\b",
    r"\bcut ?out\b",
    r"\bbackground removal\b",
]

ASPECT_RATIO_KEYWORDS = [
    (r"\b(portrait|vertical|tiktok|reels?|stories|story)\b", "9:16"),
    (r"\b(landscape|widescreen|horizontal|youtube|cinematic)\b", "16:9"),
    (r"\b(square|instagram post|profile picture|avatar|logo)\b", "1:1"),
]


def extract_slide_count(text: str) -> int:
    """Slide count from an "N slides" phrase, clamped to a sane range."""
    match = re.search(r"(\d+)\s*slides?\b", text.lower())
    count = int(match.group(1)) if match else DEFAULT_SLIDE_COUNT
    return min(max(count, MIN_SLIDES), MAX_SLIDES)


def extract_aspect_ratio(text: str) -> Optional[str]:
    """Explicit ratio such as 16:9, else a ratio implied by format words."""
    text_lower = text.lower()
    match = re.search(r"\b(\d{1,2})\s*[:x]\s*(\d{1,2})\b", text_lower)
    if match and match.group(1) != "0" and match.group(2) != "0":
        return f"{int(match.group(1))}:{int(match.group(2))}"
    for pattern, ratio in ASPECT_RATIO_KEYWORDS:
        if re.search(pattern, text_lower):
            return ratio
    return None


def extract_duration_seconds(text: str, max_seconds: int) -> Optional[int]:
    """Requested clip length in seconds, capped at the tier maximum."""
    match = re.search(r"(\d+)\s*(s|sec|secs|seconds?)\b", text.lower())
    if not match:
        return max_seconds or None
    return max(1, min(int(match.group(1)), max_seconds)) if max_seconds else None


def select_voice(text: str) -> Optional[str]:
    """Voice id implied by descriptive words, or None when nothing matches."""
    text_lower = text.lower()
    for pattern, voice in VOICE_PATTERNS:
        if re.search(pattern, text_lower):
            return voice
    return None


def extract_quoted_text(text: str) -> Optional[str]:
    """Text inside straight or curly quotes, e.g. tts for "hello there"."""
    # Single quotes only count outside words, so apostrophes are skipped
    match = re.search(r'"([^"]+)"|“([^”]+)”|(?<!\w)\'([^\']{2,})\'(?!\w)', text)
    if not match:
        return None
    return next(group for group in match.groups() if group)


def is_voice_modification(text: str) -> bool:
    text_lower = text.lower()
    return any(re.search(p, text_lower) for p in VOICE_MODIFICATION_PATTERNS)


def is_image_modification(text: str) -> bool:
    text_lower = text.lower()
    return any(re.search(p, text_lower) for p in IMAGE_MODIFICATION_PATTERNS)


def is_background_removal(text: str) -> bool:
    text_lower = text.lower()
    return any(re.search(p, text_lower) for p in BACKGROUND_REMOVAL_PATTERNS)


def find_previous_turn(history: List[ChatTurn], capability: Capability) -> Optional[ChatTurn]:
    """Most recent successful assistant turn produced by ``capability``."""
    for turn in reversed(history):
        if turn.role == "assistant" and turn.task_type == capability.value and turn.media_url:
            return turn
    return None


def detect_follow_up(text: str, history: List[ChatTurn]) -> Optional[Capability]:
    """
    Capability of a modification follow-up ("make it blue", "deeper voice").

    Only the latest media turn counts, and only if the message reads as a
    modification of that kind of media.

    Args:
        text: Raw user message
        history: Prior turns, oldest first

    Returns:
        Capability to re-run, or None
    """
    last_media = next(
        (t for t in reversed(history) if t.role == "assistant" and t.media_url and t.task_type),
        None
    )
    if last_media is None:
        return None
    if last_media.task_type == Capability.TTS.value and is_voice_modification(text):
        return Capability.TTS
    if last_media.task_type in (Capability.IMAGE.value, Capability.IMAGE_EDIT.value) and is_image_modification(text):
        return Capability.IMAGE
    return None
