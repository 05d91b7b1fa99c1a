"""Local intent classifier: regex-based capability detection with no remote calls."""

import re
from typing import Optional

from schemas.context import Capability, Complexity


class LocalIntentClassifier:
    """Guesses a generation capability from raw text."""

    def __init__(self):
        """Initialize classifier with capability pattern groups."""
        self.tts_patterns = [
            r"\b(read|speak|say|narrate|voice)\s+(this|the|aloud|out\s+loud)",
            r"\btext\s+to\s+speech\b",
            r"\btts\b",
            r"\bvoice\s+(over|this)\b",
            r"\bconvert\s+.*\s+to\s+(speech|audio|voice)",
            r"\b(read|narrate)\s+.*\s+aloud\b",
        ]
        self.ppt_patterns = [
            r"\b(create|make|generate|build)\s+(an?\s+)?(presentation|ppt|powerpoint|slides|slideshow|pitch\s+deck|deck)",
            r"\b(presentation|slides|ppt)\s+(about|on|for)\b",
            r"\bpitch\s+deck\b",
            r"\b(i\s+need|give\s+me)\s+(a\s+)?(presentation|slides)",
        ]
        self.music_patterns = [
            r"\b(create|make|generate|compose|produce)\s+(an?\s+)?(song|music|track|beat|melody|soundtrack|tune|jingle)",
            r"\b(song|music|track|beat)\s+(about|for)\b",
            r"\bcompose\s+(a|an)?\s*(song|piece|melody)",
            r"\b(i\s+want|give\s+me)\s+(a\s+)?(song|music|beat)",
        ]
        self.video_patterns = [
            r"\b(create|make|generate|produce)\s+(an?\s+)?(video|animation|clip|footage|movie)",
            r"\bvideo\s+(of|showing|about)\b",
            r"\bturn\s+.*\s+into\s+(a\s+)?video\b",
            r"\b(animate|animation\s+of)\b",
            r"\b(i\s+want|give\s+me|show\s+me)\s+(a\s+)?video\b",
        ]
        self.image_patterns = [
            r"\b(create|make|generate|produce|design|draw|render|craft)\s+(an?\s+)?(image|picture|photo|logo|artwork|illustration|visual|graphic|portrait|poster|banner|thumbnail)",
            r"\b(image|picture|photo|illustration)\s+of\b",
            r"\bdraw\s+(me\s+)?(a|an)\b",
            r"\b(i\s+want|give\s+me|show\s+me|can\s+you\s+(create|make))\s+(an?\s+)?(image|picture|photo)",
            r"\bdesign\s+(a|an)\s+(logo|poster|banner|flyer)",
        ]

        # Checked in this order; first match wins
        self.pattern_groups = [
            (Capability.TTS, self.tts_patterns),
            (Capability.PPT, self.ppt_patterns),
            (Capability.MUSIC, self.music_patterns),
            (Capability.VIDEO, self.video_patterns),
            (Capability.IMAGE, self.image_patterns),
        ]

    def classify(self, text: str) -> Optional[Capability]:
        """
        Detect a generation capability from text.

        Args:
            text: Raw user message

        Returns:
            The first matching capability, or None when nothing matches
        """
        text_lower = text.lower().strip()
        for capability, patterns in self.pattern_groups:
            for pattern in patterns:
                if re.search(pattern, text_lower):
                    return capability
        return None


SIMPLE_PATTERNS = [
    r"^(hi|hello|hey|howdy|sup|yo|hola|namaste|hy|hii|hiii)[\s!?.]*$",
    r"^(what('?s| is) my name|who am i|do you know (me|my name))\??$",
    r"^(my name is|i am|i'm|call me)\s+\w+[\s!.]*$",
    r"^(thanks|thank you|thx|ty|ok|okay|cool|great|nice|awesome)[\s!.]*$",
    r"^(how are you|what('?s| is) up|wassup|what can you do|help)\??$",
]

COMPLEX_PATTERNS = [
    r"\b(business plan|strategy|analysis|analy[sz]e|research|comprehensive|detailed)\b",
    r"\b(compare|contrast|evaluate|pros and cons|trade-?offs?)\b",
    r"\b(step[- ]by[- ]step|in depth|in-depth|explain (how|why))\b",
    r"\b(write|draft) (a|an) (report|essay|proposal|article|whitepaper)\b",
    r"\b(debug|architect|refactor|optimi[sz]e)\b",
]

IMAGE_COMPLEX_PATTERNS = [
    r"\b(photorealistic|hyper-?realistic|ultra|4k|8k|highly detailed|intricate)\b",
    r"\b(cinematic|studio lighting|professional photo)\b",
]

VIDEO_COMPLEX_PATTERNS = [
    r"\b(cinematic|commercial|advertisement|promo|storyline|scenes?)\b",
    r"\b(multiple shots|camera (pan|movement)|slow motion|high quality)\b",
]

SIMPLE_WORD_LIMIT = 5
COMPLEX_WORD_LIMIT = 50


def matches_simple_pattern(text: str) -> bool:
    """Greetings, thanks and other small talk."""
    text_lower = text.lower().strip()
    return any(re.search(pattern, text_lower) for pattern in SIMPLE_PATTERNS)


def word_count(text: str) -> int:
    return len(text.split())


def estimate_complexity(text: str, capability: Capability = Capability.CHAT) -> Complexity:
    """
    Estimate request complexity from message shape alone.

    Media requests only distinguish simple and complex.

    Args:
        text: Raw user message
        capability: Capability the request maps to

    Returns:
        Estimated complexity
    """
    text_lower = text.lower().strip()

    if capability in (Capability.IMAGE, Capability.IMAGE_EDIT):
        if any(re.search(p, text_lower) for p in IMAGE_COMPLEX_PATTERNS):
            return Complexity.COMPLEX
        return Complexity.SIMPLE
    if capability == Capability.VIDEO:
        if any(re.search(p, text_lower) for p in VIDEO_COMPLEX_PATTERNS):
            return Complexity.COMPLEX
        return Complexity.SIMPLE

    if matches_simple_pattern(text_lower) or word_count(text_lower) <= SIMPLE_WORD_LIMIT:
        return Complexity.SIMPLE
    if word_count(text_lower) > COMPLEX_WORD_LIMIT or any(
        re.search(p, text_lower) for p in COMPLEX_PATTERNS
    ):
        return Complexity.COMPLEX
    return Complexity.MEDIUM
