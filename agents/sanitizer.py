"""Output sanitization: keeps provider and model names out of user-facing text."""

import re


class IdentitySanitizer:
    """
    Denylist substitution pass applied to every user-bound string.

    Self-descriptions such as "I'm Claude, made by Anthropic" become
    "I'm <assistant>, made by the <assistant> team". Versioned model names,
    routed model ids and provider names are replaced anywhere. Bare names
    that are also ordinary words ("Claude Monet", "a llama", "Gemini" the
    sign) are only replaced when the text uses them as its own identity.
    """

    MAKER_PATTERN = (
        r"\b(made|created|developed|trained|built|designed)\s+by\s+"
        r"(OpenAI|Anthropic|Google(?:\s+DeepMind)?|DeepMind|Meta(?:\s+AI)?|Mistral(?:\s+AI)?|"
        r"DeepSeek|Alibaba(?:\s+Cloud)?|xAI|Black\s+Forest\s+Labs|ByteDance)\b"
    )

    # Routed ids such as "anthropic/claude-3.5-sonnet" or "gemini-2.0-flash-exp:free"
    MODEL_ID_PATTERN = (
        r"\b(?:[\w-]+/)?(?:claude|gpt|gemini|llama|mistral|mixtral|qwen|grok|deepseek)-(?=[\w.:-]*\d)[\w.:-]*\w"
    )

    MODEL_PATTERNS = [
        r"\bChatGPT\b",
        r"\bGPT-?\d(?:\.\d)?o?(?:[- ](?:mini|turbo))?\b",
        r"\bClaude(?:\s+\d(?:\.\d)?)?\s+(?:Opus|Sonnet|Haiku)(?:\s+\d(?:\.\d)?)?\b",
        r"\bClaude\s+\d(?:\.\d)?\b",
        r"\bGemini\s+(?:\d(?:\.\d)?\s+)?(?:Pro|Flash|Ultra|Nano)\b",
        r"\bGemini\s+\d(?:\.\d)?\b",
        r"\bLlama\s*\d(?:\.\d)?\b",
        r"\bMistral[\s-]+(?:Large|Medium|Small|\d(?:\.\d)?)\b",
        r"\bMixtral\b",
        r"\bGrok[- ]?\d(?:\.\d)?\b",
        r"\bDeepSeek(?:[- ](?:V\d(?:\.\d)?|R1|Chat|Coder))?\b",
        r"\bQwen(?:[- ]?\d(?:\.\d)?)?\b",
        r"\bTongyi\b",
    ]

    PROVIDER_PATTERNS = [
        r"\bOpenAI\b",
        r"\bAnthropic\b",
        r"\bGoogle DeepMind\b",
        r"\bDeepMind\b",
        r"\bOpenRouter\b",
    ]

    BARE_NAMES = r"(Claude|Gemini|Llama|Mistral|Grok)"

    # Capitalized bare names, only after a self-identity phrase and not as part of a longer proper name
    IDENTITY_PATTERN = (
        r"\b((?i:I am|I'm|I’m|my name is|call me|this is|powered by|built on|"
        r"based on|running on|an AI (?:model|assistant) (?:called|named)))\s+"
        + BARE_NAMES + r"\b(?!\s+[A-Z]\w)"
    )

    def __init__(self, assistant_name: str = "Studio AI"):
        """
        Initialize sanitizer.

        Args:
            assistant_name: Name shown to users in place of model identities
        """
        self.assistant_name = assistant_name
        self._maker = re.compile(self.MAKER_PATTERN, re.IGNORECASE)
        self._names = [re.compile(self.MODEL_ID_PATTERN, re.IGNORECASE)] + [
            re.compile(pattern, re.IGNORECASE)
            for pattern in self.MODEL_PATTERNS + self.PROVIDER_PATTERNS
        ]
        self._identity = re.compile(self.IDENTITY_PATTERN)

    def sanitize(self, text: str) -> str:
        """
        Replace provider and model identities in text.

        Args:
            text: Text destined for the user

        Returns:
            Sanitized text
        """
        if not text:
            return text
        result = self._maker.sub(lambda m: f"{m.group(1)} by the {self.assistant_name} team", text)
        for pattern in self._names:
            result = pattern.sub(self.assistant_name, result)
        return self._identity.sub(lambda m: f"{m.group(1)} {self.assistant_name}", result)
