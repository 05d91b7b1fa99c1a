"""Agents for the Creative Studio assistant."""

from .intent_classifier import LocalIntentClassifier, estimate_complexity
from .override_rules import KeywordOverrides, OverrideRule
from .sanitizer import IdentitySanitizer
from .summarizer import CondensedHistory, HistorySummarizer
from .interpreter import RequestInterpreter, build_clarified_message
from .capability_router import CapabilityRouter

__all__ = [
    "LocalIntentClassifier",
    "estimate_complexity",
    "KeywordOverrides",
    "OverrideRule",
    "IdentitySanitizer",
    "CondensedHistory",
    "HistorySummarizer",
    "RequestInterpreter",
    "build_clarified_message",
    "CapabilityRouter",
]
