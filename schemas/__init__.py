"""Pydantic schemas for the Creative Studio Orchestrator."""

from .context import (
    Asset,
    Capability,
    Complexity,
    ContextVersion,
    ConversationContext,
    LongTermContext,
    ShortTermContext,
    Tier,
    UserPreferences,
)
from .interpretation import (
    Assumption,
    ClarifyingQuestion,
    ContextUpdates,
    InterpretationResult,
    InterpretOptions,
    InterpreterState,
    MediaParams,
)
from .responses import GenerationArtifact, GenerationOutcome, OutcomeStatus, TokenUsage, UsageCheck
from .status import ConversationThread, StatusPhase, ThreadState, status_label

__all__ = [
    "Asset",
    "Capability",
    "Complexity",
    "ContextVersion",
    "ConversationContext",
    "LongTermContext",
    "ShortTermContext",
    "Tier",
    "UserPreferences",
    "Assumption",
    "ClarifyingQuestion",
    "ContextUpdates",
    "InterpretationResult",
    "InterpretOptions",
    "InterpreterState",
    "MediaParams",
    "GenerationArtifact",
    "GenerationOutcome",
    "OutcomeStatus",
    "TokenUsage",
    "UsageCheck",
    "ConversationThread",
    "StatusPhase",
    "ThreadState",
    "status_label",
]
