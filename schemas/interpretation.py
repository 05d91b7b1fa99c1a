"""Interpretation schemas produced by the request interpreter."""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field

from .context import Capability, Complexity, Tier


class InterpreterState(str, Enum):
    """Per-turn interpreter states."""
    IDLE = "idle"
    CLASSIFYING = "classifying"
    FAST_PATH_DONE = "fast_path_done"
    REMOTE_INTERPRETING = "remote_interpreting"
    NEEDS_CLARIFICATION = "needs_clarification"
    READY = "ready"


class Assumption(BaseModel):
    """A default the system filled in, surfaced for correction."""
    key: str
    value: str
    editable: bool = True


class ClarifyingQuestion(BaseModel):
    """A structured question asked before generating."""
    id: str
    question: str
    placeholder: str = ""
    required: bool = False


class ContextUpdates(BaseModel):
    """Proposed context deltas emitted with an interpretation."""
    long_term: dict[str, Any] = Field(default_factory=dict)
    short_term: dict[str, Any] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.long_term and not self.short_term


class MediaParams(BaseModel):
    """Media hints suggested by the interpreter."""
    aspect_ratio: Optional[str] = None
    duration: Optional[int] = None
    quality: Optional[str] = None
    style: Optional[str] = None


class InterpretOptions(BaseModel):
    """Caller-supplied options for one interpretation."""
    tier: Tier = Tier.FREE
    force_capability: Optional[Capability] = None
    web_research: bool = False
    has_images: bool = False


class InterpretationResult(BaseModel):
    """Structured decision for one user turn."""
    intent: Capability = Capability.CHAT
    confidence: float = Field(0.8, ge=0.0, le=1.0)
    enhanced_prompt: str
    complexity: Complexity = Complexity.MEDIUM
    suggested_model: str
    context_updates: ContextUpdates = Field(default_factory=ContextUpdates)
    assumptions: list[Assumption] = Field(default_factory=list)
    needs_clarification: bool = False
    clarifying_questions: list[ClarifyingQuestion] = Field(default_factory=list)
    status_message: str = "Thinking..."
    media_params: MediaParams = Field(default_factory=MediaParams)
    source_media_url: Optional[str] = None
    web_research: bool = False
    fast_path: bool = False
    fallback: bool = False
    state: InterpreterState = InterpreterState.READY
