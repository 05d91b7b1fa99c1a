"""Outcome and usage schemas returned to the UI layer."""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field

from .context import Capability
from .interpretation import Assumption, ClarifyingQuestion


class OutcomeStatus(str, Enum):
    """Terminal status of a routed generation."""
    SUCCESS = "success"
    QUOTA_EXCEEDED = "quota_exceeded"
    UPGRADE_REQUIRED = "upgrade_required"
    FAILED = "failed"
    CLARIFICATION_REQUIRED = "clarification_required"
    STOPPED = "stopped"


class GenerationArtifact(BaseModel):
    """Reference to something a generation pathway produced."""
    url: Optional[str] = None
    content: Optional[str] = None
    media_type: Optional[str] = None  # "image", "video", "audio", "ppt"
    file_name: Optional[str] = None
    data: Optional[bytes] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class GenerationOutcome(BaseModel):
    """Uniform result envelope produced by the capability router."""
    status: OutcomeStatus
    capability: Capability
    display_text: str = ""
    artifact: Optional[GenerationArtifact] = None
    used: Optional[int] = None
    limit: Optional[int] = None
    reason: Optional[str] = None
    model: Optional[str] = None  # internal only, never shown to users
    tokens_used: int = 0
    retried: bool = False
    prompt: Optional[str] = None
    assumptions: list[Assumption] = Field(default_factory=list)
    clarifying_questions: list[ClarifyingQuestion] = Field(default_factory=list)
    warning_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS


class UsageCheck(BaseModel):
    """Result of a daily quota check."""
    allowed: bool
    used: int = 0
    limit: int = 0
    remaining: int = 0


class TokenUsage(BaseModel):
    """Monthly token consumption against the tier budget."""
    used: int = 0
    budget: int = 0
    remaining: int = 0
