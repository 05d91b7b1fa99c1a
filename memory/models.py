"""Memory data models."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field

from schemas.context import utc_now
from schemas.interpretation import Assumption


class TurnStatus(str, Enum):
    """Lifecycle of a chat turn."""
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"
    STOPPED = "stopped"


class ChatTurn(BaseModel):
    """A single message in a conversation thread."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: str  # "user" or "assistant"
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    task_type: Optional[str] = None
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    prompt: Optional[str] = None  # Prompt that produced the media, for follow-up edits
    assumptions: List[Assumption] = Field(default_factory=list)
    feedback: Optional[str] = None
    status: TurnStatus = TurnStatus.COMPLETE


class UsageRecord(BaseModel):
    """One generation recorded against a user's quota."""
    user_id: str
    capability: str
    timestamp: datetime = Field(default_factory=utc_now)
    metadata: Optional[Dict[str, Any]] = None
