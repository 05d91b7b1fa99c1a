"""Capability, tier and conversation context schemas."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class Capability(str, Enum):
    """Generation modality a request is routed to."""
    CHAT = "chat"
    IMAGE = "image"
    IMAGE_EDIT = "image_edit"
    VIDEO = "video"
    PPT = "ppt"
    TTS = "tts"
    MUSIC = "music"

    @property
    def is_media(self) -> bool:
        return self != Capability.CHAT


class Tier(str, Enum):
    """Subscription level governing quotas and model access."""
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    PREMIUM = "premium"

    @property
    def rank(self) -> int:
        return list(Tier).index(self)

    @classmethod
    def parse(cls, value: Any) -> "Tier":
        """Accept enum members or case-insensitive names ("FREE", "Pro")."""
        if isinstance(value, Tier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.FREE


class Complexity(str, Enum):
    """Request complexity driving model selection."""
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class Asset(BaseModel):
    """A named asset produced for the user."""
    name: str
    type: str = Field("image", description="image, video, audio, ppt or text")
    url: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class UserPreferences(BaseModel):
    """Output style preferences picked up during the conversation."""
    preferred_tone: Optional[str] = None
    output_length: Optional[str] = None
    style: Optional[str] = None


def _snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


class _PartialMixin:
    """Shared handling for loosely-keyed partial updates."""

    @classmethod
    def split_partial(cls, partial: dict) -> tuple[dict, dict]:
        """
        Split a partial update into known fields and custom data.

        Keys may be snake_case or camelCase. Keys that do not match a field
        are returned separately so they can land in ``custom_data``.

        Args:
            partial: Raw update mapping

        Returns:
            Tuple of (known field values, unknown key/values)
        """
        known: dict = {}
        custom: dict = {}
        for key, value in (partial or {}).items():
            name = _snake_case(key)
            if name in cls.model_fields and name != "custom_data":
                known[name] = value
            elif name == "custom_data" and isinstance(value, dict):
                custom.update(value)
            else:
                custom[key] = value
        return known, custom


class LongTermContext(_PartialMixin, BaseModel):
    """Durable facts about the user and their business."""
    business_name: Optional[str] = None
    industry: Optional[str] = None
    target_audience: Optional[str] = None
    brand_tone: Optional[str] = None
    primary_goals: list[str] = Field(default_factory=list)
    unique_selling_points: list[str] = Field(default_factory=list)
    competitor_analysis: Optional[str] = None
    assets: list[Asset] = Field(default_factory=list)
    custom_data: dict[str, Any] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return self == LongTermContext()


class ShortTermContext(_PartialMixin, BaseModel):
    """Ephemeral facts about the task currently in progress."""
    current_task: Optional[str] = None
    task_type: Optional[str] = None
    recent_topics: list[str] = Field(default_factory=list)
    pending_actions: list[str] = Field(default_factory=list)
    conversation_summary: Optional[str] = None
    user_preferences: UserPreferences = Field(default_factory=UserPreferences)
    custom_data: dict[str, Any] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return self == ShortTermContext()


class ConversationContext(BaseModel):
    """Versioned context for one conversation thread."""
    thread_id: str
    long_term: LongTermContext = Field(default_factory=LongTermContext)
    short_term: ShortTermContext = Field(default_factory=ShortTermContext)
    version: int = 1
    last_updated: datetime = Field(default_factory=utc_now)


class ContextVersion(BaseModel):
    """Snapshot of a context taken before a mutation."""
    version: int
    long_term: LongTermContext
    short_term: ShortTermContext
    saved_at: datetime = Field(default_factory=utc_now)
    change_reason: str = "Updated"
