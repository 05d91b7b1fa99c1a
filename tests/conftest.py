"""Shared fixtures and fakes for the test suite."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from config.tiers import ModelRoutingTable, TierTable
from generation.base import MediaGenerator
from llm.base_client import BaseLLMClient, LLMResponse, Message
from memory.sqlite_store import SQLiteMemoryStore
from memory.usage_ledger import UsageLedger
from schemas.context import Capability
from schemas.responses import GenerationArtifact


class FakeLLMClient(BaseLLMClient):
    """
    Scripted LLM client.

    Each call pops the next scripted response; an exception instance is
    raised instead of returned. Models listed in ``fail_models`` always
    raise. When the script is empty ``default`` is returned.
    """

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        default: str = "Sure, here you go.",
        fail_models: Optional[List[str]] = None
    ):
        self.responses = list(responses or [])
        self.default = default
        self.fail_models = set(fail_models or [])
        self.calls: List[Dict[str, Any]] = []

    async def chat(
        self,
        messages: List[Message],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "model": model})
        if model in self.fail_models:
            raise ConnectionError(f"{model} unavailable")
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, dict):
            item = json.dumps(item)
        return LLMResponse(content=item, usage={"total_tokens": 42}, model=model)

    def get_provider_name(self) -> str:
        return "fake"

    def get_model_name(self) -> str:
        return "fake-model"

    @property
    def models_called(self) -> List[Optional[str]]:
        return [call["model"] for call in self.calls]


class FakeMediaGenerator(MediaGenerator):
    """Records generation calls and returns predictable URLs."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def generate(
        self,
        capability: Capability,
        prompt: str,
        model: str,
        params: Optional[Dict[str, Any]] = None
    ) -> GenerationArtifact:
        self.calls.append({
            "capability": capability,
            "prompt": prompt,
            "model": model,
            "params": params or {},
        })
        if self.error:
            raise self.error
        return GenerationArtifact(
            url=f"https://cdn.example.com/{capability.value}/{len(self.calls)}",
            media_type="audio" if capability in (Capability.TTS, Capability.MUSIC) else capability.value,
            metadata={"model": model}
        )


class FixedClock:
    """Injectable clock whose time tests can move."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def interpretation_json(intent: str = "chat", **fields: Any) -> Dict[str, Any]:
    """Remote interpretation payload with sensible defaults."""
    payload = {
        "intent": intent,
        "confidence": 0.9,
        "complexity": "medium",
        "enhanced_prompt": fields.pop("enhanced_prompt", "Enhanced request"),
        "assumptions": [],
        "needs_clarification": False,
        "clarifying_questions": [],
        "context_updates": {"long_term": {}, "short_term": {}},
    }
    payload.update(fields)
    return payload


@pytest.fixture
def tiers():
    return TierTable()


@pytest.fixture
def routing():
    return ModelRoutingTable()


@pytest.fixture
def store(tmp_path):
    return SQLiteMemoryStore(db_path=str(tmp_path / "studio.db"))


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def ledger(store, tiers, clock):
    return UsageLedger(store=store, tiers=tiers, clock=clock)
