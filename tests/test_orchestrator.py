"""End-to-end tests for the studio orchestrator."""

import asyncio

import pytest
from config.settings import Settings
from errors import TurnInProgressError
from memory.models import TurnStatus
from orchestrator import STOPPED_TEXT, StudioOrchestrator
from schemas.context import Capability, Complexity, Tier
from schemas.responses import OutcomeStatus
from schemas.status import StatusPhase, ThreadState
from conftest import FakeLLMClient, FakeMediaGenerator, interpretation_json


class TestStudioOrchestrator:
    """Test full turns through the orchestrator."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        """Set up test fixtures."""
        self.db_path = str(tmp_path / "studio.db")
        self.settings = Settings(db_path=self.db_path, assistant_name="Studio AI")
        self.llm = FakeLLMClient()
        self.media = FakeMediaGenerator()
        self.orchestrator = self.make_orchestrator()

    def make_orchestrator(self, **kwargs):
        params = dict(settings=self.settings, llm_client=self.llm, media_generator=self.media)
        params.update(kwargs)
        return StudioOrchestrator(**params)

    @pytest.mark.asyncio
    async def test_greeting_turn(self):
        """Test a greeting is answered on the fast path and both turns are stored."""
        self.llm.default = "Hello! How can I help today?"
        phases = []

        result = await self.orchestrator.process_message(
            "t1", "user-1", "hi", on_status=lambda phase, label: phases.append(phase)
        )

        assert result.outcome.status == OutcomeStatus.SUCCESS
        assert result.interpretation.fast_path is True
        assert result.assistant_turn.content == "Hello! How can I help today?"
        assert result.assistant_turn.status == TurnStatus.COMPLETE
        assert len(self.llm.calls) == 1
        assert phases == [StatusPhase.THINKING, StatusPhase.GENERATING, StatusPhase.COMPLETE]

        history = self.orchestrator.get_history("t1")
        assert [t.role for t in history] == ["user", "assistant"]
        assert history[1].status == TurnStatus.COMPLETE
        assert self.orchestrator.check_usage_limits("user-1", Capability.CHAT, Tier.FREE).used == 1

    @pytest.mark.asyncio
    async def test_busy_thread_rejected(self):
        """Test a turn submitted while the thread is busy is rejected."""
        with pytest.raises(TurnInProgressError):
            await self.orchestrator.process_message(
                "t1", "user-1", "hi", thread_state=ThreadState.SENDING
            )

        assert self.orchestrator.get_history("t1") == []
        assert self.llm.calls == []

    @pytest.mark.asyncio
    async def test_context_updates_applied(self):
        """Test context learned during interpretation is merged."""
        self.llm.responses = [
            interpretation_json("chat", context_updates={"long_term": {"business_name": "Bean There"}}),
            "Great name for a coffee shop!",
        ]

        result = await self.orchestrator.process_message(
            "t1", "user-1", "My coffee shop is called Bean There and I need ideas"
        )

        assert result.context.long_term.business_name == "Bean There"
        assert self.orchestrator.get_context("t1").version == 2
        system = self.llm.calls[1]["messages"][0].content
        assert "Business: Bean There" in system

    @pytest.mark.asyncio
    async def test_media_turn_records_asset(self):
        """Test a generated image is stored on the turn and as an asset."""
        self.llm.responses = [interpretation_json("image", enhanced_prompt="Minimal coffee cup logo")]

        result = await self.orchestrator.process_message("t1", "user-1", "create a logo for my coffee shop")

        turn = result.assistant_turn
        assert turn.task_type == "image"
        assert turn.media_url == result.outcome.artifact.url
        assert turn.prompt == "Minimal coffee cup logo"

        assets = self.orchestrator.get_context("t1").long_term.assets
        assert len(assets) == 1
        assert assets[0].url == turn.media_url
        assert assets[0].type == "image"

    @pytest.mark.asyncio
    async def test_quota_exceeded_turn(self):
        """Test an exhausted quota produces a complete turn and no generation."""
        for _ in range(3):
            self.orchestrator.record_usage("user-1", Capability.IMAGE)
        self.llm.responses = [interpretation_json("image")]

        result = await self.orchestrator.process_message("t1", "user-1", "create a logo for my coffee shop")

        assert result.outcome.status == OutcomeStatus.QUOTA_EXCEEDED
        assert result.outcome.used == 3
        assert result.assistant_turn.status == TurnStatus.COMPLETE
        assert "limit reached" in result.assistant_turn.content
        assert self.media.calls == []

    @pytest.mark.asyncio
    async def test_failed_generation_marks_turn_failed(self):
        """Test a failed generation leaves a failed turn and no usage."""
        self.llm.responses = [interpretation_json("chat")]
        self.llm.fail_models = {
            self.orchestrator.routing.select(Capability.CHAT, r, Tier.FREE)
            for r in Complexity
        } | {self.orchestrator.routing.fallback_chat_model}

        result = await self.orchestrator.process_message(
            "t1", "user-1", "Can you help me plan my marketing for next quarter please"
        )

        assert result.outcome.status == OutcomeStatus.FAILED
        assert result.assistant_turn.status == TurnStatus.FAILED
        assert self.orchestrator.check_usage_limits("user-1", Capability.CHAT, Tier.FREE).used == 0

    @pytest.mark.asyncio
    async def test_cancellation_leaves_stopped_turn(self):
        """Test a cancelled turn is marked stopped and nothing is billed."""
        started = asyncio.Event()

        class HangingMedia(FakeMediaGenerator):
            async def generate(self, capability, prompt, model, params=None):
                started.set()
                await asyncio.sleep(60)

        orchestrator = self.make_orchestrator(media_generator=HangingMedia())
        self.llm.responses = [interpretation_json("image")]

        task = asyncio.create_task(
            orchestrator.process_message("t1", "user-1", "create a logo for my coffee shop")
        )
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        history = orchestrator.get_history("t1")
        assert history[-1].content == STOPPED_TEXT
        assert history[-1].status == TurnStatus.STOPPED
        assert all(t.status != TurnStatus.PENDING for t in history)
        assert orchestrator.check_usage_limits("user-1", Capability.IMAGE, Tier.FREE).used == 0

    @pytest.mark.asyncio
    async def test_voice_follow_up_end_to_end(self):
        """Test a voice tweak after speech re-speaks the same text."""
        self.llm.responses = [
            interpretation_json("tts", enhanced_prompt="welcome to Bean There"),
            interpretation_json("chat", confidence=0.6),
        ]

        await self.orchestrator.process_message(
            "t1", "user-1", 'say "welcome to Bean There"', force_capability=Capability.TTS
        )
        result = await self.orchestrator.process_message("t1", "user-1", "make the voice deeper")

        assert result.interpretation.intent == Capability.TTS
        assert result.outcome.ok
        assert self.media.calls[1]["prompt"] == "welcome to Bean There"
        assert self.media.calls[1]["model"] == "aura-2-zeus-en"
        assert self.orchestrator.check_usage_limits("user-1", Capability.TTS, Tier.FREE).used == 2

    @pytest.mark.asyncio
    async def test_history_persists(self):
        """Test a new orchestrator on the same database sees earlier turns."""
        await self.orchestrator.process_message("t1", "user-1", "hi")

        reloaded = self.make_orchestrator()

        assert len(reloaded.get_history("t1")) == 2

    @pytest.mark.asyncio
    async def test_memory_disabled_keeps_local_history(self):
        """Test history still works in-process when persistence is off."""
        settings = Settings(db_path=self.db_path, memory_enabled=False)
        orchestrator = self.make_orchestrator(settings=settings)

        await orchestrator.process_message("t1", "user-1", "hi")

        assert len(orchestrator.get_history("t1")) == 2
        assert len(self.make_orchestrator().get_history("t1")) == 0

    def test_context_operations(self):
        """Test update, version listing, reset and clear."""
        self.orchestrator.update_context("t1", {"long_term": {"industry": "Coffee"}})
        self.orchestrator.update_context("t1", {"long_term": {"industry": "Tea"}})

        assert [v.version for v in self.orchestrator.list_context_versions("t1")] == [1, 2]

        restored = self.orchestrator.reset_context("t1", 2)
        assert restored.long_term.industry == "Coffee"

        cleared = self.orchestrator.clear_context("t1")
        assert cleared.long_term.industry is None

    @pytest.mark.asyncio
    async def test_token_usage(self):
        """Test tokens from successful chats count toward the monthly budget."""
        await self.orchestrator.process_message("t1", "user-1", "hi")

        usage = self.orchestrator.token_usage("user-1", "free")

        assert usage.used == 42
        assert usage.budget == 15000

    @pytest.mark.asyncio
    async def test_generate_chat_name(self):
        """Test chat titles come from the model, with local fallbacks."""
        self.llm.responses = ['"Coffee Shop Logo."']

        assert await self.orchestrator.generate_chat_name("create a logo for my coffee shop") == "Coffee Shop Logo"
        assert await self.orchestrator.generate_chat_name("") == "New Chat"
        assert await self.orchestrator.generate_chat_name("k") == "Quick Chat"

    @pytest.mark.asyncio
    async def test_generate_chat_name_fallback(self):
        """Test a failed title request falls back to the message start."""
        self.llm.responses = [ConnectionError("offline")]
        message = "Help me write a very long business plan for my new bakery downtown"

        name = await self.orchestrator.generate_chat_name(message)

        assert name == message[:40] + "..."

    @pytest.mark.asyncio
    async def test_chat_after_image_is_not_billed_as_image(self):
        """Test an ordinary question after an image stays a chat turn."""
        self.llm.responses = [
            interpretation_json("image", enhanced_prompt="Minimal coffee cup logo"),
            interpretation_json("chat", confidence=0.95),
        ]
        self.llm.default = "Start with a price ladder."

        await self.orchestrator.process_message("t1", "user-1", "create a logo for my coffee shop")
        result = await self.orchestrator.process_message(
            "t1", "user-1", "Can you tell me more about pricing strategy for coffee?"
        )

        assert result.interpretation.intent == Capability.CHAT
        assert result.assistant_turn.task_type != "image"
        assert len(self.media.calls) == 1
        assert self.orchestrator.check_usage_limits("user-1", Capability.IMAGE, Tier.FREE).used == 1

    @pytest.mark.asyncio
    async def test_malformed_interpretation_still_answers(self):
        """Test a badly shaped interpretation still produces a normal chat turn."""
        self.llm.responses = [interpretation_json("chat", clarifying_questions=True, assumptions=3)]
        self.llm.default = "Here is a quarterly plan."

        result = await self.orchestrator.process_message(
            "t1", "user-1", "Can you help me plan my marketing for next quarter please"
        )

        assert result.outcome.status == OutcomeStatus.SUCCESS
        assert result.interpretation.intent == Capability.CHAT
        assert "Here is a quarterly plan." in result.assistant_turn.content
        assert result.assistant_turn.status == TurnStatus.COMPLETE
