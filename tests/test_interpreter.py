"""Tests for the request interpreter."""

import asyncio
from unittest.mock import Mock

import pytest
from agents.interpreter import RequestInterpreter, build_clarified_message, parse_answered_questions
from config.tiers import ModelRoutingTable, TierTable
from memory.models import ChatTurn
from schemas.context import Capability, Complexity, Tier
from schemas.interpretation import ClarifyingQuestion, InterpreterState, InterpretOptions
from schemas.status import StatusPhase, status_label
from conftest import FakeLLMClient, interpretation_json

PLAIN_REQUEST = "Can you help me plan my marketing for next quarter please"


class TestRequestInterpreter:
    """Test interpretation, overrides and clarification."""

    def setup_method(self):
        """Set up test fixtures."""
        self.routing = ModelRoutingTable()
        self.tiers = TierTable()

    def make_interpreter(self, responses=None, **kwargs):
        client = FakeLLMClient(responses=responses)
        interpreter = RequestInterpreter(client, self.routing, self.tiers, **kwargs)
        return interpreter, client

    @pytest.mark.asyncio
    async def test_greeting_takes_fast_path(self):
        """Test a greeting is answered locally with no remote call."""
        interpreter, client = self.make_interpreter()

        result = await interpreter.interpret("hi", options=InterpretOptions(tier=Tier.FREE))

        assert result.intent == Capability.CHAT
        assert result.confidence == 1.0
        assert result.fast_path is True
        assert result.state == InterpreterState.FAST_PATH_DONE
        assert result.suggested_model == self.routing.select(Capability.CHAT, Complexity.SIMPLE, Tier.FREE)
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_network_error_returns_default(self):
        """Test a failed remote call yields the default chat interpretation."""
        interpreter, client = self.make_interpreter([ConnectionError("network down")])

        result = await interpreter.interpret(PLAIN_REQUEST)

        assert result.intent == Capability.CHAT
        assert result.confidence == 0.7
        assert result.fallback is True
        assert result.needs_clarification is False
        assert result.enhanced_prompt == PLAIN_REQUEST
        assert result.suggested_model == self.routing.interpretation_fallback_model
        assert result.context_updates.short_term["current_task"] == PLAIN_REQUEST[:100]
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_unparseable_response_returns_default(self):
        """Test non-JSON output yields the default interpretation."""
        interpreter, _ = self.make_interpreter(["I think the user wants chat."])

        result = await interpreter.interpret(PLAIN_REQUEST)

        assert result.fallback is True
        assert result.intent == Capability.CHAT

    @pytest.mark.asyncio
    async def test_timeout_returns_default(self):
        """Test a slow remote call is abandoned."""
        class SlowClient(FakeLLMClient):
            async def chat(self, messages, model=None, temperature=0.7, max_tokens=4000):
                await asyncio.sleep(5)
                return await super().chat(messages, model, temperature, max_tokens)

        interpreter = RequestInterpreter(SlowClient(), self.routing, self.tiers, timeout=0.01)

        result = await interpreter.interpret(PLAIN_REQUEST)

        assert result.fallback is True

    @pytest.mark.asyncio
    async def test_no_client_returns_default(self):
        """Test a missing client degrades to the default interpretation."""
        interpreter = RequestInterpreter(None, self.routing, self.tiers)

        result = await interpreter.interpret(PLAIN_REQUEST)

        assert result.fallback is True

    @pytest.mark.asyncio
    async def test_fenced_json_is_parsed(self):
        """Test JSON wrapped in a markdown fence is accepted."""
        fenced = '```json\n{"intent": "chat", "confidence": 0.95, "complexity": "complex", "enhanced_prompt": "Plan Q3 marketing"}\n```'
        interpreter, _ = self.make_interpreter([fenced])

        result = await interpreter.interpret(PLAIN_REQUEST, options=InterpretOptions(tier=Tier.PRO))

        assert result.fallback is False
        assert result.enhanced_prompt == "Plan Q3 marketing"
        assert result.complexity == Complexity.COMPLEX
        assert result.suggested_model == self.routing.select(Capability.CHAT, Complexity.COMPLEX, Tier.PRO)

    @pytest.mark.asyncio
    async def test_remote_and_local_agree_on_image(self):
        """Test an image request keeps its intent and gets the image model."""
        interpreter, _ = self.make_interpreter([interpretation_json("image", complexity="simple")])

        result = await interpreter.interpret("create a logo for my coffee shop")

        assert result.intent == Capability.IMAGE
        assert result.suggested_model == self.routing.select(Capability.IMAGE, Complexity.SIMPLE, Tier.FREE)
        assert result.status_message == "Creating your image..."

    @pytest.mark.asyncio
    async def test_local_classifier_overrides_chat(self):
        """Test the local classifier upgrades a chat verdict."""
        interpreter, _ = self.make_interpreter([interpretation_json("chat", complexity="complex")])

        result = await interpreter.interpret("draw me a cat sitting on a windowsill")

        assert result.intent == Capability.IMAGE
        assert result.complexity == Complexity.SIMPLE

    @pytest.mark.asyncio
    async def test_local_classifier_never_overrides_media(self):
        """Test the local classifier leaves a non-chat verdict alone."""
        interpreter, _ = self.make_interpreter([interpretation_json("music")])

        result = await interpreter.interpret("draw me a cat sitting on a windowsill")

        assert result.intent == Capability.MUSIC

    @pytest.mark.asyncio
    async def test_keyword_rule_overrides_media(self):
        """Test keyword rules override even a media verdict."""
        interpreter, _ = self.make_interpreter([interpretation_json("image")])

        result = await interpreter.interpret("make the voice deeper")

        assert result.intent == Capability.TTS

    @pytest.mark.asyncio
    async def test_forced_capability_wins(self):
        """Test an explicitly chosen capability beats every other signal."""
        interpreter, _ = self.make_interpreter([interpretation_json("image")])
        options = InterpretOptions(force_capability=Capability.MUSIC, tier=Tier.STARTER)

        result = await interpreter.interpret("create a logo for my coffee shop", options=options)

        assert result.intent == Capability.MUSIC
        assert result.suggested_model == self.routing.select(Capability.MUSIC, result.complexity, Tier.STARTER)

    @pytest.mark.asyncio
    async def test_forced_capability_skips_fast_path(self):
        """Test a forced capability always goes through full interpretation."""
        interpreter, client = self.make_interpreter([interpretation_json("chat")])

        result = await interpreter.interpret("hi", options=InterpretOptions(force_capability=Capability.TTS))

        assert result.intent == Capability.TTS
        assert result.fast_path is False
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["hi", "thanks", "what can you do?", "ok", "good morning friend"])
    async def test_fast_path_equivalence(self, message):
        """Test the fast path picks the same intent as full interpretation."""
        fast, fast_client = self.make_interpreter()
        slow, _ = self.make_interpreter([interpretation_json("chat")], fast_path_enabled=False)

        fast_result = await fast.interpret(message)
        slow_result = await slow.interpret(message)

        assert fast_client.calls == []
        assert fast_result.fast_path is True
        assert fast_result.intent == slow_result.intent == Capability.CHAT

    @pytest.mark.asyncio
    async def test_voice_follow_up_after_speech(self):
        """Test a short voice tweak after speech skips the fast path and keeps the remote verdict."""
        history = [
            ChatTurn(role="user", content='say "welcome to Bean There"'),
            ChatTurn(
                role="assistant",
                content="Speech generated",
                task_type="tts",
                media_url="https://cdn.example.com/a.mp3",
                prompt="welcome to Bean There"
            ),
        ]
        interpreter, client = self.make_interpreter([interpretation_json("tts")])

        result = await interpreter.interpret("deeper please", history=history)

        assert result.intent == Capability.TTS
        assert result.fast_path is False
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_voice_phrase_after_speech_forces_tts(self):
        """Test an explicit voice change phrase overrides a chat verdict."""
        history = [
            ChatTurn(role="assistant", content="Speech generated", task_type="tts",
                     media_url="https://cdn.example.com/a.mp3", prompt="welcome to Bean There"),
        ]
        interpreter, _ = self.make_interpreter([interpretation_json("chat", confidence=0.9)])

        result = await interpreter.interpret("make the voice deeper", history=history)

        assert result.intent == Capability.TTS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", [
        "Can you tell me more about pricing strategy for coffee?",
        "How do I add a newsletter signup to my website?",
        "What should I change in my morning routine to be more productive?",
    ])
    async def test_chat_after_image_stays_chat(self, message):
        """Test ordinary questions after an image are not turned into image edits."""
        history = [
            ChatTurn(role="user", content="create a coffee shop logo"),
            ChatTurn(role="assistant", content="Image generated", task_type="image",
                     media_url="https://cdn.example.com/logo.png", prompt="coffee shop logo"),
        ]
        interpreter, _ = self.make_interpreter([interpretation_json("chat", confidence=0.95)])

        result = await interpreter.interpret(message, history=history)

        assert result.intent == Capability.CHAT
        assert result.needs_clarification is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field, value", [
        ("assumptions", 3),
        ("clarifying_questions", True),
        ("source_media_url", {"url": "https://cdn.example.com/a.png"}),
        ("context_updates", ["not", "a", "dict"]),
        ("media_params", {"duration": "forever"}),
    ])
    async def test_malformed_fields_never_raise(self, field, value):
        """Test badly shaped fields in the remote response are tolerated."""
        payload = interpretation_json("image", enhanced_prompt="Minimal coffee cup logo")
        payload[field] = value
        interpreter, _ = self.make_interpreter([payload])

        result = await interpreter.interpret(PLAIN_REQUEST)

        assert result.intent == Capability.IMAGE
        assert result.enhanced_prompt == "Minimal coffee cup logo"
        assert result.source_media_url is None

    @pytest.mark.asyncio
    async def test_unmappable_response_returns_default(self):
        """Test a response that cannot be mapped at all falls back to the default."""
        interpreter, _ = self.make_interpreter([interpretation_json("chat", confidence=0.9)])
        interpreter._map_result = Mock(side_effect=TypeError("'int' object is not iterable"))

        result = await interpreter.interpret(PLAIN_REQUEST)

        assert result.fallback is True
        assert result.intent == Capability.CHAT

    @pytest.mark.asyncio
    async def test_fallback_moved_to_media_gets_media_status(self):
        """Test a default interpretation moved to a media capability reports that capability."""
        interpreter, _ = self.make_interpreter([ConnectionError("network down")])

        result = await interpreter.interpret("Please create a logo for my coffee shop called Bean There")

        assert result.fallback is True
        assert result.intent == Capability.IMAGE
        assert result.status_message == status_label(StatusPhase.GENERATING, Capability.IMAGE)

    @pytest.mark.asyncio
    async def test_web_research_flag(self):
        """Test web research applies to chat and changes the status label."""
        interpreter, client = self.make_interpreter([interpretation_json("chat")])

        result = await interpreter.interpret("hi", options=InterpretOptions(web_research=True))

        assert result.web_research is True
        assert result.status_message == "Deep researching..."
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_context_updates_parsed(self):
        """Test proposed context updates are carried on the result."""
        payload = interpretation_json(
            "chat",
            context_updates={"longTerm": {"businessName": "Bean There"}, "shortTerm": {"current_task": "tagline"}}
        )
        interpreter, _ = self.make_interpreter([payload])

        result = await interpreter.interpret(PLAIN_REQUEST)

        assert result.context_updates.long_term == {"businessName": "Bean There"}
        assert result.context_updates.short_term == {"current_task": "tagline"}

    @pytest.mark.asyncio
    async def test_prompt_carries_tier_and_identity(self):
        """Test the system prompt names the tier and assistant."""
        interpreter, client = self.make_interpreter([interpretation_json("chat")], assistant_name="Nova")

        await interpreter.interpret(PLAIN_REQUEST, options=InterpretOptions(tier=Tier.PREMIUM))

        system = client.calls[0]["messages"][0].content
        assert "PREMIUM" in system
        assert "Nova" in system

    @pytest.mark.asyncio
    async def test_long_history_is_condensed(self):
        """Test histories past the bound are summarized before interpreting."""
        history = [ChatTurn(role="user", content=f"turn {i}") for i in range(12)]
        interpreter, client = self.make_interpreter(
            ["Earlier the user talked about coffee.", interpretation_json("chat")],
            max_recent=10
        )

        result = await interpreter.interpret(PLAIN_REQUEST, history=history)

        assert len(client.calls) == 2
        assert "Earlier the user talked about coffee." in client.calls[1]["messages"][1].content
        assert result.fallback is False


class TestClarification:
    """Test the clarification gate and round trip."""

    def setup_method(self):
        """Set up test fixtures."""
        self.routing = ModelRoutingTable()
        self.tiers = TierTable()
        self.question = {"question": "What style should the logo have?", "placeholder": "e.g. minimalist", "required": True}

    @pytest.mark.asyncio
    async def test_clarification_round_trip(self):
        """Test answered questions are not asked again."""
        payload = interpretation_json("image", needs_clarification=True, clarifying_questions=[self.question])
        client = FakeLLMClient(responses=[payload, payload])
        interpreter = RequestInterpreter(client, self.routing, self.tiers)
        original = "create a logo for my coffee shop"

        first = await interpreter.interpret(original)

        assert first.needs_clarification is True
        assert first.state == InterpreterState.NEEDS_CLARIFICATION
        assert first.clarifying_questions[0].question == self.question["question"]

        resubmitted = build_clarified_message(
            original, first.clarifying_questions, {first.clarifying_questions[0].id: "minimalist"}
        )
        second = await interpreter.interpret(resubmitted)

        assert second.needs_clarification is False
        assert second.clarifying_questions == []
        assert second.intent == Capability.IMAGE

    @pytest.mark.asyncio
    async def test_low_confidence_asks(self):
        """Test a low-confidence verdict with no override asks for details."""
        client = FakeLLMClient(responses=[interpretation_json("chat", confidence=0.3)])
        interpreter = RequestInterpreter(client, self.routing, self.tiers)

        result = await interpreter.interpret("I want something nice for the launch next week")

        assert result.needs_clarification is True
        assert len(result.clarifying_questions) == 1

    @pytest.mark.asyncio
    async def test_low_confidence_with_override_proceeds(self):
        """Test a keyword override settles a low-confidence verdict."""
        client = FakeLLMClient(responses=[interpretation_json("chat", confidence=0.3)])
        interpreter = RequestInterpreter(client, self.routing, self.tiers)

        result = await interpreter.interpret("generate a video of a sunset over the sea")

        assert result.intent == Capability.VIDEO
        assert result.needs_clarification is False

    def test_build_clarified_message(self):
        """Test unanswered questions are marked as not specified."""
        questions = [
            ClarifyingQuestion(id="q_0", question="Style"),
            ClarifyingQuestion(id="q_1", question="Colors"),
        ]

        message = build_clarified_message("make a logo", questions, {"q_0": "retro"})

        assert message == "make a logo\n\nAdditional context:\n- Style: retro\n- Colors: Not specified"
        assert parse_answered_questions(message) == {"style": "retro", "colors": "Not specified"}

    def test_parse_without_block(self):
        """Test messages without answers parse to nothing."""
        assert parse_answered_questions("make a logo") == {}
