"""Capability router: gating, quota checks and dispatch to generation pathways."""

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional

from config.tiers import ModelRoutingTable, TierTable
from errors import GenerationFailure
from generation.base import MediaGenerator
from generation.slides import SlideDeck, SlideDeckGenerator, format_slide_preview
from llm.base_client import BaseLLMClient, LLMResponse, Message
from memory.models import ChatTurn
from memory.usage_ledger import UsageLedger
from schemas.context import Capability, Tier
from schemas.interpretation import InterpretationResult
from schemas.responses import GenerationArtifact, GenerationOutcome, OutcomeStatus, UsageCheck
from .media_params import (
    DEFAULT_VOICE,
    detect_follow_up,
    extract_aspect_ratio,
    extract_duration_seconds,
    extract_quoted_text,
    extract_slide_count,
    find_previous_turn,
    is_background_removal,
    select_voice,
)
from .sanitizer import IdentitySanitizer

logger = logging.getLogger(__name__)

CAPABILITY_LABELS = {
    Capability.CHAT: "chat",
    Capability.IMAGE: "image",
    Capability.IMAGE_EDIT: "image edit",
    Capability.VIDEO: "video",
    Capability.PPT: "presentation",
    Capability.TTS: "text-to-speech",
    Capability.MUSIC: "music",
}

FAILURE_MESSAGES = {
    Capability.CHAT: "I couldn't generate a response right now. Please try sending your message again.",
    Capability.IMAGE: "Image generation failed. Please try again in a moment.",
    Capability.IMAGE_EDIT: "Image editing failed. Please try again in a moment.",
    Capability.VIDEO: "Video generation failed. Please try again in a moment.",
    Capability.PPT: "Presentation generation failed. Please try again in a moment.",
    Capability.TTS: "Speech generation failed. Please try again in a moment.",
    Capability.MUSIC: "Music generation failed. Please try again in a moment.",
}

LOW_QUOTA_RATIO = 0.2


class CapabilityRouter:
    """
    Dispatches an interpretation to its generation pathway.

    Order per request: clarification gate, tier gating, daily quota,
    generation, then exactly one usage record on success. Failed or
    cancelled generations never consume quota.
    """

    CHAT_HISTORY_TURNS = 10

    CHAT_SYSTEM_PROMPT = """You are {assistant_name}, a helpful creative assistant for entrepreneurs and creators.
You help with writing, marketing, strategy and ideas, and you can create images, videos, speech, music and presentations.
If asked who you are, say you are {assistant_name}. Never mention which company or model powers you.
{context}"""

    def __init__(
        self,
        llm_client: Optional[BaseLLMClient],
        ledger: UsageLedger,
        tiers: TierTable,
        routing: ModelRoutingTable,
        media_generator: Optional[MediaGenerator] = None,
        slide_generator: Optional[SlideDeckGenerator] = None,
        sanitizer: Optional[IdentitySanitizer] = None,
        generation_timeout: float = 300.0
    ):
        """
        Initialize router.

        Args:
            llm_client: LLM client for chat and vision
            ledger: Usage ledger for quota checks and recording
            tiers: Tier limits table
            routing: Model routing table (fallback, vision and research models)
            media_generator: Image/video/speech/music generator
            slide_generator: Slide deck generator
            sanitizer: Identity sanitizer for user-facing text
            generation_timeout: Seconds before a generation call is abandoned
        """
        self.llm_client = llm_client
        self.ledger = ledger
        self.tiers = tiers
        self.routing = routing
        self.media_generator = media_generator
        self.slide_generator = slide_generator or SlideDeckGenerator(llm_client)
        self.sanitizer = sanitizer or IdentitySanitizer()
        self.generation_timeout = generation_timeout

    async def route(
        self,
        interpretation: InterpretationResult,
        user_id: str,
        tier: Tier,
        message: Optional[str] = None,
        history: Optional[List[ChatTurn]] = None,
        attachments: Optional[List[str]] = None,
        context_text: str = ""
    ) -> GenerationOutcome:
        """
        Route an interpretation to its capability.

        Args:
            interpretation: Interpretation for this turn
            user_id: User ID for quota accounting
            tier: User's subscription tier
            message: Raw user text (parameters are parsed from it)
            history: Prior turns, oldest first
            attachments: Attached image URLs or data URLs
            context_text: Known-context block added to the chat system prompt

        Returns:
            GenerationOutcome; never raises for generation errors
        """
        tier = Tier.parse(tier)
        capability = interpretation.intent
        message = message or interpretation.enhanced_prompt
        history = history or []
        attachments = attachments or []

        if interpretation.needs_clarification:
            return self._clarification(interpretation)

        if not self.tiers.is_available(tier, capability):
            logger.info(f"{capability.value} unavailable on {tier.value} tier")
            return self._upgrade_required(capability, tier)

        check = self.ledger.check_usage_limits(user_id, capability, tier)
        if not check.allowed:
            logger.info(f"Quota exhausted for {user_id}: {capability.value} {check.used}/{check.limit}")
            return self._quota_exceeded(capability, tier, check)

        try:
            outcome = await self._dispatch(interpretation, tier, message, history, attachments, context_text)
        except GenerationFailure as e:
            logger.error(f"{capability.value} generation failed: {e}")
            return GenerationOutcome(
                status=OutcomeStatus.FAILED,
                capability=capability,
                display_text=FAILURE_MESSAGES[capability],
                reason=self.sanitizer.sanitize(str(e))[:300],
                model=e.model
            )

        if outcome.ok:
            self.ledger.record_usage(user_id, capability, metadata={
                "model": outcome.model,
                "tokens": outcome.tokens_used,
                "prompt": (outcome.prompt or interpretation.enhanced_prompt)[:200],
                "retried": outcome.retried,
            })
            outcome.warning_message = self._low_quota_warning(capability, check)

        outcome.display_text = self.sanitizer.sanitize(outcome.display_text)
        outcome.assumptions = interpretation.assumptions
        return outcome

    async def _dispatch(
        self,
        interpretation: InterpretationResult,
        tier: Tier,
        message: str,
        history: List[ChatTurn],
        attachments: List[str],
        context_text: str
    ) -> GenerationOutcome:
        capability = interpretation.intent
        if capability == Capability.CHAT:
            return await self._run_chat(interpretation, message, history, attachments, context_text)
        if capability == Capability.IMAGE:
            return await self._run_image(interpretation, message, history)
        if capability == Capability.IMAGE_EDIT:
            return await self._run_image_edit(interpretation, message, attachments)
        if capability == Capability.VIDEO:
            return await self._run_video(interpretation, tier, message)
        if capability == Capability.TTS:
            return await self._run_tts(interpretation, message, history)
        if capability == Capability.MUSIC:
            return await self._run_music(interpretation, message)
        if capability == Capability.PPT:
            return await self._run_ppt(interpretation, message)
        raise GenerationFailure(f"Unsupported capability: {capability}", str(capability))

    async def _with_timeout(self, call: Awaitable, capability: Capability, model: Optional[str]):
        """Await a remote call, mapping errors and timeouts to GenerationFailure."""
        try:
            return await asyncio.wait_for(call, timeout=self.generation_timeout)
        except asyncio.TimeoutError as e:
            raise GenerationFailure(
                f"{capability.value} generation timed out after {self.generation_timeout}s",
                capability.value,
                model
            ) from e
        except GenerationFailure:
            raise
        except Exception as e:
            raise GenerationFailure(str(e), capability.value, model) from e

    # Chat

    def _chat_messages(
        self,
        interpretation: InterpretationResult,
        history: List[ChatTurn],
        context_text: str,
        images: Optional[List[str]] = None
    ) -> List[Message]:
        system = self.CHAT_SYSTEM_PROMPT.format(
            assistant_name=self.sanitizer.assistant_name,
            context=context_text
        ).strip()
        messages = [Message(role="system", content=system)]
        for turn in history[-self.CHAT_HISTORY_TURNS:]:
            if turn.role in ("user", "assistant") and turn.content:
                messages.append(Message(role=turn.role, content=turn.content))
        messages.append(Message(role="user", content=interpretation.enhanced_prompt, images=images or None))
        return messages

    async def _complete(self, messages: List[Message], model: str) -> LLMResponse:
        if not self.llm_client:
            raise GenerationFailure("No LLM client configured", Capability.CHAT.value, model)
        return await self._with_timeout(
            self.llm_client.chat(messages=messages, model=model),
            Capability.CHAT,
            model
        )

    async def _run_chat(
        self,
        interpretation: InterpretationResult,
        message: str,
        history: List[ChatTurn],
        attachments: List[str],
        context_text: str
    ) -> GenerationOutcome:
        if attachments:
            return await self._run_vision(interpretation, history, attachments, context_text)

        messages = self._chat_messages(interpretation, history, context_text)

        if interpretation.web_research and self.routing.research_model:
            try:
                response = await self._complete(messages, self.routing.research_model)
                return self._chat_outcome(response, self.routing.research_model)
            except GenerationFailure as e:
                logger.warning(f"Web research failed, answering without it: {e}")

        primary = interpretation.suggested_model
        try:
            response = await self._complete(messages, primary)
            return self._chat_outcome(response, primary)
        except GenerationFailure as e:
            logger.warning(f"Chat model failed ({primary}), retrying with fallback: {e}")

        fallback = self.routing.fallback_chat_model
        response = await self._complete(messages, fallback)
        return self._chat_outcome(response, fallback, retried=True)

    async def _run_vision(
        self,
        interpretation: InterpretationResult,
        history: List[ChatTurn],
        attachments: List[str],
        context_text: str
    ) -> GenerationOutcome:
        messages = self._chat_messages(interpretation, history, context_text, images=attachments)
        errors = []
        for model in self.routing.vision_models:
            try:
                response = await self._complete(messages, model)
                return self._chat_outcome(response, model)
            except GenerationFailure as e:
                logger.warning(f"Vision model {model} failed: {e}")
                errors.append(str(e))
        raise GenerationFailure(
            f"All vision models failed: {'; '.join(errors) or 'none configured'}",
            Capability.CHAT.value
        )

    def _chat_outcome(self, response: LLMResponse, model: str, retried: bool = False) -> GenerationOutcome:
        if not response.content.strip():
            raise GenerationFailure("Empty chat response", Capability.CHAT.value, model)
        return GenerationOutcome(
            status=OutcomeStatus.SUCCESS,
            capability=Capability.CHAT,
            display_text=response.content,
            model=model,
            tokens_used=response.total_tokens,
            retried=retried
        )

    # Media

    async def _generate_media(
        self,
        capability: Capability,
        prompt: str,
        model: str,
        params: Dict[str, Any]
    ) -> GenerationArtifact:
        if not self.media_generator:
            raise GenerationFailure("Media generation is not configured", capability.value, model)
        return await self._with_timeout(
            self.media_generator.generate(capability, prompt, model, params),
            capability,
            model
        )

    def _media_outcome(
        self,
        capability: Capability,
        artifact: GenerationArtifact,
        model: str,
        prompt: str,
        display_text: str
    ) -> GenerationOutcome:
        return GenerationOutcome(
            status=OutcomeStatus.SUCCESS,
            capability=capability,
            display_text=display_text,
            artifact=artifact,
            model=model,
            prompt=prompt
        )

    async def _run_image(
        self,
        interpretation: InterpretationResult,
        message: str,
        history: List[ChatTurn]
    ) -> GenerationOutcome:
        prompt = interpretation.enhanced_prompt
        modified = False

        previous = find_previous_turn(history, Capability.IMAGE)
        if previous and detect_follow_up(message, history) == Capability.IMAGE:
            prompt = f"{previous.prompt or previous.content}, but {message}. Make sure to apply this modification: {message}"
            modified = True
            logger.info("Image modification request, combining with previous prompt")

        params = {
            "aspect_ratio": interpretation.media_params.aspect_ratio or extract_aspect_ratio(message) or "1:1",
            "style": interpretation.media_params.style,
            "quality": interpretation.media_params.quality,
        }
        model = interpretation.suggested_model
        artifact = await self._generate_media(Capability.IMAGE, prompt, model, params)

        text = "**Image Generated!**\n\nYour image is ready!"
        if modified:
            text += " (Modified version)"
        return self._media_outcome(Capability.IMAGE, artifact, model, prompt, text)

    async def _run_image_edit(
        self,
        interpretation: InterpretationResult,
        message: str,
        attachments: List[str]
    ) -> GenerationOutcome:
        source_url = interpretation.source_media_url or (attachments[0] if attachments else None)
        if not source_url:
            return GenerationOutcome(
                status=OutcomeStatus.FAILED,
                capability=Capability.IMAGE_EDIT,
                display_text=(
                    "**Image Editing**\n\nPlease attach an image to edit. You can remove the background, "
                    "edit with a prompt (e.g. \"make it brighter\") or change its style."
                ),
                reason="No source image attached"
            )

        background = is_background_removal(f"{message} {interpretation.enhanced_prompt}")
        params = {
            "image_url": source_url,
            "operation": "remove_background" if background else "edit",
        }
        model = interpretation.suggested_model
        prompt = interpretation.enhanced_prompt
        artifact = await self._generate_media(Capability.IMAGE_EDIT, prompt, model, params)

        if background:
            text = "**Background Removed!**\n\nYour image now has a transparent background."
        else:
            text = "**Image Edited!**\n\nYour edited image is ready."
        return self._media_outcome(Capability.IMAGE_EDIT, artifact, model, prompt, text)

    async def _run_video(
        self,
        interpretation: InterpretationResult,
        tier: Tier,
        message: str
    ) -> GenerationOutcome:
        max_seconds = self.tiers.max_video_seconds[tier]
        duration = interpretation.media_params.duration
        if duration:
            duration = max(1, min(int(duration), max_seconds))
        else:
            duration = extract_duration_seconds(message, max_seconds)

        params = {
            "aspect_ratio": interpretation.media_params.aspect_ratio or extract_aspect_ratio(message) or "16:9",
            "duration": duration,
            "quality": interpretation.media_params.quality,
        }
        model = interpretation.suggested_model
        prompt = interpretation.enhanced_prompt
        artifact = await self._generate_media(Capability.VIDEO, prompt, model, params)
        return self._media_outcome(Capability.VIDEO, artifact, model, prompt, "**Video Generated!**\n\nYour video is ready!")

    async def _run_tts(
        self,
        interpretation: InterpretationResult,
        message: str,
        history: List[ChatTurn]
    ) -> GenerationOutcome:
        text = extract_quoted_text(message) or interpretation.enhanced_prompt

        previous = find_previous_turn(history, Capability.TTS)
        modified = bool(previous and detect_follow_up(message, history) == Capability.TTS)
        if modified:
            text = previous.prompt or text
            logger.info("Voice modification request, reusing previous speech text")

        voice = select_voice(message) or interpretation.suggested_model or DEFAULT_VOICE
        artifact = await self._generate_media(Capability.TTS, text, voice, {"voice": voice})

        voice_name = voice.split("-")[2].title() if voice.count("-") >= 2 else "AI Voice"
        display = f"**Speech Generated!**\n\n\"{text[:200]}\" ({voice_name} voice)"
        outcome = self._media_outcome(Capability.TTS, artifact, voice, text, display)
        outcome.artifact.metadata["voice"] = voice
        return outcome

    async def _run_music(self, interpretation: InterpretationResult, message: str) -> GenerationOutcome:
        params = {
            "style": interpretation.media_params.style,
            "instrumental": "instrumental" in message.lower(),
        }
        model = interpretation.suggested_model
        prompt = interpretation.enhanced_prompt
        artifact = await self._generate_media(Capability.MUSIC, prompt, model, params)
        return self._media_outcome(Capability.MUSIC, artifact, model, prompt, "**Music Generated!**\n\nYour track is ready!")

    async def _run_ppt(self, interpretation: InterpretationResult, message: str) -> GenerationOutcome:
        slide_count = extract_slide_count(f"{message} {interpretation.enhanced_prompt}")
        model = interpretation.suggested_model
        prompt = interpretation.enhanced_prompt
        artifact = await self._with_timeout(
            self.slide_generator.generate(prompt, model, slide_count),
            Capability.PPT,
            model
        )

        deck = SlideDeck.model_validate_json(artifact.content)
        text = (
            f"**Presentation Generated!**\n\n"
            f"\"{artifact.file_name}\" is ready with **{len(deck.slides)} slides**.\n\n"
            f"{format_slide_preview(deck)}"
        )
        outcome = self._media_outcome(Capability.PPT, artifact, model, prompt, text)
        outcome.tokens_used = int(artifact.metadata.get("tokens", 0))
        return outcome

    # Non-generation outcomes

    def _clarification(self, interpretation: InterpretationResult) -> GenerationOutcome:
        lines = [
            f"**{i + 1}. {q.question}** *({q.placeholder or 'optional'})*"
            for i, q in enumerate(interpretation.clarifying_questions)
        ]
        text = "Got it. Before I start, a few quick questions:\n\n" + "\n\n".join(lines)
        return GenerationOutcome(
            status=OutcomeStatus.CLARIFICATION_REQUIRED,
            capability=interpretation.intent,
            display_text=text,
            clarifying_questions=interpretation.clarifying_questions,
            assumptions=interpretation.assumptions
        )

    def _upgrade_required(self, capability: Capability, tier: Tier) -> GenerationOutcome:
        reason = self.tiers.upgrade_reasons[capability]
        minimum = self.tiers.minimum_tier(capability)
        text = f"**Upgrade Required**\n\nYou're on the {tier.value.title()} plan. {reason}"
        if minimum:
            text += f"\n\nAvailable from the {minimum.value.title()} plan."
        return GenerationOutcome(
            status=OutcomeStatus.UPGRADE_REQUIRED,
            capability=capability,
            display_text=text,
            reason=reason
        )

    def _quota_exceeded(self, capability: Capability, tier: Tier, check: UsageCheck) -> GenerationOutcome:
        label = CAPABILITY_LABELS[capability]
        text = (
            f"**Daily {label} limit reached**\n\n"
            f"You've used **{check.used}/{check.limit}** {label} generations today on the "
            f"**{tier.value.upper()}** plan. Upgrade your plan, or wait until tomorrow for your limit to reset."
        )
        return GenerationOutcome(
            status=OutcomeStatus.QUOTA_EXCEEDED,
            capability=capability,
            display_text=text,
            used=check.used,
            limit=check.limit,
            reason=f"Daily {label} limit reached"
        )

    def _low_quota_warning(self, capability: Capability, check: UsageCheck) -> Optional[str]:
        remaining = max(0, check.remaining - 1)
        if check.limit and remaining <= check.limit * LOW_QUOTA_RATIO:
            return f"You have {remaining} {CAPABILITY_LABELS[capability]} generations left today."
        return None
