"""Request interpreter: turns a user message into a structured routing decision."""

import asyncio
import json
import logging
import re
from typing import Dict, List, Optional

from config.tiers import ModelRoutingTable, TierTable
from errors import ClassificationFailure
from llm.base_client import BaseLLMClient, Message
from memory.models import ChatTurn
from schemas.context import Capability, Complexity, ConversationContext, Tier
from schemas.interpretation import (
    Assumption,
    ClarifyingQuestion,
    ContextUpdates,
    InterpretationResult,
    InterpretOptions,
    InterpreterState,
    MediaParams,
)
from schemas.status import StatusPhase, status_label
from .intent_classifier import (
    LocalIntentClassifier,
    SIMPLE_WORD_LIMIT,
    estimate_complexity,
    matches_simple_pattern,
    word_count,
)
from .media_params import detect_follow_up
from .override_rules import KeywordOverrides
from .summarizer import CondensedHistory, HistorySummarizer

logger = logging.getLogger(__name__)

ADDITIONAL_CONTEXT_HEADER = "Additional context:"


def build_clarified_message(
    original: str,
    questions: List[ClarifyingQuestion],
    answers: Dict[str, str]
) -> str:
    """
    Combine the original request with the user's clarification answers.

    Args:
        original: Message that triggered clarification
        questions: Questions that were asked
        answers: Answers keyed by question id

    Returns:
        Message to resubmit as a fresh turn
    """
    lines = [
        f"- {q.question}: {answers.get(q.id) or 'Not specified'}"
        for q in questions
    ]
    return f"{original}\n\n{ADDITIONAL_CONTEXT_HEADER}\n" + "\n".join(lines)


def parse_answered_questions(message: str) -> Dict[str, str]:
    """Questions (lower-cased) already answered in an additional-context block."""
    if ADDITIONAL_CONTEXT_HEADER not in message:
        return {}
    block = message.split(ADDITIONAL_CONTEXT_HEADER, 1)[1]
    answered = {}
    for line in block.splitlines():
        match = re.match(r"^\s*-\s*(.+?):\s*(.*)$", line)
        if match:
            answered[match.group(1).strip().lower()] = match.group(2).strip()
    return answered


class RequestInterpreter:
    """
    Central decision engine for one user turn.

    Trivially simple messages take a local fast path; everything else gets
    one remote classification call whose verdict is then checked by the
    local classifier, the keyword override rules and any caller-forced
    capability, in that order.
    """

    CLARIFICATION_THRESHOLD = 0.5
    RECENT_TURNS_IN_PROMPT = 10
    RECENT_MEDIA_IN_PROMPT = 5
    FALLBACK_CONFIDENCE = 0.7

    SYSTEM_PROMPT = """You are the request interpreter for a creative AI studio.
Read the user's message and decide what they want, then rewrite it for the model that will fulfil it.

## Capabilities
- "chat": questions, writing, advice, analysis, conversation
- "image": create a new image, logo, poster, illustration, photo
- "image_edit": change an image the user attached (remove background, recolor, add or remove objects)
- "video": create a video, animation or clip
- "ppt": create a presentation, slide deck or pitch deck
- "tts": turn text into spoken audio, change a voice
- "music": compose a song, beat, jingle or soundtrack

## Complexity rubric
- "simple": greetings, short factual questions, single-object images, short clips
- "medium": multi-part questions, marketing copy, styled images
- "complex": business plans, in-depth analysis, comparisons, photorealistic or multi-scene media

## User tier: {tier}
Daily limits for this tier: {limits}

## Model table (capability/complexity -> model for this tier)
{models}

## Identity rules
The assistant is called {assistant_name}. Never name the underlying model or its provider in enhanced_prompt or status_message.

## Clarification
Only set needs_clarification when a required detail is missing and cannot be sensibly assumed.
Prefer filling sensible defaults and listing them in assumptions.

## Response Format
Respond with valid JSON only:
{{
  "intent": "chat" | "image" | "image_edit" | "video" | "ppt" | "tts" | "music",
  "confidence": 0.0-1.0,
  "complexity": "simple" | "medium" | "complex",
  "enhanced_prompt": "rewritten request for the downstream model",
  "assumptions": [{{"key": "style", "value": "modern", "editable": true}}],
  "needs_clarification": false,
  "clarifying_questions": [{{"question": "...", "placeholder": "...", "required": true}}],
  "context_updates": {{
    "long_term": {{"business_name": "...", "industry": "...", "primary_goals": ["..."]}},
    "short_term": {{"current_task": "...", "recent_topics": ["..."]}}
  }},
  "media_params": {{"aspect_ratio": "16:9", "duration": 8, "quality": "standard", "style": "..."}},
  "source_media_url": null
}}"""

    def __init__(
        self,
        llm_client: Optional[BaseLLMClient],
        routing: ModelRoutingTable,
        tiers: TierTable,
        summarizer: Optional[HistorySummarizer] = None,
        classifier: Optional[LocalIntentClassifier] = None,
        overrides: Optional[KeywordOverrides] = None,
        model: Optional[str] = None,
        timeout: float = 30.0,
        max_recent: int = 35,
        assistant_name: str = "Studio AI",
        fast_path_enabled: bool = True
    ):
        """
        Initialize interpreter.

        Args:
            llm_client: LLM client for remote classification (None forces fallback)
            routing: Model routing table
            tiers: Tier limits table
            summarizer: History summarizer (default: one sharing llm_client)
            classifier: Local intent classifier
            overrides: Keyword override rule table
            model: Interpreter model (default: routing table's orchestrator model)
            timeout: Seconds before remote interpretation is abandoned
            max_recent: Recent turns kept verbatim before summarizing
            assistant_name: Assistant name used in identity rules
            fast_path_enabled: Whether simple messages may skip remote classification
        """
        self.llm_client = llm_client
        self.routing = routing
        self.tiers = tiers
        self.model = model or routing.orchestrator_model
        self.summarizer = summarizer or HistorySummarizer(llm_client, model=self.model, timeout=timeout)
        self.classifier = classifier or LocalIntentClassifier()
        self.overrides = overrides or KeywordOverrides()
        self.timeout = timeout
        self.max_recent = max_recent
        self.assistant_name = assistant_name
        self.fast_path_enabled = fast_path_enabled

    async def interpret(
        self,
        message: str,
        history: Optional[List[ChatTurn]] = None,
        context: Optional[ConversationContext] = None,
        options: Optional[InterpretOptions] = None
    ) -> InterpretationResult:
        """
        Interpret a user message.

        Never raises for remote failures; those yield the default interpretation.

        Args:
            message: New user message
            history: Prior turns, oldest first
            context: Conversation context for the thread
            options: Tier, forced capability and mode flags

        Returns:
            InterpretationResult for this turn
        """
        options = options or InterpretOptions()
        history = history or []

        if self.is_fast_path_eligible(message, options, history):
            result = self._fast_path(message, options.tier)
            logger.info(f"Fast path: intent=chat model={result.suggested_model}")
            return result

        remote_intent = None
        try:
            parsed = await self._remote_interpret(message, history, context, options)
            result = self._build_result(parsed, message)
            remote_intent = result.intent
        except ClassificationFailure as e:
            logger.warning(f"Interpretation failed, using default: {e}")
            result = self._default_output(message)

        override_fired = self._apply_overrides(result, message, options)

        if result.fallback and result.intent == Capability.CHAT:
            result.suggested_model = self.routing.interpretation_fallback_model
        else:
            result.suggested_model = self.routing.select(result.intent, result.complexity, options.tier)

        result.web_research = options.web_research and result.intent == Capability.CHAT
        if result.web_research:
            result.status_message = status_label(StatusPhase.RESEARCHING)
        elif not result.fallback or result.intent != Capability.CHAT:
            result.status_message = status_label(StatusPhase.GENERATING, result.intent)

        self._apply_clarification_gate(result, message, override_fired)

        logger.info(
            f"Interpretation: intent={result.intent.value} (remote={remote_intent.value if remote_intent else 'n/a'}), "
            f"complexity={result.complexity.value}, confidence={result.confidence:.2f}, "
            f"clarify={result.needs_clarification}"
        )
        return result

    def is_fast_path_eligible(
        self,
        message: str,
        options: InterpretOptions,
        history: Optional[List[ChatTurn]] = None
    ) -> bool:
        """Trivially simple chat that needs no remote classification."""
        if not self.fast_path_enabled:
            return False
        if options.force_capability or options.has_images or options.web_research:
            return False
        if history and detect_follow_up(message, history):
            return False
        if matches_simple_pattern(message):
            return True
        return (
            word_count(message) <= SIMPLE_WORD_LIMIT
            and self.classifier.classify(message) is None
            and self.overrides.match(message) is None
        )

    def _fast_path(self, message: str, tier: Tier) -> InterpretationResult:
        complexity = estimate_complexity(message, Capability.CHAT)
        return InterpretationResult(
            intent=Capability.CHAT,
            confidence=1.0,
            enhanced_prompt=message,
            complexity=complexity,
            suggested_model=self.routing.select(Capability.CHAT, complexity, tier),
            status_message=status_label(StatusPhase.THINKING),
            fast_path=True,
            state=InterpreterState.FAST_PATH_DONE
        )

    async def _remote_interpret(
        self,
        message: str,
        history: List[ChatTurn],
        context: Optional[ConversationContext],
        options: InterpretOptions
    ) -> dict:
        """Run the remote classification call, raising ClassificationFailure on any problem."""
        if not self.llm_client:
            raise ClassificationFailure("No LLM client configured")

        condensed = await self.summarizer.condense(history, self.max_recent)
        context_summary = self.build_context_summary(context, condensed)

        user_message = f"""{context_summary}

User message: {message}
Attached images: {"yes" if options.has_images else "no"}

Analyze this message and respond with JSON."""

        messages = [
            Message(role="system", content=self._system_prompt(options.tier)),
            Message(role="user", content=user_message)
        ]

        try:
            response = await asyncio.wait_for(
                self.llm_client.chat(
                    messages=messages,
                    model=self.model,
                    temperature=0.3,  # Low temperature for consistent classification
                    max_tokens=1500
                ),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise ClassificationFailure(f"Interpretation timed out after {self.timeout}s") from e
        except Exception as e:
            raise ClassificationFailure(f"Interpretation call failed: {e}") from e

        return self._parse_json(response.content)

    def _system_prompt(self, tier: Tier) -> str:
        limits = ", ".join(
            f"{capability.value} {self.tiers.daily_limit(tier, capability)}"
            for capability in Capability
        )
        model_lines = []
        for capability in (Capability.CHAT, Capability.IMAGE, Capability.VIDEO):
            for complexity in Complexity:
                model = self.routing.select(capability, complexity, tier)
                model_lines.append(f"- {capability.value}/{complexity.value}: {model}")
        return self.SYSTEM_PROMPT.format(
            tier=tier.value.upper(),
            limits=limits,
            models="\n".join(model_lines),
            assistant_name=self.assistant_name
        )

    def build_context_summary(
        self,
        context: Optional[ConversationContext],
        condensed: CondensedHistory
    ) -> str:
        """
        Compact text summary of what is known about the conversation.

        Args:
            context: Conversation context
            condensed: Condensed history

        Returns:
            Multi-line summary for the interpretation prompt
        """
        parts = []
        if context:
            lt, st = context.long_term, context.short_term
            facts = []
            if lt.business_name:
                facts.append(f"Business: {lt.business_name}")
            if lt.industry:
                facts.append(f"Industry: {lt.industry}")
            if lt.target_audience:
                facts.append(f"Audience: {lt.target_audience}")
            if lt.brand_tone:
                facts.append(f"Brand tone: {lt.brand_tone}")
            if lt.primary_goals:
                facts.append(f"Goals: {', '.join(lt.primary_goals)}")
            if st.current_task:
                facts.append(f"Current task: {st.current_task}")
            if st.recent_topics:
                facts.append(f"Recent topics: {', '.join(st.recent_topics)}")
            if facts:
                parts.append("=== Known Context ===\n" + "\n".join(facts))

        if condensed.summary:
            parts.append(f"=== Earlier Conversation (summary) ===\n{condensed.summary}")

        media_turns = [t for t in condensed.recent_messages if t.media_type][-self.RECENT_MEDIA_IN_PROMPT:]
        if media_turns:
            lines = [f"- {t.media_type}: {(t.prompt or t.content)[:150]}" for t in media_turns]
            parts.append("=== Recent Media ===\n" + "\n".join(lines))

        recent = condensed.recent_messages[-self.RECENT_TURNS_IN_PROMPT:]
        if recent:
            lines = [f"{t.role.upper()}: {t.content[:300]}" for t in recent]
            parts.append("=== Recent Conversation ===\n" + "\n".join(lines))

        return "\n\n".join(parts) if parts else "No prior context."

    def _parse_json(self, content: str) -> dict:
        content = (content or "").strip()

        # Handle potential markdown code blocks
        if content.startswith("```"):
            content = content.split("```")[1]
            if content.startswith("json"):
                content = content[4:]
            content = content.strip()

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            match = re.search(r"\{[\s\S]*\}", content)
            if not match:
                raise ClassificationFailure("No JSON object in interpretation response")
            try:
                parsed = json.loads(match.group(0))
            except json.JSONDecodeError as e:
                raise ClassificationFailure(f"Failed to parse interpretation JSON: {e}") from e

        if not isinstance(parsed, dict):
            raise ClassificationFailure("Interpretation response is not a JSON object")
        return parsed

    def _build_result(self, parsed: dict, message: str) -> InterpretationResult:
        try:
            return self._map_result(parsed, message)
        except (TypeError, ValueError) as e:
            raise ClassificationFailure(f"Malformed interpretation response: {e}") from e

    def _map_result(self, parsed: dict, message: str) -> InterpretationResult:
        """Map a parsed response onto an InterpretationResult, tolerating bad fields."""
        intent = self._parse_enum(Capability, parsed.get("intent"), Capability.CHAT)
        complexity = self._parse_enum(Complexity, parsed.get("complexity"), Complexity.MEDIUM)

        try:
            confidence = min(1.0, max(0.0, float(parsed.get("confidence", 0.8))))
        except (TypeError, ValueError):
            confidence = 0.8

        updates = parsed.get("context_updates") or {}
        if not isinstance(updates, dict):
            updates = {}
        long_term = updates.get("long_term") or updates.get("longTerm") or {}
        short_term = updates.get("short_term") or updates.get("shortTerm") or {}

        assumptions = []
        for item in self._as_list(parsed.get("assumptions")):
            if isinstance(item, dict) and item.get("key") and item.get("value") is not None:
                assumptions.append(Assumption(
                    key=str(item["key"]),
                    value=str(item["value"]),
                    editable=bool(item.get("editable", True))
                ))

        questions = []
        for i, item in enumerate(self._as_list(parsed.get("clarifying_questions"))):
            if isinstance(item, str):
                item = {"question": item}
            if isinstance(item, dict) and item.get("question"):
                questions.append(ClarifyingQuestion(
                    id=f"q_{i}",
                    question=str(item["question"]),
                    placeholder=str(item.get("placeholder") or ""),
                    required=bool(item.get("required", False))
                ))

        media = parsed.get("media_params") or {}
        source = parsed.get("source_media_url")
        try:
            media_params = MediaParams.model_validate(media if isinstance(media, dict) else {})
        except ValueError:
            media_params = MediaParams()

        return InterpretationResult(
            intent=intent,
            confidence=confidence,
            enhanced_prompt=str(parsed.get("enhanced_prompt") or message),
            complexity=complexity,
            suggested_model=self.routing.default_for(intent),
            context_updates=ContextUpdates(
                long_term=long_term if isinstance(long_term, dict) else {},
                short_term=short_term if isinstance(short_term, dict) else {}
            ),
            assumptions=assumptions,
            needs_clarification=bool(parsed.get("needs_clarification", False)),
            clarifying_questions=questions,
            media_params=media_params,
            source_media_url=source if isinstance(source, str) and source else None
        )

    @staticmethod
    def _as_list(value) -> list:
        return value if isinstance(value, list) else []

    @staticmethod
    def _parse_enum(enum_cls, value, default):
        try:
            return enum_cls(str(value).strip().lower())
        except ValueError:
            return default

    def _default_output(self, message: str) -> InterpretationResult:
        """Generate default output when remote interpretation fails."""
        return InterpretationResult(
            intent=Capability.CHAT,
            confidence=self.FALLBACK_CONFIDENCE,
            enhanced_prompt=message,
            complexity=Complexity.MEDIUM,
            suggested_model=self.routing.interpretation_fallback_model,
            context_updates=ContextUpdates(short_term={"current_task": message[:100]}),
            status_message=status_label(StatusPhase.GENERATING),
            fallback=True
        )

    def _apply_overrides(
        self,
        result: InterpretationResult,
        message: str,
        options: InterpretOptions
    ) -> bool:
        """
        Apply local classifier, keyword rules and forced capability in order.

        Returns:
            True if any of them decided the final intent
        """
        original = result.intent
        fired = False

        if result.intent == Capability.CHAT:
            local = self.classifier.classify(message)
            if local:
                logger.info(f"Local classifier override: chat -> {local.value}")
                result.intent = local
                fired = True

        rule = self.overrides.match(message, options.has_images)
        if rule:
            if rule.capability != result.intent:
                logger.info(f"Keyword rule '{rule.name}' override: {result.intent.value} -> {rule.capability.value}")
            result.intent = rule.capability
            fired = True

        if options.force_capability:
            result.intent = options.force_capability
            fired = True

        if result.intent != original and result.intent.is_media:
            result.complexity = estimate_complexity(message, result.intent)
        return fired

    def _apply_clarification_gate(
        self,
        result: InterpretationResult,
        message: str,
        override_fired: bool
    ):
        answered = parse_answered_questions(message)
        questions = [
            q for q in result.clarifying_questions
            if q.question.strip().lower() not in answered
        ]

        needs = result.needs_clarification and bool(questions)
        low_confidence = (
            not result.fallback
            and not override_fired
            and not answered
            and result.confidence < self.CLARIFICATION_THRESHOLD
        )
        if low_confidence:
            needs = True
            if not questions:
                questions = [ClarifyingQuestion(
                    id="q_0",
                    question="Could you tell me a bit more about what you'd like me to create?",
                    placeholder="e.g. a logo, a short video, a blog post",
                    required=True
                )]

        result.needs_clarification = needs
        result.clarifying_questions = questions if needs else []
        result.state = InterpreterState.NEEDS_CLARIFICATION if needs else InterpreterState.READY
