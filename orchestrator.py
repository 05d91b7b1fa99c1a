"""Main orchestrator for the Creative Studio assistant."""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union
from pydantic import BaseModel, Field

from config.settings import Settings
from config.tiers import ModelRoutingTable, TierTable
from errors import PersistenceFailure, TurnInProgressError
from schemas.context import Capability, ContextVersion, ConversationContext, Tier, utc_now
from schemas.interpretation import ContextUpdates, InterpretationResult, InterpretOptions
from schemas.responses import GenerationOutcome, OutcomeStatus, TokenUsage, UsageCheck
from schemas.status import StatusPhase, ThreadState, status_label

# LLM components
from llm.factory import create_llm_client, LLMProvider
from llm.base_client import BaseLLMClient, Message

# Memory components
from memory.models import ChatTurn, TurnStatus
from memory.sqlite_store import SQLiteMemoryStore
from memory.context_store import ContextStore
from memory.usage_ledger import UsageLedger

# Generation pathways
from generation.base import MediaGenerator
from generation.http_generator import HTTPMediaGenerator
from generation.slides import DeckSerializer, SlideDeckGenerator

# Agents
from agents.capability_router import CapabilityRouter
from agents.interpreter import RequestInterpreter
from agents.sanitizer import IdentitySanitizer
from agents.summarizer import HistorySummarizer

logger = logging.getLogger(__name__)

STOPPED_TEXT = "*(Generation stopped by user)*"
UNEXPECTED_ERROR_TEXT = "Something went wrong while handling your message. Please try again."

StatusCallback = Callable[[StatusPhase, str], None]


class TurnResult(BaseModel):
    """Everything produced by one processed user turn."""
    thread_id: str
    user_turn: ChatTurn
    assistant_turn: ChatTurn
    interpretation: Optional[InterpretationResult] = None
    outcome: GenerationOutcome
    context: Optional[ConversationContext] = None


class StudioOrchestrator:
    """Main orchestrator wiring interpretation, routing, memory and quotas."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm_client: Optional[BaseLLMClient] = None,
        media_generator: Optional[MediaGenerator] = None,
        deck_serializer: Optional[DeckSerializer] = None,
        memory_store: Optional[SQLiteMemoryStore] = None
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Application settings
            llm_client: Pre-built LLM client (default: built from settings)
            media_generator: Pre-built media generator (default: HTTP generator if configured)
            deck_serializer: Optional callable that renders slide decks to files
            memory_store: Pre-built SQLite store (default: built from settings.db_path)
        """
        self.settings = settings or Settings()

        # Static tables
        self.tiers = TierTable(self.settings.tiers_path)
        self.routing = ModelRoutingTable(self.settings.model_routing_path)

        # Initialize LLM client
        self.llm_client: Optional[BaseLLMClient] = llm_client
        if self.llm_client is None:
            self._init_llm_client()

        # Initialize media generator
        self.media_generator: Optional[MediaGenerator] = media_generator
        if self.media_generator is None:
            self._init_media_generator()

        # Initialize memory
        self.memory_store: SQLiteMemoryStore = memory_store or SQLiteMemoryStore(db_path=self.settings.db_path)
        self._init_memory()

        # Initialize agents
        self._init_agents(deck_serializer)

    def _init_llm_client(self):
        """Initialize LLM client based on settings."""
        api_key = self.settings.get_llm_api_key()

        if not api_key:
            logger.warning(
                f"No API key for {self.settings.llm_provider}. "
                "Remote interpretation is disabled and chat will fail."
            )
            return

        try:
            provider = LLMProvider(self.settings.llm_provider)
            self.llm_client = create_llm_client(
                provider=provider,
                api_key=api_key,
                model=self.settings.llm_model or self.routing.orchestrator_model,
                base_url=self.settings.llm_base_url if provider != LLMProvider.ANTHROPIC else None,
                timeout=self.settings.generation_timeout_seconds
            )
            logger.info(
                f"LLM client initialized: {self.settings.llm_provider} "
                f"({self.llm_client.get_model_name()})"
            )
        except Exception as e:
            logger.error(f"Failed to initialize LLM client: {e}")
            self.llm_client = None

    def _init_media_generator(self):
        """Initialize the HTTP media generator if an endpoint is configured."""
        if not self.settings.media_api_base_url:
            logger.warning("No media endpoint configured. Media generation is disabled.")
            return

        self.media_generator = HTTPMediaGenerator(
            base_url=self.settings.media_api_base_url,
            api_key=self.settings.media_api_key,
            timeout=self.settings.media_request_timeout_seconds
        )
        logger.info(f"Media generator initialized: {self.settings.media_api_base_url}")

    def _init_memory(self):
        """Initialize context store, usage ledger and the local turn cache."""
        self.context_store = ContextStore(
            store=self.memory_store if self.settings.memory_enabled else None
        )
        self.ledger = UsageLedger(store=self.memory_store, tiers=self.tiers)
        self._turns: Dict[str, List[ChatTurn]] = {}
        logger.info(
            f"Memory initialized: {self.settings.db_path} "
            f"(conversation persistence {'on' if self.settings.memory_enabled else 'off'})"
        )

    def _init_agents(self, deck_serializer: Optional[DeckSerializer]):
        """Initialize agents."""
        self.sanitizer = IdentitySanitizer(self.settings.assistant_name)
        interpreter_model = self.settings.llm_model or self.routing.orchestrator_model

        self.summarizer = HistorySummarizer(
            self.llm_client,
            model=interpreter_model,
            timeout=self.settings.interpretation_timeout_seconds
        )
        self.interpreter = RequestInterpreter(
            llm_client=self.llm_client,
            routing=self.routing,
            tiers=self.tiers,
            summarizer=self.summarizer,
            model=interpreter_model,
            timeout=self.settings.interpretation_timeout_seconds,
            max_recent=self.settings.max_recent_messages,
            assistant_name=self.settings.assistant_name
        )
        self.router = CapabilityRouter(
            llm_client=self.llm_client,
            ledger=self.ledger,
            tiers=self.tiers,
            routing=self.routing,
            media_generator=self.media_generator,
            slide_generator=SlideDeckGenerator(self.llm_client, serializer=deck_serializer),
            sanitizer=self.sanitizer,
            generation_timeout=self.settings.generation_timeout_seconds
        )
        logger.info(f"Agents initialized ({'remote' if self.llm_client else 'local-only'} interpretation)")

    # Component operations

    async def interpret(
        self,
        message: str,
        history: Optional[List[ChatTurn]] = None,
        context: Optional[ConversationContext] = None,
        options: Optional[InterpretOptions] = None
    ) -> InterpretationResult:
        """Interpret a user message (see RequestInterpreter.interpret)."""
        return await self.interpreter.interpret(message, history, context, options)

    async def route(
        self,
        interpretation: InterpretationResult,
        user_id: str,
        tier: Union[Tier, str],
        **kwargs: Any
    ) -> GenerationOutcome:
        """Route an interpretation to its capability (see CapabilityRouter.route)."""
        return await self.router.route(interpretation, user_id, Tier.parse(tier), **kwargs)

    def check_usage_limits(self, user_id: str, capability: Capability, tier: Union[Tier, str]) -> UsageCheck:
        return self.ledger.check_usage_limits(user_id, capability, Tier.parse(tier))

    def record_usage(self, user_id: str, capability: Capability, metadata: Optional[Dict[str, Any]] = None):
        self.ledger.record_usage(user_id, capability, metadata)

    def token_usage(self, user_id: str, tier: Union[Tier, str]) -> TokenUsage:
        return self.ledger.token_usage(user_id, Tier.parse(tier))

    def get_context(self, thread_id: str) -> ConversationContext:
        return self.context_store.get_or_create(thread_id)

    def update_context(
        self,
        thread_id: str,
        updates: Union[ContextUpdates, Dict[str, Any]],
        reason: str = "Updated from conversation"
    ) -> ConversationContext:
        """
        Merge proposed context updates into a thread's context.

        Args:
            thread_id: Conversation thread ID
            updates: ContextUpdates or a dict with "long_term"/"short_term" keys
            reason: Change reason recorded in version history

        Returns:
            The updated context
        """
        if isinstance(updates, dict):
            updates = ContextUpdates.model_validate(updates)
        return self.context_store.apply_updates(
            thread_id,
            long_term=updates.long_term,
            short_term=updates.short_term,
            reason=reason
        )

    def list_context_versions(self, thread_id: str) -> List[ContextVersion]:
        return self.context_store.list_versions(thread_id)

    def reset_context(self, thread_id: str, version: int) -> Optional[ConversationContext]:
        return self.context_store.reset_to_version(thread_id, version)

    def clear_context(self, thread_id: str) -> ConversationContext:
        return self.context_store.clear(thread_id)

    def get_history(self, thread_id: str) -> List[ChatTurn]:
        """Conversation turns for a thread, oldest first."""
        if self.settings.memory_enabled:
            try:
                return self.memory_store.get_turns(thread_id)
            except PersistenceFailure as e:
                logger.warning(f"Could not load history for {thread_id}, using local copy: {e}")
        return list(self._turns.get(thread_id, []))

    # Full turn

    async def process_message(
        self,
        thread_id: str,
        user_id: str,
        message: str,
        tier: Union[Tier, str] = Tier.FREE,
        thread_state: ThreadState = ThreadState.IDLE,
        force_capability: Optional[Capability] = None,
        web_research: bool = False,
        images: Optional[List[str]] = None,
        on_status: Optional[StatusCallback] = None
    ) -> TurnResult:
        """
        Process one user turn end-to-end.

        Stores the user turn and a pending assistant turn, interprets, applies
        context updates, routes, then replaces the pending turn with the
        outcome. Cancellation leaves a stopped turn and nothing billed.

        Args:
            thread_id: Conversation thread ID
            user_id: User ID for quota accounting
            message: User message text
            tier: Subscription tier
            thread_state: Caller-owned send state of the thread
            force_capability: Capability chosen explicitly by the user
            web_research: Whether web research mode is on
            images: Attached image URLs or data URLs
            on_status: Optional callback receiving (phase, label) progress updates

        Returns:
            TurnResult with both turns, the interpretation and the outcome

        Raises:
            TurnInProgressError: If the thread already has a turn in flight
        """
        if thread_state != ThreadState.IDLE:
            raise TurnInProgressError(
                f"Thread {thread_id} is {ThreadState(thread_state).value}; wait for the current turn to finish"
            )

        tier = Tier.parse(tier)
        images = images or []
        history = self.get_history(thread_id)
        context = self.context_store.get_or_create(thread_id)

        user_turn = ChatTurn(role="user", content=message)
        self._save_turn(thread_id, user_turn)
        pending = ChatTurn(role="assistant", content="", status=TurnStatus.PENDING)
        self._save_turn(thread_id, pending)

        if self.settings.verbose:
            print(f"\n{'='*60}")
            print(f"PROCESSING MESSAGE: {message}")
            print(f"THREAD: {thread_id}  USER: {user_id}  TIER: {tier.value}")
            print(f"{'='*60}\n")

        self._report(on_status, StatusPhase.THINKING)
        interpretation: Optional[InterpretationResult] = None
        try:
            options = InterpretOptions(
                tier=tier,
                force_capability=force_capability,
                web_research=web_research,
                has_images=bool(images)
            )
            interpretation = await self.interpret(message, history, context, options)
            self._report(on_status, StatusPhase.GENERATING, interpretation.status_message)

            if self.settings.verbose:
                print(f"  Intent: {interpretation.intent.value} ({interpretation.confidence:.2f})")
                print(f"  Complexity: {interpretation.complexity.value}")
                print(f"  Fast path: {interpretation.fast_path}  Fallback: {interpretation.fallback}")

            if not interpretation.context_updates.is_empty():
                context = self.update_context(thread_id, interpretation.context_updates)

            outcome = await self.route(
                interpretation,
                user_id,
                tier,
                message=message,
                history=history,
                attachments=images,
                context_text=self._context_text(context)
            )
        except asyncio.CancelledError:
            pending.content = STOPPED_TEXT
            pending.status = TurnStatus.STOPPED
            self._update_turn(thread_id, pending)
            logger.info(f"Turn stopped by user in thread {thread_id}")
            raise
        except Exception as e:
            logger.error(f"Unexpected error processing message in {thread_id}: {e}")
            outcome = GenerationOutcome(
                status=OutcomeStatus.FAILED,
                capability=interpretation.intent if interpretation else Capability.CHAT,
                display_text=UNEXPECTED_ERROR_TEXT,
                reason=self.sanitizer.sanitize(str(e))[:300]
            )

        assistant_turn = self._finalize_turn(thread_id, pending, outcome)
        if outcome.ok and outcome.capability.is_media and outcome.artifact:
            name = (outcome.prompt or message)[:60]
            self.context_store.add_asset(
                thread_id, name, outcome.capability.value, outcome.artifact.url
            )
            context = self.context_store.get_or_create(thread_id)

        self._report(on_status, StatusPhase.COMPLETE)
        if self.settings.verbose:
            print(f"  Outcome: {outcome.status.value}")

        return TurnResult(
            thread_id=thread_id,
            user_turn=user_turn,
            assistant_turn=assistant_turn,
            interpretation=interpretation,
            outcome=outcome,
            context=context
        )

    async def generate_chat_name(self, first_message: str) -> str:
        """
        Short title for a new conversation.

        Args:
            first_message: First user message of the thread

        Returns:
            Title of at most a few words
        """
        text = (first_message or "").strip()
        if not text:
            return "New Chat"
        if len(text) <= 1:
            return "Quick Chat"

        fallback = text[:40] + ("..." if len(text) > 40 else "")
        if not self.llm_client:
            return fallback

        prompt = f"""Generate a very short title for a chat conversation that starts with this message:
"{text}"

Rules:
- Maximum 4 words, ideally 2-3 words
- No quotes, no punctuation at the end
- Title case

Return ONLY the title, nothing else."""
        try:
            response = await asyncio.wait_for(
                self.llm_client.chat(
                    messages=[Message(role="user", content=prompt)],
                    model=self.routing.orchestrator_model,
                    temperature=0.5,
                    max_tokens=20
                ),
                timeout=self.settings.interpretation_timeout_seconds
            )
        except Exception as e:
            logger.warning(f"Chat name generation failed: {e}")
            return fallback

        title = response.content.strip().strip("\"'").rstrip(".!?").strip()
        if not title or len(title.split()) > 6:
            return fallback
        return self.sanitizer.sanitize(title)

    # Helpers

    def _report(self, on_status: Optional[StatusCallback], phase: StatusPhase, label: Optional[str] = None):
        if on_status:
            on_status(phase, label or status_label(phase))

    def _context_text(self, context: ConversationContext) -> str:
        lt = context.long_term
        facts = []
        if lt.business_name:
            facts.append(f"Business: {lt.business_name}")
        if lt.industry:
            facts.append(f"Industry: {lt.industry}")
        if lt.target_audience:
            facts.append(f"Audience: {lt.target_audience}")
        if lt.brand_tone:
            facts.append(f"Brand tone: {lt.brand_tone}")
        if not facts:
            return ""
        return "What you know about the user:\n" + "\n".join(facts)

    def _save_turn(self, thread_id: str, turn: ChatTurn):
        self._turns.setdefault(thread_id, []).append(turn)
        if self.settings.memory_enabled:
            try:
                self.memory_store.add_turn(thread_id, turn)
            except PersistenceFailure as e:
                logger.error(f"Failed to store turn in {thread_id}: {e}")

    def _update_turn(self, thread_id: str, turn: ChatTurn):
        local = self._turns.setdefault(thread_id, [])
        for idx, existing in enumerate(local):
            if existing.id == turn.id:
                local[idx] = turn
                break
        else:
            local.append(turn)
        if self.settings.memory_enabled:
            try:
                self.memory_store.update_turn(thread_id, turn)
            except PersistenceFailure as e:
                logger.error(f"Failed to update turn in {thread_id}: {e}")

    def _finalize_turn(self, thread_id: str, pending: ChatTurn, outcome: GenerationOutcome) -> ChatTurn:
        """Replace the pending assistant turn with the outcome."""
        content = outcome.display_text
        if outcome.warning_message:
            content += f"\n\n_{outcome.warning_message}_"

        pending.content = content
        pending.status = TurnStatus.FAILED if outcome.status == OutcomeStatus.FAILED else TurnStatus.COMPLETE
        pending.task_type = outcome.capability.value
        pending.prompt = outcome.prompt
        pending.assumptions = outcome.assumptions
        pending.timestamp = utc_now()
        if outcome.artifact:
            pending.media_url = outcome.artifact.url
            pending.media_type = outcome.artifact.media_type

        self._update_turn(thread_id, pending)
        return pending

