"""Generate-or-reuse entry point for meeting dialogues.

Ties the usage ledger, personality derivation, the meeting cache, model
routing and retry orchestration into a single request.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from groq import AsyncGroq

from .config import ServiceConfig
from .errors import AllModelsExhaustedError, DialogueParseError, UsageLimitExceededError
from .logging import JSONLLogger
from .meeting import (
    OTHER,
    Conclusion,
    ConversationTurn,
    DialoguePromptBuilder,
    GeneratedDialogue,
    MeetingReuseCache,
    detect_concern_category,
    emergency_dialogue,
    is_known_category,
)
from .personality import PersonalityVariant, TraitVector, derive_personalities, encode_key
from .routing import (
    GroqLLMClient,
    LLMProvider,
    ModelRouter,
    RetryOrchestrator,
    RetryPolicy,
    TaskType,
    estimate_cost,
)
from .routing.tiers import build_tier_models
from .store import SQLiteStore
from .usage import UsageLedger

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


@dataclass
class DialogueResult:
    """What a caller receives for one request."""

    meeting_id: str | None
    conversation: list[ConversationTurn]
    conclusion: Conclusion
    cache_hit: bool
    usage_count: int
    category: str
    model_used: str | None = None
    emergency: bool = False
    personalities: list[PersonalityVariant] = field(default_factory=list)


def estimate_tokens(messages: list[dict[str, Any]], response: str) -> int:
    """Rough token count for accounting, from character lengths."""
    chars = sum(len(str(m.get("content", ""))) for m in messages) + len(response)
    return max(1, chars // CHARS_PER_TOKEN)


class DialogueService:
    """Serve a meeting for a user's personality and concern."""

    def __init__(
        self,
        ledger: UsageLedger,
        cache: MeetingReuseCache,
        router: ModelRouter,
        orchestrator: RetryOrchestrator,
        provider: LLMProvider,
        prompt_builder: DialoguePromptBuilder | None = None,
        *,
        request_timeout: float = 300.0,
        temperature: float = 0.8,
        max_tokens: int = 2000,
        clock: Callable[[], float] = time.monotonic,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        self.ledger = ledger
        self.cache = cache
        self.router = router
        self.orchestrator = orchestrator
        self.provider = provider
        self.prompt_builder = prompt_builder or DialoguePromptBuilder()
        self.request_timeout = request_timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._clock = clock
        self._events = event_logger

    async def generate_or_reuse_dialogue(
        self,
        user_id: str,
        traits: TraitVector,
        gender: str,
        concern: str,
        concern_category: str | None = None,
    ) -> DialogueResult:
        """Return a reused or freshly generated meeting for the user.

        Args:
            user_id: The requesting user.
            traits: The user's base trait vector.
            gender: Gender token used in the personality key.
            concern: Free-text concern.
            concern_category: Category; detected from the concern if None.

        Returns:
            DialogueResult. When no model could produce a dialogue the
            canned emergency dialogue is returned and nothing is cached.

        Raises:
            TimeoutError: If the whole request exceeds request_timeout.
            UsageLimitExceededError: If a free user has no meetings left.
        """
        try:
            return await asyncio.wait_for(
                self._handle(user_id, traits, gender, concern, concern_category),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Request for %s timed out after %.1fs", user_id, self.request_timeout)
            if self._events is not None:
                self._events.log("request_timeout", user_id=user_id, error=str(e) or "timeout")
            raise TimeoutError(f"Request exceeded {self.request_timeout}s") from e

    def _resolve_category(self, concern: str, concern_category: str | None) -> str:
        if concern_category is None:
            return detect_concern_category(concern)
        if not is_known_category(concern_category):
            logger.warning("Unknown concern category %r, using %s", concern_category, OTHER)
            return OTHER
        return concern_category

    async def _handle(
        self,
        user_id: str,
        traits: TraitVector,
        gender: str,
        concern: str,
        concern_category: str | None,
    ) -> DialogueResult:
        started = self._clock()
        deadline = started + self.request_timeout

        try:
            access = await self.ledger.consume_meeting(user_id)
        except UsageLimitExceededError as e:
            if self._events is not None:
                self._events.log("usage_limit", user_id=user_id, error=str(e))
            raise
        usage = access.usage
        personalities = derive_personalities(traits, gender)
        key = encode_key(traits, gender)
        category = self._resolve_category(concern, concern_category)

        await self.cache.record_profile(user_id, traits)
        similar = self.cache.count_similar_users(traits, exclude_user_id=user_id)

        accounting: dict[str, Any] = {}

        async def generate(variants: list[PersonalityVariant] | None, text: str) -> GeneratedDialogue:
            variants = variants or personalities
            messages = self.prompt_builder.build_messages(text, category, variants, similar)
            selection = await self.router.select_or_baseline(
                user_id, TaskType.MEETING, estimated_tokens=self.max_tokens
            )
            outcome = await self.orchestrator.execute(
                selection.chain,
                lambda model: self.provider.complete(
                    model, messages, self.max_tokens, self.temperature
                ),
                deadline=deadline,
            )
            conversation, conclusion = self.prompt_builder.parse_response(outcome.response, variants)
            tokens = estimate_tokens(messages, outcome.response)
            accounting["tokens"] = tokens
            accounting["cost_usd"] = estimate_cost(outcome.model_used, tokens)
            return GeneratedDialogue(
                conversation=conversation,
                conclusion=conclusion,
                model_used=outcome.model_used,
                fallback_used=outcome.fallback_used,
            )

        try:
            record, cache_hit = await self.cache.get_or_create(
                key, category, concern, generate, personalities, similar
            )
        except (AllModelsExhaustedError, DialogueParseError) as e:
            logger.error("Serving emergency dialogue for %s (%s): %s", key, category, e)
            dialogue = emergency_dialogue(category, personalities)
            if self._events is not None:
                self._events.log_generation(
                    user_id,
                    model=None,
                    duration_ms=(self._clock() - started) * 1000,
                    cache_hit=False,
                    emergency=True,
                    error=str(e),
                )
            return DialogueResult(
                meeting_id=None,
                conversation=dialogue.conversation,
                conclusion=dialogue.conclusion,
                cache_hit=False,
                usage_count=0,
                category=category,
                model_used=None,
                emergency=True,
                personalities=personalities,
            )

        await self.cache.record_history(user_id, record, concern, cache_hit)

        if accounting:
            updated = await self.ledger.record_generation(
                user_id, accounting["tokens"], accounting["cost_usd"]
            )
            if self._events is not None:
                self._events.log_usage(
                    user_id,
                    chat_count_today=updated.chat_count_today,
                    tier=updated.tier,
                    tokens=accounting["tokens"],
                    cost_usd=accounting["cost_usd"],
                )

        if self._events is not None:
            self._events.log_generation(
                user_id,
                model=record.model_used,
                duration_ms=(self._clock() - started) * 1000,
                cache_hit=cache_hit,
                fallback_used=record.fallback_used,
            )
        logger.info(
            "Served %s for %s (hit=%s, chats today=%d)",
            record.id,
            user_id,
            cache_hit,
            usage.chat_count_today,
        )

        return DialogueResult(
            meeting_id=record.id,
            conversation=record.conversation,
            conclusion=record.conclusion,
            cache_hit=cache_hit,
            usage_count=record.usage_count,
            category=category,
            model_used=record.model_used,
            emergency=False,
            personalities=personalities,
        )


def build_service(
    config: ServiceConfig,
    client: AsyncGroq,
    event_logger: JSONLLogger | None = None,
) -> DialogueService:
    """Wire a DialogueService from configuration.

    Args:
        config: Service configuration.
        client: AsyncGroq client used for completions.
        event_logger: JSONL logger; none if omitted.
    """
    store = SQLiteStore(config.db_path)
    store.init_db()

    ledger = UsageLedger(
        store,
        ad_frequency=config.ad_frequency,
        ad_reward_credits=config.ad_reward_credits,
        free_meeting_allowance=config.free_meeting_allowance,
        meeting_credit_cost=config.meeting_credit_cost,
    )
    cache = MeetingReuseCache(
        store,
        poll_interval=config.cache_poll_interval,
        wait_timeout=config.cache_wait_timeout,
        similarity_threshold=config.similarity_threshold,
        event_logger=event_logger,
    )
    router = ModelRouter(ledger, tier_models=build_tier_models(config.tier_overrides))
    orchestrator = RetryOrchestrator(
        RetryPolicy(
            max_retries=config.max_retries,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            server_error_delay=config.server_error_delay,
            network_error_delay=config.network_error_delay,
        ),
        call_timeout=config.call_timeout,
        event_logger=event_logger,
    )
    return DialogueService(
        ledger,
        cache,
        router,
        orchestrator,
        GroqLLMClient(client, timeout=config.call_timeout),
        request_timeout=config.request_timeout,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        event_logger=event_logger,
    )
