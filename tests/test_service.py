"""End-to-end tests for DialogueService."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from sixvoices.config import ServiceConfig
from sixvoices.errors import QuotaExceededError, RateLimitError, UsageLimitExceededError
from sixvoices.meeting import MeetingReuseCache, meeting_id_for
from sixvoices.meeting.cache import MEETINGS_COLLECTION
from sixvoices.personality import PersonalityRole, TraitVector
from sixvoices.routing import ModelRouter, RetryOrchestrator, RetryPolicy
from sixvoices.routing.tiers import BASELINE_MODEL, MID_MODEL, PREMIUM, PREMIUM_MODEL
from sixvoices.service import DialogueService, build_service, estimate_tokens
from sixvoices.store import SQLiteStore
from sixvoices.usage import UsageLedger

TRAITS = TraitVector(4, 2, 5, 3, 2)
KEY = "O4_C2_E5_A3_N2_female"
ROLES = [role.value for role in PersonalityRole]


def model_output(tag: str = "A") -> str:
    data = {
        "rounds": [
            {
                "roundNumber": 1,
                "messages": [{"characterId": r, "text": f"{tag}: {r} speaks"} for r in ROLES],
            }
        ],
        "conclusion": {
            "summary": f"{tag} summary",
            "recommendations": ["Reflect"],
            "nextSteps": ["Act"],
        },
    }
    return "```json\n" + json.dumps(data) + "\n```"


@pytest.fixture
def store(tmp_path: Path) -> SQLiteStore:
    store = SQLiteStore(tmp_path / "service.db")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def provider() -> MagicMock:
    provider = MagicMock()
    provider.complete = AsyncMock(return_value=model_output())
    return provider


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(store: SQLiteStore, provider: MagicMock, sleep: AsyncMock) -> DialogueService:
    ledger = UsageLedger(store, free_meeting_allowance=10, sleep=sleep)
    cache = MeetingReuseCache(store, poll_interval=0.01)
    router = ModelRouter(ledger)
    orchestrator = RetryOrchestrator(RetryPolicy(max_retries=2), sleep=sleep)
    return DialogueService(ledger, cache, router, orchestrator, provider, request_timeout=5.0)


class TestGenerateOrReuse:
    """Tests for the main request flow."""

    @pytest.mark.asyncio
    async def test_example_scenario(self, service: DialogueService, provider: MagicMock):
        first = await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")
        second = await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")

        assert first.meeting_id == meeting_id_for(KEY, "career")
        assert first.cache_hit is False
        assert first.usage_count == 1
        assert second.cache_hit is True
        assert second.usage_count == 2
        assert second.meeting_id == first.meeting_id
        assert second.conversation == first.conversation
        assert second.conclusion == first.conclusion
        assert provider.complete.await_count == 1

        opposite = next(p for p in first.personalities if p.id == "opposite")
        assert opposite.traits.as_tuple() == (2, 4, 1, 3, 4)

    @pytest.mark.asyncio
    async def test_free_user_uses_free_model(self, service: DialogueService, provider: MagicMock):
        result = await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")

        assert result.model_used == MID_MODEL
        model, messages, max_tokens, temperature = provider.complete.await_args.args
        assert model == MID_MODEL
        assert messages[0]["role"] == "system"
        assert "career change" in messages[1]["content"]
        assert max_tokens == 2000
        assert temperature == 0.8

    @pytest.mark.asyncio
    async def test_premium_user_uses_premium_model(self, service: DialogueService, provider: MagicMock):
        await service.ledger.set_subscription("vip", PREMIUM, datetime.now(timezone.utc) + timedelta(days=7))

        result = await service.generate_or_reuse_dialogue("vip", TRAITS, "female", "career change", "career")

        assert result.model_used == PREMIUM_MODEL

    @pytest.mark.asyncio
    async def test_category_detected_when_omitted(self, service: DialogueService):
        result = await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "Thinking about a career change")
        assert result.category == "career"

    @pytest.mark.asyncio
    async def test_unknown_category_becomes_other(self, service: DialogueService):
        result = await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "hmm", "astrology")
        assert result.category == "other"

    @pytest.mark.asyncio
    async def test_different_users_share_meeting(self, service: DialogueService, provider: MagicMock):
        await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")
        result = await service.generate_or_reuse_dialogue("u2", TRAITS, "female", "my job", "career")

        assert result.cache_hit is True
        assert provider.complete.await_count == 1

    @pytest.mark.asyncio
    async def test_accounting(self, service: DialogueService):
        await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")
        await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")

        usage = await service.ledger.get_usage("u1")
        assert usage.chat_count_today == 2
        assert usage.total_tokens > 0
        assert usage.total_cost_usd > 0

        history = service.cache.list_history("u1")
        assert len(history) == 2
        assert sorted(h["cache_hit"] for h in history) == [False, True]

    @pytest.mark.asyncio
    async def test_reuse_records_no_tokens(self, service: DialogueService):
        await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")
        await service.generate_or_reuse_dialogue("u2", TRAITS, "female", "career change", "career")

        assert (await service.ledger.get_usage("u2")).total_tokens == 0

    @pytest.mark.asyncio
    async def test_fallback_model(self, service: DialogueService, provider: MagicMock, sleep: AsyncMock):
        provider.complete.side_effect = [RateLimitError("busy"), RateLimitError("busy"), model_output("B")]

        result = await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")

        assert result.model_used == BASELINE_MODEL
        assert result.emergency is False
        assert [c.args[0] for c in sleep.await_args_list] == [1.0]

    @pytest.mark.asyncio
    async def test_concurrent_requests_generate_once(self, service: DialogueService, provider: MagicMock):
        async def slow(*args):
            await asyncio.sleep(0.05)
            return model_output()

        provider.complete.side_effect = slow

        results = await asyncio.gather(
            *(
                service.generate_or_reuse_dialogue(f"u{i}", TRAITS, "female", "career change", "career")
                for i in range(6)
            )
        )

        assert provider.complete.await_count == 1
        assert [r.cache_hit for r in results].count(False) == 1
        assert max(r.usage_count for r in results) == 6


class TestUsageLimits:
    """Tests for the free-tier meeting allowance."""

    @pytest.fixture
    def gated(self, store: SQLiteStore, provider: MagicMock, sleep: AsyncMock) -> DialogueService:
        ledger = UsageLedger(store, free_meeting_allowance=1, meeting_credit_cost=5, sleep=sleep)
        return DialogueService(
            ledger,
            MeetingReuseCache(store, poll_interval=0.01),
            ModelRouter(ledger),
            RetryOrchestrator(RetryPolicy(max_retries=2), sleep=sleep),
            provider,
            request_timeout=5.0,
        )

    @pytest.mark.asyncio
    async def test_free_user_refused_after_first_meeting(self, gated: DialogueService, provider: MagicMock):
        await gated.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")

        with pytest.raises(UsageLimitExceededError):
            await gated.generate_or_reuse_dialogue("u1", TRAITS, "female", "money worries", "money")

        assert provider.complete.await_count == 1
        assert len(gated.cache.list_history("u1")) == 1
        assert (await gated.ledger.get_usage("u1")).chat_count_today == 1

    @pytest.mark.asyncio
    async def test_ad_credits_unlock_another_meeting(self, gated: DialogueService):
        await gated.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")
        await gated.ledger.grant_ad_credit("u1", 5)

        result = await gated.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")

        assert result.cache_hit is True
        assert (await gated.ledger.get_usage("u1")).ad_earned_credits == 0

    @pytest.mark.asyncio
    async def test_premium_user_not_limited(self, gated: DialogueService):
        await gated.ledger.set_subscription("vip", PREMIUM, datetime.now(timezone.utc) + timedelta(days=7))

        for category in ("career", "money", "romance"):
            result = await gated.generate_or_reuse_dialogue("vip", TRAITS, "female", "x", category)
            assert result.emergency is False

    @pytest.mark.asyncio
    async def test_refusal_is_logged(self, store: SQLiteStore, provider: MagicMock, sleep: AsyncMock):
        event_logger = MagicMock()
        ledger = UsageLedger(store, free_meeting_allowance=0, sleep=sleep)
        service = DialogueService(
            ledger,
            MeetingReuseCache(store),
            ModelRouter(ledger),
            RetryOrchestrator(sleep=sleep),
            provider,
            event_logger=event_logger,
        )

        with pytest.raises(UsageLimitExceededError):
            await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "x", "career")

        assert event_logger.log.call_args.args[0] == "usage_limit"
        provider.complete.assert_not_awaited()


class TestEmergencyFallback:
    """Tests for the canned dialogue path."""

    @pytest.mark.asyncio
    async def test_exhausted_chain(self, service: DialogueService, provider: MagicMock, store: SQLiteStore):
        provider.complete.side_effect = QuotaExceededError("no quota")

        result = await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")

        assert result.emergency is True
        assert result.meeting_id is None
        assert result.cache_hit is False
        assert result.model_used is None
        assert {t.speaker_role for t in result.conversation} == set(ROLES)
        assert store.get(MEETINGS_COLLECTION, meeting_id_for(KEY, "career")) is None
        # the chat still counts
        assert (await service.ledger.get_usage("u1")).chat_count_today == 1

    @pytest.mark.asyncio
    async def test_emergency_is_not_cached(self, service: DialogueService, provider: MagicMock):
        provider.complete.side_effect = [QuotaExceededError("a"), QuotaExceededError("b")]
        await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")

        provider.complete.side_effect = None
        provider.complete.return_value = model_output("real")
        result = await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")

        assert result.emergency is False
        assert result.cache_hit is False
        assert result.conclusion.summary == "real summary"

    @pytest.mark.asyncio
    async def test_unparseable_output(self, service: DialogueService, provider: MagicMock):
        provider.complete.return_value = "I'd rather not answer in JSON."

        result = await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "career change", "career")

        assert result.emergency is True

    @pytest.mark.asyncio
    async def test_logs_emergency(self, store: SQLiteStore, sleep: AsyncMock):
        event_logger = MagicMock()
        provider = MagicMock()
        provider.complete = AsyncMock(side_effect=QuotaExceededError("no quota"))
        ledger = UsageLedger(store, sleep=sleep)
        service = DialogueService(
            ledger,
            MeetingReuseCache(store),
            ModelRouter(ledger),
            RetryOrchestrator(sleep=sleep),
            provider,
            event_logger=event_logger,
        )

        await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "x", "career")

        kwargs = event_logger.log_generation.call_args.kwargs
        assert kwargs["emergency"] is True
        assert "no quota" in kwargs["error"]


class TestTimeout:
    """Tests for the request deadline."""

    @pytest.mark.asyncio
    async def test_request_timeout(self, store: SQLiteStore, sleep: AsyncMock):
        async def hang(*args):
            await asyncio.sleep(10)

        provider = MagicMock()
        provider.complete = AsyncMock(side_effect=hang)
        ledger = UsageLedger(store, sleep=sleep)
        service = DialogueService(
            ledger,
            MeetingReuseCache(store),
            ModelRouter(ledger),
            RetryOrchestrator(sleep=sleep),
            provider,
            request_timeout=0.05,
        )

        with pytest.raises(TimeoutError):
            await service.generate_or_reuse_dialogue("u1", TRAITS, "female", "x", "career")

        # the claim was released so a later request can generate
        assert store.get(MEETINGS_COLLECTION, meeting_id_for(KEY, "career")) is None


def test_estimate_tokens():
    messages = [{"role": "user", "content": "a" * 400}]
    assert estimate_tokens(messages, "b" * 400) == 200
    assert estimate_tokens([], "") == 1


def test_build_service(tmp_path: Path):
    config = ServiceConfig(db_path=tmp_path / "db" / "sixvoices.db", log_dir=tmp_path / "logs", max_retries=5)

    service = build_service(config, MagicMock())

    assert (tmp_path / "db" / "sixvoices.db").exists()
    assert service.orchestrator.policy.max_retries == 5
    assert service.request_timeout == config.request_timeout
    assert service.cache.poll_interval == config.cache_poll_interval
