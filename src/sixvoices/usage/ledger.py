"""Per-user daily usage counters, ad credits and tier validation.

The ledger is the only writer of usage records. Every mutation is one
store transaction, so concurrent requests from the same user never lose
or double an increment.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

from ..errors import UsageLimitExceededError
from ..routing.tiers import FREE, PREMIUM, TIERS
from ..store import Document, TransactionalStore, retry_on_conflict

logger = logging.getLogger(__name__)

USAGE_COLLECTION = "usage"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UsageRecord:
    """Daily usage state for one user."""

    user_id: str
    date: str
    chat_count_today: int = 0
    total_chats: int = 0
    ad_earned_credits: int = 0
    tier: str = FREE
    tier_expires_at: str | None = None
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    meetings_used: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UsageRecord":
        """Create from a stored document."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class TierInfo:
    """Effective tier after expiry validation."""

    user_id: str
    tier: str
    expires_at: datetime | None
    is_valid: bool
    usage: UsageRecord


@dataclass(frozen=True)
class AdDisplay:
    """Whether an ad should be shown after the current chat."""

    should_show: bool
    next_threshold_at: int
    chat_count: int
    reward_credits: int = 0


@dataclass(frozen=True)
class MeetingAccess:
    """How a meeting request was admitted.

    ``granted_by`` is "premium", "allowance" or "ad_credits".
    """

    usage: UsageRecord
    tier: str
    granted_by: str


def ad_display_due(chat_count_today: int, frequency: int) -> tuple[bool, int]:
    """Decide ad display from the daily chat count.

    Due exactly when the count is a positive multiple of ``frequency``.

    Returns:
        (should_show, next_threshold_at)
    """
    if frequency < 1:
        raise ValueError("frequency must be at least 1")
    due = chat_count_today > 0 and chat_count_today % frequency == 0
    if due:
        return True, chat_count_today + frequency
    return False, (chat_count_today // frequency + 1) * frequency


class UsageLedger:
    """Transactional per-user usage ledger."""

    def __init__(
        self,
        store: TransactionalStore,
        *,
        ad_frequency: int = 5,
        ad_reward_credits: int = 5,
        free_meeting_allowance: int = 1,
        meeting_credit_cost: int = 5,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the ledger.

        Args:
            store: Backing transactional store.
            ad_frequency: Free users see an ad every N chats.
            ad_reward_credits: Credits suggested as the reward for one ad.
            free_meeting_allowance: Meetings a free user gets without credits.
            meeting_credit_cost: Ad credits spent to unlock one more meeting.
            clock: Returns the current aware datetime; injectable for tests.
            sleep: Awaitable sleep used between conflict retries.
        """
        self.store = store
        self.ad_frequency = ad_frequency
        self.ad_reward_credits = ad_reward_credits
        self.free_meeting_allowance = free_meeting_allowance
        self.meeting_credit_cost = meeting_credit_cost
        self._clock = clock
        self._sleep = sleep

    def today(self) -> str:
        """Current calendar day as YYYY-MM-DD."""
        return self._clock().date().isoformat()

    def _fresh(self, user_id: str, today: str) -> Document:
        return UsageRecord(user_id=user_id, date=today).to_dict()

    def _rolled(self, user_id: str, doc: Document | None, today: str) -> Document:
        """Return the document rolled to today, creating it if needed."""
        if doc is None:
            return self._fresh(user_id, today)
        if doc.get("date") != today:
            logger.debug("Rolling usage for %s from %s to %s", user_id, doc.get("date"), today)
            doc["date"] = today
            doc["chat_count_today"] = 0
        return doc

    async def _transact(self, user_id: str, fn: Callable[[Document | None], Document | None]) -> Document | None:
        return await retry_on_conflict(
            lambda: self.store.transact(USAGE_COLLECTION, user_id, fn),
            sleep=self._sleep,
        )

    async def _apply(self, user_id: str, fn: Callable[[Document | None], Document | None]) -> UsageRecord:
        """Run ``fn`` in a transaction and return the record it leaves behind.

        ``fn`` may return None only for an existing document it keeps as is.
        """
        result: list[Document] = []

        def run(doc: Document | None) -> Document | None:
            result.clear()
            updated = fn(doc)
            kept = updated if updated is not None else doc
            if kept is None:
                raise ValueError(f"usage update for {user_id} produced no record")
            result.append(kept)
            return updated

        await self._transact(user_id, run)
        return UsageRecord.from_dict(result[0])

    async def get_usage(self, user_id: str) -> UsageRecord:
        """Return the user's record rolled to the current day."""
        today = self.today()

        def roll(doc: Document | None) -> Document | None:
            if doc is not None and doc.get("date") == today:
                return None
            return self._rolled(user_id, doc, today)

        return await self._apply(user_id, roll)

    def _effective_tier(self, record: UsageRecord) -> tuple[str, datetime | None, bool]:
        expires_at = (
            datetime.fromisoformat(record.tier_expires_at) if record.tier_expires_at else None
        )
        if record.tier != PREMIUM:
            return FREE, expires_at, False
        if expires_at is not None and self._clock() >= expires_at:
            logger.info("Premium expired for %s at %s", record.user_id, record.tier_expires_at)
            return FREE, expires_at, False
        return PREMIUM, expires_at, True

    async def get_tier(self, user_id: str) -> TierInfo:
        """Validate the subscription and roll usage to today.

        An expired premium tier is reported as free; the stored expiry is
        left untouched so billing can still see it.
        """
        usage = await self.get_usage(user_id)
        tier, expires_at, is_valid = self._effective_tier(usage)
        return TierInfo(
            user_id=user_id,
            tier=tier,
            expires_at=expires_at,
            is_valid=is_valid,
            usage=usage,
        )

    async def consume(self, user_id: str) -> UsageRecord:
        """Count one accepted chat request.

        Rollover and both increments happen in the same transaction.
        """
        today = self.today()

        def increment(doc: Document | None) -> Document:
            doc = self._rolled(user_id, doc, today)
            doc["chat_count_today"] = doc.get("chat_count_today", 0) + 1
            doc["total_chats"] = doc.get("total_chats", 0) + 1
            return doc

        record = await self._apply(user_id, increment)
        logger.debug("Consumed chat for %s (%d today)", user_id, record.chat_count_today)
        return record

    async def consume_meeting(self, user_id: str) -> MeetingAccess:
        """Admit and count one meeting request.

        Premium users are always admitted. Free users get
        ``free_meeting_allowance`` meetings; after that each meeting costs
        ``meeting_credit_cost`` ad credits. The check, the credit spend and
        the counters share one transaction.

        Raises:
            UsageLimitExceededError: If a free user has neither allowance
                nor enough credits left. Nothing is counted.
        """
        today = self.today()
        granted: list[tuple[str, str]] = []

        def admit(doc: Document | None) -> Document:
            granted.clear()
            doc = self._rolled(user_id, doc, today)
            tier, _, _ = self._effective_tier(UsageRecord.from_dict(doc))
            used = doc.get("meetings_used", 0)
            if tier == PREMIUM:
                granted_by = "premium"
            elif used < self.free_meeting_allowance:
                granted_by = "allowance"
            elif doc.get("ad_earned_credits", 0) >= self.meeting_credit_cost:
                doc["ad_earned_credits"] -= self.meeting_credit_cost
                granted_by = "ad_credits"
            else:
                raise UsageLimitExceededError(
                    user_id, used, self.free_meeting_allowance, self.meeting_credit_cost
                )
            doc["meetings_used"] = used + 1
            doc["chat_count_today"] = doc.get("chat_count_today", 0) + 1
            doc["total_chats"] = doc.get("total_chats", 0) + 1
            granted.append((tier, granted_by))
            return doc

        try:
            record = await self._apply(user_id, admit)
        except UsageLimitExceededError:
            logger.info("Refused meeting for %s: allowance and credits used up", user_id)
            raise
        tier, granted_by = granted[0]
        logger.debug("Admitted meeting for %s via %s (%d used)", user_id, granted_by, record.meetings_used)
        return MeetingAccess(usage=record, tier=tier, granted_by=granted_by)

    async def _ensure(self, user_id: str) -> None:
        await retry_on_conflict(
            lambda: self.store.conditional_create(
                USAGE_COLLECTION, user_id, self._fresh(user_id, self.today())
            ),
            sleep=self._sleep,
        )

    async def grant_ad_credit(self, user_id: str, amount: int | None = None) -> UsageRecord:
        """Add ad-earned credits in a transaction of its own."""
        amount = self.ad_reward_credits if amount is None else amount
        if amount <= 0:
            raise ValueError("amount must be positive")
        await self._ensure(user_id)
        doc = await retry_on_conflict(
            lambda: self.store.atomic_increment(
                USAGE_COLLECTION, user_id, {"ad_earned_credits": amount}
            ),
            sleep=self._sleep,
        )
        logger.info("Granted %d ad credits to %s", amount, user_id)
        return UsageRecord.from_dict(doc)

    async def spend_ad_credit(self, user_id: str) -> bool:
        """Spend one ad credit if any are left. Returns True if spent."""
        spent = False

        def decrement(doc: Document | None) -> Document | None:
            nonlocal spent
            spent = False
            if doc is None or doc.get("ad_earned_credits", 0) <= 0:
                return None
            doc["ad_earned_credits"] -= 1
            spent = True
            return doc

        await self._transact(user_id, decrement)
        return spent

    async def check_ad_display_due(self, user_id: str) -> AdDisplay:
        """Report whether an ad is due for the user's current chat count."""
        info = await self.get_tier(user_id)
        count = info.usage.chat_count_today
        if info.tier == PREMIUM:
            return AdDisplay(should_show=False, next_threshold_at=0, chat_count=count)
        should_show, next_at = ad_display_due(count, self.ad_frequency)
        return AdDisplay(
            should_show=should_show,
            next_threshold_at=next_at,
            chat_count=count,
            reward_credits=self.ad_reward_credits if should_show else 0,
        )

    async def set_subscription(
        self, user_id: str, tier: str, expires_at: datetime | None = None
    ) -> UsageRecord:
        """Store the tier reported by the billing component."""
        if tier not in TIERS:
            raise ValueError(f"Unknown tier: {tier}")
        if expires_at is not None and expires_at.tzinfo is None:
            raise ValueError("expires_at must be timezone-aware")
        today = self.today()

        def apply(doc: Document | None) -> Document:
            doc = self._rolled(user_id, doc, today)
            doc["tier"] = tier
            doc["tier_expires_at"] = expires_at.isoformat() if expires_at else None
            return doc

        return await self._apply(user_id, apply)

    async def record_generation(self, user_id: str, tokens: int, cost_usd: float) -> UsageRecord:
        """Add token and cost accounting for a finished generation."""
        await self._ensure(user_id)
        doc = await retry_on_conflict(
            lambda: self.store.atomic_increment(
                USAGE_COLLECTION,
                user_id,
                {"total_tokens": tokens, "total_cost_usd": cost_usd},
            ),
            sleep=self._sleep,
        )
        return UsageRecord.from_dict(doc)
