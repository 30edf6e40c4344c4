"""Reuse cache for generated meetings.

A meeting is identified by ``(personality_key, concern_category)``. The
first caller for an identity claims it by creating a pending placeholder
and generates the dialogue; every other caller reuses the stored record
and bumps its usage count. At most one generation runs per identity, even
across processes sharing the store. A claim left pending for longer than
the wait timeout is treated as abandoned and taken over by one waiter.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from ..errors import InvalidRatingError, MeetingNotFoundError, TransactionConflictError
from ..logging import JSONLLogger
from ..personality import PersonalityVariant, TraitVector
from ..store import Document, TransactionalStore, retry_on_conflict
from .models import GeneratedDialogue, MeetingRatings, MeetingRecord

logger = logging.getLogger(__name__)

MEETINGS_COLLECTION = "meetings"
PROFILES_COLLECTION = "profiles"
HISTORY_COLLECTION = "history"

PENDING = "pending"
READY = "ready"

GenerateFn = Callable[[list[PersonalityVariant] | None, str], Awaitable[GeneratedDialogue]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def meeting_id_for(personality_key: str, concern_category: str) -> str:
    """Document id of the meeting for one identity."""
    return f"{personality_key}:{concern_category}"


def similarity_score(a: TraitVector, b: TraitVector) -> float:
    """Similarity of two trait vectors in [0, 1].

    1.0 means identical; 0.0 means every trait is 4 points apart.
    """
    distance = sum(abs(x - y) for x, y in zip(a.as_tuple(), b.as_tuple()))
    return 1.0 - distance / 20.0


class MeetingReuseCache:
    """Meeting storage with single-flight generation per identity."""

    def __init__(
        self,
        store: TransactionalStore,
        *,
        poll_interval: float = 0.5,
        wait_timeout: float = 120.0,
        similarity_threshold: float = 0.8,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            store: Backing transactional store.
            poll_interval: Seconds between checks while another caller generates.
            wait_timeout: Give up waiting for another caller after this many seconds.
            similarity_threshold: Default minimum score for count_similar_users.
            clock: Returns the current aware datetime; injectable for tests.
            sleep: Awaitable sleep; injectable for tests.
            event_logger: Optional JSONL logger for cache decisions.
        """
        self.store = store
        self.poll_interval = poll_interval
        self.wait_timeout = wait_timeout
        self.similarity_threshold = similarity_threshold
        self._clock = clock
        self._sleep = sleep
        self._events = event_logger

    def _now(self) -> str:
        return self._clock().isoformat()

    async def get_or_create(
        self,
        personality_key: str,
        concern_category: str,
        concern: str,
        generate_fn: GenerateFn,
        personalities: list[PersonalityVariant] | None = None,
        similar_user_count: int = 0,
    ) -> tuple[MeetingRecord, bool]:
        """Return the meeting for an identity, generating it on first use.

        Args:
            personality_key: Encoded personality key.
            concern_category: Concern category.
            concern: Free-text concern, passed to ``generate_fn`` on a miss.
            generate_fn: Async callable ``(personalities, concern)`` producing the dialogue.
            personalities: Participants, passed through to ``generate_fn``.
            similar_user_count: Stored on a newly generated record.

        Returns:
            (meeting record, cache_hit)

        Raises:
            TimeoutError: If another caller's generation did not finish in time.
            Exception: Whatever ``generate_fn`` raised, after releasing the claim.
        """
        meeting_id = meeting_id_for(personality_key, concern_category)

        while True:
            doc = self.store.get(MEETINGS_COLLECTION, meeting_id)

            if doc is not None and doc.get("status") == READY:
                record = await self._reuse(meeting_id)
                if record is not None:
                    self._log_decision(record, cache_hit=True)
                    return record, True
                continue

            claim_id: str | None = None
            if doc is None:
                claim_id = uuid.uuid4().hex
                placeholder = {
                    "id": meeting_id,
                    "personality_key": personality_key,
                    "concern_category": concern_category,
                    "status": PENDING,
                    "claim_id": claim_id,
                    "claimed_at": self._now(),
                }
                claimed = await retry_on_conflict(
                    lambda: self.store.conditional_create(MEETINGS_COLLECTION, meeting_id, placeholder),
                    sleep=self._sleep,
                )
                if not claimed:
                    logger.debug("Lost claim race for %s", meeting_id)
                    continue
            else:
                claim_id = await self._wait_for_claim(meeting_id)
                if claim_id is None:
                    continue

            record = await self._generate(
                meeting_id,
                claim_id,
                personality_key,
                concern_category,
                concern,
                generate_fn,
                personalities,
                similar_user_count,
            )
            self._log_decision(record, cache_hit=False)
            return record, False

    async def _reuse(self, meeting_id: str) -> MeetingRecord | None:
        """Increment the usage count of a ready record."""
        try:
            data = await retry_on_conflict(
                lambda: self.store.atomic_increment(
                    MEETINGS_COLLECTION,
                    meeting_id,
                    {"usage_count": 1},
                    {"last_used_at": self._now()},
                ),
                sleep=self._sleep,
            )
        except KeyError:
            logger.debug("Meeting %s vanished before reuse", meeting_id)
            return None
        return MeetingRecord.from_dict(data)

    async def _release(self, meeting_id: str, claim_id: str) -> None:
        """Delete a pending claim if this caller still holds it."""
        doc = self.store.get(MEETINGS_COLLECTION, meeting_id)
        if doc is None or doc.get("status") != PENDING or doc.get("claim_id") != claim_id:
            logger.debug("Claim on %s already taken over, nothing to release", meeting_id)
            return
        await retry_on_conflict(
            lambda: self.store.delete(MEETINGS_COLLECTION, meeting_id),
            sleep=self._sleep,
        )

    async def _generate(
        self,
        meeting_id: str,
        claim_id: str,
        personality_key: str,
        concern_category: str,
        concern: str,
        generate_fn: GenerateFn,
        personalities: list[PersonalityVariant] | None,
        similar_user_count: int,
    ) -> MeetingRecord:
        """Run generation for a claimed identity and store the result.

        If generation fails the claim is released and the generation error
        is re-raised. A claim that cannot be released is left for waiters to
        take over once it goes stale.
        """
        try:
            dialogue = await generate_fn(personalities, concern)
        except BaseException:
            logger.warning("Generation failed for %s, releasing claim", meeting_id)
            try:
                await self._release(meeting_id, claim_id)
            except TransactionConflictError as e:
                logger.error("Could not release claim on %s: %s", meeting_id, e)
            raise

        now = self._now()
        record = MeetingRecord(
            id=meeting_id,
            personality_key=personality_key,
            concern_category=concern_category,
            conversation=list(dialogue.conversation),
            conclusion=dialogue.conclusion,
            similar_user_count=similar_user_count,
            usage_count=1,
            created_at=now,
            last_used_at=now,
            model_used=dialogue.model_used,
            fallback_used=dialogue.fallback_used,
            status=READY,
        )
        written = False

        def complete(doc: Document | None) -> Document | None:
            nonlocal written
            # A stale-claim takeover may already have stored the meeting.
            if doc is not None and doc.get("status") == READY:
                written = False
                return None
            written = True
            return record.to_dict()

        stored = await retry_on_conflict(
            lambda: self.store.transact(MEETINGS_COLLECTION, meeting_id, complete),
            sleep=self._sleep,
        )
        if not written and stored is not None:
            logger.warning("Meeting %s was completed by another claimant, keeping theirs", meeting_id)
            return MeetingRecord.from_dict(stored)
        logger.info("Stored meeting %s (model=%s)", meeting_id, dialogue.model_used)
        return record

    def _is_stale(self, doc: Document) -> bool:
        """Whether a pending claim is older than wait_timeout."""
        try:
            claimed_at = datetime.fromisoformat(doc["claimed_at"])
        except (KeyError, TypeError, ValueError):
            return True
        if claimed_at.tzinfo is None:
            claimed_at = claimed_at.replace(tzinfo=timezone.utc)
        return (self._clock() - claimed_at).total_seconds() >= self.wait_timeout

    def _take_over(self, meeting_id: str, seen: Document) -> str | None:
        """Replace a stale claim with a new one, compare-and-swap on the claim.

        Returns:
            The new claim id, or None if the claim changed since ``seen``.
        """
        claim_id = uuid.uuid4().hex

        def swap(doc: Document | None) -> Document | None:
            if (
                doc is None
                or doc.get("status") != PENDING
                or doc.get("claim_id") != seen.get("claim_id")
                or doc.get("claimed_at") != seen.get("claimed_at")
            ):
                return None
            doc["claim_id"] = claim_id
            doc["claimed_at"] = self._now()
            return doc

        stored = self.store.transact(MEETINGS_COLLECTION, meeting_id, swap)
        if stored is not None and stored.get("claim_id") == claim_id:
            return claim_id
        return None

    async def _wait_for_claim(self, meeting_id: str) -> str | None:
        """Poll until a pending claim is completed, released or goes stale.

        Returns:
            A claim id when this caller took over a stale claim and must
            generate, otherwise None.

        Raises:
            TimeoutError: If the claim stays pending and fresh for wait_timeout.
        """
        waited = 0.0
        while True:
            doc = self.store.get(MEETINGS_COLLECTION, meeting_id)
            if doc is None or doc.get("status") != PENDING:
                return None
            if self._is_stale(doc):
                claim_id = await retry_on_conflict(
                    lambda: self._take_over(meeting_id, doc),
                    sleep=self._sleep,
                )
                if claim_id is not None:
                    logger.warning("Took over stale claim on %s (claimed_at=%s)", meeting_id, doc.get("claimed_at"))
                    return claim_id
                continue
            if waited >= self.wait_timeout:
                raise TimeoutError(f"Timed out waiting for meeting {meeting_id}")
            await self._sleep(self.poll_interval)
            waited += self.poll_interval

    def _log_decision(self, record: MeetingRecord, cache_hit: bool) -> None:
        logger.info(
            "Meeting %s %s (usage_count=%d)",
            record.id,
            "reused" if cache_hit else "generated",
            record.usage_count,
        )
        if self._events is not None:
            self._events.log_cache_decision(
                record.personality_key,
                record.concern_category,
                cache_hit,
                meeting_id=record.id,
                usage_count=record.usage_count,
            )

    def get(self, meeting_id: str) -> MeetingRecord:
        """Get a completed meeting.

        Raises:
            MeetingNotFoundError: If no completed meeting has this id.
        """
        doc = self.store.get(MEETINGS_COLLECTION, meeting_id)
        if doc is None or doc.get("status") != READY:
            raise MeetingNotFoundError(f"Meeting not found: {meeting_id}")
        return MeetingRecord.from_dict(doc)

    async def rate(self, meeting_id: str, rating: int) -> MeetingRecord:
        """Add a 1-5 rating to a meeting's aggregate.

        Raises:
            InvalidRatingError: If rating is not an int in [1, 5].
            MeetingNotFoundError: If the meeting does not exist.
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise InvalidRatingError(f"Rating must be an integer from 1 to 5, got {rating!r}")

        def add_rating(doc: Document | None) -> Document:
            if doc is None or doc.get("status") != READY:
                raise MeetingNotFoundError(f"Meeting not found: {meeting_id}")
            ratings = MeetingRatings(**doc.get("ratings", {}))
            total = ratings.total_ratings + 1
            rating_sum = ratings.rating_sum + rating
            doc["ratings"] = {
                "total_ratings": total,
                "rating_sum": rating_sum,
                "avg_rating": round(rating_sum / total, 2),
            }
            return doc

        data = await retry_on_conflict(
            lambda: self.store.transact(MEETINGS_COLLECTION, meeting_id, add_rating),
            sleep=self._sleep,
        )
        return MeetingRecord.from_dict(data)

    async def record_profile(self, user_id: str, traits: TraitVector) -> None:
        """Remember a user's base traits for similarity counts."""
        data = {"user_id": user_id, "traits": traits.to_dict(), "updated_at": self._now()}
        await retry_on_conflict(
            lambda: self.store.transact(PROFILES_COLLECTION, user_id, lambda _: data),
            sleep=self._sleep,
        )

    def count_similar_users(
        self,
        traits: TraitVector,
        min_similarity: float | None = None,
        exclude_user_id: str | None = None,
    ) -> int:
        """Count known profiles at least ``min_similarity`` similar to ``traits``."""
        threshold = self.similarity_threshold if min_similarity is None else min_similarity
        count = 0
        for profile in self.store.query(PROFILES_COLLECTION):
            if profile.get("user_id") == exclude_user_id:
                continue
            other = TraitVector.from_dict(profile["traits"])
            if similarity_score(traits, other) >= threshold:
                count += 1
        return count

    async def record_history(
        self,
        user_id: str,
        meeting: MeetingRecord,
        concern: str,
        cache_hit: bool,
    ) -> Document:
        """Append an entry to a user's meeting history."""
        entry_id = uuid.uuid4().hex
        data = {
            "id": entry_id,
            "user_id": user_id,
            "meeting_id": meeting.id,
            "personality_key": meeting.personality_key,
            "concern_category": meeting.concern_category,
            "concern": concern,
            "cache_hit": cache_hit,
            "created_at": self._now(),
        }
        await retry_on_conflict(
            lambda: self.store.conditional_create(HISTORY_COLLECTION, entry_id, data),
            sleep=self._sleep,
        )
        return data

    def list_history(self, user_id: str, limit: int = 20) -> list[dict[str, Any]]:
        """Most recent history entries for a user, newest first."""
        entries = self.store.query(HISTORY_COLLECTION, user_id=user_id)
        entries.sort(key=lambda e: e.get("created_at", ""), reverse=True)
        return entries[:limit]
