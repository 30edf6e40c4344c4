"""Transactional store interface and conflict retry helper."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

from ..errors import TransactionConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Document = dict[str, Any]


class TransactionalStore(Protocol):
    """Minimal document store used by the ledger and the meeting cache.

    Every mutation is a single atomic operation against the backing
    store, so several processes can share one store safely.
    """

    def get(self, collection: str, key: str) -> Document | None:
        """Return the document or None."""
        ...

    def conditional_create(self, collection: str, key: str, data: Document) -> bool:
        """Create the document only if absent. Returns True if created."""
        ...

    def atomic_increment(
        self,
        collection: str,
        key: str,
        increments: dict[str, float],
        updates: Document | None = None,
    ) -> Document:
        """Add to numeric fields and set others in one write. Returns the new document."""
        ...

    def transact(
        self,
        collection: str,
        key: str,
        fn: Callable[[Document | None], Document | None],
    ) -> Document | None:
        """Read-modify-write a document inside one transaction."""
        ...

    def delete(self, collection: str, key: str) -> bool:
        """Delete a document. Returns True if one was removed."""
        ...

    def query(self, collection: str, **equals: Any) -> list[Document]:
        """Return documents whose top-level fields equal the given values."""
        ...


async def retry_on_conflict(
    operation: Callable[[], T],
    *,
    attempts: int = 5,
    delay: float = 0.05,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run a store operation, retrying when it loses a write race.

    Args:
        operation: Zero-argument callable performing one store operation.
        attempts: Maximum number of tries.
        delay: Base delay between tries, doubled each time.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        The operation's result.

    Raises:
        TransactionConflictError: If every attempt conflicted.
    """
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except TransactionConflictError:
            if attempt == attempts:
                raise
            logger.debug("Transaction conflict, retry %d/%d", attempt, attempts)
            await sleep(delay * 2 ** (attempt - 1))
    raise TransactionConflictError("retry_on_conflict called with attempts < 1")
