"""Transactional document storage."""

from .base import Document, TransactionalStore, retry_on_conflict
from .sqlite import SQLiteStore

__all__ = [
    "Document",
    "SQLiteStore",
    "TransactionalStore",
    "retry_on_conflict",
]
