"""SQLite implementation of the transactional document store."""

import json
import re
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..errors import TransactionConflictError
from .base import Document

FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLiteStore:
    """Document store backed by a single SQLite table.

    Documents are JSON objects addressed by (collection, key). Writes run
    inside ``BEGIN IMMEDIATE`` transactions, so concurrent writers on the
    same database file serialize and a lost race surfaces as
    TransactionConflictError.
    """

    def __init__(self, db_path: Path | str, timeout: float = 5.0) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
            timeout: Seconds to wait on a locked database before giving up.
        """
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; transactions are opened explicitly.
            self._conn = sqlite3.connect(
                str(self.db_path), timeout=self.timeout, isolation_level=None
            )
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the documents table if it doesn't exist."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                collection  TEXT NOT NULL,
                key         TEXT NOT NULL,
                data        TEXT NOT NULL,
                created_at  TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at  TEXT NOT NULL DEFAULT (datetime('now')),
                PRIMARY KEY (collection, key)
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)"
        )

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction, mapping lock failures to conflicts."""
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            raise TransactionConflictError(str(e)) from e
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        try:
            conn.execute("COMMIT")
        except sqlite3.OperationalError as e:
            conn.execute("ROLLBACK")
            raise TransactionConflictError(str(e)) from e

    def _read(self, conn: sqlite3.Connection, collection: str, key: str) -> Document | None:
        row = conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND key = ?",
            (collection, key),
        ).fetchone()
        return json.loads(row["data"]) if row else None

    def _write(
        self, conn: sqlite3.Connection, collection: str, key: str, data: Document
    ) -> None:
        conn.execute(
            """
            INSERT INTO documents (collection, key, data)
            VALUES (?, ?, ?)
            ON CONFLICT(collection, key) DO UPDATE SET
                data = excluded.data,
                updated_at = datetime('now')
            """,
            (collection, key, json.dumps(data, ensure_ascii=False)),
        )

    def get(self, collection: str, key: str) -> Document | None:
        """Get a document by key.

        Returns:
            The document, or None if it does not exist.
        """
        return self._read(self._get_connection(), collection, key)

    def conditional_create(self, collection: str, key: str, data: Document) -> bool:
        """Insert a document unless one already exists under the key.

        Returns:
            True if this call created the document, False if it existed.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO documents (collection, key, data)
                VALUES (?, ?, ?)
                ON CONFLICT(collection, key) DO NOTHING
                """,
                (collection, key, json.dumps(data, ensure_ascii=False)),
            )
            return cursor.rowcount == 1

    def atomic_increment(
        self,
        collection: str,
        key: str,
        increments: dict[str, float],
        updates: Document | None = None,
    ) -> Document:
        """Increment numeric fields of an existing document.

        Args:
            collection: Collection name.
            key: Document key.
            increments: Field deltas; missing fields start at 0.
            updates: Extra fields to overwrite in the same write.

        Returns:
            The updated document.

        Raises:
            KeyError: If the document does not exist.
        """
        with self._transaction() as conn:
            data = self._read(conn, collection, key)
            if data is None:
                raise KeyError(f"{collection}/{key}")
            for field, delta in increments.items():
                data[field] = data.get(field, 0) + delta
            if updates:
                data.update(updates)
            self._write(conn, collection, key, data)
            return data

    def transact(
        self,
        collection: str,
        key: str,
        fn: Callable[[Document | None], Document | None],
    ) -> Document | None:
        """Run a read-modify-write on one document atomically.

        ``fn`` receives the current document (or None) and returns the
        document to store, or None to leave it unchanged.

        Returns:
            The stored document after the transaction, or None if absent.
        """
        with self._transaction() as conn:
            current = self._read(conn, collection, key)
            updated = fn(None if current is None else dict(current))
            if updated is None:
                return current
            self._write(conn, collection, key, updated)
            return updated

    def delete(self, collection: str, key: str) -> bool:
        """Delete a document by key.

        Returns:
            True if a document was deleted, False otherwise.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND key = ?",
                (collection, key),
            )
            return cursor.rowcount > 0

    def query(self, collection: str, **equals: Any) -> list[Document]:
        """Get documents whose top-level fields equal the given values."""
        sql = "SELECT data FROM documents WHERE collection = ?"
        params: list[Any] = [collection]
        for field, value in equals.items():
            if not FIELD_PATTERN.match(field):
                raise ValueError(f"Invalid field name: {field}")
            sql += " AND json_extract(data, ?) = ?"
            params.extend([f"$.{field}", value])
        sql += " ORDER BY created_at, key"
        rows = self._get_connection().execute(sql, params).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
