"""
Record index: keyed storage for Item metadata.

The store talks to the index only through the RecordIndex protocol, so any
backend offering keyed get/insert/delete and an expiry query can be used.
SqliteRecordIndex is the embedded default.
"""

from __future__ import annotations

import sqlite3
import threading
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import ValidationError

from item_store.core.exceptions import StorageEngineError
from item_store.logging import get_logger
from item_store.schemas import Item

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime
    from pathlib import Path

logger = get_logger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS items (
        id TEXT PRIMARY KEY,
        expires REAL NOT NULL,
        data TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_items_expires ON items (expires)",
)


@runtime_checkable
class RecordIndex(Protocol):
    """
    Record index protocol.

    Implementations raise StorageEngineError for every backend failure.
    Absence is never an error: ``get`` returns None and ``delete`` returns
    False.
    """

    def get(self, item_id: str) -> Item | None:
        """Return the Item stored under ``item_id`` or None."""
        ...

    def insert(self, item: Item) -> None:
        """Insert a new Item. Fails if the ID is already present."""
        ...

    def delete(self, item_id: str) -> bool:
        """Delete an Item by ID. Return ``True`` when a record was removed."""
        ...

    def find_expired_before(self, cutoff: datetime) -> list[Item]:
        """Return all Items whose ``expires`` is strictly earlier than ``cutoff``."""
        ...

    def ids(self) -> set[str]:
        """Return every stored ID."""
        ...

    def count(self) -> int:
        """Return the number of stored records."""
        ...

    def close(self) -> None:
        """Release backend resources."""
        ...


class SqliteRecordIndex:
    """
    Record index backed by a single SQLite database file.

    One connection is shared by all threads and serialised with a lock,
    which gives per-key atomicity for every operation. Items are stored as
    JSON next to an indexed ``expires`` column for the expiry query.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(
                str(db_path),
                check_same_thread=False,
                timeout=10.0,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            with self._conn:
                for statement in _SCHEMA:
                    self._conn.execute(statement)
        except sqlite3.Error as e:
            raise StorageEngineError("open", str(e), {"path": str(db_path)}) from e

        logger.debug("Opened record index", extra={"path": str(db_path)})

    @property
    def path(self) -> Path:
        """Return the database file path."""
        return self._db_path

    def _decode(self, row_id: str, data: str) -> Item:
        try:
            return Item.model_validate_json(data)
        except ValidationError as e:
            raise StorageEngineError("decode", str(e), {"id": row_id}) from e

    def _rows(self, operation: str, query: str, params: tuple[object, ...] = ()) -> Iterator[tuple]:
        try:
            with self._lock:
                rows = self._conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StorageEngineError(operation, str(e)) from e
        return iter(rows)

    def get(self, item_id: str) -> Item | None:
        """Return the Item stored under ``item_id`` or None."""
        for row_id, data in self._rows("get", "SELECT id, data FROM items WHERE id = ?", (item_id,)):
            return self._decode(row_id, data)
        return None

    def insert(self, item: Item) -> None:
        """Insert a new Item. Raises StorageEngineError if the ID exists."""
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT INTO items (id, expires, data) VALUES (?, ?, ?)",
                    (item.id, item.expires.timestamp(), item.model_dump_json()),
                )
        except sqlite3.IntegrityError as e:
            raise StorageEngineError("insert", "key already exists", {"id": item.id}) from e
        except sqlite3.Error as e:
            raise StorageEngineError("insert", str(e), {"id": item.id}) from e

    def delete(self, item_id: str) -> bool:
        """Delete an Item by ID. Return ``True`` when a record was removed."""
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
        except sqlite3.Error as e:
            raise StorageEngineError("delete", str(e), {"id": item_id}) from e
        return cursor.rowcount > 0

    def find_expired_before(self, cutoff: datetime) -> list[Item]:
        """Return all Items expiring strictly before ``cutoff``, oldest first."""
        rows = self._rows(
            "find",
            "SELECT id, data FROM items WHERE expires < ? ORDER BY expires, id",
            (cutoff.timestamp(),),
        )
        return [self._decode(row_id, data) for row_id, data in rows]

    def ids(self) -> set[str]:
        """Return every stored ID."""
        return {row_id for (row_id,) in self._rows("ids", "SELECT id FROM items")}

    def count(self) -> int:
        """Return the number of stored records."""
        for (total,) in self._rows("count", "SELECT COUNT(*) FROM items"):
            return int(total)
        return 0

    def close(self) -> None:
        """Close the database connection."""
        try:
            with self._lock:
                self._conn.close()
        except sqlite3.Error as e:
            raise StorageEngineError("close", str(e)) from e
        logger.debug("Closed record index", extra={"path": str(self._db_path)})
