"""
Per-user SQLite catalog of archived library items.

Each user owns one ``library.db`` holding one row per archived track:

    clips:           id (primary key), data (verbatim JSON payload),
                     created_at (remote timestamp), downloaded_at (local)
    schema_version:  single row with the schema version

Readers share one connection; every statement runs under ``self._lock`` so
concurrent writers are serialized. The journal runs in WAL mode and each
write commits before the lock is released, so a committed row survives a
crash even when a larger batch is interrupted.

Usage:
    with LibraryCatalog(user_dir / "library.db") as catalog:
        known = catalog.all_ids()
        catalog.upsert(item.stamped())
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator, Iterable, List, Optional, Set

from api.exceptions import StorageError
from api.models import LibraryItem
from logs.logger import get_logger
from utils.constants import CATALOG_SCHEMA_VERSION

logger = get_logger(__name__)


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS clips (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    created_at TEXT,
    downloaded_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_clips_created_at ON clips(created_at);
"""

# Conflict rule for re-inserted ids: the newest payload wins, a known
# created_at is never erased by a record that lacks one.
_UPSERT_SQL = """
INSERT INTO clips (id, data, created_at, downloaded_at)
VALUES (?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    data = excluded.data,
    created_at = COALESCE(excluded.created_at, clips.created_at),
    downloaded_at = COALESCE(excluded.downloaded_at, clips.downloaded_at)
"""


class LibraryCatalog:
    """Durable mapping of item id to item metadata for exactly one user."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

        if not self.db_path.parent.exists():
            raise StorageError(f"Catalog directory does not exist: {self.db_path.parent}")

        try:
            with self._lock:
                self._init_database()
        except sqlite3.Error as e:
            self.close()
            raise StorageError(f"Failed to open catalog {self.db_path}: {e}", original_error=e) from e
        except StorageError:
            self.close()
            raise

    def __enter__(self) -> "LibraryCatalog":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Yield the shared connection, opening it on first use."""
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # guarded by self._lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = NORMAL")
        yield self._conn

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)

            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CATALOG_SCHEMA_VERSION,))
            elif row[0] != CATALOG_SCHEMA_VERSION:
                raise StorageError(
                    f"Catalog version mismatch: expected {CATALOG_SCHEMA_VERSION}, got {row[0]}"
                )
            conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @staticmethod
    def _to_row(item: LibraryItem) -> tuple:
        downloaded_at = item.downloaded_at.isoformat() if item.downloaded_at else None
        return (item.id, json.dumps(item.payload), item.created_at, downloaded_at)

    @staticmethod
    def _from_row(row: sqlite3.Row) -> LibraryItem:
        downloaded_at = row["downloaded_at"]
        return LibraryItem(
            id=row["id"],
            payload=json.loads(row["data"]),
            created_at=row["created_at"],
            downloaded_at=datetime.fromisoformat(downloaded_at) if downloaded_at else None
        )

    def exists(self, item_id: str) -> bool:
        """Check whether an item with this id is stored."""
        try:
            with self._lock, self._get_connection() as conn:
                row = conn.execute("SELECT 1 FROM clips WHERE id = ?", (item_id,)).fetchone()
                return row is not None
        except sqlite3.Error as e:
            raise StorageError(f"Failed to look up {item_id}: {e}", original_error=e) from e

    def all_ids(self) -> Set[str]:
        """Snapshot of every stored id."""
        try:
            with self._lock, self._get_connection() as conn:
                return {row[0] for row in conn.execute("SELECT id FROM clips")}
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list catalog ids: {e}", original_error=e) from e

    def upsert(self, item: LibraryItem) -> None:
        """Insert an item or replace the stored payload for its id.

        Args:
            item: Item to store

        Raises:
            StorageError: If the write fails
        """
        try:
            with self._lock, self._get_connection() as conn:
                conn.execute(_UPSERT_SQL, self._to_row(item))
                conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise StorageError(f"Failed to store {item.id}: {e}", original_error=e) from e

    def upsert_many(self, items: Iterable[LibraryItem]) -> int:
        """Store several items in one transaction.

        Args:
            items: Items to store

        Returns:
            Number of rows written

        Raises:
            StorageError: If the batch fails; nothing from this batch is kept
        """
        rows = [self._to_row(item) for item in items]
        if not rows:
            return 0

        try:
            with self._lock, self._get_connection() as conn:
                with conn:
                    conn.executemany(_UPSERT_SQL, rows)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to store {len(rows)} items: {e}", original_error=e) from e

        logger.debug(f"Stored {len(rows)} items in {self.db_path}")
        return len(rows)

    def all(self) -> List[LibraryItem]:
        """All items, most recently created first (ties by id)."""
        try:
            with self._lock, self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT id, data, created_at, downloaded_at FROM clips "
                    "ORDER BY created_at DESC, id DESC"
                )
                return [self._from_row(row) for row in cursor.fetchall()]
        except (sqlite3.Error, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read catalog: {e}", original_error=e) from e

    def count(self) -> int:
        """Number of stored items."""
        try:
            with self._lock, self._get_connection() as conn:
                return conn.execute("SELECT COUNT(*) FROM clips").fetchone()[0]
        except sqlite3.Error as e:
            raise StorageError(f"Failed to count catalog: {e}", original_error=e) from e
