from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from listing_notifier.errors import PersistenceError
from listing_notifier.models import SeenEntry
from listing_notifier.utils.datetime_utils import parse_datetime_utc

from .base import SeenIds, Store

logger = logging.getLogger(__name__)


class SQLiteStore(Store):
    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)

    def init_db(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with closing(self._connect()) as connection:
                connection.execute(
                    """
                    CREATE TABLE IF NOT EXISTS advertisements (
                        adv_id INTEGER PRIMARY KEY,
                        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                    )
                    """
                )
                connection.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_advertisements_created_at
                    ON advertisements (created_at)
                    """
                )
                connection.commit()
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(f"failed to initialize {self.db_path}: {exc}") from exc

    @contextmanager
    def session(self) -> Iterator[SeenIds]:
        try:
            connection = self._connect()
        except sqlite3.Error as exc:
            raise PersistenceError(f"failed to open {self.db_path}: {exc}") from exc

        try:
            yield SQLiteSeenIds(connection)
        finally:
            connection.close()
            logger.debug("Closed dedup store connection to %s", self.db_path)

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self.db_path)
        connection.row_factory = sqlite3.Row
        return connection


class SQLiteSeenIds(SeenIds):
    def __init__(self, connection: sqlite3.Connection) -> None:
        self.connection = connection

    def contains_any(self, ids: Iterable[int]) -> set[int]:
        wanted = sorted({int(entry_id) for entry_id in ids})
        if not wanted:
            return set()

        found: set[int] = set()
        # SQLite caps bound parameters per statement.
        for start in range(0, len(wanted), 500):
            chunk = wanted[start : start + 500]
            placeholders = ", ".join("?" for _ in chunk)
            try:
                rows = self.connection.execute(
                    f"SELECT adv_id FROM advertisements WHERE adv_id IN ({placeholders})",
                    chunk,
                ).fetchall()
            except sqlite3.Error as exc:
                raise PersistenceError(f"failed to read seen ids: {exc}") from exc
            found.update(row["adv_id"] for row in rows)
        return found

    def insert_all(self, ids: Iterable[int]) -> None:
        now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        rows = [(int(entry_id), now) for entry_id in ids]
        if not rows:
            return

        try:
            with self.connection:
                self.connection.executemany(
                    "INSERT OR IGNORE INTO advertisements (adv_id, created_at) VALUES (?, ?)",
                    rows,
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"failed to record {len(rows)} seen ids: {exc}") from exc

    def has_seen(self, entry_id: int) -> SeenEntry | None:
        try:
            row = self.connection.execute(
                "SELECT adv_id, created_at FROM advertisements WHERE adv_id = ?",
                (int(entry_id),),
            ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"failed to read seen id {entry_id}: {exc}") from exc

        if row is None:
            return None

        return SeenEntry(
            id=row["adv_id"],
            first_seen_at=parse_datetime_utc(row["created_at"]) or datetime.now(timezone.utc),
        )

    def recent_ids(self, limit: int) -> list[int]:
        try:
            rows = self.connection.execute(
                """
                SELECT adv_id FROM advertisements
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"failed to read recent ids: {exc}") from exc
        return [row["adv_id"] for row in rows]

    def prune(self, keep: int) -> int:
        try:
            with self.connection:
                cursor = self.connection.execute(
                    """
                    DELETE FROM advertisements
                    WHERE adv_id NOT IN (
                        SELECT adv_id FROM advertisements
                        ORDER BY created_at DESC, rowid DESC
                        LIMIT ?
                    )
                    """,
                    (keep,),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"failed to prune seen ids: {exc}") from exc
        return cursor.rowcount
