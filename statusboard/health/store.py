"""Latest-snapshot store: in-memory map mirrored to SQLite.

One row per check key. Writes are last-write-wins by ``checked_at`` and only
contend on a per-key lock. Persisted rows are reloaded on startup so the
dashboard has data before the first tick lands.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from .engine import CheckSnapshot, Status, parse_timestamp
from .registry import DB_PATH

logger = logging.getLogger(__name__)


class ResultStore:
    """Holds the latest classified snapshot per check key."""

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = Path(db_path or DB_PATH)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._latest: dict[str, CheckSnapshot] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._init_db()
        self._load()

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self._db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS latest_snapshots (
                    key              TEXT PRIMARY KEY,
                    status           TEXT NOT NULL,
                    latency_ms       INTEGER,
                    message          TEXT NOT NULL DEFAULT '',
                    raw_message      TEXT,
                    http_status_code INTEGER,
                    error_code       TEXT,
                    error_detail     TEXT,
                    checked_at       TEXT NOT NULL
                )
            """)
            conn.commit()

    def _load(self) -> None:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM latest_snapshots").fetchall()
        for row in rows:
            try:
                self._latest[row["key"]] = _row_to_snapshot(row)
            except ValueError as e:
                logger.warning("Skipping unreadable snapshot row %r: %s", row["key"], e)
        if rows:
            logger.info("Restored %d latest check snapshots", len(self._latest))

    def write(self, snapshot: CheckSnapshot) -> bool:
        """Store ``snapshot`` unless a newer one is already held for its key.

        Returns True when the snapshot became the latest value.
        """
        with self._key_locks.setdefault(snapshot.key, threading.Lock()):
            current = self._latest.get(snapshot.key)
            if current is not None and current.checked_at > snapshot.checked_at:
                logger.debug("Discarding stale snapshot for %s", snapshot.key)
                return False

            with self._conn() as conn:
                conn.execute(
                    "INSERT INTO latest_snapshots "
                    "(key, status, latency_ms, message, raw_message, http_status_code, "
                    " error_code, error_detail, checked_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET "
                    "status = excluded.status, latency_ms = excluded.latency_ms, "
                    "message = excluded.message, raw_message = excluded.raw_message, "
                    "http_status_code = excluded.http_status_code, "
                    "error_code = excluded.error_code, error_detail = excluded.error_detail, "
                    "checked_at = excluded.checked_at "
                    "WHERE excluded.checked_at >= latest_snapshots.checked_at",
                    (
                        snapshot.key, snapshot.status.value, snapshot.latency_ms,
                        snapshot.message, snapshot.raw_message, snapshot.http_status_code,
                        snapshot.error_code, snapshot.error_detail,
                        snapshot.checked_at.isoformat(),
                    ),
                )
                conn.commit()
            self._latest[snapshot.key] = snapshot
            return True

    def read(self, key: str) -> CheckSnapshot | None:
        return self._latest.get(key)

    def read_all(self) -> dict[str, CheckSnapshot]:
        """Point-in-time copy of every key's latest snapshot."""
        return dict(self._latest)


def _row_to_snapshot(row: sqlite3.Row) -> CheckSnapshot:
    checked_at = parse_timestamp(row["checked_at"])
    if checked_at is None:
        raise ValueError("missing checked_at")
    return CheckSnapshot(
        key=row["key"],
        status=Status(row["status"]),
        checked_at=checked_at,
        latency_ms=row["latency_ms"],
        message=row["message"] or "",
        raw_message=row["raw_message"],
        http_status_code=row["http_status_code"],
        error_code=row["error_code"],
        error_detail=row["error_detail"],
    )
