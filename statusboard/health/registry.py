"""Check definition registry: SQLite-backed, reconciled from plugins at startup.

Plugins contribute definitions; ``reconcile`` upserts them without ever
deleting rows or overwriting the operator's ``is_enabled`` choice. Reads are
served from an in-memory mirror of the table.
"""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..config import DATA_DIR
from .engine import CheckDefinition, utcnow

logger = logging.getLogger(__name__)

DB_PATH = DATA_DIR / "statusboard.db"

_UNSET: Any = object()


@dataclass
class ReconcileReport:
    """What a reconciliation pass did, per key."""

    inserted: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return len(self.inserted) + len(self.updated)

    def to_dict(self) -> dict[str, Any]:
        return {**dataclasses.asdict(self), "writes": self.writes}


class DefinitionRegistry:
    """Persisted set of check definitions, keyed by check key."""

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = Path(db_path or DB_PATH)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._cache: dict[str, CheckDefinition] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._listeners: list[Callable[[CheckDefinition], Any]] = []
        self._init_db()
        self._load()

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self._db_path), timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS check_definitions (
                    key                   TEXT PRIMARY KEY,
                    display_name          TEXT NOT NULL,
                    category              TEXT NOT NULL DEFAULT '',
                    is_enabled            INTEGER NOT NULL DEFAULT 1,
                    interval_seconds      INTEGER NOT NULL DEFAULT 300,
                    timeout_seconds       INTEGER NOT NULL DEFAULT 10,
                    degraded_threshold_ms INTEGER,
                    created_at            TEXT NOT NULL,
                    updated_at            TEXT NOT NULL
                )
            """)

    def _load(self) -> None:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM check_definitions").fetchall()
        loaded: dict[str, CheckDefinition] = {}
        for row in rows:
            try:
                loaded[row["key"]] = _row_to_definition(row)
            except ValueError as e:
                logger.warning("Skipping malformed definition row %r: %s", row["key"], e)
        self._cache = loaded

    def _key_lock(self, key: str) -> threading.Lock:
        # setdefault is atomic under the GIL, so concurrent callers share one lock
        return self._key_locks.setdefault(key, threading.Lock())

    # ── Reconciliation ────────────────────────────────────────────────────

    def reconcile(self, contributed: Iterable[CheckDefinition]) -> ReconcileReport:
        """Merge plugin-contributed definitions into storage.

        Inserts unseen keys, refreshes plugin-owned fields that changed, and
        leaves identical rows untouched. A failure on one key is logged and
        does not stop the others.
        """
        # last contribution per key wins
        by_key: dict[str, CheckDefinition] = {}
        for definition in contributed:
            by_key[definition.key] = definition

        report = ReconcileReport()
        for key, definition in by_key.items():
            try:
                outcome = self._reconcile_one(definition)
            except Exception:
                logger.exception("Reconciliation failed for check %s", key)
                report.failed.append(key)
                continue
            getattr(report, outcome).append(key)

        if not by_key:
            logger.warning("No check definitions were contributed for reconciliation")
        else:
            logger.info(
                "Reconciled %d check definitions (%d inserted, %d updated, %d failed)",
                len(by_key), len(report.inserted), len(report.updated), len(report.failed),
            )
        return report

    def _reconcile_one(self, contributed: CheckDefinition) -> str:
        key = contributed.key
        now = utcnow().isoformat()
        with self._key_lock(key), self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT * FROM check_definitions WHERE key = ?", (key,),
                ).fetchone()

                if row is None:
                    conn.execute(
                        "INSERT INTO check_definitions "
                        "(key, display_name, category, is_enabled, interval_seconds, "
                        " timeout_seconds, degraded_threshold_ms, created_at, updated_at) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            key, contributed.display_name, contributed.category,
                            int(contributed.is_enabled), contributed.interval_seconds,
                            contributed.timeout_seconds, contributed.degraded_threshold_ms,
                            now, now,
                        ),
                    )
                    stored, outcome = contributed, "inserted"
                else:
                    existing = _row_to_definition(row)
                    if existing.same_contribution(contributed):
                        stored, outcome = existing, "unchanged"
                    else:
                        conn.execute(
                            "UPDATE check_definitions SET display_name = ?, category = ?, "
                            "interval_seconds = ?, timeout_seconds = ?, "
                            "degraded_threshold_ms = ?, updated_at = ? WHERE key = ?",
                            (
                                contributed.display_name, contributed.category,
                                contributed.interval_seconds, contributed.timeout_seconds,
                                contributed.degraded_threshold_ms, now, key,
                            ),
                        )
                        stored = dataclasses.replace(contributed, is_enabled=existing.is_enabled)
                        outcome = "updated"
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            self._cache[key] = stored

        if outcome != "unchanged":
            logger.debug("Check definition %s %s", key, outcome)
        return outcome

    # ── Reads ─────────────────────────────────────────────────────────────

    def get(self, key: str) -> CheckDefinition | None:
        return self._cache.get(key)

    def all(self, include_disabled: bool = True) -> list[CheckDefinition]:
        """All definitions ordered by category, display name, key."""
        defs = [d for d in list(self._cache.values()) if include_disabled or d.is_enabled]
        return sorted(defs, key=lambda d: (d.category.lower(), d.display_name.lower(), d.key))

    def enabled(self) -> list[CheckDefinition]:
        return self.all(include_disabled=False)

    def categories(self) -> list[str]:
        seen: dict[str, str] = {}
        for d in list(self._cache.values()):
            if d.category:
                seen.setdefault(d.category.lower(), d.category)
        return sorted(seen.values(), key=str.lower)

    # ── Admin mutations ───────────────────────────────────────────────────

    def subscribe(self, callback: Callable[[CheckDefinition], Any]) -> None:
        """Register a callback fired after an admin change to a definition."""
        self._listeners.append(callback)

    def set_enabled(self, key: str, enabled: bool) -> CheckDefinition:
        return self.update(key, is_enabled=enabled)

    def update(
        self,
        key: str,
        *,
        is_enabled: bool | None = None,
        interval_seconds: int | None = None,
        timeout_seconds: int | None = None,
        degraded_threshold_ms: int | None = _UNSET,
    ) -> CheckDefinition:
        """Apply operator edits to one definition.

        Omitted fields are left alone; ``degraded_threshold_ms=None`` clears
        the threshold. Raises ``KeyError`` for unknown keys and ``ValueError``
        for invalid values.
        """
        changes: dict[str, Any] = {}
        if is_enabled is not None:
            changes["is_enabled"] = bool(is_enabled)
        if interval_seconds is not None:
            changes["interval_seconds"] = interval_seconds
        if timeout_seconds is not None:
            changes["timeout_seconds"] = timeout_seconds
        if degraded_threshold_ms is not _UNSET:
            changes["degraded_threshold_ms"] = degraded_threshold_ms

        with self._key_lock(key), self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT * FROM check_definitions WHERE key = ?", (key,),
                ).fetchone()
                if row is None:
                    raise KeyError(key)
                updated = dataclasses.replace(_row_to_definition(row), **changes)
                if changes:
                    conn.execute(
                        "UPDATE check_definitions SET is_enabled = ?, interval_seconds = ?, "
                        "timeout_seconds = ?, degraded_threshold_ms = ?, updated_at = ? "
                        "WHERE key = ?",
                        (
                            int(updated.is_enabled), updated.interval_seconds,
                            updated.timeout_seconds, updated.degraded_threshold_ms,
                            utcnow().isoformat(), key,
                        ),
                    )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            self._cache[key] = updated

        if changes:
            logger.info("Check %s updated: %s", key, changes)
            for callback in list(self._listeners):
                try:
                    callback(updated)
                except Exception:
                    logger.exception("Definition listener error for %s", key)
        return updated


def _row_to_definition(row: sqlite3.Row) -> CheckDefinition:
    return CheckDefinition(
        key=row["key"],
        display_name=row["display_name"],
        category=row["category"],
        interval_seconds=row["interval_seconds"],
        timeout_seconds=row["timeout_seconds"],
        degraded_threshold_ms=row["degraded_threshold_ms"],
        is_enabled=bool(row["is_enabled"]),
    )
