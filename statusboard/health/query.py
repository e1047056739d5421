"""Read path for dashboards: definitions joined with their latest snapshot.

Never triggers an execution.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .engine import CheckDefinition, CheckSnapshot, Status, utcnow
from .registry import DefinitionRegistry
from .store import ResultStore

# worst first, for the overall badge
_SEVERITY = (Status.DOWN, Status.DEGRADED, Status.UNKNOWN, Status.UP)


@dataclass
class StatusRow:
    """Display-ready record for one check."""

    key: str
    display_name: str
    category: str
    is_enabled: bool
    status: Status
    checked_at: datetime | None
    age_seconds: int | None
    latency_ms: int | None
    message: str | None
    http_status_code: int | None = None
    error_code: str | None = None

    @property
    def has_data(self) -> bool:
        return self.checked_at is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "display_name": self.display_name,
            "category": self.category,
            "is_enabled": self.is_enabled,
            "status": self.status.value,
            "checked_at": self.checked_at.isoformat() if self.checked_at else None,
            "age_seconds": self.age_seconds,
            "latency_ms": self.latency_ms,
            "message": self.message,
            "http_status_code": self.http_status_code,
            "error_code": self.error_code,
        }


class SnapshotQueryService:
    """Joins the definition registry with the result store for presentation."""

    def __init__(self, registry: DefinitionRegistry, store: ResultStore) -> None:
        self.registry = registry
        self.store = store

    def query(
        self,
        category: str | None = None,
        search: str | None = None,
        enabled_only: bool = False,
    ) -> list[StatusRow]:
        """Filtered rows ordered by display name, then key.

        ``category`` is a case-insensitive exact match; ``search`` matches
        display name, key, or the latest message, case-insensitively.
        """
        category = _normalize(category)
        search = _normalize(search)
        latest = self.store.read_all()
        now = utcnow()

        rows = [
            _to_row(d, latest.get(d.key), now)
            for d in self.registry.all(include_disabled=not enabled_only)
        ]

        if category:
            rows = [r for r in rows if r.category.lower() == category.lower()]

        if search:
            needle = search.lower()
            rows = [
                r for r in rows
                if needle in r.display_name.lower()
                or needle in r.key.lower()
                or (r.message and needle in r.message.lower())
            ]

        rows.sort(key=lambda r: (r.display_name.lower(), r.key))
        return rows

    def get(self, key: str) -> StatusRow | None:
        definition = self.registry.get(key)
        if definition is None:
            return None
        return _to_row(definition, self.store.read(key), utcnow())

    def categories(self) -> list[str]:
        return self.registry.categories()

    def summary(self, enabled_only: bool = True) -> dict[str, Any]:
        """Status counts plus the worst status across the selection."""
        rows = self.query(enabled_only=enabled_only)
        counts = {s.value: 0 for s in Status}
        for r in rows:
            counts[r.status.value] += 1

        overall = Status.UNKNOWN
        if rows:
            overall = next(s for s in _SEVERITY if counts[s.value] > 0)

        return {
            "total": len(rows),
            "counts": counts,
            "overall": overall.value,
            "no_data": sum(1 for r in rows if not r.has_data),
        }


def _to_row(definition: CheckDefinition, snapshot: CheckSnapshot | None, now: datetime) -> StatusRow:
    if snapshot is None:
        return StatusRow(
            key=definition.key,
            display_name=definition.display_name,
            category=definition.category,
            is_enabled=definition.is_enabled,
            status=Status.UNKNOWN,
            checked_at=None,
            age_seconds=None,
            latency_ms=None,
            message=None,
        )
    return StatusRow(
        key=definition.key,
        display_name=definition.display_name,
        category=definition.category,
        is_enabled=definition.is_enabled,
        status=snapshot.status,
        checked_at=snapshot.checked_at,
        age_seconds=max(0, int((now - snapshot.checked_at).total_seconds())),
        latency_ms=snapshot.latency_ms,
        message=snapshot.message,
        http_status_code=snapshot.http_status_code,
        error_code=snapshot.error_code,
    )


def _normalize(value: str | None) -> str | None:
    trimmed = (value or "").strip()
    return trimmed or None
