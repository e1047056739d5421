"""Tests for the latest-snapshot store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from statusboard.health.engine import CheckSnapshot, ErrorCode, Status
from statusboard.health.store import ResultStore

T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _snapshot(key: str = "a.b", status: Status = Status.UP, at: datetime = T0, **kw) -> CheckSnapshot:
    return CheckSnapshot(key=key, status=status, checked_at=at, **kw)


class TestResultStore:
    def test_read_absent_key(self, store) -> None:
        assert store.read("missing") is None
        assert store.read_all() == {}

    def test_write_then_read(self, store) -> None:
        assert store.write(_snapshot(latency_ms=12, message="Reachable"))
        snap = store.read("a.b")
        assert snap.status == Status.UP
        assert snap.latency_ms == 12

    def test_newer_replaces_older(self, store) -> None:
        store.write(_snapshot(status=Status.UP))
        store.write(_snapshot(status=Status.DOWN, at=T0 + timedelta(seconds=5)))
        assert store.read("a.b").status == Status.DOWN

    def test_stale_write_discarded(self, store) -> None:
        store.write(_snapshot(status=Status.DOWN, at=T0 + timedelta(seconds=5)))
        assert store.write(_snapshot(status=Status.UP, at=T0)) is False
        assert store.read("a.b").status == Status.DOWN

    def test_keys_are_independent(self, store) -> None:
        store.write(_snapshot("a.b"))
        store.write(_snapshot("c.d", status=Status.DEGRADED))
        assert set(store.read_all()) == {"a.b", "c.d"}

    def test_read_all_is_a_copy(self, store) -> None:
        store.write(_snapshot())
        copy = store.read_all()
        copy.clear()
        assert store.read("a.b") is not None

    def test_reloaded_after_restart(self, store, db_path) -> None:
        store.write(_snapshot(
            status=Status.DOWN, error_code=ErrorCode.TIMEOUT.value,
            error_detail="Check timed out after 10 seconds.",
        ))
        reopened = ResultStore(db_path)
        snap = reopened.read("a.b")
        assert snap.status == Status.DOWN
        assert snap.error_code == "Timeout"
        assert snap.checked_at == T0
