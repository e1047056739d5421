"""Tests for the check definition registry."""

from __future__ import annotations

import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from statusboard.health.engine import CheckDefinition
from statusboard.health.registry import DefinitionRegistry

from conftest import make_definition


def _contributed() -> list[CheckDefinition]:
    return [
        make_definition("sendgrid.profile", display_name="SendGrid API", category="Email",
                        degraded_threshold_ms=2000),
        make_definition("openai.config", display_name="OpenAI Configuration", category="AI"),
    ]


class TestReconcile:
    def test_inserts_unseen_keys(self, registry) -> None:
        report = registry.reconcile(_contributed())
        assert sorted(report.inserted) == ["openai.config", "sendgrid.profile"]
        assert report.writes == 2
        assert registry.get("sendgrid.profile").degraded_threshold_ms == 2000

    def test_second_pass_is_idempotent(self, registry) -> None:
        registry.reconcile(_contributed())
        report = registry.reconcile(_contributed())
        assert report.writes == 0
        assert sorted(report.unchanged) == ["openai.config", "sendgrid.profile"]

    def test_changed_fields_update_but_keep_enabled_flag(self, registry) -> None:
        registry.reconcile(_contributed())
        registry.set_enabled("sendgrid.profile", False)

        changed = make_definition("sendgrid.profile", display_name="SendGrid", category="Email",
                                  degraded_threshold_ms=3000)
        report = registry.reconcile([changed])
        assert report.updated == ["sendgrid.profile"]

        stored = registry.get("sendgrid.profile")
        assert stored.display_name == "SendGrid"
        assert stored.degraded_threshold_ms == 3000
        assert stored.is_enabled is False

    def test_missing_contribution_is_not_deleted(self, registry) -> None:
        registry.reconcile(_contributed())
        registry.reconcile(_contributed()[:1])
        assert registry.get("openai.config") is not None

    def test_last_duplicate_wins(self, registry) -> None:
        report = registry.reconcile([
            make_definition("dup.key", display_name="First"),
            make_definition("dup.key", display_name="Second"),
        ])
        assert report.inserted == ["dup.key"]
        assert registry.get("dup.key").display_name == "Second"

    def test_new_rows_are_enabled(self, registry) -> None:
        registry.reconcile([make_definition("a.b", is_enabled=True)])
        assert registry.get("a.b").is_enabled

    def test_one_failure_does_not_stop_others(self, registry, monkeypatch) -> None:
        original = registry._reconcile_one

        def flaky(definition):
            if definition.key == "sendgrid.profile":
                raise sqlite3.OperationalError("database is locked")
            return original(definition)

        monkeypatch.setattr(registry, "_reconcile_one", flaky)
        report = registry.reconcile(_contributed())
        assert report.failed == ["sendgrid.profile"]
        assert report.inserted == ["openai.config"]
        assert registry.get("sendgrid.profile") is None

    def test_persisted_across_instances(self, registry, db_path) -> None:
        registry.reconcile(_contributed())
        registry.set_enabled("openai.config", False)

        reopened = DefinitionRegistry(db_path)
        assert reopened.get("openai.config").is_enabled is False
        assert len(reopened.all()) == 2


class TestConcurrentReconcile:
    N = 8

    def _race(self, registries, display_names) -> list:
        barrier = threading.Barrier(len(display_names))

        def contribute(i):
            barrier.wait()
            return registries[i % len(registries)].reconcile([
                make_definition("race.key", display_name=display_names[i], interval_seconds=60 + i),
            ])

        with ThreadPoolExecutor(max_workers=len(display_names)) as pool:
            return list(pool.map(contribute, range(len(display_names))))

    def test_same_key_from_many_threads(self, registry, db_path) -> None:
        names = [f"Race {i}" for i in range(self.N)]
        reports = self._race([registry], names)

        assert sum(len(r.inserted) for r in reports) == 1
        assert not any(r.failed for r in reports)

        stored = registry.get("race.key")
        assert stored.display_name in names
        assert stored.interval_seconds == 60 + names.index(stored.display_name)
        assert DefinitionRegistry(db_path).get("race.key") == stored

    def test_enabled_flag_survives_parallel_reconcile(self, registry, db_path) -> None:
        registry.reconcile([make_definition("race.key")])
        registry.set_enabled("race.key", False)

        reports = self._race([registry], [f"Race {i}" for i in range(self.N)])

        assert not any(r.inserted or r.failed for r in reports)
        assert registry.get("race.key").is_enabled is False
        assert DefinitionRegistry(db_path).get("race.key").is_enabled is False

    def test_separate_instances_share_one_row(self, db_path) -> None:
        registries = [DefinitionRegistry(db_path) for _ in range(4)]
        names = [f"Race {i}" for i in range(self.N)]
        reports = self._race(registries, names)

        assert sum(len(r.inserted) for r in reports) == 1
        assert not any(r.failed for r in reports)
        assert len(DefinitionRegistry(db_path).all()) == 1


class TestReads:
    def test_enabled_excludes_disabled(self, registry) -> None:
        registry.reconcile(_contributed())
        registry.set_enabled("openai.config", False)
        assert [d.key for d in registry.enabled()] == ["sendgrid.profile"]
        assert len(registry.all()) == 2

    def test_categories_distinct_and_sorted(self, registry) -> None:
        registry.reconcile(_contributed() + [make_definition("x.y", category="email")])
        assert registry.categories() == ["AI", "Email"]


class TestUpdate:
    def test_unknown_key_raises(self, registry) -> None:
        with pytest.raises(KeyError):
            registry.update("nope", is_enabled=False)

    def test_invalid_interval_rejected(self, registry) -> None:
        registry.reconcile(_contributed())
        with pytest.raises(ValueError):
            registry.update("sendgrid.profile", interval_seconds=0)
        assert registry.get("sendgrid.profile").interval_seconds == 300

    def test_threshold_can_be_cleared(self, registry) -> None:
        registry.reconcile(_contributed())
        updated = registry.update("sendgrid.profile", degraded_threshold_ms=None)
        assert updated.degraded_threshold_ms is None

    def test_omitted_threshold_left_alone(self, registry) -> None:
        registry.reconcile(_contributed())
        updated = registry.update("sendgrid.profile", interval_seconds=60)
        assert updated.interval_seconds == 60
        assert updated.degraded_threshold_ms == 2000

    def test_listeners_notified(self, registry) -> None:
        registry.reconcile(_contributed())
        seen = []
        registry.subscribe(seen.append)
        registry.set_enabled("openai.config", False)
        assert [(d.key, d.is_enabled) for d in seen] == [("openai.config", False)]

    def test_listener_error_does_not_block_update(self, registry) -> None:
        registry.reconcile(_contributed())

        def broken(_definition):
            raise RuntimeError("listener failed")

        registry.subscribe(broken)
        updated = registry.set_enabled("openai.config", False)
        assert updated.is_enabled is False
