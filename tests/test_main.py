"""Tests for the CLI commands."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from rich.console import Console

from statusboard import main
from statusboard.health.engine import CheckSnapshot, Status, utcnow
from statusboard.health.registry import DefinitionRegistry
from statusboard.health.store import ResultStore


@pytest.fixture
def cli(db_path):
    console = Console(record=True, width=200)
    with patch.object(main.settings, "db_path", db_path), patch.object(main, "console", console):
        yield console


class TestCLI:
    def test_reconcile_reports_inserted(self, cli, db_path) -> None:
        main.run_reconcile()
        assert "inserted=7" in cli.export_text()
        assert len(DefinitionRegistry(db_path).all()) == 7

    def test_reconcile_twice_is_unchanged(self, cli) -> None:
        main.run_reconcile()
        main.run_reconcile()
        assert "inserted=0 updated=0 unchanged=7" in cli.export_text()

    def test_status_table(self, cli, db_path) -> None:
        main.run_reconcile()
        ResultStore(db_path).write(CheckSnapshot(
            key="sendgrid.profile", status=Status.DOWN, checked_at=utcnow(),
            latency_ms=40, message="Authentication failed",
        ))

        main.show_status(category="email", search=None, include_disabled=False)
        out = cli.export_text()
        assert "SendGrid API" in out
        assert "down" in out
        assert "Zoho" not in out

    def test_status_without_data(self, cli) -> None:
        main.run_reconcile()
        main.show_status(category=None, search="zoho", include_disabled=True)
        assert "no data" in cli.export_text()

    def test_no_command_prints_help(self) -> None:
        with patch("sys.argv", ["statusboard"]), pytest.raises(SystemExit):
            main.main()
