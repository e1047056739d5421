"""Entry point for the statusboard service."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from statusboard.checks import build_default_checks
from statusboard.config import settings
from statusboard.health.query import SnapshotQueryService
from statusboard.health.registry import DefinitionRegistry
from statusboard.health.store import ResultStore

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

STATUS_STYLES = {
    "up": "bold green",
    "degraded": "bold yellow",
    "down": "bold red",
    "unknown": "dim",
}


def run_server() -> None:
    """Start the FastAPI server (scheduler runs inside its lifespan)."""
    console.print(Panel("Starting Statusboard API Server", style="bold green"))
    uvicorn.run(
        "statusboard.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def run_reconcile() -> None:
    """Reconcile bundled plugin definitions into the database."""
    registry = DefinitionRegistry(settings.db_path)
    report = registry.reconcile(e.definition for e in build_default_checks(settings))
    console.print(
        f"[bold]Reconciled[/bold] inserted={len(report.inserted)} "
        f"updated={len(report.updated)} unchanged={len(report.unchanged)} "
        f"failed={len(report.failed)}"
    )
    if report.failed:
        console.print(f"[red]Failed keys:[/red] {', '.join(report.failed)}")
        sys.exit(1)


def show_status(category: str | None, search: str | None, include_disabled: bool) -> None:
    """Print the latest known status of every check from the database."""
    registry = DefinitionRegistry(settings.db_path)
    store = ResultStore(settings.db_path)
    rows = SnapshotQueryService(registry, store).query(
        category=category, search=search, enabled_only=not include_disabled,
    )

    table = Table(title="External API status")
    table.add_column("Check")
    table.add_column("Category")
    table.add_column("Status")
    table.add_column("Latency", justify="right")
    table.add_column("Age", justify="right")
    table.add_column("Message")

    for r in rows:
        status = r.status.value
        table.add_row(
            r.display_name + ("" if r.is_enabled else " [dim](disabled)[/dim]"),
            r.category,
            f"[{STATUS_STYLES[status]}]{status}[/]" if r.has_data else "[dim]no data[/dim]",
            f"{r.latency_ms}ms" if r.latency_ms is not None else "-",
            f"{r.age_seconds}s" if r.age_seconds is not None else "-",
            r.message or "",
        )

    console.print(table)


def main() -> None:
    parser = argparse.ArgumentParser(description="Statusboard external API monitor")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server + scheduler")
    sub.add_parser("reconcile", help="Sync plugin check definitions into the database")

    status_parser = sub.add_parser("status", help="Show the latest status snapshot")
    status_parser.add_argument("--category", help="Only this category")
    status_parser.add_argument("--search", help="Filter by name, key or message")
    status_parser.add_argument("--all", action="store_true", help="Include disabled checks")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "reconcile":
        run_reconcile()
    elif args.command == "status":
        show_status(args.category, args.search, args.all)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
