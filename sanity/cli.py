"""Sanity CLI: catalog test runs and E2E flow drift from the terminal."""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from sanity import __version__
from sanity.errors import SanityError
from sanity.utils.log import configure_logging

console = Console()

STATUS_STYLES = {
    "ok": "green",
    "match": "green",
    "completed": "green",
    "fail": "red",
    "error": "red",
    "modified": "yellow",
    "blocked": "magenta",
    "server_only": "cyan",
}


def _styled(status: str) -> str:
    style = STATUS_STYLES.get(status)
    return f"[{style}]{status}[/]" if style else status


def _open_db(db_path: str | None):
    from sanity.db.database import SQLiteDatabase, initialize_schema

    db = SQLiteDatabase(db_path)
    initialize_schema(db)
    return db


def _fail(exc: SanityError) -> None:
    console.print(f"[red]Error:[/] {exc.message}")
    if exc.detail:
        console.print(f"  [dim]{exc.detail}[/]")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default="WARNING", help="Root log level")
def main(log_level: str):
    """Sanity: connector catalog verification and E2E flow reconciliation.

    Track manual pass/fail checks of every connector and component in a
    catalog snapshot, and compare E2E test flows on the execution server
    against the connector repository.
    """
    configure_logging(log_level.upper())


# ── Database ─────────────────────────────────────────────────────────


@main.command(name="init-db")
@click.option("--db", "db_path", default=None, help="SQLite file (default: SANITY_DATABASE_PATH)")
def init_db(db_path: str | None):
    """Create the database schema."""
    db = _open_db(db_path)
    db.close()
    console.print("[green]Database schema ready.[/]")


# ── Test runs ────────────────────────────────────────────────────────


@main.group()
def runs():
    """Manage catalog test runs."""


@runs.command(name="create")
@click.argument("name")
@click.option("--db", "db_path", default=None, help="SQLite file")
@click.option("--concurrency", default=5, show_default=True, help="Parallel component fetches")
def create_run(name: str, db_path: str | None, concurrency: int):
    """Snapshot the live catalog into a new test run."""
    from sanity.batch.executor import BatchExecutor
    from sanity.cache.response_cache import ResponseCache
    from sanity.catalog.ingest import CatalogIngestor
    from sanity.clients.catalog import CatalogClient
    from sanity.config.resolver import ConfigResolver
    from sanity.db.stores import ComponentStore, ConnectorStore, SettingsStore, TestRunStore

    db = _open_db(db_path)
    resolver = ConfigResolver(SettingsStore(db))
    ingestor = CatalogIngestor(
        CatalogClient(resolver.modules_api_url()),
        TestRunStore(db),
        ConnectorStore(db),
        ComponentStore(db),
        ResponseCache(),
        BatchExecutor(concurrency),
    )

    console.print(f"\n[bold blue]Sanity[/] — Creating test run: {name}\n")

    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Fetching connectors", total=None)

        def on_event(event: dict) -> None:
            if event["step"] == "fetched":
                progress.update(task, total=event["total"], description="Fetching components")
            elif event["step"] == "progress":
                progress.update(task, completed=event["completed"], description=event["current"])

        try:
            result = asyncio.run(ingestor.create_test_run(name, emit=on_event))
        except SanityError as exc:
            _fail(exc)
            return

    console.print(
        f"  Created [cyan]{result.run_id}[/]: {result.connector_count} connectors, "
        f"{result.component_count} components"
    )
    if result.failed_connectors:
        console.print(
            f"  [yellow]Component fetch failed for:[/] {', '.join(result.failed_connectors)}"
        )


@runs.command(name="list")
@click.option("--db", "db_path", default=None, help="SQLite file")
def list_runs(db_path: str | None):
    """List test runs with their connector counts."""
    from sanity.db.stores import TestRunStore

    entries = TestRunStore(_open_db(db_path)).list_all()
    if not entries:
        console.print("[yellow]No test runs yet.[/]")
        return

    table = Table(title=f"Test runs ({len(entries)})")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Created")
    table.add_column("Status")
    table.add_column("OK", justify="right", style="green")
    table.add_column("Fail", justify="right", style="red")
    table.add_column("Blocked", justify="right", style="magenta")
    table.add_column("Pending", justify="right")

    for run in entries:
        table.add_row(
            run.id,
            run.name,
            run.created_at[:19],
            _styled(run.status),
            str(run.ok_count),
            str(run.fail_count),
            str(run.blocked_count),
            str(run.pending_count),
        )

    console.print(table)


@runs.command(name="report")
@click.argument("run_id")
@click.option("--db", "db_path", default=None, help="SQLite file")
def report(run_id: str, db_path: str | None):
    """Show the verification report of a test run."""
    from sanity.db.stores import TestRunStore

    store = TestRunStore(_open_db(db_path))
    run = store.get(run_id)
    if run is None:
        console.print(f"[red]Test run not found:[/] {run_id}")
        sys.exit(1)

    data = store.daily_report(run_id)
    totals = data["totals"]
    console.print(f"\n[bold blue]Sanity[/] — Report: {run.name}\n")
    console.print(
        f"  Components: {totals['components']}  "
        f"[green]ok {totals['ok']}[/]  [red]fail {totals['fail']}[/]  "
        f"pending {totals['pending']}\n"
    )

    if data["days"]:
        days = Table(title="Tested per day")
        days.add_column("Date")
        days.add_column("Tested", justify="right")
        days.add_column("OK", justify="right", style="green")
        days.add_column("Fail", justify="right", style="red")
        for day in data["days"]:
            days.add_row(day["date"], str(day["tested"]), str(day["ok"]), str(day["fail"]))
        console.print(days)

    if data["failed_components"]:
        failed = Table(title="Failed components")
        failed.add_column("Connector", style="cyan")
        failed.add_column("Component")
        failed.add_column("Issues")
        for item in data["failed_components"]:
            failed.add_row(
                item["connector_name"],
                item["component_name"],
                "\n".join(item["github_issues"]) or "-",
            )
        console.print(failed)

    for connector in data["blocked_connectors"]:
        console.print(
            f"  [magenta]blocked[/] {connector['connector_name']}: {connector['blocked_reason']}"
        )


# ── E2E flows ────────────────────────────────────────────────────────


@main.group()
def flows():
    """Inspect E2E test flows."""


@flows.command(name="status")
@click.option("--user", default="cli", show_default=True, help="Settings partition to use")
@click.option("--db", "db_path", default=None, help="SQLite file")
def flow_status(user: str, db_path: str | None):
    """Compare every E2E flow on the server with the repository."""
    from sanity.cache.token_cache import TokenCache
    from sanity.cache.tree_cache import RemoteTreeCache
    from sanity.clients.execution_server import ExecutionServerClient
    from sanity.clients.source_control import SourceControlClient
    from sanity.config.resolver import ConfigResolver
    from sanity.db.stores import SettingsStore
    from sanity.flows.diff import FlowDiffEngine

    resolver = ConfigResolver(SettingsStore(_open_db(db_path)))
    engine = FlowDiffEngine(
        ExecutionServerClient(resolver, TokenCache()),
        SourceControlClient(resolver, RemoteTreeCache()),
    )

    try:
        listing = asyncio.run(engine.list_flows(user))
    except SanityError as exc:
        _fail(exc)
        return

    table = Table(title=f"E2E flows ({listing['stats']['total']})")
    table.add_column("Connector", style="cyan")
    table.add_column("Name")
    table.add_column("Running", justify="center")
    table.add_column("Sync")
    table.add_column("Repository path", style="dim")

    for flow in listing["flows"]:
        table.add_row(
            flow["connector"],
            flow["name"],
            "[green]Y[/]" if flow["running"] else "[dim]N[/]",
            _styled(flow["sync_status"]),
            flow["github_path"] or "-",
        )

    console.print(table)
    stats = listing["stats"]
    console.print(
        f"  match {stats['match']}  modified {stats['modified']}  "
        f"server_only {stats['server_only']}  error {stats['error']}"
    )


if __name__ == "__main__":
    main()
