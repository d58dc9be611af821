"""mnemos status / changes: inspect index records and the change log.

FAILED records stay listed with their error so they can be re-indexed.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from mnemos.cli.errors import err_no_db
from mnemos.db.connection import Database
from mnemos.db.models import IndexRecord, IndexStatus
from mnemos.db.repository import Repository
from mnemos.db.schema import initialize

console = Console()

_DEFAULT_DB = Path("mnemos.db")

_STATUS_STYLE = {
    IndexStatus.PENDING: "[dim]PENDING[/]",
    IndexStatus.INDEXING: "[yellow]INDEXING[/]",
    IndexStatus.READY: "[green]READY[/]",
    IndexStatus.FAILED: "[red]FAILED[/]",
}


def status_cmd(
    scope: Annotated[
        str | None,
        typer.Option("--scope", "-S", help="Only show records of this scope."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the mnemos database."),
    ] = _DEFAULT_DB,
) -> None:
    """Show index records with status, progress and errors."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    conn = _open_db(db)
    try:
        repo = Repository(conn)
        records = repo.list_records(scope)
        _show_summary_panel(db, repo, records, scope)
        if records:
            _show_records_table(records)
        else:
            console.print("[dim]No records yet.[/]")
    finally:
        conn.close()


def changes_cmd(
    after: Annotated[
        int,
        typer.Option("--after", help="Only show entries with a sequence number above this."),
    ] = 0,
    limit: Annotated[
        int,
        typer.Option("--limit", help="Maximum entries to show."),
    ] = 50,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the mnemos database."),
    ] = _DEFAULT_DB,
) -> None:
    """Show the change log that external mirrors consume."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    conn = _open_db(db)
    try:
        events = Repository(conn).list_changes(after=after, limit=limit)
    finally:
        conn.close()

    if not events:
        console.print(f"[dim]No changes after #{after}.[/]")
        return

    table = Table(show_header=True, box=None, padding=(0, 1))
    table.add_column("Seq", justify="right", style="bold")
    table.add_column("Entity")
    table.add_column("Op")
    table.add_column("Id", style="dim")
    table.add_column("Scope")
    table.add_column("At", style="dim")
    for ev in events:
        table.add_row(str(ev.seq), ev.entity, ev.op, ev.entity_id, ev.scope_id, (ev.created_at or "")[:19])
    console.print(table)


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _show_summary_panel(
    db: Path, repo: Repository, records: list[IndexRecord], scope: str | None
) -> None:
    size_mb = db.stat().st_size / (1024 * 1024)
    counts = {s: 0 for s in IndexStatus}
    for r in records:
        counts[r.status] += 1
    lines = [
        f"Database:  {db} ({size_mb:.1f} MB)",
        f"Scope:     {scope or '(all)'}",
        f"Records:   [bold]{len(records)}[/]  |  "
        + "  ".join(f"{_STATUS_STYLE[s]} {counts[s]}" for s in IndexStatus),
        f"Chunks:    [bold]{repo.count_chunks(scope):,}[/]  |  "
        f"Stored: {repo.storage_used(scope) / 1024:.1f} KB  |  "
        f"Queued jobs: {repo.count_pending_jobs()}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]mnemos[/]", expand=False))


def _show_records_table(records: list[IndexRecord]) -> None:
    table = Table(show_header=True, box=None, padding=(0, 1))
    table.add_column("Id", style="dim")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Pages", justify="right")
    table.add_column("Error", style="red", overflow="fold")
    for r in records:
        table.add_row(
            r.id,
            escape(r.display_name),
            r.source_kind.value.lower(),
            _STATUS_STYLE[r.status],
            f"{r.indexed_chunks}/{r.total_chunks}",
            str(r.page_count),
            escape(r.error_message or ""),
        )
    console.print(table)


def _open_db(db_path: Path) -> sqlite3.Connection:
    db = Database(db_path)
    conn = db.connect()
    initialize(conn)
    return conn
