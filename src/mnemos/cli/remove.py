"""mnemos remove: delete a record or a whole scope.

Removes the record(s) and everything derived from them:
  - content units
  - chunks, quantized vectors and FTS5 entries
  - queued index jobs

Usage:
  mnemos remove --record 3f2a...
  mnemos remove --scope persona-1 --yes
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from mnemos.cli.errors import err_no_db, err_record_not_found
from mnemos.db.connection import Database
from mnemos.db.repository import Repository
from mnemos.db.schema import initialize

console = Console()

_DEFAULT_DB = Path("mnemos.db")


def remove_cmd(
    record: Annotated[
        str | None,
        typer.Option("--record", "-r", help="Record id to remove."),
    ] = None,
    scope: Annotated[
        str | None,
        typer.Option("--scope", "-S", help="Remove every record in this scope."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the mnemos database."),
    ] = _DEFAULT_DB,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a record, or all records of a scope, with their chunks and vectors."""
    if (record is None) == (scope is None):
        console.print("[red]Error:[/] Specify exactly one of --record ID or --scope SCOPE.")
        raise typer.Exit(1)
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    conn = _open_db(db)
    repo = Repository(conn)
    try:
        if record is not None:
            existing = repo.get_record(record)
            if existing is None:
                console.print(err_record_not_found(record))
                raise typer.Exit(0)
            chunk_count = len(repo.list_chunks(record))
            console.print(f"\nRemove record: [bold]{escape(existing.display_name)}[/] ({record})")
            console.print(f"  Pages: {existing.page_count}  |  Chunks: {chunk_count}")
            _confirm(yes)
            repo.delete_record(record)
            console.print(f"\n[green]✓[/] Removed: {escape(existing.display_name)}")
        else:
            records = repo.list_records(scope)
            if not records:
                console.print(f"[yellow]Scope '{scope}' has no records.[/]")
                raise typer.Exit(0)
            console.print(
                f"\nRemove scope: [bold]{scope}[/]  |  Records: {len(records)}  |  "
                f"Chunks: {repo.count_chunks(scope)}"
            )
            _confirm(yes)
            removed = repo.delete_scope(scope)
            console.print(f"\n[green]✓[/] Removed {removed} record(s) from '{scope}'")
    finally:
        conn.close()


def _confirm(yes: bool) -> None:
    if not yes and not typer.confirm("Confirm removal?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)


def _open_db(db_path: Path) -> sqlite3.Connection:
    db = Database(db_path)
    conn = db.connect()
    initialize(conn)
    return conn
