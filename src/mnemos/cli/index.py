"""mnemos index / reindex: drain the durable indexing queue.

Indexing normally runs on background threads inside a long-lived Engine.
From the CLI the queue is drained synchronously with a progress bar per
record.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
)

from mnemos.cli.errors import (
    err_config,
    err_no_api_key,
    err_no_db,
    err_record_not_found,
    err_store,
    warn_failed_records,
)
from mnemos.config import ConfigError, MnemosConfig, load_config
from mnemos.db.models import IndexStatus
from mnemos.engine import Engine
from mnemos.errors import StoreError, ValidationError

console = Console()

_DEFAULT_DB = Path("mnemos.db")


def index_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the mnemos database."),
    ] = _DEFAULT_DB,
) -> None:
    """Index every queued record now."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)
    cfg = load_cli_config()
    run_indexing(db, cfg)


def reindex_cmd(
    record_id: Annotated[str, typer.Argument(help="Record id (see: mnemos status).")],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the mnemos database."),
    ] = _DEFAULT_DB,
    index: Annotated[
        bool,
        typer.Option("--index/--no-index", help="Index immediately instead of only queueing."),
    ] = True,
) -> None:
    """Queue a fresh indexing pass for a READY or FAILED record."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)
    cfg = load_cli_config()
    with Engine(db, cfg) as engine:
        try:
            job_id = engine.reindex(record_id)
        except ValidationError:
            console.print(err_record_not_found(record_id))
            raise typer.Exit(1)
    console.print(f"[green]✓[/] Queued re-index (job {job_id})")
    if index:
        run_indexing(db, cfg)


# ------------------------------------------------------------------
# Shared helpers (also used by `mnemos ingest`)
# ------------------------------------------------------------------


def load_cli_config() -> MnemosConfig:
    """Load config from the current directory, exiting with a message on error."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def run_indexing(db: Path, cfg: MnemosConfig) -> int:
    """Drain the queue with a live progress bar. Returns the number of jobs run."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        tasks: dict[str, TaskID] = {}

        def _on_progress(record_id: str, done: int, total: int) -> None:
            if record_id not in tasks:
                tasks[record_id] = prog.add_task(f"Indexing {record_id[:8]}…", total=max(total, 1))
            prog.update(tasks[record_id], completed=done, total=max(total, 1))

        with Engine(db, cfg, on_progress=_on_progress) as engine:
            try:
                jobs = engine.run_pending()
            except StoreError as exc:
                console.print(err_store(str(exc)))
                raise typer.Exit(1)
            failed = engine.list_records(status=IndexStatus.FAILED)

    if jobs == 0:
        console.print("[dim]Nothing queued.[/]")
    else:
        console.print(f"[green]✓[/] Ran {jobs} indexing job(s)")
    if failed:
        console.print(warn_failed_records(len(failed)))
        if any("API key not found" in (r.error_message or "") for r in failed):
            model = cfg.embedding.model
            console.print(err_no_api_key(model.split("/")[0] if "/" in model else "openai"))
    return jobs
