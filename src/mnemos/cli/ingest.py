"""mnemos ingest: store text or a file under a scope and queue it for indexing.

  --text TEXT     one content unit (memory turn by default, --kind document)
  --source PATH   a file; .pdf via pypdf, anything else as UTF-8 text split
                  into 100-line pages
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from mnemos.cli.errors import err_invalid_input, err_source_option, err_store
from mnemos.cli.index import load_cli_config, run_indexing
from mnemos.db.models import SourceKind
from mnemos.engine import Engine
from mnemos.errors import StoreError, ValidationError

console = Console()

_DEFAULT_DB = Path("mnemos.db")


def ingest_cmd(
    scope: Annotated[
        str,
        typer.Option("--scope", "-S", help="Scope (isolation boundary) to store into."),
    ],
    source: Annotated[
        Path | None,
        typer.Option("--source", "-s", help="File to ingest as a document."),
    ] = None,
    text: Annotated[
        str | None,
        typer.Option("--text", "-t", help="Text to ingest as one content unit."),
    ] = None,
    kind: Annotated[
        str,
        typer.Option("--kind", help="memory | document (for --text)."),
    ] = "memory",
    name: Annotated[
        str | None,
        typer.Option("--name", help="Display name used in citations."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the mnemos database (created if missing)."),
    ] = _DEFAULT_DB,
    index: Annotated[
        bool,
        typer.Option("--index/--no-index", help="Index immediately instead of only queueing."),
    ] = True,
) -> None:
    """Ingest text or a file into a scope."""
    if (source is None) == (text is None):
        console.print(err_source_option())
        raise typer.Exit(1)

    try:
        source_kind = SourceKind(kind.upper())
    except ValueError:
        console.print(err_invalid_input(f"Unknown --kind '{kind}'; use memory or document."))
        raise typer.Exit(1)

    cfg = load_cli_config()
    with Engine(db, cfg) as engine:
        try:
            if source is not None:
                record_id = engine.ingest_file(scope, source, display_name=name)
                record = engine.get_record(record_id)
                pages = record.page_count if record else 0
                console.print(
                    f"[green]✓[/] Queued [bold]{name or source.name}[/] "
                    f"({pages} pages), record {record_id}"
                )
            else:
                metadata = {"display_name": name} if name else None
                unit_id = engine.ingest(scope, source_kind, text or "", metadata)
                console.print(f"[green]✓[/] Queued {source_kind.value.lower()} unit {unit_id}")
        except ValidationError as exc:
            console.print(err_invalid_input(str(exc)))
            raise typer.Exit(1)
        except StoreError as exc:
            console.print(err_store(str(exc)))
            raise typer.Exit(1)

    if index:
        run_indexing(db, cfg)
