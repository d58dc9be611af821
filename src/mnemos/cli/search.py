"""mnemos search: hybrid retrieval plus the assembled context block."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from mnemos.cli.errors import err_no_db, err_store
from mnemos.cli.index import load_cli_config
from mnemos.engine import Engine
from mnemos.errors import StoreError

console = Console()

_DEFAULT_DB = Path("mnemos.db")


def search_cmd(
    query: Annotated[str, typer.Argument(help="Free-text query.")],
    scope: Annotated[
        str,
        typer.Option("--scope", "-S", help="Scope to search in."),
    ],
    k: Annotated[
        int | None,
        typer.Option("--k", "-k", help="Number of chunks to retrieve (default: retrieval.top_k)."),
    ] = None,
    budget: Annotated[
        int | None,
        typer.Option("--budget", help="Context budget in characters (default: assembly.default_budget)."),
    ] = None,
    complex_query: Annotated[
        bool,
        typer.Option("--complex", help="Use assembly.complex_budget when --budget is not given."),
    ] = False,
    show_context: Annotated[
        bool,
        typer.Option("--context/--no-context", help="Print the assembled context block."),
    ] = True,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the mnemos database."),
    ] = _DEFAULT_DB,
) -> None:
    """Search a scope and show ranked chunks with citations."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    cfg = load_cli_config()
    with Engine(db, cfg) as engine:
        try:
            ranked = engine.retrieve(scope, query, k)
        except StoreError as exc:
            console.print(err_store(str(exc)))
            raise typer.Exit(1)

        if not ranked:
            console.print(f"[yellow]No matches[/] in scope '{scope}'.")
            raise typer.Exit(0)

        if budget is None:
            budget = cfg.assembly.complex_budget if complex_query else cfg.assembly.default_budget
        ctx = engine.assemble(ranked, budget)

    table = Table(title=f"Results for “{escape(query)}”", show_lines=False)
    table.add_column("#", justify="right", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Lex", justify="right", style="dim")
    table.add_column("Vec", justify="right", style="dim")
    table.add_column("Source")
    table.add_column("Excerpt", overflow="fold")

    for i, sc in enumerate(ranked, start=1):
        page = f", p. {sc.chunk.page_number}" if sc.chunk.page_number is not None else ""
        table.add_row(
            str(i),
            f"{sc.score:.3f}",
            "-" if sc.lexical_score is None else f"{sc.lexical_score:.2f}",
            "-" if sc.vector_score is None else f"{sc.vector_score:.2f}",
            escape(f"{sc.display_name}{page}"),
            escape(" ".join(sc.chunk.text.split())[:120]),
        )
    console.print(table)

    if show_context:
        title = f"[bold]Context[/] [dim]({ctx.chunk_count} chunks, {len(ctx.text)}/{budget} chars)[/]"
        console.print(Panel(escape(ctx.text) if ctx.text else "[dim](empty)[/]", title=title, expand=False))
        if ctx.truncated:
            console.print(
                "[yellow]⚠[/] The top-ranked chunk alone exceeds the budget and was left out.\n"
                "  Retry with a larger --budget."
            )
