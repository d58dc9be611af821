"""mnemos CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from mnemos.cli.index import index_cmd, reindex_cmd
from mnemos.cli.ingest import ingest_cmd
from mnemos.cli.remove import remove_cmd
from mnemos.cli.search import search_cmd
from mnemos.cli.status import changes_cmd, status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("mnemos")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"mnemos {_installed_version()}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    if not verbose:
        logging.getLogger("LiteLLM").setLevel(logging.ERROR)


app = typer.Typer(
    name="mnemos",
    help=(
        "mnemos: local-first hybrid retrieval over scoped memories and documents.\n\n"
        "  mnemos ingest   Store text or a file and queue it for indexing.\n"
        "  mnemos search   Retrieve and assemble context for a query."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """mnemos: local-first hybrid retrieval engine."""
    _configure_logging(verbose)


app.command("ingest")(ingest_cmd)
app.command("index")(index_cmd)
app.command("reindex")(reindex_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)
app.command("changes")(changes_cmd)
app.command("remove")(remove_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed mnemos version."""
    typer.echo(f"mnemos {_installed_version()}")


if __name__ == "__main__":
    app()
