"""wooai index / remove: build and maintain the knowledge base.

``index`` reads a JSON or YAML content export and re-indexes it in batches,
resuming an interrupted run unless ``--force`` is given. ``remove`` drops the
chunks of one source.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from wooai.errors import InvalidArgument, PersistenceError
from wooai.ingest.sources import JsonContentSource

from wooai.cli.common import DEFAULT_DB_PATH, open_services
from wooai.cli.errors import err_bad_source, err_index_failed, err_source_not_found

console = Console()


def index_cmd(
    source: Annotated[
        Path,
        typer.Option("--source", "-s", help="JSON or YAML content export."),
    ],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .wooai.db (created if missing)."),
    ] = DEFAULT_DB_PATH,
    content_type: Annotated[
        list[str] | None,
        typer.Option("--type", "-t", help="Only index this content type (repeatable)."),
    ] = None,
    batch_size: Annotated[
        int | None,
        typer.Option("--batch-size", min=1, help="Items per batch."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Discard saved progress and start over."),
    ] = False,
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Use deterministic local vectors instead of the embedding API."),
    ] = False,
) -> None:
    """Index a content export into the knowledge base."""
    if not source.is_file():
        console.print(err_source_not_found(str(source)))
        raise typer.Exit(1)

    content_source = JsonContentSource(source)
    try:
        types = content_type or content_source.content_types()
    except (InvalidArgument, json.JSONDecodeError, yaml.YAMLError) as exc:
        console.print(err_bad_source(str(source), str(exc)))
        raise typer.Exit(1) from exc

    if not types:
        console.print("[yellow]No content found to index.[/]")
        raise typer.Exit(0)

    services = open_services(db, offline=offline, must_exist=False)
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task(f"Indexing {', '.join(types)}…", total=None)
            result = services.indexer.process_bulk_reindex(
                content_source, types, batch_size=batch_size, force=force
            )
        stats = services.indexer.get_chunk_stats()
    except PersistenceError as exc:
        console.print(err_index_failed(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        services.close()

    if result.resumed:
        console.print("[yellow]↻ Resumed an interrupted re-index[/]")
    console.print(
        f"[green]✓[/] {result.processed} item(s), {result.chunks_created} chunk(s) "
        f"in {result.batches} batch(es)"
    )
    if result.errors:
        console.print(f"[yellow]⚠ {result.errors} item(s) skipped (see log)[/]")

    table = Table(title="Knowledge base", show_lines=False)
    table.add_column("Type")
    table.add_column("Sources", justify="right")
    table.add_column("Chunks", justify="right")
    table.add_column("Embedded", justify="right")
    for row in stats:
        table.add_row(
            row.source_type, str(row.total_sources), str(row.total_chunks), str(row.with_embedding)
        )
    console.print(table)


def remove_cmd(
    source_type: Annotated[str, typer.Argument(help="Content type, e.g. product.")],
    source_id: Annotated[str, typer.Argument(help="Source id within that type.")],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .wooai.db."),
    ] = DEFAULT_DB_PATH,
) -> None:
    """Remove every chunk of one source from the knowledge base."""
    services = open_services(db)
    try:
        removed = services.indexer.on_content_updated(source_type, source_id)
    finally:
        services.close()

    if not removed:
        console.print(
            f"[yellow]Source not found:[/] '{source_type}/{source_id}' is not in the knowledge base.\n"
            "  Run:  wooai status  to see indexed content."
        )
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Removed {removed} chunk(s) for {source_type}/{source_id}")
