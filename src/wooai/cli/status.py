"""wooai status command.

Shows the store configuration, knowledge base contents and plan usage.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wooai.config import WooAiConfig
from wooai.services import Services

from wooai.cli.common import DEFAULT_DB_PATH, load_cli_config, open_services

console = Console()


def status_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .wooai.db."),
    ] = DEFAULT_DB_PATH,
) -> None:
    """Show configuration, knowledge base and usage overview."""
    if not db.exists():
        _show_config_panel(db, load_cli_config())
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  wooai init",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    services = open_services(db)
    try:
        _show_config_panel(db, services.config)
        _show_knowledge_panel(services)
        _show_usage_panel(services)
    finally:
        services.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_config_panel(db: Path, cfg: WooAiConfig) -> None:
    db_info = f"{db}"
    if db.exists():
        size_mb = db.stat().st_size / (1024 * 1024)
        db_info = f"{db} ({size_mb:.1f} MB)"
    mode = "[yellow]offline[/]" if cfg.generation.offline else "online"
    lines = [
        f"Store:      [bold]{cfg.store.name}[/]",
        f"Database:   {db_info}",
        f"Plan:       {cfg.license.plan}",
        f"Model:      {cfg.generation.plan_models.get(cfg.license.plan, '(none)')}",
        f"Embedding:  {cfg.embedding.model} ({cfg.embedding.dimensions}d)",
        f"Mode:       {mode}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Configuration[/]", expand=False))


def _show_knowledge_panel(services: Services) -> None:
    stats = services.indexer.get_chunk_stats()
    if not stats:
        console.print(
            Panel(
                "[dim]No content indexed yet.[/]\n"
                "  Run:  wooai index --source <export.json>",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    table = Table(title="Knowledge Base")
    table.add_column("Type")
    table.add_column("Sources", justify="right")
    table.add_column("Chunks", justify="right")
    table.add_column("Embedded", justify="right")
    table.add_column("Avg size", justify="right")
    table.add_column("Last indexed")
    for row in stats:
        table.add_row(
            row.source_type,
            str(row.total_sources),
            f"{row.total_chunks:,}",
            str(row.with_embedding),
            f"{row.avg_chunk_size:.0f}",
            row.last_indexed or "",
        )
    console.print(table)


def _show_usage_panel(services: Services) -> None:
    usage = services.plans.usage()
    limit = usage["messages_limit"]
    limit_text = "unlimited" if limit is None else f"{limit:,}"
    lines = [
        f"Month:     {usage['month']}",
        f"Messages:  {usage['messages_used']:,} / {limit_text}",
        f"Tokens:    {usage['tokens_used']:,}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Usage[/]", expand=False))
