"""wooai health / template: knowledge base health report and starter content."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wooai.errors import InvalidArgument, PersistenceError
from wooai.kb.health import HealthReport
from wooai.kb.templates import SUPPORTED_TEMPLATE_TYPES, generate_content_template

from wooai.cli.common import DEFAULT_DB_PATH, load_cli_config, open_services
from wooai.cli.errors import err_unknown_template

console = Console()

_STATUS_STYLE = {
    "Excellent": "green",
    "Good": "green",
    "Needs Improvement": "yellow",
    "Poor": "red",
    "Critical": "red",
}
_PRIORITY_STYLE = {"critical": "red", "high": "yellow", "medium": "cyan", "low": "dim"}


def health_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .wooai.db."),
    ] = DEFAULT_DB_PATH,
    force: Annotated[
        bool,
        typer.Option("--force", help="Recalculate instead of using the cached report."),
    ] = False,
    freshness: Annotated[
        bool,
        typer.Option("--freshness", help="Also show per-type freshness."),
    ] = False,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the raw report as JSON."),
    ] = False,
) -> None:
    """Score knowledge base completeness, freshness and quality."""
    services = open_services(db)
    try:
        report = services.health.get_health_score(force_recalculate=force)
        per_type = services.health.test_freshness() if freshness else None
    except PersistenceError as exc:
        console.print(f"[red]Error:[/] {exc}\n  Run:  wooai init  to repair the database schema.")
        raise typer.Exit(1) from exc
    finally:
        services.close()

    if as_json:
        payload = report.to_dict()
        if per_type is not None:
            payload["freshness_by_type"] = per_type
        typer.echo(json.dumps(payload, indent=2))
        return

    _show_score_panel(report)
    _show_suggestions(report)
    if per_type:
        _show_freshness_table(per_type)


def template_cmd(
    content_type: Annotated[
        str,
        typer.Argument(help=f"One of: {', '.join(SUPPORTED_TEMPLATE_TYPES)}."),
    ],
) -> None:
    """Print a starter template for a missing content type."""
    cfg = load_cli_config()
    try:
        template = generate_content_template(content_type, cfg.store.name)
    except InvalidArgument as exc:
        console.print(err_unknown_template(content_type, list(SUPPORTED_TEMPLATE_TYPES)))
        raise typer.Exit(1) from exc

    console.print(f"[bold]{template.title}[/]  [dim](template v{template.template_version})[/]\n")
    typer.echo(template.content)
    if template.customization_needed:
        console.print("\n[yellow]Fill in before publishing:[/]")
        for item in template.customization_needed:
            console.print(f"  [ ] {item}")


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _show_score_panel(report: HealthReport) -> None:
    style = _STATUS_STYLE.get(report.health_status, "white")
    lines = [
        f"Overall:       [bold {style}]{report.overall_score}[/] ({report.health_status})",
        f"Completeness:  {report.completeness_score}",
        f"Freshness:     {report.freshness_score}",
        f"Quality:       {report.quality_score}",
    ]
    missing = report.breakdown.get("completeness", {}).get("missing_content", [])
    if missing:
        names = ", ".join(m["content_type"] for m in missing)
        lines.append(f"Missing:       [yellow]{names}[/]")
    if report.last_calculated:
        lines.append(f"[dim]Calculated {report.last_calculated}[/]")
    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base Health[/]", expand=False))


def _show_suggestions(report: HealthReport) -> None:
    if not report.suggestions:
        return
    table = Table(title="Suggestions")
    table.add_column("Priority")
    table.add_column("Area")
    table.add_column("Suggestion")
    table.add_column("Action")
    for s in report.suggestions:
        style = _PRIORITY_STYLE.get(s.priority, "white")
        table.add_row(f"[{style}]{s.priority}[/]", s.category, s.title, s.action)
    console.print(table)


def _show_freshness_table(per_type: dict[str, dict]) -> None:
    table = Table(title="Freshness by type")
    table.add_column("Type")
    table.add_column("Items", justify="right")
    table.add_column("Avg age (days)", justify="right")
    table.add_column("Status")
    for content_type, row in per_type.items():
        table.add_row(content_type, str(row["total_items"]), str(row["avg_age_days"]), row["status"])
    console.print(table)
