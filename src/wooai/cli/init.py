"""wooai init: create the knowledge base and a project config.

Creates:
  .wooai.db               empty knowledge base with schema
  wooai.yaml              project config (store identity, plan, offline switch)
  ~/.wooai/config.yaml    global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from wooai.config import ensure_global_config
from wooai.db.connection import Database
from wooai.db.schema import initialize
from wooai.services import DEFAULT_DB

console = Console()

_PROJECT_TEMPLATE = """\
# wooai project configuration.
# API keys belong in environment variables, never in this file.

store:
  name: {store_name}
  assistant_name: Shopping Assistant

license:
  plan: free

generation:
  offline: false

retrieval:
  top_k: 5
  threshold: 0.3
"""


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = Path("."),
    store_name: Annotated[
        str,
        typer.Option("--store-name", help="Store name used in assistant prompts."),
    ] = "our store",
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override global config path (for testing)."),
    ] = None,
) -> None:
    """Initialize a wooai knowledge base in PROJECT_DIR."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    db_path = project_dir / DEFAULT_DB
    existed = db_path.exists()
    with Database(db_path) as conn:
        initialize(conn)
    if existed:
        console.print(f"  [dim]↷ {DEFAULT_DB} already exists (schema up to date)[/]")
    else:
        console.print(f"  [green]✓[/] {DEFAULT_DB}")

    cfg_path = project_dir / "wooai.yaml"
    if cfg_path.exists():
        console.print("  [dim]↷ wooai.yaml already exists[/]")
    else:
        cfg_path.write_text(_PROJECT_TEMPLATE.format(store_name=store_name), encoding="utf-8")
        console.print("  [green]✓[/] wooai.yaml")

    global_path = ensure_global_config(global_config)
    console.print(f"  [green]✓[/] {global_path} (global config)")

    console.print("\n[bold green]✓ wooai initialized.[/]")
    console.print("\nNext steps:")
    console.print("  1. wooai index --source <export.json>   (build knowledge base)")
    console.print("  2. wooai health                         (check coverage)")
    console.print("  3. wooai chat \"Do you ship abroad?\"     (try the assistant)")
