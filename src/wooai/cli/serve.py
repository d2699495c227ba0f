"""wooai serve: run the chat API with uvicorn."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from wooai.cli.common import DEFAULT_DB_PATH, open_services

console = Console()


def serve_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .wooai.db."),
    ] = DEFAULT_DB_PATH,
    host: Annotated[str, typer.Option("--host", help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", help="Bind port.")] = 8000,
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Serve without calling the embedding or LLM APIs."),
    ] = False,
) -> None:
    """Serve the chat and knowledge base HTTP API."""
    import uvicorn

    from wooai.api import create_app

    services = open_services(db, offline=offline)
    console.print(f"[bold]wooai[/] API on http://{host}:{port}  (plan: {services.plans.plan})")
    try:
        uvicorn.run(create_app(services), host=host, port=port, log_config=None)
    finally:
        services.close()
