"""wooai CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from wooai.cli.chat import chat_cmd, search_cmd
from wooai.cli.health import health_cmd, template_cmd
from wooai.cli.index import index_cmd, remove_cmd
from wooai.cli.init import init_cmd
from wooai.cli.serve import serve_cmd
from wooai.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("wooai")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"wooai {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="wooai",
    help=(
        "wooai: knowledge base and RAG chat backend for a storefront assistant.\n\n"
        "  wooai index   Build the knowledge base from a content export.\n"
        "  wooai health  Score knowledge base coverage and freshness.\n"
        "  wooai chat    Ask the assistant a question.\n"
        "  wooai serve   Run the HTTP API for the chat widget."
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
) -> None:
    """wooai: knowledge base and RAG chat backend."""


app.command("init")(init_cmd)
app.command("index")(index_cmd)
app.command("remove")(remove_cmd)
app.command("health")(health_cmd)
app.command("template")(template_cmd)
app.command("search")(search_cmd)
app.command("chat")(chat_cmd)
app.command("serve")(serve_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed wooai version."""
    typer.echo(f"wooai {_installed_version()}")


if __name__ == "__main__":
    app()
