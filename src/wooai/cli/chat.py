"""wooai chat / search: talk to the assistant and inspect retrieval from the terminal."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from wooai.rag import llm_client
from wooai.rag.orchestrator import ChatOptions, ChatResponse, error_envelope
from wooai.services import Services

from wooai.cli.common import DEFAULT_DB_PATH, open_services
from wooai.cli.errors import err_chat_failed, err_no_api_key, warn_no_content

console = Console()


def chat_cmd(
    message: Annotated[str, typer.Argument(help="Shopper message.")],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .wooai.db."),
    ] = DEFAULT_DB_PATH,
    conversation_id: Annotated[
        str | None,
        typer.Option("--conversation", "-c", help="Continue an existing conversation."),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", help="Override the plan's model (LiteLLM model string)."),
    ] = None,
    stream: Annotated[
        bool,
        typer.Option("--stream", help="Print the answer as it is generated."),
    ] = False,
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Answer from retrieved context without calling an LLM."),
    ] = False,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the response envelope as JSON."),
    ] = False,
) -> None:
    """Ask the shopping assistant a question."""
    services = open_services(db, offline=offline)
    try:
        if not services.config.generation.offline:
            chosen = model or services.plans.model_for_plan()
            if not llm_client.is_configured(chosen):
                console.print(err_no_api_key(chosen))
                raise typer.Exit(1)
        if services.repo.count_chunks() == 0:
            console.print(warn_no_content())

        options = ChatOptions(model=model)
        if stream:
            result = _stream(services, message, conversation_id, options)
        else:
            result = services.orchestrator.generate_response(
                message, conversation_id=conversation_id, options=options
            )
    finally:
        services.close()

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    elif not stream:
        typer.echo(result.response)

    if not result.success:
        console.print(err_chat_failed(result.error_code, result.error))
        raise typer.Exit(1)
    if not as_json:
        console.print(
            f"\n[dim]{result.model_used} · {result.context_chunks} source(s) · "
            f"confidence {result.confidence_score:.2f} · conversation {result.conversation_id}[/]"
        )


def _stream(services: Services, message: str, conversation_id: str | None, options: ChatOptions) -> ChatResponse:
    final: ChatResponse | None = None
    for event in services.orchestrator.stream_response(
        message, conversation_id=conversation_id, options=options
    ):
        if event.done:
            final = event.response
        else:
            typer.echo(event.message, nl=False)
    typer.echo("")
    if final is None:
        return error_envelope(
            "upstream_unavailable",
            "The answer stream ended without a final response.",
            conversation_id=conversation_id,
        )
    return final


def search_cmd(
    query: Annotated[str, typer.Argument(help="Search query.")],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .wooai.db."),
    ] = DEFAULT_DB_PATH,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, max=50, help="Maximum results."),
    ] = 5,
    threshold: Annotated[
        float,
        typer.Option("--threshold", min=0.0, max=1.0, help="Minimum similarity."),
    ] = 0.0,
    content_type: Annotated[
        list[str] | None,
        typer.Option("--type", "-t", help="Restrict to this content type (repeatable)."),
    ] = None,
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Embed the query locally instead of calling the API."),
    ] = False,
) -> None:
    """Show the knowledge chunks most similar to QUERY."""
    services = open_services(db, offline=offline)
    try:
        results = services.search.search_text(
            query, limit=limit, threshold=threshold, source_types=content_type or None
        )
    finally:
        services.close()

    if not results:
        console.print("[yellow]No matching content.[/]")
        return

    table = Table(title=f"Results for {query!r}")
    table.add_column("Score", justify="right")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("Excerpt")
    for r in results:
        excerpt = r.content if len(r.content) <= 80 else r.content[:77] + "..."
        table.add_row(f"{r.similarity:.3f}", r.source_type, r.title or "(untitled)", excerpt)
    console.print(table)
