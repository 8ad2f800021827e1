from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from pinecone_mcp.config import Settings, configure_logging, load_settings
from pinecone_mcp.context import ServerContext
from pinecone_mcp.formatting import format_rows
from pinecone_mcp.router import rank_namespaces

configure_logging(load_settings())
logger = logging.getLogger(__name__)

app = typer.Typer(help="pinecone-read-only-mcp: read-only hybrid search over Pinecone")
console = Console()
err_console = Console(stderr=True)


def _cli_errors(fn: Callable[..., None]) -> Callable[..., None]:
    """Catch exceptions at the CLI boundary, log, and exit with code 1."""

    @functools.wraps(fn)
    def wrapper(*args: object, **kwargs: object) -> None:
        try:
            fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Command %s failed", fn.__name__)
            err_console.print(f"Error: {exc}", style="red")
            raise typer.Exit(code=1) from exc

    return wrapper


def _context() -> ServerContext:
    return ServerContext(load_settings())


@app.command()
@_cli_errors
def namespaces() -> None:
    """List namespaces with record counts and metadata fields."""
    infos = asyncio.run(_context().client.list_namespaces_with_metadata())

    table = Table(title="Namespaces")
    table.add_column("Namespace")
    table.add_column("Records", justify="right")
    table.add_column("Metadata fields")
    for ns in infos:
        fields = ", ".join(f"{k} ({v})" for k, v in ns.field_types().items())
        table.add_row(ns.namespace, str(ns.record_count), fields or "-")
    console.print(table)


@app.command()
@_cli_errors
def route(
    query: Annotated[str, typer.Argument(help="User question")],
    top_n: Annotated[int, typer.Option("--top-n", "-n", help="Namespaces to show")] = 3,
) -> None:
    """Rank namespaces by relevance to a question."""
    infos = asyncio.run(_context().client.list_namespaces_with_metadata())
    ranked = rank_namespaces(query, infos, top_n)
    if not ranked:
        console.print("No namespaces found.")
        return

    table = Table(title=f"Namespaces for: {query}")
    table.add_column("Namespace")
    table.add_column("Score", justify="right")
    table.add_column("Records", justify="right")
    table.add_column("Reasons")
    for r in ranked:
        table.add_row(r.namespace, str(r.score), str(r.record_count), "; ".join(r.reasons))
    console.print(table)


@app.command(name="search")
@_cli_errors
def search_cmd(
    query: Annotated[str, typer.Argument(help="Search query")],
    namespace: Annotated[str, typer.Option("--namespace", "-N", help="Namespace to search")],
    top_k: Annotated[int, typer.Option("--top-k", "-k", help="Max results")] = 10,
    rerank: Annotated[
        bool, typer.Option("--rerank/--no-rerank", help="Rerank hybrid results")
    ] = True,
    keyword: Annotated[
        bool, typer.Option("--keyword", help="Lexical search on the sparse index only")
    ] = False,
) -> None:
    """Run a hybrid (or keyword) search and print the results."""
    client = _context().client
    if keyword:
        results = asyncio.run(client.keyword_search(query, namespace, top_k))
    else:
        results = asyncio.run(client.query(query, namespace, top_k, use_reranking=rerank))

    for row in format_rows(results, namespace):
        label = row["paper_number"] or row["title"] or "-"
        console.print(f"\n[bold]{label}[/bold] (score: {row['score']})")
        if row["url"]:
            console.print(row["url"])
        if row["content"]:
            console.print(row["content"][:300], markup=False)
    console.print(f"\n{len(results)} result(s)")


@app.command(name="count")
@_cli_errors
def count_cmd(
    query: Annotated[str, typer.Argument(help="Search query (a broad term counts by metadata)")],
    namespace: Annotated[str, typer.Option("--namespace", "-N", help="Namespace to count in")],
) -> None:
    """Count unique documents matching a query."""
    result = asyncio.run(_context().client.count(query, namespace))
    suffix = " (truncated, at least this many)" if result.truncated else ""
    console.print(f"{result.count} document(s){suffix}")


@app.command()
def serve(
    api_key: Annotated[
        str | None, typer.Option("--api-key", help="Pinecone API key")
    ] = None,
    index_name: Annotated[
        str | None, typer.Option("--index-name", help="Dense index name")
    ] = None,
    sparse_index_name: Annotated[
        str | None, typer.Option("--sparse-index-name", help="Keyword search index name")
    ] = None,
    rerank_model: Annotated[
        str | None, typer.Option("--rerank-model", help="Reranking model")
    ] = None,
    log_level: Annotated[
        str | None, typer.Option("--log-level", help="DEBUG, INFO, WARN or ERROR")
    ] = None,
) -> None:
    """Start the MCP server (stdio transport)."""
    settings = _apply_overrides(
        load_settings(),
        pinecone_api_key=api_key,
        pinecone_index_name=index_name,
        pinecone_sparse_index_name=sparse_index_name,
        pinecone_rerank_model=rerank_model,
        log_level=log_level,
    )
    if not settings.pinecone_api_key:
        err_console.print(
            "Error: Pinecone API key is required. Set PINECONE_API_KEY "
            "environment variable or pass --api-key.",
            style="red",
        )
        raise typer.Exit(code=1)

    root = logging.getLogger()
    root.setLevel(settings.log_level)
    for handler in root.handlers:
        handler.setLevel(settings.log_level)
    logger.info(
        "Starting MCP server (index=%s, rerank_model=%s)",
        settings.pinecone_index_name,
        settings.pinecone_rerank_model,
    )
    from pinecone_mcp.mcp_server import main as mcp_main  # noqa: PLC0415

    mcp_main(settings)


def _apply_overrides(settings: Settings, **overrides: str | None) -> Settings:
    """Return *settings* with every non-None override applied and re-validated."""
    update = {k: v for k, v in overrides.items() if v is not None}
    if not update:
        return settings
    return Settings.model_validate({**settings.model_dump(), **update})


if __name__ == "__main__":
    app()
