from __future__ import annotations

import functools
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from mcp.server.fastmcp import FastMCP

from pinecone_mcp.config import Settings, configure_logging, load_settings
from pinecone_mcp.context import ServerContext
from pinecone_mcp.errors import USER_FACING_ERRORS, EmptyQueryError, InvalidTopKError
from pinecone_mcp.filters import require_valid_filter
from pinecone_mcp.formatting import document_row, format_ranked, format_rows, reassemble_by_document
from pinecone_mcp.guided import PreferredTool, run_guided_query
from pinecone_mcp.models import FAST_QUERY_FIELDS, MAX_TOP_K, MIN_TOP_K
from pinecone_mcp.results import QueryPayload, UrlRow
from pinecone_mcp.router import rank_namespaces
from pinecone_mcp.suggestion import suggest_query_params as suggest

configure_logging(load_settings())
logger = logging.getLogger(__name__)

SERVER_NAME = "Pinecone Read-Only MCP"
SERVER_INSTRUCTIONS = """\
A semantic search server that provides hybrid search capabilities over \
Pinecone vector indexes with automatic namespace discovery.

Features:
- Hybrid Search: combines dense and sparse embeddings for better recall
- Semantic Reranking: reranks candidates for improved precision
- Dynamic Namespace Discovery: discovers namespaces and their metadata fields
- Metadata Filtering: optional filters ($eq, $ne, $gt, $gte, $lt, $lte, $in, $nin)

Usage:
1. list_namespaces (or namespace_router) to find the namespace
2. suggest_query_params with the namespace and the user's question (mandatory)
3. count, query_fast, query_detailed, query or query_documents as suggested
Or call guided_query to run all three steps at once."""

ROUTER_MAX_TOP_N = 5
QUERY_DOCUMENTS_DEFAULT_TOP_K = 5
QUERY_DOCUMENTS_MAX_TOP_K = 20
QUERY_DOCUMENTS_MAX_CHUNKS = 500
CHUNKS_PER_DOCUMENT = 50

mcp = FastMCP(SERVER_NAME, instructions=SERVER_INSTRUCTIONS)

_context: ServerContext | None = None


def _ctx() -> ServerContext:
    global _context
    if _context is None:
        _context = ServerContext(load_settings())
    return _context


def _json(payload: Mapping[str, object]) -> str:
    return json.dumps(payload, indent=2, default=str)


def _error(message: str) -> str:
    return _json({"status": "error", "message": message})


def _tool_errors(
    fallback: str,
) -> Callable[[Callable[..., Awaitable[str]]], Callable[..., Awaitable[str]]]:
    """Catch exceptions at the MCP boundary and return a JSON error.

    Caller mistakes are reported verbatim.  Anything else is replaced by
    *fallback* unless debug logging is on, so backend details do not leak.
    """

    def decorator(fn: Callable[..., Awaitable[str]]) -> Callable[..., Awaitable[str]]:
        @functools.wraps(fn)
        async def wrapper(*args: object, **kwargs: object) -> str:
            try:
                return await fn(*args, **kwargs)
            except USER_FACING_ERRORS as exc:
                logger.warning("%s rejected: %s", fn.__name__, exc)
                return _error(str(exc))
            except Exception as exc:
                logger.exception("Error in %s", fn.__name__)
                return _error(str(exc) if _ctx().settings.debug else fallback)

        return wrapper

    return decorator


def _require_text(value: str, name: str) -> str:
    if not value or not value.strip():
        msg = f"{name} cannot be empty"
        raise EmptyQueryError(msg)
    return value.strip()


def _require_range(value: int, name: str, low: int, high: int) -> int:
    if not low <= value <= high:
        msg = f"{name} must be between {low} and {high}, got {value}"
        raise InvalidTopKError(msg)
    return value


@mcp.tool()
@_tool_errors("Failed to list namespaces")
async def list_namespaces() -> str:
    """List namespaces in the Pinecone index with record counts and metadata fields.

    Use this first to discover which namespaces exist and which metadata
    fields can be used in filters.  Results are cached for 30 minutes.
    """
    cache = _ctx().namespace_cache
    cached = await cache.get()
    return _json(
        {
            "status": "success",
            "cache_hit": cached.cache_hit,
            "cache_ttl_seconds": cache.ttl_remaining(cached.expires_at),
            "count": len(cached.data),
            "namespaces": [
                {
                    "name": ns.namespace,
                    "record_count": ns.record_count,
                    "metadata_fields": ns.field_types(),
                }
                for ns in cached.data
            ],
        }
    )


@mcp.tool()
@_tool_errors("Failed to route namespace")
async def namespace_router(user_query: str, top_n: int = 3) -> str:
    """Suggest likely namespaces for a user query.

    Uses namespace names and metadata field names.  Call before
    suggest_query_params when the namespace is unclear.

    Args:
        user_query: User question or intent.
        top_n: Maximum number of suggested namespaces (1-5, default 3).
    """
    query_text = _require_text(user_query, "user_query")
    top_n = _require_range(top_n, "top_n", 1, ROUTER_MAX_TOP_N)
    cached = await _ctx().namespace_cache.get()
    ranked = rank_namespaces(query_text, cached.data, top_n)
    return _json(
        {
            "status": "success",
            "cache_hit": cached.cache_hit,
            "user_query": query_text,
            "suggestions": format_ranked(ranked),
            "recommended_namespace": ranked[0].namespace if ranked else None,
        }
    )


@mcp.tool()
@_tool_errors("Failed to suggest query params")
async def suggest_query_params(namespace: str, user_query: str) -> str:
    """Suggest fields and the tool to use for a question against one namespace.

    Mandatory before count, query, query_fast, query_detailed and
    query_documents for that namespace.  Returns suggested_fields (only
    fields present in the namespace), use_count_tool, recommended_tool and
    an explanation.

    Args:
        namespace: Namespace name as returned by list_namespaces.
        user_query: The user's question, e.g. "how many papers by Wong?".
    """
    query_text = _require_text(user_query, "user_query")
    ctx = _ctx()
    cached = await ctx.namespace_cache.get()
    info = cached.find(namespace)
    result = suggest(info.metadata_fields if info is not None else None, query_text)
    if result.namespace_found:
        ctx.flow_gate.mark_suggested(
            namespace,
            recommended_tool=result.recommended_tool,
            suggested_fields=result.suggested_fields,
            user_query=query_text,
        )
    return _json(
        {
            "status": "success",
            "cache_hit": cached.cache_hit,
            "suggested_fields": result.suggested_fields,
            "use_count_tool": result.use_count_tool,
            "recommended_tool": result.recommended_tool,
            "explanation": result.explanation,
            "namespace_found": result.namespace_found,
        }
    )


@mcp.tool()
@_tool_errors("Failed to get count")
async def count(
    namespace: str,
    query_text: str,
    metadata_filter: dict[str, Any] | None = None,
) -> str:
    """Count unique documents matching a semantic query and metadata filter.

    Deduplicates by document_number, url or doc_id, up to 10,000 hits;
    truncated=true means the real count may be higher.  For counting by
    metadata alone, use a broad query_text such as "paper" or "document".
    Call suggest_query_params first.

    Args:
        namespace: Namespace to count in.
        query_text: Search query text.
        metadata_filter: Optional filter, e.g. {"author": {"$in": ["John Lakos"]}}.
    """
    query_text = _require_text(query_text, "query_text")
    require_valid_filter(metadata_filter)
    ctx = _ctx()
    ctx.flow_gate.ensure_suggested(namespace)
    result = await ctx.client.count(query_text, namespace, metadata_filter)
    return _json(
        {
            "status": "success",
            "count": result.count,
            "truncated": result.truncated,
            "namespace": namespace,
            "metadata_filter": metadata_filter,
        }
    )


async def _run_query(
    mode: str,
    query_text: str,
    namespace: str,
    top_k: int,
    metadata_filter: dict[str, Any] | None,
    fields: list[str] | None,
    *,
    use_reranking: bool,
) -> str:
    text = _require_text(query_text, "Query text")
    top_k = _require_range(top_k, "top_k", MIN_TOP_K, MAX_TOP_K)
    require_valid_filter(metadata_filter)
    ctx = _ctx()
    ctx.flow_gate.ensure_suggested(namespace)
    if metadata_filter:
        logger.info("Received metadata filter: %s", json.dumps(metadata_filter))

    results = await ctx.client.query(
        text,
        namespace,
        top_k,
        metadata_filter,
        use_reranking=use_reranking,
        fields=fields or None,
    )
    rows = format_rows(results, namespace, registry=ctx.url_registry)
    payload: QueryPayload = {
        "status": "success",
        "mode": mode,
        "query": text,
        "namespace": namespace,
        "metadata_filter": metadata_filter,
        "result_count": len(rows),
        "results": rows,
    }
    if fields:
        payload["fields"] = fields
    return _json(payload)


@mcp.tool()
@_tool_errors("An error occurred while processing your query")
async def query(
    query_text: str,
    namespace: str,
    top_k: int = 10,
    metadata_filter: dict[str, Any] | None = None,
    fields: list[str] | None = None,
    use_reranking: bool = True,
) -> str:
    """Hybrid (dense + sparse) search with optional semantic reranking.

    Call suggest_query_params first.  For lighter retrieval use query_fast;
    for content-heavy retrieval use query_detailed.

    Args:
        query_text: Search query text. Be specific for better results.
        namespace: Namespace to search within.
        top_k: Number of results to return (1-100, default 10).
        metadata_filter: Optional metadata filter.
        fields: Optional field names to return; use suggested_fields.
        use_reranking: Rerank for better relevance (slower).
    """
    return await _run_query(
        "query", query_text, namespace, top_k, metadata_filter, fields, use_reranking=use_reranking
    )


@mcp.tool()
@_tool_errors("An error occurred while processing your query")
async def query_fast(
    query_text: str,
    namespace: str,
    top_k: int = 10,
    metadata_filter: dict[str, Any] | None = None,
    fields: list[str] | None = None,
) -> str:
    """Fast query preset: no reranking, lightweight fields by default.

    Call suggest_query_params first.

    Args:
        query_text: Search query text.
        namespace: Namespace to search within.
        top_k: Number of results to return (1-100, default 10).
        metadata_filter: Optional metadata filter.
        fields: Field names to return (default document_number, title, url, author).
    """
    return await _run_query(
        "query_fast",
        query_text,
        namespace,
        top_k,
        metadata_filter,
        fields or list(FAST_QUERY_FIELDS),
        use_reranking=False,
    )


@mcp.tool()
@_tool_errors("An error occurred while processing your query")
async def query_detailed(
    query_text: str,
    namespace: str,
    top_k: int = 10,
    metadata_filter: dict[str, Any] | None = None,
    fields: list[str] | None = None,
    use_reranking: bool = True,
) -> str:
    """Detailed query preset for reading and summarization, with content snippets.

    Call suggest_query_params first.

    Args:
        query_text: Search query text.
        namespace: Namespace to search within.
        top_k: Number of results to return (1-100, default 10).
        metadata_filter: Optional metadata filter.
        fields: Optional field names to return.
        use_reranking: Rerank for better precision (default true).
    """
    return await _run_query(
        "query_detailed",
        query_text,
        namespace,
        top_k,
        metadata_filter,
        fields,
        use_reranking=use_reranking,
    )


@mcp.tool()
@_tool_errors("Keyword search failed")
async def keyword_search(
    query_text: str,
    namespace: str,
    top_k: int = 10,
    metadata_filter: dict[str, Any] | None = None,
    fields: list[str] | None = None,
) -> str:
    """Keyword (lexical, sparse-only) search over the dedicated sparse index.

    Use for exact or keyword-style queries.  No reranking.
    suggest_query_params is optional for this tool.

    Args:
        query_text: Search query text (keyword match).
        namespace: Namespace to search.
        top_k: Number of results to return (1-100, default 10).
        metadata_filter: Optional metadata filter.
        fields: Optional field names to return; omit for all fields.
    """
    text = _require_text(query_text, "Query text")
    top_k = _require_range(top_k, "top_k", MIN_TOP_K, MAX_TOP_K)
    require_valid_filter(metadata_filter)
    ctx = _ctx()
    results = await ctx.client.keyword_search(
        text,
        namespace,
        top_k,
        metadata_filter,
        fields=fields or None,
    )
    rows = format_rows(results, namespace, registry=ctx.url_registry)
    payload: dict[str, object] = {
        "status": "success",
        "query": text,
        "namespace": namespace,
        "index": ctx.client.keyword_index_name,
        "metadata_filter": metadata_filter,
        "result_count": len(rows),
        "results": rows,
    }
    if fields:
        payload["fields"] = fields
    return _json(payload)


@mcp.tool()
@_tool_errors("Failed to query and reassemble documents")
async def query_documents(
    query_text: str,
    namespace: str,
    top_k: int = QUERY_DOCUMENTS_DEFAULT_TOP_K,
    metadata_filter: dict[str, Any] | None = None,
    max_chunks_per_document: int | None = None,
) -> str:
    """Run a semantic query and return whole documents reassembled from chunks.

    Chunks are grouped by document_number, url or doc_id, ordered by
    chunk_index when present, and merged.  Use for summarization or
    full-document questions.  Call suggest_query_params first.

    Args:
        query_text: Search query text.
        namespace: Namespace to search.
        top_k: Number of documents to return (1-20, default 5).
        metadata_filter: Optional metadata filter.
        max_chunks_per_document: Max chunks merged per document (1-500, default 200).
    """
    text = _require_text(query_text, "query_text")
    top_k = _require_range(top_k, "top_k", MIN_TOP_K, QUERY_DOCUMENTS_MAX_TOP_K)
    if max_chunks_per_document is not None:
        max_chunks_per_document = _require_range(
            max_chunks_per_document, "max_chunks_per_document", 1, QUERY_DOCUMENTS_MAX_CHUNKS
        )
    require_valid_filter(metadata_filter)
    ctx = _ctx()
    ctx.flow_gate.ensure_suggested(namespace)

    chunk_limit = min(MAX_TOP_K, top_k * CHUNKS_PER_DOCUMENT)
    results = await ctx.client.query(
        text, namespace, chunk_limit, metadata_filter, use_reranking=True
    )

    if max_chunks_per_document is None:
        documents = reassemble_by_document(results)
    else:
        documents = reassemble_by_document(results, max_chunks_per_document)
    documents.sort(key=lambda d: d.best_score, reverse=True)
    top = documents[:top_k]
    return _json(
        {
            "status": "success",
            "query": text,
            "namespace": namespace,
            "metadata_filter": metadata_filter,
            "result_count": len(top),
            "documents": [document_row(d) for d in top],
        }
    )


@mcp.tool()
@_tool_errors("Failed to execute guided query")
async def guided_query(
    user_query: str,
    namespace: str | None = None,
    metadata_filter: dict[str, Any] | None = None,
    top_k: int = 10,
    preferred_tool: PreferredTool = "auto",
    enrich_urls: bool = True,
) -> str:
    """Route, suggest and execute in one call, with a decision trace.

    Picks the namespace (unless given), suggests fields and tool, then runs
    count, query_fast or query_detailed.

    Args:
        user_query: User question or intent.
        namespace: Optional explicit namespace; otherwise routed.
        metadata_filter: Optional metadata filter.
        top_k: Result count for the query paths (1-100, default 10).
        preferred_tool: auto, count, query_fast or query_detailed.
        enrich_urls: Backfill missing URLs for namespaces with a URL generator.
    """
    top_k = _require_range(top_k, "top_k", MIN_TOP_K, MAX_TOP_K)
    ctx = _ctx()
    outcome = await run_guided_query(
        ctx.client,
        ctx.namespace_cache,
        ctx.flow_gate,
        user_query,
        namespace=namespace,
        metadata_filter=metadata_filter,
        top_k=top_k,
        preferred_tool=preferred_tool,
        enrich_urls=enrich_urls,
        registry=ctx.url_registry,
    )
    return _json(
        {
            "status": "success",
            "decision_trace": outcome.decision_trace,
            "result": outcome.result,
        }
    )


def _record_metadata(record: Mapping[str, Any]) -> dict[str, Any]:
    nested = record.get("metadata")
    if isinstance(nested, Mapping):
        return dict(nested)
    return dict(record)


@mcp.tool()
@_tool_errors("Failed to generate URLs")
async def generate_urls(namespace: str, records: list[dict[str, Any]]) -> str:
    """Generate URLs for retrieved records whose metadata has no url.

    Uses the namespace's URL generator if it has one; otherwise each record
    is reported as unavailable with a reason.

    Args:
        namespace: Target namespace.
        records: Records from retrieval results; each is either the metadata
            itself or an object with a ``metadata`` field.
    """
    registry = _ctx().url_registry
    rows: list[UrlRow] = []
    for index, record in enumerate(records):
        metadata = _record_metadata(record)
        generated = registry.generate(namespace, metadata)
        rows.append(
            {
                "index": index,
                "url": generated.url,
                "method": generated.method,
                "reason": generated.reason,
                "metadata": metadata,
            }
        )
    return _json(
        {
            "status": "success",
            "namespace": namespace,
            "count": len(rows),
            "results": rows,
        }
    )


def main(settings: Settings | None = None) -> None:
    global _context
    if settings is not None:
        _context = ServerContext(settings)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
