"""One-call orchestration: route, suggest, then execute.

guided_query folds namespace_router, suggest_query_params and the matching
execution tool into a single call, and returns a decision trace describing
each choice it made.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from pinecone_mcp.errors import (
    EmptyQueryError,
    NamespaceNotFoundError,
    NoNamespaceAvailableError,
)
from pinecone_mcp.filters import require_valid_filter
from pinecone_mcp.formatting import format_ranked, format_rows
from pinecone_mcp.models import FAST_QUERY_FIELDS, ToolName
from pinecone_mcp.router import rank_namespaces
from pinecone_mcp.suggestion import suggest_query_params

if TYPE_CHECKING:
    from pinecone_mcp.cache import NamespaceCache
    from pinecone_mcp.flow import FlowGate
    from pinecone_mcp.results import CountPayload, DecisionTrace, QueryPayload
    from pinecone_mcp.search import HybridSearchClient
    from pinecone_mcp.urls import UrlGeneratorRegistry

logger = logging.getLogger(__name__)

ROUTER_TOP_N = 3

PreferredTool = Literal["auto", "count", "query_fast", "query_detailed"]


@dataclass(frozen=True)
class GuidedQueryResult:
    decision_trace: DecisionTrace
    result: CountPayload | QueryPayload


async def run_guided_query(
    client: HybridSearchClient,
    namespace_cache: NamespaceCache,
    flow_gate: FlowGate,
    user_query: str,
    namespace: str | None = None,
    metadata_filter: Mapping[str, object] | None = None,
    top_k: int = 10,
    preferred_tool: PreferredTool = "auto",
    *,
    enrich_urls: bool = True,
    registry: UrlGeneratorRegistry | None = None,
) -> GuidedQueryResult:
    """Route, suggest and execute in one step.

    Without an explicit *namespace* the best-ranked one is used.  The flow
    gate is opened with the tool actually selected, so follow-up calls to
    the individual tools are allowed.

    Raises:
        EmptyQueryError: If *user_query* is blank.
        InvalidFilterError: If *metadata_filter* is malformed.
        NoNamespaceAvailableError: If the index has no namespaces.
        NamespaceNotFoundError: If *namespace* is not in the inventory.
    """
    if not user_query or not user_query.strip():
        msg = "user_query cannot be empty"
        raise EmptyQueryError(msg)
    require_valid_filter(metadata_filter)

    query_text = user_query.strip()
    cached = await namespace_cache.get()
    ranked = rank_namespaces(query_text, cached.data, ROUTER_TOP_N)
    routed = ranked[0].namespace if ranked else None

    selected = namespace or routed
    if not selected:
        msg = "No namespace available. Please run list_namespaces and verify index data."
        raise NoNamespaceAvailableError(msg)

    info = cached.find(selected)
    suggestion = suggest_query_params(
        info.metadata_fields if info is not None else None, query_text
    )
    if not suggestion.namespace_found:
        msg = (
            f'Namespace "{selected}" not found in cached namespaces. '
            "Call list_namespaces and retry."
        )
        raise NamespaceNotFoundError(msg)

    tool: ToolName = (
        suggestion.recommended_tool if preferred_tool == "auto" else preferred_tool
    )
    flow_gate.mark_suggested(
        selected,
        recommended_tool=tool,
        suggested_fields=suggestion.suggested_fields,
        user_query=query_text,
    )
    logger.info("guided_query: namespace=%s tool=%s", selected, tool)

    trace: DecisionTrace = {
        "cache_hit": cached.cache_hit,
        "input_namespace": namespace,
        "routed_namespace": routed,
        "selected_namespace": selected,
        "ranked_namespaces": format_ranked(ranked),
        "suggested_fields": list(suggestion.suggested_fields),
        "suggested_tool": suggestion.recommended_tool,
        "selected_tool": tool,
        "explanation": suggestion.explanation,
        "enrich_urls": enrich_urls,
    }
    filter_echo = dict(metadata_filter) if metadata_filter is not None else None

    if tool == "count":
        counted = await client.count(query_text, selected, metadata_filter)
        count_payload: CountPayload = {
            "tool": "count",
            "namespace": selected,
            "query": query_text,
            "metadata_filter": filter_echo,
            "count": counted.count,
            "truncated": counted.truncated,
        }
        return GuidedQueryResult(decision_trace=trace, result=count_payload)

    fast = tool == "query_fast"
    fields = list(suggestion.suggested_fields) or list(FAST_QUERY_FIELDS)
    results = await client.query(
        query_text,
        selected,
        top_k,
        metadata_filter,
        use_reranking=not fast,
        fields=fields,
    )
    rows = format_rows(results, selected, enrich_urls=enrich_urls, registry=registry)
    query_payload: QueryPayload = {
        "status": "success",
        "mode": tool,
        "query": query_text,
        "namespace": selected,
        "metadata_filter": filter_echo,
        "result_count": len(rows),
        "results": rows,
        "fields": fields,
    }
    return GuidedQueryResult(decision_trace=trace, result=query_payload)
