"""Typed payload structures returned by the MCP tools."""

from __future__ import annotations

from typing import NotRequired, TypedDict

from pinecone_mcp.models import MetadataValue


class QueryRow(TypedDict):
    """One search result as shown to the agent.

    paper_number comes from document_number, else the filename stem
    uppercased; score is rounded to 4 decimals.
    """

    paper_number: str | None
    title: str
    author: str
    url: str
    content: str
    score: float
    reranked: bool
    metadata: dict[str, MetadataValue]


class DocumentRow(TypedDict):
    document_id: str
    merged_content: str
    metadata: dict[str, MetadataValue]
    chunk_count: int
    best_score: float


class RankedNamespaceRow(TypedDict):
    namespace: str
    score: int
    record_count: int
    reasons: list[str]


class DecisionTrace(TypedDict):
    """How guided_query chose its namespace, fields and tool."""

    cache_hit: bool
    input_namespace: str | None
    routed_namespace: str | None
    selected_namespace: str
    ranked_namespaces: list[RankedNamespaceRow]
    suggested_fields: list[str]
    suggested_tool: str
    selected_tool: str
    explanation: str
    enrich_urls: bool


class CountPayload(TypedDict):
    tool: str
    namespace: str
    query: str
    metadata_filter: dict[str, object] | None
    count: int
    truncated: bool


class QueryPayload(TypedDict):
    """Body shared by the query tools and guided_query's query path."""

    status: str
    mode: str
    query: str
    namespace: str
    metadata_filter: dict[str, object] | None
    result_count: int
    results: list[QueryRow]
    fields: NotRequired[list[str]]


class UrlRow(TypedDict):
    index: int
    url: str | None
    method: str
    reason: str | None
    metadata: dict[str, object]
