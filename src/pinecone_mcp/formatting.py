"""Shape search results for MCP tool responses.

Chunk-level results become flat rows (paper number, title, author, url,
content) or, for full-document questions, are regrouped into documents with
their chunks stitched back together in source order.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence

from pinecone_mcp.models import (
    COUNT_FIELDS,
    MetadataValue,
    RankedNamespace,
    ReassembledDocument,
    SearchResult,
)
from pinecone_mcp.results import DocumentRow, QueryRow, RankedNamespaceRow
from pinecone_mcp.urls import UrlGeneratorRegistry, default_registry

DEFAULT_CONTENT_MAX_LENGTH = 2000
DEFAULT_MAX_CHUNKS_PER_DOCUMENT = 200

# Keys that text splitters commonly attach to record chunk position.
CHUNK_ORDER_KEYS = ("chunk_index", "chunk_index_0", "index", "loc")

_MD_SUFFIX = re.compile(r"\.md$", re.IGNORECASE)
_DIGITS = re.compile(r"^\d+$")


def _is_blank(value: object) -> bool:
    return not isinstance(value, str) or not value.strip()


def _text(value: object) -> str:
    return "" if value is None else str(value)


def paper_number(metadata: Mapping[str, MetadataValue]) -> str | None:
    """``document_number``, else the ``filename`` without ``.md``, uppercased."""
    doc_number = metadata.get("document_number")
    if isinstance(doc_number, str) and doc_number:
        return doc_number
    filename = metadata.get("filename")
    if isinstance(filename, str) and filename:
        return _MD_SUFFIX.sub("", filename).upper()
    return None


def format_row(
    result: SearchResult,
    namespace: str | None = None,
    *,
    enrich_urls: bool = False,
    content_max_length: int = DEFAULT_CONTENT_MAX_LENGTH,
    registry: UrlGeneratorRegistry | None = None,
) -> QueryRow:
    """Convert a search result to a response row.

    With *enrich_urls* and a *namespace*, a missing or blank ``url`` is
    backfilled from the namespace's URL generator when it can build one.
    """
    metadata = dict(result.metadata)

    if enrich_urls and namespace and _is_blank(metadata.get("url")):
        generated = (registry or default_registry).generate(namespace, metadata)
        if generated.url:
            metadata["url"] = generated.url

    return {
        "paper_number": paper_number(metadata),
        "title": _text(metadata.get("title")),
        "author": _text(metadata.get("author")),
        "url": _text(metadata.get("url")),
        "content": result.content[:content_max_length],
        "score": round(result.score, 4),
        "reranked": result.reranked,
        "metadata": metadata,
    }


def format_rows(
    results: Sequence[SearchResult],
    namespace: str | None = None,
    *,
    enrich_urls: bool = False,
    content_max_length: int = DEFAULT_CONTENT_MAX_LENGTH,
    registry: UrlGeneratorRegistry | None = None,
) -> list[QueryRow]:
    return [
        format_row(
            r,
            namespace,
            enrich_urls=enrich_urls,
            content_max_length=content_max_length,
            registry=registry,
        )
        for r in results
    ]


def format_ranked(ranked: Sequence[RankedNamespace]) -> list[RankedNamespaceRow]:
    return [
        {
            "namespace": r.namespace,
            "score": r.score,
            "record_count": r.record_count,
            "reasons": list(r.reasons),
        }
        for r in ranked
    ]


# Document reassembly ─────────────────────────────────────────────────────────


def _document_key(result: SearchResult) -> str:
    for name in COUNT_FIELDS:
        value = result.metadata.get(name)
        if isinstance(value, str):
            return value
    return result.id


def chunk_order(metadata: Mapping[str, MetadataValue]) -> float | None:
    """Position of a chunk within its document, or None if unrecorded.

    The first usable key decides; a negative number marks the chunk unordered.
    """
    for key in CHUNK_ORDER_KEYS:
        value = metadata.get(key)
        # bool is an int subclass; a flag is not a position
        if isinstance(value, bool):
            continue
        if isinstance(value, int | float) and math.isfinite(value):
            return value if value >= 0 else None
        if isinstance(value, str) and _DIGITS.match(value):
            return int(value)
    return None


def _ordered(chunks: list[SearchResult]) -> list[SearchResult]:
    """Chunks with a known position first, ascending; the rest as retrieved."""
    positioned: list[tuple[float, SearchResult]] = []
    unpositioned: list[SearchResult] = []
    for chunk in chunks:
        order = chunk_order(chunk.metadata)
        if order is None:
            unpositioned.append(chunk)
        else:
            positioned.append((order, chunk))
    positioned.sort(key=lambda pair: pair[0])
    return [chunk for _, chunk in positioned] + unpositioned


def reassemble_by_document(
    results: Sequence[SearchResult],
    max_chunks_per_document: int = DEFAULT_MAX_CHUNKS_PER_DOCUMENT,
    separator: str = "\n\n",
) -> list[ReassembledDocument]:
    """Group chunk results by document and merge their content.

    Documents are keyed by document_number, url or doc_id (first string
    present), falling back to the chunk id.  Groups keep first-seen order.
    """
    groups: dict[str, list[SearchResult]] = {}
    for result in results:
        groups.setdefault(_document_key(result), []).append(result)

    documents: list[ReassembledDocument] = []
    for doc_id, chunks in groups.items():
        merged = _ordered(chunks)[: max(max_chunks_per_document, 1)]
        documents.append(
            ReassembledDocument(
                document_id=doc_id,
                merged_content=separator.join(
                    text for text in (c.content.strip() for c in merged) if text
                ),
                metadata=dict(merged[0].metadata),
                chunk_count=len(merged),
                best_score=round(max(c.score for c in merged), 4),
            )
        )
    return documents


def document_row(doc: ReassembledDocument) -> DocumentRow:
    return {
        "document_id": doc.document_id,
        "merged_content": doc.merged_content,
        "metadata": doc.metadata,
        "chunk_count": doc.chunk_count,
        "best_score": doc.best_score,
    }
