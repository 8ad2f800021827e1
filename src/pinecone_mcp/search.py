"""Hybrid (dense + sparse) retrieval over Pinecone indexes.

Dense and sparse indexes are searched concurrently and their hits merged by
id, keeping the better score.  A failure on one side degrades the search to
the other side; only a failure on both sides is fatal.  Reranking is
best-effort: if the reranker fails, the merged order is returned instead.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

from pinecone_mcp.errors import EmptyQueryError, InvalidTopKError, SearchBackendError
from pinecone_mcp.models import (
    CONTENT_FIELD,
    COUNT_FIELDS,
    COUNT_TOP_K,
    MAX_TOP_K,
    CountResult,
    FieldType,
    MergedHit,
    NamespaceInfo,
    SearchHit,
    SearchResult,
    infer_field_type,
    merge_field_type,
    split_content,
)

if TYPE_CHECKING:
    from pinecone_mcp.config import Settings
    from pinecone_mcp.types import SearchBackend

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 5
DEFAULT_DIMENSION = 1536


def merge_results(
    dense_hits: Sequence[SearchHit],
    sparse_hits: Sequence[SearchHit],
) -> list[MergedHit]:
    """Deduplicate hits by id, keeping the higher score, best first."""
    deduped: dict[str, MergedHit] = {}
    for hit in [*dense_hits, *sparse_hits]:
        existing = deduped.get(hit.id)
        if existing is not None and existing.score >= hit.score:
            continue
        content, metadata = split_content(hit.fields)
        deduped[hit.id] = MergedHit(
            id=hit.id, score=hit.score, content=content, metadata=metadata
        )
    return sorted(deduped.values(), key=lambda h: h.score, reverse=True)


def _unreranked(hits: Sequence[MergedHit], top_k: int) -> list[SearchResult]:
    return [
        SearchResult(
            id=h.id,
            content=h.content,
            score=h.score,
            metadata=dict(h.metadata),
            reranked=False,
        )
        for h in hits[:top_k]
    ]


def _validate_query(query_text: str) -> str:
    if not query_text or not query_text.strip():
        msg = "Query cannot be empty"
        raise EmptyQueryError(msg)
    return query_text.strip()


def _validate_top_k(top_k: int, ceiling: int = MAX_TOP_K) -> int:
    if top_k < 1:
        msg = "topK must be at least 1"
        raise InvalidTopKError(msg)
    return min(top_k, ceiling)


def _document_key(fields: Mapping[str, object]) -> str | None:
    for name in COUNT_FIELDS:
        value = fields.get(name)
        if isinstance(value, str):
            return value
    return None


class HybridSearchClient:
    """Retrieval operations against the dense, sparse, and keyword indexes."""

    def __init__(
        self,
        backend: SearchBackend,
        *,
        index_name: str,
        sparse_index_name: str,
        keyword_index_name: str,
        rerank_model: str,
        default_top_k: int = 10,
    ) -> None:
        self.backend = backend
        self.index_name = index_name
        self.sparse_index_name = sparse_index_name
        self.keyword_index_name = keyword_index_name
        self.rerank_model = rerank_model
        self.default_top_k = default_top_k

    @classmethod
    def from_settings(cls, settings: Settings, backend: SearchBackend) -> HybridSearchClient:
        return cls(
            backend,
            index_name=settings.pinecone_index_name,
            sparse_index_name=settings.hybrid_sparse_index_name,
            keyword_index_name=settings.pinecone_sparse_index_name,
            rerank_model=settings.pinecone_rerank_model,
            default_top_k=settings.pinecone_top_k,
        )

    # --- Discovery ---

    async def _sample_fields(
        self, namespace: str, dimension: int
    ) -> dict[str, FieldType]:
        samples = await self.backend.sample_metadata(
            self.index_name,
            namespace=namespace,
            top_k=SAMPLE_SIZE,
            dimension=dimension,
        )
        fields: dict[str, FieldType] = {}
        for metadata in samples:
            for key, value in metadata.items():
                fields[key] = merge_field_type(fields.get(key), infer_field_type(value))
        return fields

    async def list_namespaces_with_metadata(self) -> list[NamespaceInfo]:
        """Enumerate namespaces and infer each one's metadata schema.

        Sampling runs concurrently per namespace.  A namespace whose sample
        fails is still listed, with an empty field map.

        Raises:
            SearchBackendError: If index stats cannot be read.
        """
        try:
            stats = await self.backend.describe_stats(self.index_name)
        except Exception as exc:
            msg = f'Failed to describe index "{self.index_name}": {exc}'
            raise SearchBackendError(msg) from exc

        names = list(stats.record_counts)
        logger.info("Found %d namespace(s)", len(names))
        dimension = stats.dimension or DEFAULT_DIMENSION

        to_sample = [ns for ns in names if stats.record_counts[ns] > 0]
        outcomes = await asyncio.gather(
            *(self._sample_fields(ns, dimension) for ns in to_sample),
            return_exceptions=True,
        )
        sampled: dict[str, dict[str, FieldType]] = {}
        for ns, outcome in zip(to_sample, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error("Error sampling records for namespace %s: %s", ns, outcome)
                sampled[ns] = {}
            else:
                sampled[ns] = outcome

        return [
            NamespaceInfo(
                namespace=ns,
                record_count=stats.record_counts[ns],
                metadata_fields=sampled.get(ns, {}),
            )
            for ns in names
        ]

    # --- Search ---

    async def _search_index(
        self,
        index: str,
        query_text: str,
        top_k: int,
        namespace: str,
        metadata_filter: Mapping[str, object] | None,
        fields: Sequence[str] | None,
    ) -> list[SearchHit]:
        try:
            return await self.backend.search(
                index,
                namespace=namespace,
                query_text=query_text,
                top_k=top_k,
                metadata_filter=metadata_filter,
                fields=fields or None,
            )
        except Exception as exc:
            msg = f'Pinecone search failed for namespace "{namespace}" on index "{index}": {exc}'
            raise SearchBackendError(msg) from exc

    async def _rerank(
        self, query_text: str, hits: list[MergedHit], top_n: int
    ) -> list[SearchResult]:
        if not hits:
            return []
        documents = [{"id": h.id, CONTENT_FIELD: h.content} for h in hits]
        try:
            items = await self.backend.rerank(
                self.rerank_model,
                query_text=query_text,
                documents=documents,
                top_n=top_n,
                rank_field=CONTENT_FIELD,
            )
        except Exception:
            logger.exception("Error reranking results, falling back to merged order")
            return _unreranked(hits, top_n)

        reranked: list[SearchResult] = []
        for item in items:
            if not 0 <= item.index < len(hits):
                continue
            hit = hits[item.index]
            reranked.append(
                SearchResult(
                    id=hit.id,
                    content=hit.content,
                    score=item.score,
                    metadata=dict(hit.metadata),
                    reranked=True,
                )
            )
        return reranked

    async def query(
        self,
        query_text: str,
        namespace: str,
        top_k: int | None = None,
        metadata_filter: Mapping[str, object] | None = None,
        *,
        use_reranking: bool = True,
        fields: Sequence[str] | None = None,
    ) -> list[SearchResult]:
        """Hybrid search with optional reranking.

        Args:
            query_text: Natural language query.
            namespace: Namespace to search within.
            top_k: Results to return; defaults to the configured top_k and
                is clamped to MAX_TOP_K.
            metadata_filter: Optional Pinecone metadata filter.
            use_reranking: Rerank the merged candidates on chunk_text.
            fields: Restrict returned fields.  chunk_text is added when
                reranking because the reranker ranks on it.

        Raises:
            EmptyQueryError, InvalidTopKError: On invalid input.
            SearchBackendError: If both dense and sparse searches fail.
        """
        query_text = _validate_query(query_text)
        top_k = _validate_top_k(self.default_top_k if top_k is None else top_k)

        search_fields = list(fields) if fields else None
        if search_fields and use_reranking and CONTENT_FIELD not in search_fields:
            search_fields.append(CONTENT_FIELD)

        dense_result, sparse_result = await asyncio.gather(
            self._search_index(
                self.index_name, query_text, top_k, namespace, metadata_filter, search_fields
            ),
            self._search_index(
                self.sparse_index_name, query_text, top_k, namespace, metadata_filter, search_fields
            ),
            return_exceptions=True,
        )

        dense_hits: list[SearchHit] = []
        sparse_hits: list[SearchHit] = []
        if isinstance(dense_result, BaseException):
            logger.error("Dense index search failed: %s", dense_result)
        else:
            dense_hits = dense_result
        if isinstance(sparse_result, BaseException):
            logger.error("Sparse index search failed: %s", sparse_result)
        else:
            sparse_hits = sparse_result
        if isinstance(dense_result, BaseException) and isinstance(sparse_result, BaseException):
            msg = "Hybrid search failed: both dense and sparse index searches failed."
            raise SearchBackendError(msg)

        merged = merge_results(dense_hits, sparse_hits)
        if use_reranking:
            documents = await self._rerank(query_text, merged, top_k)
        else:
            documents = _unreranked(merged, top_k)

        logger.info(
            "Retrieved %d documents from hybrid search (dense: %d, sparse: %d)",
            len(documents),
            len(dense_hits),
            len(sparse_hits),
        )
        return documents

    async def keyword_search(
        self,
        query_text: str,
        namespace: str,
        top_k: int | None = None,
        metadata_filter: Mapping[str, object] | None = None,
        *,
        fields: Sequence[str] | None = None,
    ) -> list[SearchResult]:
        """Lexical-only search against the dedicated sparse index."""
        query_text = _validate_query(query_text)
        top_k = _validate_top_k(self.default_top_k if top_k is None else top_k)

        hits = await self._search_index(
            self.keyword_index_name, query_text, top_k, namespace, metadata_filter, fields
        )
        results: list[SearchResult] = []
        for hit in hits[:top_k]:
            content, metadata = split_content(hit.fields)
            results.append(
                SearchResult(
                    id=hit.id,
                    content=content,
                    score=hit.score,
                    metadata=metadata,
                    reranked=False,
                )
            )
        logger.info("Retrieved %d documents from keyword search", len(results))
        return results

    async def count(
        self,
        query_text: str,
        namespace: str,
        metadata_filter: Mapping[str, object] | None = None,
    ) -> CountResult:
        """Count unique documents matching the query and filter.

        Searches the dense index only, requesting just the identifier fields.
        Hits are deduplicated by document_number, url, or doc_id (first
        present).  ``truncated`` means the backend ceiling was reached and the
        true count may be higher.
        """
        query_text = _validate_query(query_text)
        hits = await self._search_index(
            self.index_name, query_text, COUNT_TOP_K, namespace, metadata_filter, COUNT_FIELDS
        )

        doc_keys: set[str] = set()
        id_fallbacks = 0
        for hit in hits:
            key = _document_key(hit.fields)
            if key is None:
                id_fallbacks += 1
                key = hit.id
            doc_keys.add(key)

        if id_fallbacks:
            logger.warning(
                'count(): %d hit(s) in namespace "%s" had none of the identifier '
                "fields (%s); fell back to chunk ID, result may overcount documents",
                id_fallbacks,
                namespace,
                ", ".join(COUNT_FIELDS),
            )
        return CountResult(count=len(doc_keys), truncated=len(hits) >= COUNT_TOP_K)
