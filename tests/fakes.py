"""In-memory test doubles shared across test modules."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from pinecone_mcp.models import IndexStats, MetadataValue, RerankedItem, SearchHit

DENSE_INDEX = "rag-hybrid"
SPARSE_INDEX = "rag-hybrid-sparse"
KEYWORD_INDEX = "pinecone-rag-sparse"


def hit(hit_id: str, score: float, **fields: MetadataValue) -> SearchHit:
    return SearchHit(id=hit_id, score=score, fields=fields)


class FakeBackend:
    """In-memory SearchBackend.

    ``hits`` maps index name to the hits it returns.  ``failures`` maps an
    index name, ``"describe_stats"``, ``"rerank"`` or ``"sample:<ns>"`` to
    the exception that call raises.  Every call is recorded in ``calls``.
    """

    def __init__(
        self,
        *,
        stats: IndexStats | None = None,
        hits: Mapping[str, list[SearchHit]] | None = None,
        samples: Mapping[str, list[dict[str, object]]] | None = None,
        rerank_items: list[RerankedItem] | None = None,
    ) -> None:
        self.stats = stats or IndexStats(dimension=8, record_counts={})
        self.hits: dict[str, list[SearchHit]] = dict(hits or {})
        self.samples: dict[str, list[dict[str, object]]] = dict(samples or {})
        self.rerank_items = rerank_items
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, dict[str, object]]] = []

    def _maybe_fail(self, key: str) -> None:
        if key in self.failures:
            raise self.failures[key]

    def calls_to(self, method: str) -> list[dict[str, object]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    async def describe_stats(self, index: str) -> IndexStats:
        self.calls.append(("describe_stats", {"index": index}))
        self._maybe_fail("describe_stats")
        return self.stats

    async def search(
        self,
        index: str,
        *,
        namespace: str,
        query_text: str,
        top_k: int,
        metadata_filter: Mapping[str, object] | None = None,
        fields: Sequence[str] | None = None,
    ) -> list[SearchHit]:
        self.calls.append(
            (
                "search",
                {
                    "index": index,
                    "namespace": namespace,
                    "query_text": query_text,
                    "top_k": top_k,
                    "metadata_filter": metadata_filter,
                    "fields": list(fields) if fields is not None else None,
                },
            )
        )
        self._maybe_fail(index)
        return self.hits.get(index, [])[:top_k]

    async def sample_metadata(
        self,
        index: str,
        *,
        namespace: str,
        top_k: int,
        dimension: int,
    ) -> list[dict[str, object]]:
        self.calls.append(
            (
                "sample_metadata",
                {"index": index, "namespace": namespace, "top_k": top_k, "dimension": dimension},
            )
        )
        self._maybe_fail(f"sample:{namespace}")
        return self.samples.get(namespace, [])[:top_k]

    async def rerank(
        self,
        model: str,
        *,
        query_text: str,
        documents: list[dict[str, str]],
        top_n: int,
        rank_field: str,
    ) -> list[RerankedItem]:
        self.calls.append(
            (
                "rerank",
                {
                    "model": model,
                    "query_text": query_text,
                    "documents": documents,
                    "top_n": top_n,
                    "rank_field": rank_field,
                },
            )
        )
        self._maybe_fail("rerank")
        if self.rerank_items is not None:
            return self.rerank_items[:top_n]
        # Reverse the input order so reranking is observable.
        count = min(top_n, len(documents))
        return [
            RerankedItem(index=len(documents) - 1 - i, score=round(0.9 - i * 0.1, 4))
            for i in range(count)
        ]


