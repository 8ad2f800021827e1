"""Protocol definitions for the search backend.

Infrastructure protocols (PineconeIndex, PineconeInference) abstract the
Pinecone SDK objects.  The domain protocol (SearchBackend) is the async
contract the retrieval core requires of any vector search service.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pinecone_mcp.models import IndexStats, RerankedItem, SearchHit


# --- Infrastructure: Pinecone SDK ---


class PineconeIndex(Protocol):
    def describe_index_stats(self) -> object: ...
    def search(
        self,
        namespace: str,
        query: dict[str, object],
        fields: list[str] | None = ...,
    ) -> object: ...
    def query(
        self,
        *,
        vector: list[float],
        top_k: int,
        namespace: str = ...,
        include_metadata: bool = ...,
    ) -> object: ...


class PineconeInference(Protocol):
    def rerank(
        self,
        *,
        model: str,
        query: str,
        documents: list[dict[str, str]],
        rank_fields: list[str] = ...,
        top_n: int | None = ...,
        return_documents: bool = ...,
        parameters: dict[str, object] | None = ...,
    ) -> object: ...


class PineconeClientLike(Protocol):
    @property
    def inference(self) -> PineconeInference: ...

    def Index(self, name: str) -> PineconeIndex: ...  # noqa: N802


# --- Domain: search backend ---


class SearchBackend(Protocol):
    """Async contract of the vector search service."""

    async def describe_stats(self, index: str) -> IndexStats:
        """Return dimensionality and per-namespace record counts."""
        ...

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
        """Integrated-inference text search against one index."""
        ...

    async def sample_metadata(
        self,
        index: str,
        *,
        namespace: str,
        top_k: int,
        dimension: int,
    ) -> list[dict[str, object]]:
        """Return metadata of a few records, probed with a zero vector."""
        ...

    async def rerank(
        self,
        model: str,
        *,
        query_text: str,
        documents: list[dict[str, str]],
        top_n: int,
        rank_field: str,
    ) -> list[RerankedItem]:
        """Score documents against the query; items point back by index."""
        ...
