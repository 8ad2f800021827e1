"""Pinecone implementation of the search backend, with thread-safe caching.

The Pinecone SDK is synchronous; every call is pushed to a worker thread
with ``asyncio.to_thread`` so concurrent searches do not block the event
loop.  SDK responses are converted to model types here, once, so the rest
of the code never inspects loosely-typed payloads.
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
from collections.abc import Mapping, Sequence
from functools import cached_property
from typing import TYPE_CHECKING

from pinecone_mcp.models import IndexStats, MetadataValue, RerankedItem, SearchHit

if TYPE_CHECKING:
    from pinecone_mcp.config import Settings
    from pinecone_mcp.types import PineconeClientLike, PineconeIndex, SearchBackend

logger = logging.getLogger(__name__)

_backend_cache: dict[str, SearchBackend] = {}
_lock = threading.Lock()


def _as_dict(obj: object) -> dict[str, object]:
    if obj is None:
        return {}
    if isinstance(obj, Mapping):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        result = to_dict()
        if isinstance(result, Mapping):
            return dict(result)
    return {}


def _attr(obj: object, key: str) -> object:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _to_float(value: object) -> float:
    try:
        number = float(str(value))
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def coerce_metadata_value(value: object) -> MetadataValue | None:
    """Narrow a raw metadata value to a Pinecone-supported type."""
    if value is None:
        return None
    if isinstance(value, str | bool | int | float):
        return value
    if isinstance(value, list | tuple):
        return [item if isinstance(item, str) else str(item) for item in value]
    return str(value)


def _coerce_fields(raw: object) -> dict[str, MetadataValue]:
    fields: dict[str, MetadataValue] = {}
    for key, value in _as_dict(raw).items():
        coerced = coerce_metadata_value(value)
        if coerced is not None:
            fields[str(key)] = coerced
    return fields


def parse_hits(response: object) -> list[SearchHit]:
    """Extract hits from a search-records response."""
    result = _as_dict(_as_dict(response).get("result"))
    raw_hits = result.get("hits") or []
    hits: list[SearchHit] = []
    for raw in raw_hits if isinstance(raw_hits, list) else []:
        hit = _as_dict(raw)
        hit_id = hit.get("_id", hit.get("id"))
        score = hit.get("_score", hit.get("score"))
        hits.append(
            SearchHit(
                id=str(hit_id) if hit_id is not None else "",
                score=_to_float(score),
                fields=_coerce_fields(hit.get("fields")),
            )
        )
    return hits


def parse_stats(response: object) -> IndexStats:
    stats = _as_dict(response)
    dimension = stats.get("dimension")
    record_counts: dict[str, int] = {}
    for name, summary in _as_dict(stats.get("namespaces")).items():
        summary_dict = _as_dict(summary)
        count = (
            summary_dict.get("vector_count")
            or summary_dict.get("record_count")
            or summary_dict.get("recordCount")
            or 0
        )
        record_counts[str(name)] = int(str(count))
    return IndexStats(
        dimension=int(str(dimension)) if dimension else None,
        record_counts=record_counts,
    )


class PineconeBackend:
    """SearchBackend over the Pinecone SDK (integrated-inference indexes)."""

    def __init__(self, api_key: str, *, client: PineconeClientLike | None = None) -> None:
        self._api_key = api_key
        self._client = client
        self._indexes: dict[str, PineconeIndex] = {}
        self._index_lock = threading.Lock()

    @cached_property
    def pc(self) -> PineconeClientLike:
        if self._client is not None:
            return self._client
        if not self._api_key:
            msg = (
                "Pinecone API key is required. Set PINECONE_API_KEY environment "
                "variable or pass --api-key."
            )
            raise ValueError(msg)
        from pinecone import Pinecone  # noqa: PLC0415

        logger.info("Pinecone client initialized")
        return Pinecone(api_key=self._api_key)  # type: ignore[return-value]

    def _index(self, name: str) -> PineconeIndex:
        if name not in self._indexes:
            with self._index_lock:
                if name not in self._indexes:
                    self._indexes[name] = self.pc.Index(name)
                    logger.info("Connected to index %s", name)
        return self._indexes[name]

    async def describe_stats(self, index: str) -> IndexStats:
        response = await asyncio.to_thread(self._index(index).describe_index_stats)
        return parse_stats(response)

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
        query: dict[str, object] = {"inputs": {"text": query_text}, "top_k": top_k}
        if metadata_filter is not None:
            query["filter"] = dict(metadata_filter)
            logger.debug("Applying metadata filter %s", metadata_filter)
        target = self._index(index)
        if fields:
            response = await asyncio.to_thread(
                target.search, namespace=namespace, query=query, fields=list(fields)
            )
        else:
            response = await asyncio.to_thread(
                target.search, namespace=namespace, query=query
            )
        return parse_hits(response)

    async def sample_metadata(
        self,
        index: str,
        *,
        namespace: str,
        top_k: int,
        dimension: int,
    ) -> list[dict[str, object]]:
        response = await asyncio.to_thread(
            self._index(index).query,
            vector=[0.0] * dimension,
            top_k=top_k,
            namespace=namespace,
            include_metadata=True,
        )
        matches = _as_dict(response).get("matches") or []
        samples: list[dict[str, object]] = []
        for match in matches if isinstance(matches, list) else []:
            metadata = _as_dict(_as_dict(match).get("metadata"))
            if metadata:
                samples.append(metadata)
        return samples

    async def rerank(
        self,
        model: str,
        *,
        query_text: str,
        documents: list[dict[str, str]],
        top_n: int,
        rank_field: str,
    ) -> list[RerankedItem]:
        response = await asyncio.to_thread(
            self.pc.inference.rerank,
            model=model,
            query=query_text,
            documents=documents,
            rank_fields=[rank_field],
            top_n=top_n,
            return_documents=True,
            parameters={"truncate": "END"},
        )
        data = _attr(response, "data") or []
        items: list[RerankedItem] = []
        for row in data if isinstance(data, list) else []:
            index = _attr(row, "index")
            if index is None:
                continue
            items.append(RerankedItem(index=int(str(index)), score=_to_float(_attr(row, "score"))))
        return items


def get_backend(settings: Settings) -> SearchBackend:
    """Return a cached Pinecone backend for the configured API key."""
    key = settings.pinecone_api_key
    if key not in _backend_cache:
        with _lock:
            if key not in _backend_cache:
                _backend_cache[key] = PineconeBackend(key)
    return _backend_cache[key]


def clear_caches() -> None:
    """Clear backend caches. For test isolation only."""
    _backend_cache.clear()
