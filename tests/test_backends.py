from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from pinecone_mcp.backends import (
    PineconeBackend,
    clear_caches,
    coerce_metadata_value,
    get_backend,
    parse_hits,
    parse_stats,
)
from pinecone_mcp.config import Settings
from pinecone_mcp.models import IndexStats, RerankedItem, SearchHit


def _settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {"pinecone_api_key": "test-key"}
    defaults.update(overrides)
    return Settings.model_validate(defaults)


class TestCoerceMetadataValue:
    def test_primitives_unchanged(self):
        assert coerce_metadata_value("x") == "x"
        assert coerce_metadata_value(2) == 2
        assert coerce_metadata_value(False) is False

    def test_list_items_stringified(self):
        assert coerce_metadata_value(["a", 1]) == ["a", "1"]

    def test_none_dropped(self):
        assert coerce_metadata_value(None) is None

    def test_other_types_stringified(self):
        assert coerce_metadata_value({"k": 1}) == "{'k': 1}"


class TestParseHits:
    def test_search_records_shape(self):
        response = {
            "result": {
                "hits": [
                    {"_id": "a", "_score": 0.5, "fields": {"title": "T", "year": 2020}},
                    {"id": "b", "score": "0.25", "fields": {"note": None}},
                ]
            }
        }
        assert parse_hits(response) == [
            SearchHit(id="a", score=0.5, fields={"title": "T", "year": 2020}),
            SearchHit(id="b", score=0.25, fields={}),
        ]

    def test_to_dict_objects(self):
        response = MagicMock()
        response.to_dict.return_value = {"result": {"hits": [{"_id": "x", "_score": 1}]}}
        assert parse_hits(response)[0].id == "x"

    def test_non_finite_score_is_zero(self):
        response = {"result": {"hits": [{"_id": "x", "_score": "nan"}]}}
        assert parse_hits(response)[0].score == 0.0

    def test_empty(self):
        assert parse_hits({}) == []


class TestParseStats:
    def test_namespaces_and_dimension(self):
        stats = parse_stats(
            {
                "dimension": 1024,
                "namespaces": {"a": {"vector_count": 3}, "b": {"record_count": 0}},
            }
        )
        assert stats == IndexStats(dimension=1024, record_counts={"a": 3, "b": 0})

    def test_missing_dimension(self):
        assert parse_stats({"namespaces": {}}).dimension is None


class TestPineconeBackend:
    def _backend(self) -> tuple[PineconeBackend, MagicMock]:
        pc = MagicMock()
        return PineconeBackend("key", client=pc), pc

    async def test_search_builds_query(self):
        backend, pc = self._backend()
        index = pc.Index.return_value
        index.search.return_value = {"result": {"hits": [{"_id": "a", "_score": 0.9}]}}

        hits = await backend.search(
            "dense",
            namespace="ns",
            query_text="q",
            top_k=3,
            metadata_filter={"year": {"$gte": 2020}},
            fields=["title"],
        )

        pc.Index.assert_called_once_with("dense")
        index.search.assert_called_once_with(
            namespace="ns",
            query={"inputs": {"text": "q"}, "top_k": 3, "filter": {"year": {"$gte": 2020}}},
            fields=["title"],
        )
        assert hits == [SearchHit(id="a", score=0.9, fields={})]

    async def test_search_without_fields_or_filter(self):
        backend, pc = self._backend()
        index = pc.Index.return_value
        index.search.return_value = {}

        await backend.search("dense", namespace="ns", query_text="q", top_k=1)

        index.search.assert_called_once_with(
            namespace="ns", query={"inputs": {"text": "q"}, "top_k": 1}
        )

    async def test_index_handle_cached(self):
        backend, pc = self._backend()
        pc.Index.return_value.search.return_value = {}
        await backend.search("dense", namespace="a", query_text="q", top_k=1)
        await backend.search("dense", namespace="b", query_text="q", top_k=1)
        pc.Index.assert_called_once_with("dense")

    async def test_describe_stats(self):
        backend, pc = self._backend()
        pc.Index.return_value.describe_index_stats.return_value = {
            "dimension": 8,
            "namespaces": {"ns": {"vector_count": 2}},
        }
        assert await backend.describe_stats("dense") == IndexStats(
            dimension=8, record_counts={"ns": 2}
        )

    async def test_sample_metadata_zero_vector(self):
        backend, pc = self._backend()
        index = pc.Index.return_value
        index.query.return_value = {
            "matches": [{"metadata": {"title": "T"}}, {"metadata": None}, {"id": "x"}]
        }

        samples = await backend.sample_metadata("dense", namespace="ns", top_k=5, dimension=4)

        index.query.assert_called_once_with(
            vector=[0.0] * 4, top_k=5, namespace="ns", include_metadata=True
        )
        assert samples == [{"title": "T"}]

    async def test_rerank(self):
        backend, pc = self._backend()
        pc.inference.rerank.return_value = SimpleNamespace(
            data=[SimpleNamespace(index=1, score=0.8), SimpleNamespace(index=0, score=0.2)]
        )
        docs = [{"id": "a", "chunk_text": "x"}, {"id": "b", "chunk_text": "y"}]

        items = await backend.rerank(
            "bge-reranker-v2-m3", query_text="q", documents=docs, top_n=2, rank_field="chunk_text"
        )

        pc.inference.rerank.assert_called_once_with(
            model="bge-reranker-v2-m3",
            query="q",
            documents=docs,
            rank_fields=["chunk_text"],
            top_n=2,
            return_documents=True,
            parameters={"truncate": "END"},
        )
        assert items == [RerankedItem(index=1, score=0.8), RerankedItem(index=0, score=0.2)]

    def test_missing_api_key(self):
        with pytest.raises(ValueError, match="PINECONE_API_KEY"):
            _ = PineconeBackend("").pc

    def test_client_created_lazily(self):
        with patch("pinecone.Pinecone") as mock_cls:
            backend = PineconeBackend("secret")
            mock_cls.assert_not_called()
            assert backend.pc is mock_cls.return_value
        mock_cls.assert_called_once_with(api_key="secret")


class TestGetBackend:
    def setup_method(self) -> None:
        clear_caches()

    def test_returns_pinecone_backend(self):
        assert isinstance(get_backend(_settings()), PineconeBackend)

    def test_cached_per_key(self):
        assert get_backend(_settings()) is get_backend(_settings())

    def test_different_keys_different_backends(self):
        a = get_backend(_settings(pinecone_api_key="a"))
        b = get_backend(_settings(pinecone_api_key="b"))
        assert a is not b

    def test_clear_caches(self):
        first = get_backend(_settings())
        clear_caches()
        assert get_backend(_settings()) is not first
