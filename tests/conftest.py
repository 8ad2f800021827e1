from __future__ import annotations

import pytest
from fakes import DENSE_INDEX, KEYWORD_INDEX, FakeBackend

from pinecone_mcp.config import Settings
from pinecone_mcp.search import HybridSearchClient


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        pinecone_api_key="test-key",
        pinecone_index_name=DENSE_INDEX,
        pinecone_sparse_index_name=KEYWORD_INDEX,
        pinecone_rerank_model="bge-reranker-v2-m3",
        pinecone_top_k=10,
        log_level="INFO",
    )


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def client(settings: Settings, backend: FakeBackend) -> HybridSearchClient:
    return HybridSearchClient.from_settings(settings, backend)
