"""Process-wide server state shared by every tool call."""

from __future__ import annotations

from functools import cached_property
from typing import TYPE_CHECKING

from pinecone_mcp.backends import get_backend
from pinecone_mcp.cache import NamespaceCache
from pinecone_mcp.flow import FlowGate
from pinecone_mcp.search import HybridSearchClient
from pinecone_mcp.urls import UrlGeneratorRegistry, build_default_registry

if TYPE_CHECKING:
    from pinecone_mcp.config import Settings
    from pinecone_mcp.types import SearchBackend


class ServerContext:
    """Lazily-built search client, namespace cache, flow gate and URL registry.

    Components are created on first use so that a server without an API key
    can still start and answer with a clear error.
    """

    def __init__(self, settings: Settings, backend: SearchBackend | None = None) -> None:
        self._settings = settings
        self._backend = backend

    @property
    def settings(self) -> Settings:
        return self._settings

    @cached_property
    def backend(self) -> SearchBackend:
        return self._backend if self._backend is not None else get_backend(self._settings)

    @cached_property
    def client(self) -> HybridSearchClient:
        return HybridSearchClient.from_settings(self._settings, self.backend)

    @cached_property
    def namespace_cache(self) -> NamespaceCache:
        # Deferred so that building the cache does not build the client.
        async def fetch():  # noqa: ANN202
            return await self.client.list_namespaces_with_metadata()

        return NamespaceCache(fetch, ttl_seconds=self._settings.flow_ttl_seconds)

    @cached_property
    def flow_gate(self) -> FlowGate:
        return FlowGate(ttl_seconds=self._settings.flow_ttl_seconds)

    @cached_property
    def url_registry(self) -> UrlGeneratorRegistry:
        return build_default_registry()
