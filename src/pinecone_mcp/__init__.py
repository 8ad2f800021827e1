from __future__ import annotations

from importlib.metadata import version

from pinecone_mcp.config import Settings, load_settings
from pinecone_mcp.filters import validate_metadata_filter
from pinecone_mcp.search import HybridSearchClient, merge_results
from pinecone_mcp.suggestion import suggest_query_params
from pinecone_mcp.urls import UrlGeneratorRegistry

__version__ = version("pinecone-read-only-mcp")

__all__ = [
    "HybridSearchClient",
    "Settings",
    "UrlGeneratorRegistry",
    "__version__",
    "load_settings",
    "merge_results",
    "suggest_query_params",
    "validate_metadata_filter",
]
