"""Immutable data models: NamespaceInfo, SearchHit, SearchResult, etc."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

MetadataValue = str | int | float | bool | list[str]

CONTENT_FIELD = "chunk_text"

MIN_TOP_K = 1
MAX_TOP_K = 100
COUNT_TOP_K = 10_000
COUNT_FIELDS: tuple[str, ...] = ("document_number", "url", "doc_id")
FAST_QUERY_FIELDS: tuple[str, ...] = ("document_number", "title", "url", "author")

ToolName = Literal["count", "query_fast", "query_detailed"]


class FieldType(enum.Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    STRING_LIST = "string[]"
    ARRAY = "array"
    OBJECT = "object"
    UNKNOWN = "unknown"


def infer_field_type(value: object) -> FieldType:
    """Classify a sampled metadata value.

    Pinecone stores lists of strings natively, so a non-empty all-string
    list is ``STRING_LIST``; any other list (including an empty one, whose
    element type cannot be told) is a generic ``ARRAY``.
    """
    if value is None:
        return FieldType.UNKNOWN
    if isinstance(value, list | tuple):
        if value and all(isinstance(item, str) for item in value):
            return FieldType.STRING_LIST
        return FieldType.ARRAY
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, int | float):
        return FieldType.NUMBER
    if isinstance(value, str):
        return FieldType.STRING
    return FieldType.OBJECT


def merge_field_type(existing: FieldType | None, seen: FieldType) -> FieldType:
    """Combine the type recorded so far with one observed in another sample."""
    if existing is None or existing is FieldType.UNKNOWN:
        return seen
    if seen is FieldType.STRING_LIST and existing in (
        FieldType.ARRAY,
        FieldType.OBJECT,
    ):
        return seen
    return existing


@dataclass(frozen=True)
class NamespaceInfo:
    namespace: str
    record_count: int
    metadata_fields: Mapping[str, FieldType] = field(default_factory=dict)

    def field_types(self) -> dict[str, str]:
        return {name: ft.value for name, ft in self.metadata_fields.items()}


@dataclass(frozen=True)
class IndexStats:
    dimension: int | None
    record_counts: Mapping[str, int]


@dataclass(frozen=True)
class SearchHit:
    """A raw hit as returned by one index."""

    id: str
    score: float
    fields: Mapping[str, MetadataValue]


@dataclass(frozen=True)
class MergedHit:
    """A hit after dense/sparse dedup, content split out of the fields."""

    id: str
    score: float
    content: str
    metadata: dict[str, MetadataValue]


@dataclass(frozen=True)
class RerankedItem:
    index: int
    score: float


@dataclass(frozen=True)
class SearchResult:
    id: str
    content: str
    score: float
    metadata: dict[str, MetadataValue]
    reranked: bool


@dataclass(frozen=True)
class CountResult:
    count: int
    truncated: bool


@dataclass(frozen=True)
class ReassembledDocument:
    document_id: str
    merged_content: str
    metadata: dict[str, MetadataValue]
    chunk_count: int
    best_score: float


@dataclass(frozen=True)
class RankedNamespace:
    namespace: str
    score: int
    record_count: int
    reasons: list[str]


@dataclass(frozen=True)
class QuerySuggestion:
    suggested_fields: list[str]
    use_count_tool: bool
    recommended_tool: ToolName
    explanation: str
    namespace_found: bool


@dataclass(frozen=True)
class UrlResult:
    url: str | None
    method: Literal[
        "metadata.url",
        "metadata.source",
        "generated.mailing",
        "generated.slack",
        "unavailable",
    ]
    reason: str | None = None


def split_content(
    fields: Mapping[str, MetadataValue],
) -> tuple[str, dict[str, MetadataValue]]:
    """Separate ``chunk_text`` from the rest of a hit's fields."""
    content = ""
    metadata: dict[str, MetadataValue] = {}
    for key, value in fields.items():
        if key == CONTENT_FIELD:
            content = value if isinstance(value, str) else ""
        else:
            metadata[key] = value
    return content, metadata
