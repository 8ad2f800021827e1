"""Heuristic field/tool suggestion from a namespace schema and a user query.

Intent is classified by an ordered rule table; the first rule whose pattern
matches the lowercased query decides the tool and the preferred fields.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from pinecone_mcp.models import (
    CONTENT_FIELD,
    COUNT_FIELDS,
    FAST_QUERY_FIELDS,
    QuerySuggestion,
    ToolName,
)


def _first_five(available: list[str]) -> list[str]:
    return available[:5]


def _all_fields(available: list[str]) -> list[str]:
    return list(available)


@dataclass(frozen=True)
class SuggestionRule:
    name: str
    pattern: re.Pattern[str] | None  # None matches every query
    tool: ToolName
    preferred_fields: tuple[str, ...]
    fallback: Callable[[list[str]], list[str]]
    explanation: str

    def matches(self, query: str) -> bool:
        return self.pattern is None or self.pattern.search(query) is not None


RULES: tuple[SuggestionRule, ...] = (
    SuggestionRule(
        name="count",
        pattern=re.compile(
            r"\b(how many|count|number of|total number|paper count|documents? count)\b"
        ),
        tool="count",
        preferred_fields=COUNT_FIELDS,
        fallback=_first_five,
        explanation=(
            "User asked for a count. Use the count tool for this. If using query "
            "instead, use minimal fields (no chunk_text)."
        ),
    ),
    SuggestionRule(
        name="content",
        pattern=re.compile(
            r"\b(content|summarize|summarise|what does|excerpt|text|say|details?"
            r"|full text|body)\b"
        ),
        tool="query_detailed",
        preferred_fields=(*FAST_QUERY_FIELDS, CONTENT_FIELD),
        fallback=_all_fields,
        explanation=(
            "User asked for content or details; include chunk_text for snippets."
        ),
    ),
    SuggestionRule(
        name="list",
        pattern=None,
        tool="query_fast",
        preferred_fields=FAST_QUERY_FIELDS,
        fallback=_first_five,
        explanation=(
            "User asked for a list or browse; use minimal fields (no chunk_text) "
            "for smaller payload and cost."
        ),
    ),
)


def classify(user_query: str, rules: Sequence[SuggestionRule] = RULES) -> SuggestionRule:
    q = user_query.lower().strip()
    for rule in rules:
        if rule.matches(q):
            return rule
    return rules[-1]


def suggest_query_params(
    metadata_fields: Mapping[str, object] | None,
    user_query: str,
) -> QuerySuggestion:
    """Suggest fields and the execution tool for *user_query*.

    Args:
        metadata_fields: Field name -> type for the namespace (from
            list_namespaces), or None if the namespace is unknown.
        user_query: The user's natural language question.

    Returns:
        Suggested fields are always a subset of the schema's fields.
    """
    if metadata_fields is None:
        return QuerySuggestion(
            suggested_fields=[],
            use_count_tool=False,
            recommended_tool="query_fast",
            explanation=(
                "Namespace not found or has no metadata fields. Call "
                "list_namespaces first, then pass a valid namespace."
            ),
            namespace_found=False,
        )

    available = list(metadata_fields)
    if not available:
        return QuerySuggestion(
            suggested_fields=[],
            use_count_tool=False,
            recommended_tool="query_fast",
            explanation=(
                "Namespace has no metadata fields. Use list_namespaces to verify "
                "the namespace is correct."
            ),
            namespace_found=True,
        )

    rule = classify(user_query)
    fields = [f for f in rule.preferred_fields if f in metadata_fields]
    return QuerySuggestion(
        suggested_fields=fields or rule.fallback(available),
        use_count_tool=rule.tool == "count",
        recommended_tool=rule.tool,
        explanation=rule.explanation,
        namespace_found=True,
    )
