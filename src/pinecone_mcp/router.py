"""Rank namespaces by textual relevance to a query.

Scoring uses only the namespace name and its schema field names, so it
works for any inventory discovered at runtime.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from pinecone_mcp.models import NamespaceInfo, RankedNamespace

NAME_MATCH_SCORE = 3
TOKEN_MATCH_SCORE = 2
FIELD_HINT_SCORE = 1

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_name(namespace: str) -> str:
    """``"WG21-Papers"`` -> ``"wg21 papers"``."""
    return _NON_ALNUM.sub(" ", namespace.lower()).strip()


def score_namespace(
    query: str,
    namespace: str,
    fields: Sequence[str],
) -> tuple[int, list[str]]:
    q = query.lower()
    name = normalize_name(namespace)
    score = 0
    reasons: list[str] = []

    if name and name in q:
        score += NAME_MATCH_SCORE
        reasons.append("query mentions namespace name")
    else:
        for token in name.split():
            if len(token) >= 2 and token in q:
                score += TOKEN_MATCH_SCORE
                reasons.append(f"token match: {token}")

    for field_name in fields:
        if field_name.lower() in q:
            score += FIELD_HINT_SCORE
            reasons.append(f"field hint: {field_name}")

    return score, list(dict.fromkeys(reasons))


def rank_namespaces(
    query: str,
    namespaces: Sequence[NamespaceInfo],
    top_n: int,
) -> list[RankedNamespace]:
    """Score every namespace and return the best *top_n*.

    Ties prefer the smaller namespace (lower record count), which tends to
    be the more specific one.
    """
    ranked: list[RankedNamespace] = []
    for ns in namespaces:
        score, reasons = score_namespace(query.strip(), ns.namespace, list(ns.metadata_fields))
        ranked.append(
            RankedNamespace(
                namespace=ns.namespace,
                score=score,
                record_count=ns.record_count,
                reasons=reasons,
            )
        )
    ranked.sort(key=lambda r: (-r.score, r.record_count))
    return ranked[: max(top_n, 0)]
