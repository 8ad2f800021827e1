"""Canonical URL generation for records whose metadata lacks a url.

Each namespace may register a generator that builds a URL from the partial
metadata of its source (mailing-list archives, chat channels, ...).
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping

from pinecone_mcp.models import UrlResult

UrlGenerator = Callable[[Mapping[str, object]], UrlResult]

MAILING_ARCHIVE_BASE = "https://lists.boost.org/archives/list"
SLACK_CLIENT_BASE = "https://app.slack.com/client"


def _as_str(value: object) -> str | None:
    """Trimmed non-empty string, or None for blank/missing/non-string."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def mailing_url(metadata: Mapping[str, object]) -> UrlResult:
    """Build a mailing-list archive URL.

    With ``list_name`` and a message id (``doc_id`` or ``msg_id``) that does
    not already embed the list name, link the message inside the list.
    Otherwise the id (or ``thread_id``) is itself the archive path.
    """
    list_name = _as_str(metadata.get("list_name"))
    doc_id = _as_str(metadata.get("doc_id")) or _as_str(metadata.get("msg_id"))
    thread_id = _as_str(metadata.get("thread_id"))

    if list_name and doc_id and list_name not in doc_id:
        return UrlResult(
            url=f"{MAILING_ARCHIVE_BASE}/{list_name}/message/{doc_id}/",
            method="generated.mailing",
        )

    path = doc_id or thread_id
    if path is None:
        return UrlResult(
            url=None,
            method="unavailable",
            reason="mailing requires doc_id, msg_id, or thread_id to generate URL",
        )
    return UrlResult(url=f"{MAILING_ARCHIVE_BASE}/{path}/", method="generated.mailing")


def slack_url(metadata: Mapping[str, object]) -> UrlResult:
    """Build a Slack message URL from ``source`` or team/channel/doc ids."""
    source = _as_str(metadata.get("source"))
    if source:
        return UrlResult(url=source, method="metadata.source")

    team_id = _as_str(metadata.get("team_id"))
    channel_id = _as_str(metadata.get("channel_id"))
    doc_id = _as_str(metadata.get("doc_id"))
    if not (team_id and channel_id and doc_id):
        return UrlResult(
            url=None,
            method="unavailable",
            reason="slack requires team_id, channel_id, and doc_id (or source)",
        )
    # Slack permalinks drop the dot from the message timestamp.
    message_id = doc_id.replace(".", "")
    return UrlResult(
        url=f"{SLACK_CLIENT_BASE}/{team_id}/{channel_id}/p{message_id}",
        method="generated.slack",
    )


class UrlGeneratorRegistry:
    """Namespace name -> URL generator table, extensible at runtime."""

    def __init__(self, generators: Mapping[str, UrlGenerator] | None = None) -> None:
        self._generators: dict[str, UrlGenerator] = dict(generators or {})
        self._lock = threading.Lock()

    def register(self, namespace: str, generator: UrlGenerator) -> None:
        with self._lock:
            self._generators[namespace] = generator

    def namespaces(self) -> list[str]:
        return sorted(self._generators)

    def generate(self, namespace: str, metadata: Mapping[str, object]) -> UrlResult:
        """Return the record's URL; an existing ``url`` always wins."""
        existing = _as_str(metadata.get("url"))
        if existing:
            return UrlResult(url=existing, method="metadata.url")

        generator = self._generators.get(namespace)
        if generator is None:
            return UrlResult(
                url=None,
                method="unavailable",
                reason=f'URL generation is not supported for namespace "{namespace}"',
            )
        return generator(metadata)


def build_default_registry() -> UrlGeneratorRegistry:
    return UrlGeneratorRegistry({"mailing": mailing_url, "slack-Cpplang": slack_url})


default_registry = build_default_registry()
