"""Suggest-before-query flow gate.

An agent must call suggest_query_params for a namespace before any
execution tool (count, query*, query_documents) runs against it.  The
permission decays after the same TTL as the namespace cache so that a
changed schema gets re-validated.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from pinecone_mcp.cache import DEFAULT_TTL_SECONDS
from pinecone_mcp.errors import FlowGateError
from pinecone_mcp.models import ToolName

logger = logging.getLogger(__name__)

MISSING_MESSAGE = (
    "Flow requires suggest_query_params first. Call suggest_query_params with "
    "namespace and user_query before query/count tools."
)


@dataclass(frozen=True)
class FlowState:
    recommended_tool: ToolName
    suggested_fields: list[str]
    user_query: str
    updated_at: float


@dataclass(frozen=True)
class FlowCheck:
    ok: bool
    flow: FlowState | None = None
    message: str = ""


class FlowGate:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._states: dict[str, FlowState] = {}
        self._lock = threading.Lock()

    def mark_suggested(
        self,
        namespace: str,
        *,
        recommended_tool: ToolName,
        suggested_fields: Sequence[str],
        user_query: str,
    ) -> None:
        state = FlowState(
            recommended_tool=recommended_tool,
            suggested_fields=list(suggested_fields),
            user_query=user_query,
            updated_at=self._clock(),
        )
        with self._lock:
            self._states[namespace] = state
        logger.debug("Flow gate opened for %s (%s)", namespace, recommended_tool)

    def require_suggested(self, namespace: str) -> FlowCheck:
        with self._lock:
            state = self._states.get(namespace)
            if state is None:
                return FlowCheck(ok=False, message=MISSING_MESSAGE)
            if self._clock() - state.updated_at > self._ttl:
                del self._states[namespace]
                minutes = round(self._ttl / 60)
                return FlowCheck(
                    ok=False,
                    message=(
                        f"Previous suggest_query_params context expired "
                        f"({minutes} minutes). Call suggest_query_params again "
                        "before query/count tools."
                    ),
                )
        return FlowCheck(ok=True, flow=state)

    def ensure_suggested(self, namespace: str) -> FlowState:
        """Like require_suggested, but raise FlowGateError on failure."""
        check = self.require_suggested(namespace)
        if not check.ok or check.flow is None:
            raise FlowGateError(check.message)
        return check.flow
