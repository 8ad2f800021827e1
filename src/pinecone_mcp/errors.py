"""Exception types raised by the retrieval core.

Caller mistakes derive from ``QueryValidationError`` (a ``ValueError``) and
are always reported verbatim at the MCP boundary.  Backend failures derive
from ``SearchBackendError`` and are hidden behind a generic message unless
debug logging is enabled.
"""

from __future__ import annotations


class QueryValidationError(ValueError):
    """Invalid tool input: empty query, bad top_k, malformed filter."""


class EmptyQueryError(QueryValidationError):
    pass


class InvalidTopKError(QueryValidationError):
    pass


class InvalidFilterError(QueryValidationError):
    pass


class FlowGateError(RuntimeError):
    """An execution tool ran before suggest_query_params for its namespace."""


class SearchBackendError(RuntimeError):
    """The vector search backend could not serve the request."""


class NamespaceNotFoundError(LookupError):
    pass


class NoNamespaceAvailableError(LookupError):
    pass


USER_FACING_ERRORS: tuple[type[Exception], ...] = (
    QueryValidationError,
    FlowGateError,
    NamespaceNotFoundError,
    NoNamespaceAvailableError,
)
