"""Metadata filter validation for Pinecone queries.

Filters map field names to a primitive, a list of primitives, or a nested
mapping of comparison operators, e.g. ``{"year": {"$gte": 2020}}``.
"""

from __future__ import annotations

from collections.abc import Mapping

from pinecone_mcp.errors import InvalidFilterError

ALLOWED_OPERATORS = frozenset(
    {"$eq", "$ne", "$gt", "$gte", "$lt", "$lte", "$in", "$nin"}
)
_ARRAY_OPERATORS = frozenset({"$in", "$nin"})


def _is_primitive(value: object) -> bool:
    return isinstance(value, str | int | float | bool)


def _is_primitive_list(value: object) -> bool:
    return isinstance(value, list | tuple) and all(_is_primitive(v) for v in value)


def _validate_value(value: object, path: list[str]) -> str | None:
    dotted = ".".join(path)
    if value is None:
        return f'Invalid null value at "{dotted}".'

    if _is_primitive(value) or _is_primitive_list(value):
        return None

    if not isinstance(value, Mapping):
        return f'Unsupported filter value at "{dotted}".'

    for key, nested in value.items():
        if key.startswith("$"):
            if key not in ALLOWED_OPERATORS:
                return f'Unsupported filter operator "{key}" at "{dotted}".'
            if key in _ARRAY_OPERATORS and not _is_primitive_list(nested):
                return (
                    f'Operator "{key}" at "{dotted}" must use an array of '
                    "primitive values."
                )
        error = _validate_value(nested, [*path, key])
        if error:
            return error

    return None


def validate_metadata_filter(metadata_filter: Mapping[str, object]) -> str | None:
    """Return a human-readable error for an invalid filter, else None."""
    for field_name, value in metadata_filter.items():
        error = _validate_value(value, [field_name])
        if error:
            return error
    return None


def require_valid_filter(metadata_filter: Mapping[str, object] | None) -> None:
    """Raise InvalidFilterError if *metadata_filter* is present and invalid."""
    if metadata_filter is None:
        return
    error = validate_metadata_filter(metadata_filter)
    if error:
        raise InvalidFilterError(error)
