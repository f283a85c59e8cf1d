"""
Helper functions for index comparison.

Indexes reported by the server (``listIndexes`` output) are compared against
the ``(keys, options)`` pairs declared on a schema.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)

COMPARED_OPTIONS: tuple[str, ...] = (
    "unique",
    "sparse",
    "expireAfterSeconds",
    "partialFilterExpression",
    "collation",
)
"""Index options that make two indexes on the same keys different."""

ID_INDEX_NAME = "_id_"


def normalize_keys(
    keys: dict[str, Any] | list[tuple[str, Any]],
) -> list[tuple[str, Any]]:
    """
    Normalize index keys to a list of ``(field, direction)`` tuples.

    Args:
        keys: Index keys as dict or list of tuples
    """
    if isinstance(keys, dict):
        return list(keys.items())
    return [tuple(pair) for pair in keys]


def is_id_index(keys: dict[str, Any] | list[tuple[str, Any]]) -> bool:
    """True for the ``_id`` index MongoDB creates (and keeps) on every collection."""
    normalized = normalize_keys(keys)
    return len(normalized) == 1 and normalized[0][0] == "_id"


def _option_value(options: dict[str, Any], key: str) -> Any:
    value = options.get(key)
    # unique/sparse default to False on the server and are omitted from listIndexes
    if key in ("unique", "sparse") and not value:
        return False
    return value


def index_matches(
    existing_index: dict[str, Any],
    expected_keys: dict[str, Any] | list[tuple[str, Any]],
    expected_options: dict[str, Any] | None = None,
) -> bool:
    """
    Check whether a server index has the expected keys (in order) and options.

    Args:
        existing_index: One document from ``listIndexes``
        expected_keys: Declared index keys
        expected_options: Declared index options

    Returns:
        True if the server index satisfies the declaration
    """
    expected_options = expected_options or {}
    if "name" in expected_options and existing_index.get("name") != expected_options["name"]:
        return False
    if normalize_keys(dict(existing_index.get("key", {}))) != normalize_keys(expected_keys):
        return False
    return all(
        _option_value(existing_index, key) == _option_value(expected_options, key)
        for key in COMPARED_OPTIONS
    )
