"""
Utility functions and helpers for MDB_ODM.
"""

from .documents import to_json_compatible
from .naming import pluralize
from .tasks import create_managed_task
from .uri import ConnectionTarget, parse_connection_string, resolve_connection_string

__all__ = [
    "ConnectionTarget",
    "create_managed_task",
    "parse_connection_string",
    "pluralize",
    "resolve_connection_string",
    "to_json_compatible",
]
