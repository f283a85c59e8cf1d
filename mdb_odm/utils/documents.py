"""
Document helpers.

Conversion of stored documents into JSON-serializable structures.
"""

from datetime import datetime
from typing import Any

from bson import ObjectId


def to_json_compatible(value: Any) -> Any:
    """
    Convert a document (or any value inside one) to JSON-compatible types.

    ObjectId becomes ``str`` and datetime becomes an ISO 8601 string. Nested
    mappings and lists are converted recursively.

    Example:
        ```python
        to_json_compatible({"_id": ObjectId("507f1f77bcf86cd799439011"), "tags": ["a"]})
        # {"_id": "507f1f77bcf86cd799439011", "tags": ["a"]}
        ```
    """
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_json_compatible(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_compatible(item) for item in value]
    return value
