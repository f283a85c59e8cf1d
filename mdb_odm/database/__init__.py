"""
Database layer: buffered collections and the process-wide connection list.
"""

from .collection import BufferedCollection
from .connection import ActiveConnections, get_active_connections

__all__ = [
    "ActiveConnections",
    "BufferedCollection",
    "get_active_connections",
]
