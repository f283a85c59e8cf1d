"""
Per-instance connection registry.

Each ``MongoODM`` owns one ``ConnectionRegistry``: it hands out connection ids
(starting at 0 for the default connection) and lists the instance's
top-level connections. Ids are never reused, so two instances each start
their own sequence at 0.
"""

import itertools
import logging
from typing import TYPE_CHECKING, Iterator, Optional

from ..database.connection import ActiveConnections, get_active_connections

if TYPE_CHECKING:
    from .connection import Connection

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Id allocation and membership for the connections of one instance."""

    def __init__(self, active: Optional[ActiveConnections] = None) -> None:
        self._ids = itertools.count()
        self._connections: list["Connection"] = []
        self._active = active or get_active_connections()

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator["Connection"]:
        return iter(list(self._connections))

    def __contains__(self, connection: object) -> bool:
        return any(existing is connection for existing in self._connections)

    @property
    def active(self) -> ActiveConnections:
        return self._active

    def allocate_id(self) -> int:
        return next(self._ids)

    def add(self, connection: "Connection") -> None:
        """List a top-level connection here and in the process-wide list."""
        if connection not in self:
            self._connections.append(connection)
        self._active.add(connection)

    def remove(self, connection: "Connection") -> bool:
        """
        Forget a connection.

        Returns:
            True if it was listed in this registry
        """
        removed = False
        for index, existing in enumerate(self._connections):
            if existing is connection:
                del self._connections[index]
                removed = True
                break
        self._active.remove(connection)
        if removed:
            logger.debug(f"Connection {connection.id} removed from registry")
        return removed
