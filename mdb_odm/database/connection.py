"""
Process-wide registry of active connections.

Every top-level connection created by any ``MongoODM`` instance in the
process is tracked here until it is destroyed. Connections derived with
``use_db()`` are not listed: they share their parent's client and go away with
it.

Usage:
    from mdb_odm.database import get_active_connections

    active = get_active_connections()
    print(len(active))
    await active.destroy_all()
"""

import logging
import threading
from typing import TYPE_CHECKING, Iterator, Optional

if TYPE_CHECKING:
    from ..core.connection import Connection

logger = logging.getLogger(__name__)


class ActiveConnections:
    """Thread-safe list of active top-level connections."""

    def __init__(self) -> None:
        self._connections: list["Connection"] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __iter__(self) -> Iterator["Connection"]:
        return iter(self.snapshot())

    def __contains__(self, connection: object) -> bool:
        with self._lock:
            return any(existing is connection for existing in self._connections)

    def snapshot(self) -> list["Connection"]:
        with self._lock:
            return list(self._connections)

    def add(self, connection: "Connection") -> None:
        with self._lock:
            if not any(existing is connection for existing in self._connections):
                self._connections.append(connection)

    def remove(self, connection: "Connection") -> bool:
        """Remove ``connection``; returns False if it was not listed."""
        with self._lock:
            for index, existing in enumerate(self._connections):
                if existing is connection:
                    del self._connections[index]
                    return True
        return False

    async def destroy_all(self, force: bool = False) -> int:
        """
        Destroy every listed connection.

        Returns:
            Number of connections destroyed
        """
        connections = self.snapshot()
        for connection in connections:
            await connection.destroy(force=force)
        if connections:
            logger.info(f"Destroyed {len(connections)} active connection(s)")
        return len(connections)


# Global singleton instance
_active_connections: Optional[ActiveConnections] = None
_init_lock = threading.Lock()


def get_active_connections() -> ActiveConnections:
    """Get or create the process-wide active connection list."""
    global _active_connections
    if _active_connections is None:
        with _init_lock:
            if _active_connections is None:
                _active_connections = ActiveConnections()
    return _active_connections
