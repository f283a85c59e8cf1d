"""
Topology monitoring.

The driver reports topology changes from its own monitor threads. The
``TopologyMonitor`` watches whether a writable server (the primary) is
available and hands every change over to the owning connection's event loop.
"""

import asyncio
import logging
import weakref
from typing import TYPE_CHECKING

from pymongo import monitoring

if TYPE_CHECKING:
    from .connection import Connection

logger = logging.getLogger(__name__)


class TopologyMonitor(monitoring.TopologyListener):
    """Relays primary availability changes to a ``Connection``."""

    def __init__(self, connection: "Connection", loop: asyncio.AbstractEventLoop) -> None:
        self._connection = weakref.ref(connection)
        self._loop = loop

    def opened(self, event: monitoring.TopologyOpenedEvent) -> None:
        logger.debug(f"Topology {event.topology_id} opened")

    def description_changed(self, event: monitoring.TopologyDescriptionChangedEvent) -> None:
        had_primary = event.previous_description.has_writable_server()
        has_primary = event.new_description.has_writable_server()
        if had_primary == has_primary:
            return

        connection = self._connection()
        if connection is None:
            return
        try:
            self._loop.call_soon_threadsafe(connection._on_primary_change, has_primary)
        except RuntimeError:
            logger.debug("Event loop closed; dropping topology change notification")

    def closed(self, event: monitoring.TopologyClosedEvent) -> None:
        logger.debug(f"Topology {event.topology_id} closed")
