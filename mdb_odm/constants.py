"""
Constants for MDB_ODM.

This module contains the shared constants used across the codebase: connection
states, lifecycle event names, option defaults and fixed error messages.
"""

from enum import IntEnum
from typing import Any, Final

# ============================================================================
# CONNECTION STATES
# ============================================================================


class ReadyState(IntEnum):
    """Readiness of a connection, using the numeric codes exposed to users."""

    DISCONNECTED = 0
    CONNECTED = 1
    CONNECTING = 2
    DISCONNECTING = 3
    UNINITIALIZED = 99


# ============================================================================
# LIFECYCLE EVENTS
# ============================================================================

EVENT_CONNECTING: Final[str] = "connecting"
EVENT_CONNECTED: Final[str] = "connected"
EVENT_OPEN: Final[str] = "open"
EVENT_DISCONNECTING: Final[str] = "disconnecting"
EVENT_DISCONNECTED: Final[str] = "disconnected"
EVENT_CLOSE: Final[str] = "close"
EVENT_RECONNECTED: Final[str] = "reconnected"
EVENT_ERROR: Final[str] = "error"
EVENT_MODEL: Final[str] = "model"
EVENT_DELETE_MODEL: Final[str] = "deleteModel"

STATE_EVENTS: Final[dict[ReadyState, str]] = {
    ReadyState.CONNECTING: EVENT_CONNECTING,
    ReadyState.CONNECTED: EVENT_CONNECTED,
    ReadyState.DISCONNECTING: EVENT_DISCONNECTING,
    ReadyState.DISCONNECTED: EVENT_DISCONNECTED,
}
"""Event emitted when a connection enters each state."""

# ============================================================================
# DATABASE CONSTANTS
# ============================================================================

DEFAULT_DB_NAME: Final[str] = "test"
"""Database used when neither the options nor the connection string name one."""

DEFAULT_MONGO_URI: Final[str] = "mongodb://127.0.0.1:27017/test"
"""Connection string used by ``MongoODM.connect()`` when none is given."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

DEFAULT_APP_NAME: Final[str] = "MDB_ODM"
"""Application name reported to the server in the handshake."""

SECONDARY_READ_PREFERENCES: Final[frozenset[str]] = frozenset(
    {"secondary", "secondaryPreferred"}
)
"""Read preferences that forbid index and collection creation."""

# ============================================================================
# BUFFERING / MODEL OPTION DEFAULTS
# ============================================================================

DEFAULT_BUFFER_TIMEOUT_MS: Final[int] = 10000
"""How long a buffered operation waits for the connection (milliseconds)."""

DEFAULT_DISCRIMINATOR_KEY: Final[str] = "__t"
"""Document field holding the discriminator value."""

DEFAULT_OPTIONS: Final[dict[str, Any]] = {
    "bufferCommands": True,
    "bufferTimeoutMS": DEFAULT_BUFFER_TIMEOUT_MS,
    "autoIndex": True,
    "autoCreate": True,
    "overwriteModels": False,
}
"""Fallback values for the options resolved schema > connection > instance."""

INSTANCE_OPTIONS: Final[frozenset[str]] = frozenset(DEFAULT_OPTIONS)
"""Keys accepted by ``MongoODM.set()``."""

# ============================================================================
# ERROR MESSAGES
# ============================================================================

DESTROYED_CONNECTION_MESSAGE: Final[str] = (
    "Connection has been closed and destroyed, and cannot be used for "
    "re-opening the connection. Please create a new connection with "
    "`MongoODM.create_connection()` or `MongoODM.connect()`."
)

SECONDARY_INDEX_MESSAGE: Final[str] = (
    "MongoDB prohibits index creation on connections that read from "
    "non-primary replicas.  Connections that set \"readPreference\" to "
    "\"secondary\" or \"secondaryPreferred\" may not opt-in to the following "
    "connection options: autoCreate, autoIndex"
)
