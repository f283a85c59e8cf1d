"""
MDB_ODM - MongoDB Object Document Mapper

Connection lifecycle, operation buffering, database multiplexing and model
registration on top of motor.
"""

from .config import ConnectionOptions, OdmSettings, get_settings
from .constants import ReadyState
# Core
from .core import Connection, MongoODM, get_default_odm
# Database layer
from .database import BufferedCollection, get_active_connections
from .exceptions import (BufferingDisabledError, BufferTimeoutError,
                         ConfigurationError, ConnectionDestroyedError,
                         DisconnectedError, InitializationError,
                         MissingSchemaError, OdmError, OverwriteModelError,
                         ParseError, ServerSelectionError, SyncIndexesError)
# Models
from .models import Model, Schema

__version__ = "0.1.0"

__all__ = [
    # Core
    "MongoODM",
    "Connection",
    "ReadyState",
    "get_default_odm",
    # Database
    "BufferedCollection",
    "get_active_connections",
    # Models
    "Model",
    "Schema",
    # Config
    "ConnectionOptions",
    "OdmSettings",
    "get_settings",
    # Errors
    "OdmError",
    "ConfigurationError",
    "InitializationError",
    "ServerSelectionError",
    "ParseError",
    "ConnectionDestroyedError",
    "DisconnectedError",
    "BufferingDisabledError",
    "BufferTimeoutError",
    "OverwriteModelError",
    "MissingSchemaError",
    "SyncIndexesError",
]
