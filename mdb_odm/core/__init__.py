"""
Core components: connections, their lifecycle and the MongoODM instance.
"""

from .buffer import BufferedOperation, OperationBuffer
from .connection import Connection
from .events import EventEmitter
from .odm import MongoODM, get_default_odm
from .registry import ConnectionRegistry

__all__ = [
    "BufferedOperation",
    "Connection",
    "ConnectionRegistry",
    "EventEmitter",
    "MongoODM",
    "OperationBuffer",
    "get_default_odm",
]
