"""
The MongoODM instance.

``MongoODM`` owns a default connection, any number of additional
connections, the instance-wide options and the global schema plugins.
Several instances can live in one process; each numbers its own connections
starting at 0.

Example:
    odm = MongoODM()
    await odm.connect("mongodb://localhost:27017/app")
    User = odm.model("User", Schema({"name": str}))
    await User.create({"name": "ada"})
    await odm.disconnect()
"""

import logging
from collections.abc import Mapping
from typing import Any, Callable, Optional, Union

from ..config import OdmSettings, get_settings
from ..constants import INSTANCE_OPTIONS
from ..exceptions import ConfigurationError, OdmError
from ..models.model import Model
from ..models.registry import ModelRegistry
from ..models.schema import Schema
from .connection import Connection, OpenCallback
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class MongoODM:
    """
    Entry point of the library: connections, models and instance options.
    """

    def __init__(self, settings: Optional[OdmSettings] = None, **options: Any) -> None:
        """
        Initialize the instance.

        Args:
            settings: Process defaults (read from the environment if omitted)
            **options: Instance options, see ``set()``
        """
        self.settings = settings or get_settings()
        self._options: dict[str, Any] = self.settings.instance_options()
        for key, value in options.items():
            self.set(key, value)
        self.plugins: list[tuple[Callable[..., Any], dict[str, Any]]] = []
        self._registry = ConnectionRegistry()
        self.connection = self._new_connection()

    def __repr__(self) -> str:
        return f"<MongoODM connections={len(self._registry)}>"

    def _new_connection(self) -> Connection:
        conn = Connection(base=self, registry=self._registry)
        self._registry.add(conn)
        return conn

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any) -> "MongoODM":
        """
        Set an instance option: ``overwriteModels``, ``bufferCommands``,
        ``bufferTimeoutMS``, ``autoIndex`` or ``autoCreate``.

        Raises:
            ConfigurationError: For any other key
        """
        if key not in INSTANCE_OPTIONS:
            raise ConfigurationError(f"`{key}` is an invalid option.", config_key=key)
        self._options[key] = value
        return self

    def get(self, key: str) -> Any:
        return self._options.get(key)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @property
    def connections(self) -> list[Connection]:
        """Top-level connections of this instance that are not destroyed."""
        return list(self._registry)

    def create_connection(
        self,
        uri: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
        callback: Optional[OpenCallback] = None,
    ) -> Connection:
        """
        Create a new connection, opening it if ``uri`` is given.

        Returns:
            The new connection (await it for the open outcome)
        """
        conn = self._new_connection()
        if uri is None:
            return conn
        try:
            conn.open_uri(uri, options, callback)
        except OdmError:
            self._registry.remove(conn)
            raise
        return conn

    async def connect(
        self, uri: Optional[str] = None, options: Optional[Mapping[str, Any]] = None
    ) -> "MongoODM":
        """
        Open the default connection.

        Args:
            uri: Connection string (defaults to ``settings.mongo_uri``)
            options: Connection options

        Raises:
            InitializationError: If the connection cannot be established
        """
        await self.connection.open_uri(uri if uri is not None else self.settings.mongo_uri, options)
        return self

    async def disconnect(self) -> None:
        """Close every connection of this instance."""
        for conn in self.connections:
            await conn.close()

    async def __aenter__(self) -> "MongoODM":
        """Connect the default connection on entry."""
        return await self.connect()

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    @property
    def models(self) -> ModelRegistry:
        """Models of the default connection."""
        return self.connection.models

    def model(
        self,
        name: Union[str, type],
        schema: Optional[Union[Schema, Mapping[str, Any]]] = None,
        collection: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> type[Model]:
        """Register or look up a model on the default connection."""
        return self.connection.model(name, schema, collection, options)

    def model_names(self) -> list[str]:
        return self.connection.model_names()

    def delete_model(self, name: Any) -> "MongoODM":
        self.connection.delete_model(name)
        return self

    def plugin(self, fn: Callable[..., Any], **opts: Any) -> "MongoODM":
        """Apply ``fn(schema, **opts)`` to every schema compiled on any connection."""
        self.plugins.append((fn, opts))
        return self

    async def sync_indexes(self, continue_on_error: bool = False) -> dict[str, Any]:
        """Synchronise the indexes of every model on every connection."""
        results: dict[str, Any] = {}
        for conn in self.connections:
            results.update(await conn.sync_indexes(continue_on_error=continue_on_error))
        return results


_default_odm: Optional[MongoODM] = None


def get_default_odm() -> MongoODM:
    """Get or create the process-wide default instance."""
    global _default_odm
    if _default_odm is None:
        _default_odm = MongoODM()
    return _default_odm
