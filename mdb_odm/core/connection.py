"""
Connection state machine.

A ``Connection`` owns one motor client (or borrows its parent's, for
connections derived with ``use_db()``), tracks its readiness, and publishes
lifecycle events. Operations issued through its collections and models before
it is ready are buffered and replayed once it connects.

Lifecycle:
    disconnected -> connecting -> connected -> disconnecting -> disconnected

Events: ``connecting``, ``connected``, ``open``, ``disconnecting``,
``disconnected``, ``close``, ``reconnected``, ``error``, ``model``,
``deleteModel``.

Example:
    conn = odm.create_connection("mongodb://localhost:27017/app")
    conn.on("connected", lambda: print("ready"))
    await conn
    users = conn.collection("users")
    await users.insert_one({"name": "ada"})
    await conn.close()
"""

import asyncio
import logging
import re
import time
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import ConfigurationError as PyMongoConfigurationError
from pymongo.errors import (ConnectionFailure, InvalidOperation,
                            OperationFailure, PyMongoError,
                            ServerSelectionTimeoutError)

from ..config import ConnectionOptions, get_settings, resolve_connection_options
from ..constants import (DEFAULT_DB_NAME, DEFAULT_OPTIONS, EVENT_CLOSE,
                         EVENT_DELETE_MODEL, EVENT_ERROR, EVENT_MODEL,
                         EVENT_OPEN, EVENT_RECONNECTED, STATE_EVENTS,
                         ReadyState)
from ..database.collection import BufferedCollection
from ..exceptions import (BufferingDisabledError, ConfigurationError,
                          ConnectionDestroyedError, DisconnectedError,
                          InitializationError, MissingSchemaError,
                          OverwriteModelError, ServerSelectionError)
from ..indexes import manager as index_manager
from ..models.model import Model, compile_model
from ..models.registry import ModelEntry, ModelRegistry
from ..models.schema import Schema
from ..observability import (connection_context, get_logger, log_event,
                             record_operation, timed_operation)
from ..utils.naming import pluralize
from ..utils.uri import ConnectionTarget, resolve_connection_string
from .buffer import OperationBuffer
from .events import EventEmitter
from .monitoring import TopologyMonitor

if TYPE_CHECKING:
    from .odm import MongoODM
    from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)
contextual_logger = get_logger(__name__)

OpenCallback = Callable[[Optional[BaseException], Optional["Connection"]], Any]


def _consume_exception(future: "asyncio.Future[Any]") -> None:
    if not future.cancelled():
        future.exception()


class Connection(EventEmitter):
    """
    A logical database connection.

    Top-level connections are created by ``MongoODM.create_connection()``;
    ``use_db()`` derives child connections that share the parent's client.
    """

    states = ReadyState

    def __init__(
        self,
        base: Optional["MongoODM"] = None,
        registry: Optional["ConnectionRegistry"] = None,
        parent: Optional["Connection"] = None,
        name: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.base = base
        self._registry = registry
        self.id: int = registry.allocate_id() if registry is not None else 0
        self._parent = parent
        self.name: Optional[str] = name

        self._ready_state = ReadyState.DISCONNECTED
        self._options: dict[str, Any] = {}
        self._config: dict[str, Any] = dict(parent._config) if parent is not None else {}
        self._connection_options: Optional[ConnectionOptions] = None
        self._connection_string: Optional[str] = None
        self._target: Optional[ConnectionTarget] = None

        self._client: Optional[AsyncIOMotorClient] = None
        self._owns_client = False
        self._client_closed = False

        self._handshake: Optional["asyncio.Task[None]"] = None
        self._ready_waiter: Optional["asyncio.Future[Connection]"] = None
        self._has_opened = False
        self._close_called = False
        self._force_closed = False
        self._destroyed = False

        self._buffer = OperationBuffer(name=f"connection-{self.id}")
        self._children: list[Connection] = []
        self._related_dbs: dict[str, Connection] = {}

        self.models = ModelRegistry()
        self.collections: dict[str, BufferedCollection] = {}
        self.plugins: list[tuple[Callable[..., Any], dict[str, Any]]] = []

    def __repr__(self) -> str:
        return (
            f"<Connection id={self.id} name={self.name!r} "
            f"ready_state={self._ready_state.name}>"
        )

    def __await__(self):
        return self.as_promise().__await__()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def _root(self) -> "Connection":
        return self._parent if self._parent is not None else self

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def parent(self) -> Optional["Connection"]:
        return self._parent

    @property
    def children(self) -> list["Connection"]:
        """Connections derived with ``use_db()`` that follow this one's lifecycle."""
        return list(self._children)

    @property
    def client(self) -> Optional[AsyncIOMotorClient]:
        return self._root._client

    @property
    def db(self):
        """The motor database, once a client exists."""
        client = self.client
        if client is None or self.name is None:
            return None
        return client[self.name]

    @property
    def options(self) -> Mapping[str, Any]:
        """Read-only snapshot of the options the connection was opened with."""
        return MappingProxyType(self._root._options)

    @property
    def config(self) -> Mapping[str, Any]:
        return MappingProxyType(self._config)

    @property
    def hosts(self) -> list[tuple[str, Optional[int]]]:
        target = self._root._target
        return list(target.hosts) if target else []

    @property
    def host(self) -> Optional[str]:
        target = self._root._target
        return target.host if target else None

    @property
    def port(self) -> Optional[int]:
        target = self._root._target
        return target.port if target else None

    @property
    def replica(self) -> Optional[str]:
        target = self._root._target
        return target.replica_set if target else None

    @property
    def user(self) -> Optional[str]:
        root = self._root
        if root._connection_options and root._connection_options.user:
            return root._connection_options.user
        return root._target.username if root._target else None

    @property
    def password(self) -> Optional[str]:
        root = self._root
        if root._connection_options and root._connection_options.password:
            return root._connection_options.password
        return root._target.password if root._target else None

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any:
        return self._config.get(key)

    def set(self, key: str, value: Any) -> "Connection":
        self._config[key] = value
        return self

    def get_option(self, key: str) -> Any:
        """Connection config value, falling back to the instance, then the default."""
        value = self._config.get(key)
        if value is None and self.base is not None:
            value = self.base.get(key)
        if value is None:
            value = DEFAULT_OPTIONS.get(key)
        return value

    def should_authenticate(self) -> bool:
        """True if the connection carries credentials the server should check."""
        options = self._root._connection_options
        auth = (options.auth if options else None) or {}
        if auth.get("authMechanism") == "MONGODB-X509":
            return bool(self.user)
        return bool(self.user) and bool(self.password)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _set_ready_state(self, state: ReadyState) -> None:
        """Move to ``state``, emit its event and carry the change to children."""
        if state == self._ready_state:
            return
        previous = self._ready_state
        self._ready_state = state
        logger.debug(f"Connection {self.id} ({self.name}): {previous.name} -> {state.name}")

        event = STATE_EVENTS.get(state)
        if event is not None:
            self.emit(event)
        if state == ReadyState.CONNECTED:
            self._force_closed = False
            self._buffer.replay()
            self._schedule_model_init()

        for child in list(self._children):
            child._set_ready_state(state)

    def _emit_open(self) -> None:
        root = self._root
        group = [root, *root._children]
        if all(conn._ready_state == ReadyState.CONNECTED for conn in group):
            for conn in group:
                conn.emit(EVENT_OPEN)

    def _on_primary_change(self, available: bool) -> None:
        """Called on the event loop when the driver gains or loses the primary."""
        if self._destroyed or self._close_called or self._parent is not None:
            return
        if not available and self._ready_state == ReadyState.CONNECTED:
            with connection_context(self):
                contextual_logger.warning("Lost connection to MongoDB primary")
            self._set_ready_state(ReadyState.DISCONNECTED)
        elif available and self._ready_state == ReadyState.DISCONNECTED and self._has_opened:
            with connection_context(self):
                contextual_logger.info("Reconnected to MongoDB primary")
            self._set_ready_state(ReadyState.CONNECTED)
            for conn in [self, *self._children]:
                conn.emit(EVENT_RECONNECTED)

    def _reject_buffers(self, error: BaseException) -> None:
        self._buffer.reject_all(error)
        for child in self._children:
            child._buffer.reject_all(error)

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    def open_uri(
        self,
        uri: str,
        options: Optional[Mapping[str, Any]] = None,
        callback: Optional[OpenCallback] = None,
    ) -> "Connection":
        """
        Start connecting to ``uri`` and return immediately.

        The handshake runs on the current event loop. Await the connection
        (or ``as_promise()``) for the outcome, or pass ``callback``, which is
        called as ``callback(error, connection)``.

        Args:
            uri: MongoDB connection string
            options: Connection options (camelCase keys, see ``ConnectionOptions``)
            callback: Optional completion callback

        Returns:
            This connection

        Raises:
            ConnectionDestroyedError: If the connection was destroyed and no
                callback was given
            ConfigurationError: For a non-string ``uri``, invalid options, a
                derived connection, or a different ``uri`` on an active
                connection
        """
        if self._destroyed:
            error = ConnectionDestroyedError()
            if callback is not None:
                callback(error, None)
                return self
            raise error
        if self._parent is not None:
            raise ConfigurationError(
                "Cannot call `open_uri()` on a connection created with `use_db()`; "
                "open its parent connection instead",
                context={"db_name": self.name},
            )
        if not isinstance(uri, str):
            raise ConfigurationError(
                "The `uri` parameter to `open_uri()` must be a string, got "
                f'"{type(uri).__name__}". Make sure the first parameter to '
                "`MongoODM.connect()` or `MongoODM.create_connection()` is a string.",
                config_key="uri",
            )
        resolved = resolve_connection_options(options)

        if self._ready_state in (ReadyState.CONNECTING, ReadyState.CONNECTED):
            if uri != self._connection_string:
                raise ConfigurationError(
                    "Can't call `open_uri()` on an active connection with different "
                    "connection strings. Make sure you aren't calling "
                    "`MongoODM.connect()` multiple times.",
                    context={"connection_id": self.id},
                )
            self._chain_callback(callback)
            return self

        loop = asyncio.get_running_loop()
        previous_uri = self._connection_string
        self._options = dict(options or {})
        self._connection_options = resolved
        self._config.update(resolved.derived_config())
        self._connection_string = uri
        self._close_called = False

        self._ready_waiter = loop.create_future()
        self._ready_waiter.add_done_callback(_consume_exception)
        self._set_ready_state(ReadyState.CONNECTING)
        self._handshake = loop.create_task(
            self._open(uri, resolved, previous_uri), name=f"mdb_odm.open[{self.id}]"
        )
        self._chain_callback(callback)
        return self

    def _chain_callback(self, callback: Optional[OpenCallback]) -> None:
        if callback is None or self._ready_waiter is None:
            return

        def _notify(future: "asyncio.Future[Connection]") -> None:
            if future.cancelled():
                callback(asyncio.CancelledError(), None)
            elif future.exception() is not None:
                callback(future.exception(), None)
            else:
                callback(None, self)

        self._ready_waiter.add_done_callback(_notify)

    async def as_promise(self) -> "Connection":
        """
        Wait for the pending (or last) open attempt.

        Returns:
            This connection, once connected

        Raises:
            The error the open attempt failed with
        """
        root = self._root
        waiter = root._ready_waiter
        if waiter is None:
            if root._destroyed:
                raise ConnectionDestroyedError()
            if root._ready_state == ReadyState.CONNECTED:
                return self
            raise ConfigurationError(
                "Connection has not been opened; call `open_uri()` first",
                context={"connection_id": self.id},
            )
        await asyncio.shield(waiter)
        return self

    async def _open(self, uri: str, options: ConnectionOptions, previous_uri: Optional[str]) -> None:
        waiter = self._ready_waiter
        start_time = time.time()
        phase = "reconnection" if self._has_opened else "initial connection"

        with connection_context(self, phase=phase):
            try:
                await self._connect_client(uri, options, previous_uri, phase)
            except Exception as error:
                duration_ms = (time.time() - start_time) * 1000
                record_operation("connection.open", duration_ms, success=False)
                log_event(
                    contextual_logger,
                    f"MongoDB connection failed: {error}",
                    level=logging.ERROR,
                    duration_ms=duration_ms,
                    db_name=self.name,
                    error_type=type(error).__name__,
                )
                self._set_ready_state(ReadyState.DISCONNECTED)
                self._reject_buffers(error)
                if not waiter.done():
                    waiter.set_exception(error)
                self.emit(EVENT_ERROR, error)
                return

            duration_ms = (time.time() - start_time) * 1000
            record_operation("connection.open", duration_ms, success=True)
            log_event(
                contextual_logger,
                "MongoDB connection established",
                duration_ms=duration_ms,
                db_name=self.name,
                host=self.host,
            )
        self._has_opened = True
        self._client_closed = False
        self._set_ready_state(ReadyState.CONNECTED)
        self._emit_open()
        if not waiter.done():
            waiter.set_result(self)

    async def _connect_client(
        self, uri: str, options: ConnectionOptions, previous_uri: Optional[str], phase: str
    ) -> None:
        target = await resolve_connection_string(uri)
        self._target = target
        self.name = options.db_name or target.database or DEFAULT_DB_NAME

        client = self._client
        if client is None or self._client_closed or previous_uri != uri:
            client = self._create_client(uri, options)

        try:
            await client.admin.command("ping")
        except ServerSelectionTimeoutError as e:
            raise ServerSelectionError(
                f"Server selection timed out during {phase} to MongoDB: {e}",
                host=target.host,
                db_name=self.name,
                context={"error_type": type(e).__name__},
            ) from e
        except (ConnectionFailure, OperationFailure) as e:
            raise InitializationError(
                f"Failed {phase} to MongoDB: {e}",
                host=target.host,
                db_name=self.name,
                context={"error_type": type(e).__name__},
            ) from e
        except PyMongoError as e:
            raise InitializationError(
                f"MongoDB driver error during {phase}: {e}",
                host=target.host,
                db_name=self.name,
                context={"error_type": type(e).__name__},
            ) from e
        except (TypeError, ValueError, AttributeError, KeyError) as e:
            raise InitializationError(
                f"Unexpected error during {phase} to MongoDB: {e}",
                host=target.host,
                db_name=self.name,
                context={"error_type": type(e).__name__},
            ) from e

    def _create_client(self, uri: str, options: ConnectionOptions) -> AsyncIOMotorClient:
        settings = self.base.settings if self.base is not None else get_settings()
        driver_options = options.driver_options(
            serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
            appname=settings.app_name,
            retryWrites=True,
            retryReads=True,
        )
        monitor = TopologyMonitor(self, asyncio.get_running_loop())
        driver_options["event_listeners"] = [*driver_options.get("event_listeners", []), monitor]

        try:
            client = AsyncIOMotorClient(uri, **driver_options)
        except (PyMongoConfigurationError, TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid driver options: {e}", context={"error_type": type(e).__name__}
            ) from e

        if self._client is not None and self._owns_client and not self._client_closed:
            self._client.close()
        self._client = client
        self._owns_client = True
        self._client_closed = False
        return client

    def set_client(self, client: AsyncIOMotorClient) -> "Connection":
        """
        Adopt an existing motor client. The connection becomes connected
        immediately.

        Raises:
            ConfigurationError: If ``client`` is not a motor client or the
                connection is not disconnected
        """
        if self._destroyed:
            raise ConnectionDestroyedError()
        if not isinstance(client, AsyncIOMotorClient):
            raise ConfigurationError(
                "Must call `set_client()` with an instance of AsyncIOMotorClient",
                config_key="client",
            )
        if self._parent is not None:
            raise ConfigurationError("Cannot call `set_client()` on a connection created with `use_db()`")
        if self._ready_state != ReadyState.DISCONNECTED:
            raise ConfigurationError(
                "Cannot call `set_client()` on a connection that is already connected.",
                context={"ready_state": self._ready_state.name},
            )

        self._client = client
        self._owns_client = True
        self._client_closed = False
        if self.name is None:
            self.name = self._default_db_name(client)
        self._has_opened = True
        self._close_called = False
        self._set_ready_state(ReadyState.CONNECTED)
        self._emit_open()
        return self

    @staticmethod
    def _default_db_name(client: AsyncIOMotorClient) -> str:
        try:
            name = client.get_default_database().name
        except PyMongoConfigurationError:
            return DEFAULT_DB_NAME
        return name if isinstance(name, str) else DEFAULT_DB_NAME

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    async def close(self, force: bool = False) -> None:
        """
        Close the connection.

        An open attempt in flight is allowed to finish first. Closing a
        connection that was never opened, or is already closed, does nothing.

        Args:
            force: Reject buffered operations now, and make later operations
                fail immediately until the connection is reopened
        """
        handshake = self._root._handshake
        if handshake is not None and not handshake.done():
            await asyncio.wait([handshake])

        self._close_called = True
        if force:
            error = DisconnectedError(
                "Connection was force closed", context={"connection_id": self.id}
            )
            for conn in [self, *self._children]:
                conn._force_closed = True
            self._reject_buffers(error)

        if self._parent is not None:
            self._close_child(force)
            return

        if self._client is None or self._client_closed:
            return

        start_time = time.time()
        self._set_ready_state(ReadyState.DISCONNECTING)
        if self._owns_client:
            try:
                self._client.close()
            except InvalidOperation as e:
                logger.warning(f"Error while closing MongoDB client: {e}")
        self._client_closed = True
        self._set_ready_state(ReadyState.DISCONNECTED)

        duration_ms = (time.time() - start_time) * 1000
        record_operation("connection.close", duration_ms, success=True)
        log_event(
            contextual_logger,
            "MongoDB connection closed",
            duration_ms=duration_ms,
            connection_id=self.id,
            db_name=self.name,
            force=force,
        )
        for conn in [self, *self._children]:
            conn.emit(EVENT_CLOSE, force)

    def _close_child(self, force: bool) -> None:
        parent = self._parent
        if self not in parent._children and self._ready_state == ReadyState.DISCONNECTED:
            return
        parent._detach_child(self)
        self._set_ready_state(ReadyState.DISCONNECTING)
        self._set_ready_state(ReadyState.DISCONNECTED)
        self.emit(EVENT_CLOSE, force)

    def _detach_child(self, child: "Connection") -> None:
        self._children = [conn for conn in self._children if conn is not child]
        for name, conn in list(self._related_dbs.items()):
            if conn is child:
                del self._related_dbs[name]

    async def destroy(
        self, force: bool = False, callback: Optional[Callable[[Optional[BaseException]], Any]] = None
    ) -> None:
        """
        Close the connection for good and remove it from every registry.

        A destroyed connection cannot be reopened.
        """
        if not self._destroyed:
            await self.close(force=force)
            self._mark_destroyed()
            log_event(
                contextual_logger, "Connection destroyed", connection_id=self.id, db_name=self.name
            )
        if callback is not None:
            callback(None)

    def _mark_destroyed(self) -> None:
        self._destroyed = True
        self._buffer.reject_all(ConnectionDestroyedError())
        for child in list(self._children):
            child._mark_destroyed()
        if self._parent is not None:
            self._parent._detach_child(self)
        elif self._registry is not None:
            self._registry.remove(self)

    # ------------------------------------------------------------------
    # Derived connections
    # ------------------------------------------------------------------

    def use_db(self, name: str, use_cache: bool = False, no_listener: bool = False) -> "Connection":
        """
        Derive a connection to another database on the same client.

        Args:
            name: Database name
            use_cache: Return the previously cached child for ``name``, and
                cache a newly created one
            no_listener: Do not follow this connection's lifecycle

        Returns:
            The derived connection
        """
        root = self._root
        if root._destroyed:
            raise ConnectionDestroyedError()
        if use_cache and name in root._related_dbs:
            return root._related_dbs[name]

        child = Connection(base=root.base, registry=root._registry, parent=root, name=name)
        child._ready_state = root._ready_state
        child.plugins = list(root.plugins)
        if not no_listener:
            root._children.append(child)
        if use_cache:
            root._related_dbs[name] = child
        logger.debug(f"Connection {child.id} derived from {root.id} for database '{name}'")
        return child

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _dispatch(
        self,
        description: str,
        operation: Callable[[], Awaitable[Any]],
        buffer_commands: Optional[bool] = None,
        buffer_timeout_ms: Optional[int] = None,
    ) -> Awaitable[Any]:
        """
        Run ``operation`` now if the connection is ready, otherwise buffer it.

        Raises:
            ConnectionDestroyedError: If the connection was destroyed
            DisconnectedError: If the connection was force closed
            BufferingDisabledError: If buffering is off and the connection is not ready
        """
        if self._destroyed:
            raise ConnectionDestroyedError()
        if self._force_closed:
            raise DisconnectedError(
                f"Cannot run `{description}`: the connection was force closed",
                context={"connection_id": self.id},
            )
        if self._ready_state == ReadyState.CONNECTED:
            return operation()

        if buffer_commands is None:
            buffer_commands = self.get_option("bufferCommands")
        if not buffer_commands:
            raise BufferingDisabledError(
                description,
                context={"connection_id": self.id, "ready_state": self._ready_state.name},
            )
        if buffer_timeout_ms is None:
            buffer_timeout_ms = self.get_option("bufferTimeoutMS")
        return self._buffer.enqueue(operation, description, buffer_timeout_ms)

    def collection(self, name: str, options: Optional[Mapping[str, Any]] = None) -> BufferedCollection:
        """
        The cached collection ``name``.

        ``options`` become the cached collection's options when it is first
        created. Later callers passing different ``options`` get a view of
        the cached collection with theirs layered on top.
        """
        cached = self.collections.get(name)
        if cached is None:
            cached = self.collections[name] = BufferedCollection(name, self, options)
            return cached
        if options and any(cached.options.get(key) != value for key, value in options.items()):
            return cached.with_options(options)
        return cached

    def drop_database(self) -> Awaitable[None]:
        return self._dispatch(
            f"{self.name}.drop_database()", lambda: self.client.drop_database(self.name)
        )

    def drop_collection(self, name: str) -> Awaitable[None]:
        return self._dispatch(f"{self.name}.drop_collection()", lambda: self.db.drop_collection(name))

    def create_collection(self, name: str, **kwargs: Any) -> Awaitable[Any]:
        return self._dispatch(
            f"{self.name}.create_collection()", lambda: self.db.create_collection(name, **kwargs)
        )

    def list_collection_names(self, **kwargs: Any) -> Awaitable[list[str]]:
        return self._dispatch(
            f"{self.name}.list_collection_names()", lambda: self.db.list_collection_names(**kwargs)
        )

    def start_session(self, **kwargs: Any) -> Awaitable[Any]:
        return self._dispatch(
            f"{self.name}.start_session()", lambda: self.client.start_session(**kwargs)
        )

    def watch(self, pipeline: Optional[list[Mapping[str, Any]]] = None, **kwargs: Any) -> Awaitable[Any]:
        """Open a change stream on the database."""

        async def _watch():
            return self.db.watch(pipeline, **kwargs)

        return self._dispatch(f"{self.name}.watch()", _watch)

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def model(
        self,
        name: Union[str, type],
        schema: Optional[Union[Schema, Mapping[str, Any]]] = None,
        collection: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> type[Model]:
        """
        Register or look up a model.

        Args:
            name: Model name, or a class whose name is used and which the
                compiled model derives from
            schema: Schema (or field definitions) to compile; omit to look up
            collection: Collection name (defaults to the pluralised model name)
            options: Per-call options; ``overwriteModels`` allows replacing an
                existing model

        Raises:
            MissingSchemaError: Looking up a model that was never registered
            OverwriteModelError: Registering a taken name without overwrite
        """
        model_class: Optional[type] = None
        if isinstance(name, type):
            model_class = name
            name = name.__name__
        options = dict(options or {})
        if schema is not None and not isinstance(schema, Schema):
            schema = Schema(schema)

        existing = self.models.entry(name)
        if schema is None:
            if existing is None:
                existing = self._entry_from_base(name)
            if existing is None:
                raise MissingSchemaError(name)
            if collection is None or collection == existing.collection_name:
                return existing.model
            return compile_model(
                name,
                existing.schema,
                self.collection(collection, self._collection_options(existing.schema)),
                self,
                model_class,
            )

        if existing is not None:
            if (
                existing.schema is schema
                and model_class is None
                and (collection is None or collection == existing.collection_name)
            ):
                return existing.model
            overwrite = options.get("overwriteModels")
            if overwrite is None:
                overwrite = self.get_option("overwriteModels")
            if not overwrite:
                raise OverwriteModelError(name, context={"connection_id": self.id})

        return self._compile_and_register(name, schema, collection, model_class, overwrite=True)

    def _entry_from_base(self, name: str) -> Optional[ModelEntry]:
        """Compile a model registered on the instance's default connection onto this one."""
        if self.base is None or self.base.connection is self:
            return None
        base_entry = self.base.connection.models.entry(name)
        if base_entry is None:
            return None
        self._compile_and_register(name, base_entry.schema, base_entry.collection_name)
        return self.models.entry(name)

    def _compile_and_register(
        self,
        name: str,
        schema: Schema,
        collection: Union[str, BufferedCollection, None] = None,
        model_class: Optional[type] = None,
        overwrite: Optional[bool] = None,
    ) -> type[Model]:
        if overwrite is None:
            overwrite = bool(self.get_option("overwriteModels"))
        if name in self.models and not overwrite:
            raise OverwriteModelError(name, context={"connection_id": self.id})

        self._apply_plugins(schema)
        if not isinstance(collection, BufferedCollection):
            collection_name = collection or schema.get("collection") or pluralize(name)
            collection = self.collection(collection_name, self._collection_options(schema))

        model = compile_model(name, schema, collection, self, model_class)
        self.models.register(ModelEntry(name, model, schema, collection.name), overwrite=overwrite)
        self.emit(EVENT_MODEL, model)
        if self._ready_state == ReadyState.CONNECTED:
            self._schedule_model_init([model])
        return model

    @staticmethod
    def _collection_options(schema: Schema) -> dict[str, Any]:
        return {
            key: schema.get(key)
            for key in ("bufferCommands", "bufferTimeoutMS")
            if schema.get(key) is not None
        }

    def _apply_plugins(self, schema: Schema) -> None:
        plugins = list(self.base.plugins) if self.base is not None else []
        plugins.extend(self.plugins)
        for fn, opts in plugins:
            schema.plugin(fn, **opts)

    def _schedule_model_init(self, models: Optional[list[type[Model]]] = None) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        for model in models if models is not None else list(self.models):
            if model._init_task is None and (
                model.get_option("autoCreate") or model.get_option("autoIndex")
            ):
                model.init()

    def delete_model(self, name: Union[str, "re.Pattern[str]"]) -> "Connection":
        """Remove models by name or regular expression; emits ``deleteModel`` per model."""
        for entry in self.models.remove(name):
            if not any(other.collection_name == entry.collection_name for other in self._model_entries()):
                self.collections.pop(entry.collection_name, None)
            self.emit(EVENT_DELETE_MODEL, entry.model)
        return self

    def _model_entries(self) -> list[ModelEntry]:
        return [self.models.entry(name) for name in self.models.names()]

    def model_names(self) -> list[str]:
        return self.models.names()

    def plugin(self, fn: Callable[..., Any], **opts: Any) -> "Connection":
        """Apply ``fn(schema, **opts)`` to every schema compiled on this connection."""
        self.plugins.append((fn, opts))
        return self

    @timed_operation("connection.sync_indexes")
    async def sync_indexes(self, continue_on_error: bool = False) -> dict[str, Any]:
        """
        Synchronise the indexes of every model on this connection.

        Returns:
            Mapping of model name to the names of dropped indexes

        Raises:
            SyncIndexesError: If a model fails and ``continue_on_error`` is False
        """
        return await index_manager.sync_indexes(list(self.models), continue_on_error)
