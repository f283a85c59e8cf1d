"""
Buffered collection.

``BufferedCollection`` exposes the driver's collection API on top of a
``Connection``. Calls made while the connection is ready go straight to the
motor collection; calls made before that are parked in the connection's
operation buffer and replayed on connect.

Every method is a plain function returning an awaitable, so errors that do
not involve the server (a destroyed or force-closed connection, buffering
disabled) are raised at the call site, before anything is awaited.

A collection obtained through a discriminator model is *scoped*: reads are
filtered on the discriminator key and writes are tagged with it.
"""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorCollection

if TYPE_CHECKING:
    from ..core.connection import Connection

logger = logging.getLogger(__name__)


class BufferedCollection:
    """A named collection bound to a connection that may not be ready yet."""

    def __init__(
        self,
        name: str,
        connection: "Connection",
        options: Optional[Mapping[str, Any]] = None,
        scope: Optional[tuple[str, Any]] = None,
    ) -> None:
        self.name = name
        self.conn = connection
        self.options: dict[str, Any] = dict(options or {})
        self._scope = scope

    def __repr__(self) -> str:
        scope = f", scope={self._scope!r}" if self._scope else ""
        return f"BufferedCollection(name={self.name!r}, db={self.conn.name!r}{scope})"

    @property
    def scope(self) -> Optional[tuple[str, Any]]:
        return self._scope

    @property
    def native(self) -> AsyncIOMotorCollection:
        """The motor collection. Only meaningful once the connection has a client."""
        return self.conn.db[self.name]

    def scoped(self, key: str, value: Any) -> "BufferedCollection":
        """Same collection, restricted to documents whose ``key`` equals ``value``."""
        return BufferedCollection(self.name, self.conn, self.options, scope=(key, value))

    def with_options(self, options: Mapping[str, Any]) -> "BufferedCollection":
        """Same collection and scope, with ``options`` overriding this one's."""
        return BufferedCollection(self.name, self.conn, {**self.options, **options}, scope=self._scope)

    def should_buffer_commands(self) -> bool:
        value = self.options.get("bufferCommands")
        if value is None:
            value = self.conn.get_option("bufferCommands")
        return bool(value)

    def buffer_timeout_ms(self) -> Optional[int]:
        value = self.options.get("bufferTimeoutMS")
        if value is None:
            value = self.conn.get_option("bufferTimeoutMS")
        return value

    # ------------------------------------------------------------------
    # Scoping
    # ------------------------------------------------------------------

    def _inject_read_filter(self, filter: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
        if self._scope is None:
            return dict(filter or {})
        key, value = self._scope
        scope_filter = {key: value}
        if not filter:
            return scope_filter
        return {"$and": [dict(filter), scope_filter]}

    def _inject_write_fields(self, document: Mapping[str, Any]) -> dict[str, Any]:
        if self._scope is None:
            return dict(document)
        key, value = self._scope
        return {**document, key: value}

    def _inject_pipeline(self, pipeline: list[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
        if self._scope is None:
            return list(pipeline)
        key, value = self._scope
        return [{"$match": {key: value}}, *pipeline]

    def _dispatch(self, method: str, call: Callable[[], Awaitable[Any]]) -> Awaitable[Any]:
        return self.conn._dispatch(
            f"{self.name}.{method}()",
            call,
            buffer_commands=self.should_buffer_commands(),
            buffer_timeout_ms=self.buffer_timeout_ms(),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_one(self, filter: Optional[Mapping[str, Any]] = None, *args, **kwargs) -> Awaitable[Any]:
        scoped_filter = self._inject_read_filter(filter)
        return self._dispatch("find_one", lambda: self.native.find_one(scoped_filter, *args, **kwargs))

    def find(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        *args,
        length: Optional[int] = None,
        **kwargs,
    ) -> Awaitable[list[dict[str, Any]]]:
        """Run a query and return the matching documents as a list."""
        scoped_filter = self._inject_read_filter(filter)
        return self._dispatch(
            "find",
            lambda: self.native.find(scoped_filter, *args, **kwargs).to_list(length=length),
        )

    def aggregate(self, pipeline: list[Mapping[str, Any]], **kwargs) -> Awaitable[list[dict[str, Any]]]:
        scoped_pipeline = self._inject_pipeline(pipeline)
        return self._dispatch(
            "aggregate",
            lambda: self.native.aggregate(scoped_pipeline, **kwargs).to_list(length=None),
        )

    def count_documents(self, filter: Optional[Mapping[str, Any]] = None, **kwargs) -> Awaitable[int]:
        scoped_filter = self._inject_read_filter(filter)
        return self._dispatch(
            "count_documents", lambda: self.native.count_documents(scoped_filter, **kwargs)
        )

    def estimated_document_count(self, **kwargs) -> Awaitable[int]:
        return self._dispatch(
            "estimated_document_count", lambda: self.native.estimated_document_count(**kwargs)
        )

    def distinct(self, key: str, filter: Optional[Mapping[str, Any]] = None, **kwargs) -> Awaitable[list]:
        scoped_filter = self._inject_read_filter(filter)
        return self._dispatch("distinct", lambda: self.native.distinct(key, scoped_filter, **kwargs))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_one(self, document: Mapping[str, Any], *args, **kwargs) -> Awaitable[Any]:
        doc_to_insert = self._inject_write_fields(document)
        return self._dispatch("insert_one", lambda: self.native.insert_one(doc_to_insert, *args, **kwargs))

    def insert_many(self, documents: list[Mapping[str, Any]], *args, **kwargs) -> Awaitable[Any]:
        docs_to_insert = [self._inject_write_fields(doc) for doc in documents]
        return self._dispatch(
            "insert_many", lambda: self.native.insert_many(docs_to_insert, *args, **kwargs)
        )

    def update_one(
        self, filter: Mapping[str, Any], update: Any, *args, **kwargs
    ) -> Awaitable[Any]:
        scoped_filter = self._inject_read_filter(filter)
        return self._dispatch(
            "update_one", lambda: self.native.update_one(scoped_filter, update, *args, **kwargs)
        )

    def update_many(
        self, filter: Mapping[str, Any], update: Any, *args, **kwargs
    ) -> Awaitable[Any]:
        scoped_filter = self._inject_read_filter(filter)
        return self._dispatch(
            "update_many", lambda: self.native.update_many(scoped_filter, update, *args, **kwargs)
        )

    def replace_one(
        self, filter: Mapping[str, Any], replacement: Mapping[str, Any], *args, **kwargs
    ) -> Awaitable[Any]:
        scoped_filter = self._inject_read_filter(filter)
        scoped_replacement = self._inject_write_fields(replacement)
        return self._dispatch(
            "replace_one",
            lambda: self.native.replace_one(scoped_filter, scoped_replacement, *args, **kwargs),
        )

    def find_one_and_update(
        self, filter: Mapping[str, Any], update: Any, *args, **kwargs
    ) -> Awaitable[Any]:
        scoped_filter = self._inject_read_filter(filter)
        return self._dispatch(
            "find_one_and_update",
            lambda: self.native.find_one_and_update(scoped_filter, update, *args, **kwargs),
        )

    def find_one_and_delete(self, filter: Mapping[str, Any], *args, **kwargs) -> Awaitable[Any]:
        scoped_filter = self._inject_read_filter(filter)
        return self._dispatch(
            "find_one_and_delete",
            lambda: self.native.find_one_and_delete(scoped_filter, *args, **kwargs),
        )

    def delete_one(self, filter: Mapping[str, Any], *args, **kwargs) -> Awaitable[Any]:
        scoped_filter = self._inject_read_filter(filter)
        return self._dispatch("delete_one", lambda: self.native.delete_one(scoped_filter, *args, **kwargs))

    def delete_many(self, filter: Mapping[str, Any], *args, **kwargs) -> Awaitable[Any]:
        scoped_filter = self._inject_read_filter(filter)
        return self._dispatch(
            "delete_many", lambda: self.native.delete_many(scoped_filter, *args, **kwargs)
        )

    # ------------------------------------------------------------------
    # Indexes and collection management
    # ------------------------------------------------------------------

    def create_index(self, keys: Any, **kwargs) -> Awaitable[str]:
        return self._dispatch("create_index", lambda: self.native.create_index(keys, **kwargs))

    def drop_index(self, index_or_name: Any, **kwargs) -> Awaitable[None]:
        return self._dispatch("drop_index", lambda: self.native.drop_index(index_or_name, **kwargs))

    def list_indexes(self, **kwargs) -> Awaitable[list[dict[str, Any]]]:
        return self._dispatch(
            "list_indexes", lambda: self.native.list_indexes(**kwargs).to_list(length=None)
        )

    def index_information(self, **kwargs) -> Awaitable[dict[str, Any]]:
        return self._dispatch("index_information", lambda: self.native.index_information(**kwargs))

    def drop(self, **kwargs) -> Awaitable[None]:
        return self._dispatch("drop", lambda: self.native.drop(**kwargs))
