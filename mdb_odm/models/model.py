"""
Compiled models.

``compile_model`` turns a name, a ``Schema`` and a connection into a ``Model``
subclass bound to one collection. Class methods issue operations through the
connection's buffered collection, so they can be called before the
connection is open; instances wrap a single document.

Example:
    User = conn.model("User", Schema({"email": {"type": str, "unique": True}}))
    user = await User.create({"email": "ada@example.com"})
    same = await User.find_by_id(user.id)
"""

import asyncio
import copy
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar, Optional, Union

from bson import ObjectId
from pymongo.errors import CollectionInvalid

from ..database.collection import BufferedCollection
from ..exceptions import OverwriteModelError
from ..indexes.manager import sync_model_indexes
from ..utils.documents import to_json_compatible
from .discriminator import build_discriminator_schema
from .schema import Schema

if TYPE_CHECKING:
    from ..core.connection import Connection
    from ..core.odm import MongoODM

logger = logging.getLogger(__name__)


class Model:
    """Base class of every compiled model."""

    model_name: ClassVar[str] = ""
    schema: ClassVar[Schema]
    collection: ClassVar[BufferedCollection]
    db: ClassVar["Connection"]
    base: ClassVar[Optional["MongoODM"]] = None
    discriminators: ClassVar[Optional[dict[str, type["Model"]]]] = None
    base_model_name: ClassVar[Optional[str]] = None
    _init_task: ClassVar[Optional["asyncio.Future[None]"]] = None

    def __init__(self, doc: Optional[Mapping[str, Any]] = None, **fields: Any) -> None:
        data: dict[str, Any] = {**dict(doc or {}), **fields}
        for path, spec in self.schema.definition.items():
            if path in data or not isinstance(spec, Mapping) or "default" not in spec:
                continue
            default = spec["default"]
            data[path] = default() if callable(default) else copy.deepcopy(default)
        self.__dict__["_doc"] = data
        self.__dict__["is_new"] = True

    def __getattr__(self, name: str) -> Any:
        doc = self.__dict__.get("_doc")
        if doc is not None and name in doc:
            return doc[name]
        raise AttributeError(f"'{type(self).__name__}' object has no field '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self.__dict__ or name.startswith("_") or hasattr(type(self), name):
            super().__setattr__(name, value)
        else:
            self._doc[name] = value

    def __getitem__(self, key: str) -> Any:
        return self._doc[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._doc[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._doc

    def __repr__(self) -> str:
        return f"<{self.model_name} {self._doc!r}>"

    def get(self, key: str, default: Any = None) -> Any:
        return self._doc.get(key, default)

    @property
    def id(self) -> Optional[str]:
        """String form of ``_id``, or None before the document is saved."""
        value = self._doc.get("_id")
        return None if value is None else str(value)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._doc)

    def to_json(self) -> dict[str, Any]:
        return to_json_compatible(self._doc)

    async def save(self) -> "Model":
        """Insert a new document, or replace the stored one."""
        if self.is_new:
            result = await self.collection.insert_one(self._doc)
            self._doc["_id"] = result.inserted_id
            self.is_new = False
        else:
            await self.collection.replace_one({"_id": self._doc["_id"]}, self._doc, upsert=True)
        return self

    async def delete(self) -> Any:
        return await self.collection.delete_one({"_id": self._doc["_id"]})

    # ------------------------------------------------------------------
    # Class-level helpers
    # ------------------------------------------------------------------

    @classmethod
    def get_option(cls, key: str) -> Any:
        """Schema option, falling back to the connection and instance defaults."""
        value = cls.schema.get(key)
        if value is None:
            value = cls.db.get_option(key)
        return value

    @classmethod
    def model(cls, name: str) -> type["Model"]:
        """Another model registered on the same connection."""
        return cls.db.model(name)

    @classmethod
    def hydrate(cls, doc: Mapping[str, Any]) -> "Model":
        """Wrap a stored document, picking the discriminator class from its key."""
        target: type[Model] = cls
        if cls.discriminators:
            key = cls.schema.get("discriminatorKey")
            for discriminator in cls.discriminators.values():
                mapping = discriminator.schema.discriminator_mapping or {}
                if mapping.get("value") == doc.get(key):
                    target = discriminator
                    break
        instance = target.__new__(target)
        instance.__dict__["_doc"] = dict(doc)
        instance.__dict__["is_new"] = False
        return instance

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @classmethod
    async def find_one(cls, filter: Optional[Mapping[str, Any]] = None, *args, **kwargs) -> Optional["Model"]:
        doc = await cls.collection.find_one(filter, *args, **kwargs)
        return cls.hydrate(doc) if doc is not None else None

    @classmethod
    async def find(cls, filter: Optional[Mapping[str, Any]] = None, *args, **kwargs) -> list["Model"]:
        docs = await cls.collection.find(filter, *args, **kwargs)
        return [cls.hydrate(doc) for doc in docs]

    @classmethod
    async def find_by_id(cls, id: Any) -> Optional["Model"]:
        if isinstance(id, str) and ObjectId.is_valid(id):
            id = ObjectId(id)
        return await cls.find_one({"_id": id})

    @classmethod
    async def count_documents(cls, filter: Optional[Mapping[str, Any]] = None, **kwargs) -> int:
        return await cls.collection.count_documents(filter, **kwargs)

    @classmethod
    async def distinct(cls, key: str, filter: Optional[Mapping[str, Any]] = None, **kwargs) -> list:
        return await cls.collection.distinct(key, filter, **kwargs)

    @classmethod
    async def aggregate(cls, pipeline: list[Mapping[str, Any]], **kwargs) -> list[dict[str, Any]]:
        return await cls.collection.aggregate(pipeline, **kwargs)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @classmethod
    async def create(cls, *docs: Mapping[str, Any]) -> Union["Model", list["Model"]]:
        """Build and save one or more documents."""
        instances = [cls(doc) for doc in docs]
        for instance in instances:
            await instance.save()
        return instances[0] if len(instances) == 1 else instances

    @classmethod
    async def insert_many(cls, docs: list[Mapping[str, Any]], **kwargs) -> list["Model"]:
        instances = [cls(doc) for doc in docs]
        result = await cls.collection.insert_many([instance._doc for instance in instances], **kwargs)
        for instance, inserted_id in zip(instances, result.inserted_ids):
            instance._doc["_id"] = inserted_id
            instance.is_new = False
        return instances

    @classmethod
    async def update_one(cls, filter: Mapping[str, Any], update: Any, **kwargs) -> Any:
        return await cls.collection.update_one(filter, update, **kwargs)

    @classmethod
    async def update_many(cls, filter: Mapping[str, Any], update: Any, **kwargs) -> Any:
        return await cls.collection.update_many(filter, update, **kwargs)

    @classmethod
    async def delete_one(cls, filter: Mapping[str, Any], **kwargs) -> Any:
        return await cls.collection.delete_one(filter, **kwargs)

    @classmethod
    async def delete_many(cls, filter: Mapping[str, Any], **kwargs) -> Any:
        return await cls.collection.delete_many(filter, **kwargs)

    # ------------------------------------------------------------------
    # Collection and index management
    # ------------------------------------------------------------------

    @classmethod
    def init(cls) -> "asyncio.Future[None]":
        """
        Create the collection and build indexes, according to ``autoCreate``
        and ``autoIndex``. Runs once per model; later calls return the same
        awaitable.
        """
        if cls._init_task is None:
            cls._init_task = asyncio.ensure_future(cls._initialize())
            cls._init_task.add_done_callback(cls._log_init_failure)
        return cls._init_task

    @classmethod
    def _log_init_failure(cls, task: "asyncio.Future[None]") -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Initialization of model '{cls.model_name}' failed: {task.exception()}")

    @classmethod
    async def _initialize(cls) -> None:
        if cls.base_model_name is not None:
            return
        if cls.get_option("autoCreate"):
            try:
                await cls.create_collection()
            except CollectionInvalid:
                logger.debug(f"Collection '{cls.collection.name}' already exists")
        if cls.get_option("autoIndex"):
            await cls.ensure_indexes()

    @classmethod
    async def create_collection(cls, **kwargs) -> Any:
        options: dict[str, Any] = {}
        capped = cls.schema.get("capped")
        if capped:
            options.update(capped if isinstance(capped, Mapping) else {"capped": True, "size": capped})
        if cls.schema.get("collation"):
            options["collation"] = cls.schema.get("collation")
        options.update(kwargs)
        return await cls.db.create_collection(cls.collection.name, **options)

    @classmethod
    async def ensure_indexes(cls) -> list[str]:
        """Create every index the schema declares; returns the index names."""
        names = []
        for keys, options in cls.schema.indexes():
            names.append(await cls.collection.create_index(keys, **options))
        return names

    @classmethod
    async def list_indexes(cls) -> list[dict[str, Any]]:
        return await cls.collection.list_indexes()

    @classmethod
    async def sync_indexes(cls) -> list[str]:
        """Drop undeclared indexes and create missing ones; returns dropped names."""
        return await sync_model_indexes(cls)

    # ------------------------------------------------------------------
    # Discriminators
    # ------------------------------------------------------------------

    @classmethod
    def discriminator(
        cls,
        name: str,
        schema: Union[Schema, Mapping[str, Any]],
        value: Any = None,
        clone_schema: bool = True,
    ) -> type["Model"]:
        """
        Register a model sharing this model's collection.

        Documents of the new model are told apart by the discriminator key
        (schema option ``discriminatorKey``, ``"__t"`` by default).

        Args:
            name: Name of the discriminator model
            schema: Fields specific to the discriminator
            value: Stored discriminator value (defaults to ``name``)
            clone_schema: Copy ``schema`` instead of modifying it in place

        Raises:
            OverwriteModelError: If this model already has a discriminator ``name``
        """
        if not isinstance(schema, Schema):
            schema = Schema(schema)
        if cls.discriminators is None:
            cls.discriminators = {}
        if name in cls.discriminators:
            raise OverwriteModelError(name, context={"base_model": cls.model_name})

        value = name if value is None else value
        merged = build_discriminator_schema(cls.schema, schema, name, value, clone_schema=clone_schema)
        discriminator = cls.db._compile_and_register(
            name,
            merged,
            collection=cls.collection.scoped(merged.get("discriminatorKey"), value),
            model_class=cls,
        )
        cls.discriminators[name] = discriminator
        return discriminator


def compile_model(
    name: str,
    schema: Schema,
    collection: BufferedCollection,
    connection: "Connection",
    model_class: Optional[type] = None,
) -> type[Model]:
    """
    Build the model class for ``name``.

    Args:
        name: Model name, also used as the class name
        schema: Schema of the model
        collection: Collection the model reads and writes
        connection: Owning connection
        model_class: Optional class to derive from (a user-defined subclass of
            ``Model`` or the base model of a discriminator)
    """
    if model_class is None:
        bases: tuple[type, ...] = (Model,)
    elif issubclass(model_class, Model):
        bases = (model_class,)
    else:
        bases = (model_class, Model)

    base_model_name = None
    if model_class is not None and issubclass(model_class, Model) and schema.discriminator_mapping:
        if not schema.discriminator_mapping.get("isRoot"):
            base_model_name = model_class.model_name

    attrs = {
        "model_name": name,
        "schema": schema,
        "collection": collection,
        "db": connection,
        "base": connection.base,
        "discriminators": None,
        "base_model_name": base_model_name,
        "_init_task": None,
        "__module__": bases[0].__module__,
    }
    return type(name, bases, attrs)
