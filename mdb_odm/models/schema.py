"""
Schema container.

A ``Schema`` holds the field definitions, the schema-level options and the
index declarations of a model. Casting and validation are out of scope: the
definition is kept as given and only read for index declarations and
discriminator merging.

Example:
    schema = Schema({"email": {"type": str, "unique": True}, "name": str})
    schema.index([("name", 1), ("created_at", -1)])
    User = conn.model("User", schema)
"""

import copy
from collections.abc import Mapping
from typing import Any, Callable, Optional

from ..constants import DEFAULT_DISCRIMINATOR_KEY

IndexSpec = tuple[list[tuple[str, Any]], dict[str, Any]]


def normalize_index_keys(keys: Any) -> list[tuple[str, Any]]:
    """Convert ``"field"``, ``{"a": 1}`` or ``[("a", 1)]`` into a key list."""
    if isinstance(keys, str):
        return [(keys, 1)]
    if isinstance(keys, Mapping):
        return list(keys.items())
    return [(field, direction) for field, direction in keys]


class Schema:
    """Field definitions, options and indexes of a model."""

    def __init__(
        self,
        definition: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
        **option_kwargs: Any,
    ) -> None:
        self.definition: dict[str, Any] = copy.deepcopy(dict(definition or {}))
        self.options: dict[str, Any] = {
            "discriminatorKey": DEFAULT_DISCRIMINATOR_KEY,
            **dict(options or {}),
            **option_kwargs,
        }
        self.discriminator_mapping: Optional[dict[str, Any]] = None
        self.plugins: list[tuple[Callable[..., Any], dict[str, Any]]] = []
        self._indexes: list[IndexSpec] = []

    def __repr__(self) -> str:
        return f"Schema(paths={self.paths!r})"

    @property
    def paths(self) -> list[str]:
        return list(self.definition)

    def path(self, name: str) -> Any:
        return self.definition.get(name)

    def add(self, fields: Mapping[str, Any]) -> "Schema":
        self.definition.update(copy.deepcopy(dict(fields)))
        return self

    def get(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    def set(self, key: str, value: Any) -> "Schema":
        self.options[key] = value
        return self

    def index(self, keys: Any, **options: Any) -> "Schema":
        """Declare a (possibly compound) index."""
        self._indexes.append((normalize_index_keys(keys), options))
        return self

    def indexes(self) -> list[IndexSpec]:
        """
        All declared indexes: field-level ``index``/``unique`` flags first,
        then the ones added with ``index()``.
        """
        declared: list[IndexSpec] = []
        for name, spec in self.definition.items():
            if not isinstance(spec, Mapping):
                continue
            index = spec.get("index")
            unique = bool(spec.get("unique"))
            if not index and not unique:
                continue
            direction = 1 if index in (None, False, True) else index
            options: dict[str, Any] = {}
            if unique:
                options["unique"] = True
            if spec.get("sparse"):
                options["sparse"] = True
            declared.append(([(name, direction)], options))
        declared.extend((list(keys), dict(options)) for keys, options in self._indexes)
        return declared

    def plugin(self, fn: Callable[..., Any], **opts: Any) -> "Schema":
        """Apply ``fn(schema, **opts)``; each plugin function is applied once."""
        if any(applied is fn for applied, _opts in self.plugins):
            return self
        self.plugins.append((fn, opts))
        fn(self, **opts)
        return self

    def clone(self) -> "Schema":
        """Independent copy: later edits to either schema do not affect the other."""
        cloned = Schema.__new__(Schema)
        cloned.definition = copy.deepcopy(self.definition)
        cloned.options = copy.deepcopy(self.options)
        cloned.discriminator_mapping = copy.deepcopy(self.discriminator_mapping)
        cloned.plugins = list(self.plugins)
        cloned._indexes = copy.deepcopy(self._indexes)
        return cloned
