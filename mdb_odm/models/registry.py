"""
Model registry.

Each connection keeps its compiled models in a ``ModelRegistry``, keyed by the
case-sensitive model name and kept in registration order.
"""

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Optional, Union

from ..exceptions import MissingSchemaError, OverwriteModelError

if TYPE_CHECKING:
    from .model import Model
    from .schema import Schema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelEntry:
    """A registered model and what it was compiled from."""

    name: str
    model: "type[Model]"
    schema: "Schema"
    collection_name: str


class ModelRegistry:
    """Ordered name -> model map for one connection."""

    def __init__(self) -> None:
        self._entries: dict[str, ModelEntry] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator["type[Model]"]:
        return iter([entry.model for entry in self._entries.values()])

    def __getitem__(self, name: str) -> "type[Model]":
        try:
            return self._entries[name].model
        except KeyError:
            raise MissingSchemaError(name) from None

    def get(self, name: str) -> "Optional[type[Model]]":
        entry = self._entries.get(name)
        return entry.model if entry else None

    def entry(self, name: str) -> Optional[ModelEntry]:
        return self._entries.get(name)

    def names(self) -> list[str]:
        return list(self._entries)

    def register(self, entry: ModelEntry, overwrite: bool = False) -> ModelEntry:
        """
        Add a model.

        Raises:
            OverwriteModelError: If the name is taken and ``overwrite`` is False
        """
        if entry.name in self._entries:
            if not overwrite:
                raise OverwriteModelError(entry.name)
            del self._entries[entry.name]
            logger.debug(f"Overwriting model '{entry.name}'")
        self._entries[entry.name] = entry
        return entry

    def remove(self, name_or_pattern: Union[str, "re.Pattern[str]"]) -> list[ModelEntry]:
        """
        Remove models by exact name or by regular expression (``search``).

        Returns:
            The removed entries, in registration order
        """
        if isinstance(name_or_pattern, re.Pattern):
            names = [name for name in self._entries if name_or_pattern.search(name)]
        else:
            names = [name_or_pattern] if name_or_pattern in self._entries else []
        return [self._entries.pop(name) for name in names]
