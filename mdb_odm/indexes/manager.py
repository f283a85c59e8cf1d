"""
Index synchronisation.

Brings the indexes of a model's collection in line with its schema: indexes
the schema no longer declares are dropped (the ``_id`` index is never
touched), declared indexes that are missing are created.
"""

import logging
from typing import TYPE_CHECKING, Any, Iterable

from pymongo.errors import PyMongoError

from ..exceptions import OdmError, SyncIndexesError
from ..observability import connection_context, get_logger
from .helpers import ID_INDEX_NAME, index_matches, is_id_index

if TYPE_CHECKING:
    from ..models.model import Model

logger = logging.getLogger(__name__)
contextual_logger = get_logger(__name__)


async def sync_model_indexes(model: "type[Model]") -> list[str]:
    """
    Synchronise the indexes of one model.

    Args:
        model: Compiled model class

    Returns:
        Names of the indexes that were dropped
    """
    collection = model.collection
    declared = model.schema.indexes()
    existing = await collection.list_indexes()

    dropped: list[str] = []
    for index in existing:
        name = index.get("name")
        if name == ID_INDEX_NAME or is_id_index(dict(index.get("key", {}))):
            continue
        if any(index_matches(index, keys, options) for keys, options in declared):
            continue
        contextual_logger.info(f"Dropping index '{name}' on '{collection.name}': not declared by '{model.model_name}'")
        await collection.drop_index(name)
        dropped.append(name)

    kept = [index for index in existing if index.get("name") not in dropped]
    for keys, options in declared:
        if any(index_matches(index, keys, options) for index in kept):
            continue
        contextual_logger.info(f"Creating index {keys} on '{collection.name}' for '{model.model_name}'")
        await collection.create_index(keys, **options)

    return dropped


async def sync_indexes(
    models: Iterable["type[Model]"], continue_on_error: bool = False
) -> dict[str, Any]:
    """
    Synchronise the indexes of several models, one after another.

    Discriminator models share their base model's collection and are skipped.

    Args:
        models: Compiled model classes
        continue_on_error: Record a failing model's error in the result and
            move on, instead of stopping

    Returns:
        Mapping of model name to dropped index names (or to the error, when
        ``continue_on_error`` is set)

    Raises:
        SyncIndexesError: On the first failure when ``continue_on_error`` is False
    """
    results: dict[str, Any] = {}
    for model in models:
        if model.base_model_name is not None:
            continue
        try:
            with connection_context(model.db, model_name=model.model_name):
                results[model.model_name] = await sync_model_indexes(model)
        except (PyMongoError, OdmError) as e:
            if continue_on_error:
                logger.warning(f"Index sync failed for '{model.model_name}': {e}")
                results[model.model_name] = e
                continue
            raise SyncIndexesError(
                f"Index sync failed for model `{model.model_name}`: {e}",
                errors={model.model_name: e},
            ) from e
    return results
