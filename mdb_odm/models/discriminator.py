"""
Discriminator schema merging.

A discriminator model stores its documents in the base model's collection.
Its schema is the base schema's fields plus its own, with the discriminator
key pinned to the discriminator's value.
"""

import copy
from typing import Any

from ..constants import DEFAULT_DISCRIMINATOR_KEY
from ..exceptions import ConfigurationError
from .schema import Schema


def build_discriminator_schema(
    base_schema: Schema,
    schema: Schema,
    name: str,
    value: Any,
    clone_schema: bool = True,
) -> Schema:
    """
    Merge ``base_schema`` into the schema of discriminator ``name``.

    Args:
        base_schema: Schema of the base model
        schema: Discriminator-specific schema
        name: Discriminator model name
        value: Value stored under the discriminator key
        clone_schema: Work on a copy of ``schema`` (otherwise ``schema`` itself
            becomes the discriminator's schema)

    Returns:
        The discriminator's schema

    Raises:
        ConfigurationError: If ``schema`` defines the discriminator key itself
    """
    key = base_schema.get("discriminatorKey", DEFAULT_DISCRIMINATOR_KEY)
    if key in schema.definition:
        raise ConfigurationError(
            f'Discriminator "{name}" cannot have field with name "{key}"',
            config_key="discriminatorKey",
            config_value=key,
        )

    target = schema.clone() if clone_schema else schema
    target.definition = {
        **copy.deepcopy(base_schema.definition),
        **target.definition,
        key: {"type": type(value), "default": value},
    }
    for option, option_value in base_schema.options.items():
        target.options.setdefault(option, copy.deepcopy(option_value))
    target.options["discriminatorKey"] = key
    target._indexes = copy.deepcopy(base_schema._indexes) + target._indexes
    target.discriminator_mapping = {"key": key, "value": value, "isRoot": False}

    if base_schema.discriminator_mapping is None:
        base_schema.discriminator_mapping = {"key": key, "value": None, "isRoot": True}
    return target
