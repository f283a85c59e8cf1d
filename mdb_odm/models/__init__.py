"""
Models: schemas, compiled model classes and the per-connection registry.
"""

from .discriminator import build_discriminator_schema
from .model import Model, compile_model
from .registry import ModelEntry, ModelRegistry
from .schema import Schema

__all__ = [
    "Model",
    "ModelEntry",
    "ModelRegistry",
    "Schema",
    "build_discriminator_schema",
    "compile_model",
]
