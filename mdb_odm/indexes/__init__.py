"""
Index management: schema index synchronisation.
"""

from .helpers import index_matches, is_id_index, normalize_keys
from .manager import sync_indexes, sync_model_indexes

__all__ = [
    "index_matches",
    "is_id_index",
    "normalize_keys",
    "sync_indexes",
    "sync_model_indexes",
]
