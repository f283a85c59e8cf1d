"""
Pytest configuration and shared fixtures for MDB_ODM tests.

This module provides:
- Settings and MongoODM instance fixtures
- Mock motor client fixtures
- A patch of the motor client used by connections
"""

from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from motor.motor_asyncio import AsyncIOMotorClient

from mdb_odm.config import OdmSettings
from mdb_odm.core.odm import MongoODM

TEST_URI = "mongodb://127.0.0.1:27017/mdb_odm_test"

# ============================================================================
# SETTINGS / INSTANCE FIXTURES
# ============================================================================


@pytest.fixture
def odm_settings() -> OdmSettings:
    """Settings independent of the environment."""
    return OdmSettings(
        mongo_uri=TEST_URI,
        buffer_commands=True,
        buffer_timeout_ms=10000,
        auto_index=False,
        auto_create=False,
        overwrite_models=False,
    )


@pytest.fixture
def odm(odm_settings: OdmSettings) -> MongoODM:
    """A fresh MongoODM instance with auto index/create switched off."""
    return MongoODM(settings=odm_settings)


# ============================================================================
# MOCK MONGODB FIXTURES
# ============================================================================


def make_mock_collection(name: str, docs: Any = None) -> MagicMock:
    """Mock motor collection; cursors resolve to ``docs``."""
    collection = MagicMock()
    collection.name = name
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=list(docs or []))
    collection.find = MagicMock(return_value=cursor)
    collection.aggregate = MagicMock(return_value=cursor)
    index_cursor = MagicMock()
    index_cursor.to_list = AsyncMock(return_value=[{"name": "_id_", "key": {"_id": 1}}])
    collection.list_indexes = MagicMock(return_value=index_cursor)
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id="test_id"))
    collection.insert_many = AsyncMock(return_value=MagicMock(inserted_ids=["id1", "id2"]))
    collection.replace_one = AsyncMock(return_value=MagicMock(modified_count=1))
    collection.update_one = AsyncMock(return_value=MagicMock(modified_count=1))
    collection.update_many = AsyncMock(return_value=MagicMock(modified_count=2))
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=2))
    collection.count_documents = AsyncMock(return_value=0)
    collection.distinct = AsyncMock(return_value=[])
    collection.create_index = AsyncMock(return_value="test_index")
    collection.drop_index = AsyncMock()
    collection.drop = AsyncMock()
    return collection


def make_mock_client() -> MagicMock:
    """
    Mock motor client.

    ``client[name]`` returns the same mock database for the same name, and
    ``db[name]`` the same mock collection, so tests can assert on calls.
    """
    client = MagicMock(spec=AsyncIOMotorClient)
    client.admin = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    client.close = MagicMock()
    client.drop_database = AsyncMock()
    client.start_session = AsyncMock()

    databases: Dict[str, MagicMock] = {}

    def get_database(db_name: str) -> MagicMock:
        if db_name not in databases:
            db = MagicMock()
            db.name = db_name
            db.client = client
            collections: Dict[str, MagicMock] = {}
            db.__getitem__.side_effect = lambda name: collections.setdefault(
                name, make_mock_collection(name)
            )
            db.create_collection = AsyncMock()
            db.drop_collection = AsyncMock()
            db.list_collection_names = AsyncMock(return_value=list(collections))
            databases[db_name] = db
        return databases[db_name]

    client.__getitem__.side_effect = get_database
    return client


@pytest.fixture
def mock_mongo_client() -> MagicMock:
    """Create a mock MongoDB client."""
    return make_mock_client()


@pytest.fixture
def motor_client_factory(mock_mongo_client: MagicMock):
    """
    Patch the motor client constructor used by connections.

    Yields the patched constructor; every connection gets ``mock_mongo_client``.
    """
    with patch(
        "mdb_odm.core.connection.AsyncIOMotorClient", return_value=mock_mongo_client
    ) as factory:
        yield factory
