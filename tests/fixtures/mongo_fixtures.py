"""MongoDB/Beanie fixtures for testing.

These need a replica set (change streams). Tests using them are skipped
unless MONGO_URL_CAMCAST_TEST is set, e.g.
``mongodb://localhost:27017/?replicaSet=rs0``.
"""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from camcast.schemas.init import DOCUMENT_MODELS, init_beanie_odm


@pytest.fixture(scope="session")
def mongo_url() -> str:
    url = os.environ.get("MONGO_URL_CAMCAST_TEST")
    if not url:
        pytest.skip("MONGO_URL_CAMCAST_TEST not set")
    return url


@pytest.fixture(scope="session")
def test_db_name() -> str:
    return "camcast_test_db"


@pytest_asyncio.fixture(scope="function")
async def mongo_client(mongo_url: str) -> AsyncGenerator[AsyncMongoClient, None]:
    """Function-scoped to stay on the test's event loop."""
    client: AsyncMongoClient = AsyncMongoClient(mongo_url, tz_aware=True)
    yield client
    await client.close()


@pytest_asyncio.fixture(scope="function")
async def beanie_db(mongo_client: AsyncMongoClient, test_db_name: str) -> AsyncGenerator[AsyncDatabase, None]:
    db = mongo_client[test_db_name]
    await init_beanie_odm(db)
    yield db


@pytest_asyncio.fixture
async def clear_collections(beanie_db: AsyncDatabase) -> None:
    """
    Clear all collections before a test.

    Usage:
        @pytest.mark.usefixtures("clear_collections")
        async def test_something(beanie_db):
            ...
    """
    for model in DOCUMENT_MODELS:
        await model.get_pymongo_collection().delete_many({})
