import pytest_asyncio

from services.database import Database


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "curator.db"))
    await database.init_tables()
    return database


@pytest_asyncio.fixture
async def campaign(db):
    return await db.create_campaign("2025-10-01")


@pytest_asyncio.fixture
async def feed_id(db):
    return await db.upsert_feed("https://feeds.test/local.xml", "Local Feed")
