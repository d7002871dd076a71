import logging
import os
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase


MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "pairchat")

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo() -> None:
    global _client, _db
    if _db is not None:
        return
    _client = AsyncIOMotorClient(MONGO_URL)
    _db = _client[MONGO_DB_NAME]
    logger.info("Connected to MongoDB", extra={"database": MONGO_DB_NAME})


async def close_mongo_connection() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def set_database(db: Optional[AsyncIOMotorDatabase]) -> None:
    """Swap the active database (used by tests with an in-memory client)."""
    global _db
    _db = db


def get_database() -> AsyncIOMotorDatabase:
    if _db is None:
        raise RuntimeError("MongoDB connection is not initialised")
    return _db


async def mongo_db_dependency() -> AsyncIOMotorDatabase:
    return get_database()
