import logging
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from config import settings
from errors import NotFoundError

logger = logging.getLogger(__name__)

USERS = "users"
COURSES = "courses"
ENROLLMENTS = "enrollments"

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is None:
        # tz_aware so stored timestamps come back as UTC, not naive
        _client = AsyncIOMotorClient(settings.DATABASE_URL, tz_aware=True)
        _db = _client[settings.DATABASE_NAME]
    return _db


def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    # Unique lowercase email for users
    await db[USERS].create_index("email", unique=True)
    await db[USERS].create_index("role")
    await db[COURSES].create_index([("published", ASCENDING)])
    await db[COURSES].create_index([("instructor", ASCENDING), ("createdAt", DESCENDING)])
    # One enrollment per (student, course); upserts rely on this
    await db[ENROLLMENTS].create_index([("student", ASCENDING), ("course", ASCENDING)], unique=True)
    await db[ENROLLMENTS].create_index("course")
    logger.info("Database indexes ensured")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def object_id(value: Any, what: str = "Resource") -> ObjectId:
    """Parse a path or claim identifier; malformed ids are reported as absent."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise NotFoundError(f"{what} not found")


def serialize(value: Any) -> Any:
    """Render a stored document for clients: ``_id`` becomes ``id`` and ObjectIds become strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [serialize(item) for item in value]
    if isinstance(value, dict):
        doc = {}
        for key, item in value.items():
            doc["id" if key == "_id" else key] = serialize(item)
        return doc
    return value


async def create_document(db: AsyncIOMotorDatabase, collection_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
    now = utcnow()
    data_to_insert = {**data, "createdAt": now, "updatedAt": now}
    result = await db[collection_name].insert_one(data_to_insert)
    inserted = await db[collection_name].find_one({"_id": result.inserted_id})
    return serialize(inserted) if inserted else {}


async def get_documents(
    db: AsyncIOMotorDatabase,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    projection: Optional[Dict[str, Any]] = None,
    sort: Optional[List[Any]] = None,
) -> List[Dict[str, Any]]:
    filter_dict = filter_dict or {}
    cursor = db[collection_name].find(filter_dict, projection, sort=sort)
    docs: List[Dict[str, Any]] = []
    async for doc in cursor:
        docs.append(serialize(doc))
    return docs
