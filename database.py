"""
MongoDB access for the campus events service.

One collection per schema in schemas.py, named after the lower-cased class
name. The client is created once at import time from DATABASE_URL and
DATABASE_NAME; when either is missing ``db`` stays ``None`` and request
handlers answer 503.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

import config
from errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    client = MongoClient(config.DATABASE_URL, tz_aware=True)
    db = client[config.DATABASE_NAME]


def get_db():
    """FastAPI dependency returning the shared database handle."""
    if db is None:
        raise ServiceUnavailableError("Database not available")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a stored or parsed datetime to an aware UTC value."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_object_id(value: Any) -> Optional[ObjectId]:
    """ObjectId for a valid id string, None otherwise."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def to_str_id(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if _id:
        doc["id"] = str(_id)
        del doc["_id"]
    return doc


def create_document(database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(mode="python")
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_by_id(database, collection_name: str, doc_id: Any) -> Optional[Dict[str, Any]]:
    oid = parse_object_id(doc_id)
    if oid is None:
        return None
    return database[collection_name].find_one({"_id": oid})


def ensure_indexes(database) -> None:
    """Create the unique and lookup indexes the domain relies on."""
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["society"].create_index([("name", ASCENDING)], unique=True)
    database["event"].create_index(
        [("event_type", ASCENDING), ("event_status", ASCENDING), ("start_datetime", ASCENDING)]
    )
    database["event"].create_index([("society_id", ASCENDING), ("event_status", ASCENDING)])
    database["registration"].create_index(
        [("event_id", ASCENDING), ("leader_user_id", ASCENDING)], unique=True
    )
    database["registration"].create_index([("event_id", ASCENDING), ("status", ASCENDING)])
    database["bookmark"].create_index(
        [("user_id", ASCENDING), ("event_id", ASCENDING)], unique=True
    )
    logger.info("MongoDB indexes ensured")
