"""
MongoDB access for the shop API.

One client is created per database URL and reused; request handlers receive
the database through the ``get_db`` dependency.
"""
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

import structlog
from bson import ObjectId
from fastapi import Depends
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from errors import NotFound
from settings import Settings, get_settings

logger = structlog.get_logger(__name__)


@lru_cache()
def get_client(database_url: str) -> MongoClient:
    logger.info("mongo client created")
    return MongoClient(database_url, tz_aware=True, serverSelectionTimeoutMS=5000)


def get_db(settings: Settings = Depends(get_settings)) -> Database:
    return get_client(settings.database_url)[settings.database_name]


def ensure_indexes(db: Database) -> None:
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["user"].create_index([("phone", ASCENDING)], unique=True)
    db["category"].create_index([("name", ASCENDING)], unique=True)
    db["product"].create_index([("category_id", ASCENDING)])
    db["order"].create_index([("user_id", ASCENDING), ("order_date", DESCENDING)])


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True)
    else:
        doc = dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    return list(db[collection_name].find(filter_dict or {}))


# Utils
def parse_object_id(value: str, label: str = "Document") -> ObjectId:
    """Turn a path/body id into an ObjectId; malformed ids can't match anything."""
    if isinstance(value, ObjectId):
        return value
    if not ObjectId.is_valid(value):
        raise NotFound(f"{label} not found")
    return ObjectId(value)


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            k = "id"
        out[k] = serialize_value(v)
    return out
