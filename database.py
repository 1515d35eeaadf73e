"""
MongoDB access helpers.

The client is created once at startup (see main.lifespan) and the
database handle is handed to every route through the get_db dependency.
"""
from datetime import datetime, timezone
from typing import Any, Optional, Union

import structlog
from bson.errors import InvalidId
from bson.objectid import ObjectId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import Settings
from errors import NotFoundError, ServiceUnavailableError

logger = structlog.get_logger(__name__)


def connect(settings: Settings) -> Database:
    client = MongoClient(
        settings.mongo_uri,
        serverSelectionTimeoutMS=30000,
        socketTimeoutMS=45000,
        tz_aware=True,
    )
    logger.info("mongo_client_created", database=settings.database_name)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    db["users"].create_index([("email", ASCENDING)], unique=True)
    db["carts"].create_index([("user", ASCENDING)], unique=True)
    db["orders"].create_index([("user", ASCENDING)])


def get_db(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise ServiceUnavailableError()
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_object_id(value: Any, label: str = "Resource") -> ObjectId:
    """Convert a path/body id to an ObjectId; malformed ids are reported as missing."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise NotFoundError(f"{label} not found")


def is_object_id(value: Any) -> bool:
    return ObjectId.is_valid(value) if isinstance(value, (str, bytes, ObjectId)) else False


def _serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = doc.pop("_id")
    return {k: _serialize_value(v) for k, v in doc.items()}


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> dict:
    """Insert a document stamped with created_at/updated_at and return it with its _id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    data_dict["_id"] = result.inserted_id
    return data_dict


def save_document(db: Database, collection_name: str, doc: dict) -> dict:
    """Persist a whole document loaded earlier (read-modify-write)."""
    doc["updated_at"] = utcnow()
    db[collection_name].replace_one({"_id": doc["_id"]}, doc)
    return doc
