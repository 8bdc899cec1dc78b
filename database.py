"""
Database helpers

MongoDB connection shared by the whole app. `db` is None when DATABASE_URL or
DATABASE_NAME is not configured; routes report that as a server error.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from dotenv import load_dotenv
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]
    logger.info("Connected to MongoDB database %s", DATABASE_NAME)


def get_db():
    """FastAPI dependency returning the active database handle."""
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def ensure_indexes(database) -> None:
    database["user"].create_index("email", unique=True)
    database["cart"].create_index("user", unique=True)
    database["product"].create_index("slug", unique=True, sparse=True)
    database["order"].create_index("user")
    database["message"].create_index([("isRead", 1), ("createdAt", -1)])


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse a string id, returning None for anything that is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def serialize_doc(doc: Any) -> Any:
    """Render a Mongo document as JSON-friendly data: `_id` becomes `id` and ObjectIds become strings."""
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if not isinstance(doc, dict):
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
        else:
            out[k] = serialize_doc(v)
    return out


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database=None) -> str:
    """Insert a document stamped with createdAt/updatedAt and return its id."""
    database = database if database is not None else get_db()
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None, database=None) -> List[Dict[str, Any]]:
    database = database if database is not None else get_db()
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
