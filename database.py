"""
MongoDB access helpers.

Each collection is named after the lowercased schema class (User -> "user").
Documents are plain dicts; pydantic models are dumped before insertion and
stamped with created_at/updated_at.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import structlog
from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

from config import DATABASE_NAME, DATABASE_URL

logger = structlog.get_logger(__name__)

client = MongoClient(DATABASE_URL)
db = client[DATABASE_NAME]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document with timestamps and return its id as a string."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    data_dict["created_at"] = now_utc()
    data_dict["updated_at"] = now_utc()
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[dict]:
    """Return documents matching the filter, newest first."""
    cursor = db[collection_name].find(filter_dict or {}).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes():
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["product"].create_index([("category", ASCENDING)])
    db["product"].create_index([("price", ASCENDING)])
    db["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    db["order"].create_index([("status", ASCENDING)])
    db["review"].create_index([("product_id", ASCENDING), ("created_at", DESCENDING)])
    db["review"].create_index([("product_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
    db["journeyresource"].create_index([("category", ASCENDING), ("created_at", DESCENDING)])
    db["notification"].create_index([("recipient_id", ASCENDING), ("created_at", DESCENDING)])
    logger.info("indexes_ensured", database=DATABASE_NAME)


def to_camel_key(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def serialize_doc(doc):
    """Turn a stored document into its JSON shape: id, camelCase keys, ISO dates."""
    if isinstance(doc, list):
        return [serialize_doc(d) for d in doc]
    if isinstance(doc, datetime):
        if doc.tzinfo is None:
            doc = doc.replace(tzinfo=timezone.utc)
        return doc.isoformat()
    if isinstance(doc, ObjectId):
        return str(doc)
    if not isinstance(doc, dict):
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
            continue
        out[to_camel_key(k)] = serialize_doc(v)
    return out
