"""
MongoDB helpers

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; every
helper then raises so callers surface a 500 instead of silently returning
nothing.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.errors import DuplicateKeyError

import config
from errors import ConflictError

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def _require_db():
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def _now():
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document and return its id as a string."""
    database = _require_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True)
    else:
        data_dict = data.copy()

    data_dict["created_at"] = _now()
    data_dict["updated_at"] = _now()

    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[dict] = None,
    sort: Optional[Sequence] = None,
    skip: int = 0,
    limit: Optional[int] = None,
) -> List[dict]:
    database = _require_db()
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_document(collection_name: str, filter_dict: dict) -> Optional[dict]:
    return _require_db()[collection_name].find_one(filter_dict)


def save_document(collection_name: str, doc: dict) -> dict:
    """
    Persist a whole aggregate document with an optimistic version check.

    New documents (no `_id`) are inserted at version 1. Existing ones are
    replaced only if the stored version still equals the one that was read;
    otherwise ConflictError is raised and nothing is written.
    """
    database = _require_db()
    collection = database[collection_name]
    now = _now()

    if "_id" not in doc:
        doc["version"] = 1
        doc["created_at"] = now
        doc["updated_at"] = now
        try:
            result = collection.insert_one(doc)
        except DuplicateKeyError as e:
            doc.pop("_id", None)
            raise ConflictError("Document was created concurrently, retry the request", str(e)) from e
        doc["_id"] = result.inserted_id
        return doc

    read_version = doc.get("version")
    replacement = {**doc, "version": (read_version or 0) + 1, "updated_at": now}
    result = collection.replace_one({"_id": doc["_id"], "version": read_version}, replacement)
    if result.matched_count == 0:
        raise ConflictError("Document was modified concurrently, retry the request")
    doc.update(replacement)
    return doc


def delete_documents(collection_name: str, filter_dict: dict) -> int:
    return _require_db()[collection_name].delete_many(filter_dict).deleted_count


def ensure_unique_index(collection_name: str, fields: Sequence[str]):
    _require_db()[collection_name].create_index([(f, ASCENDING) for f in fields], unique=True)


def serialize_document(value: Any) -> Any:
    """Make a Mongo document JSON friendly (ObjectId -> str, recursively)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize_document(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize_document(v) for v in value]
    return value


def id_str(doc: Dict[str, Any]) -> str:
    return str(doc.get("_id"))
