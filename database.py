"""
Store access helpers.

The database handle is handed to every operation explicitly. Routes receive it
through the ``get_db`` dependency, which tests override with an in-memory store.
"""
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger("elanstore.database")


@lru_cache(maxsize=1)
def get_client() -> MongoClient:
    return MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000)


def get_db() -> Database:
    return get_client()[DATABASE_NAME]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_indexes(db: Database) -> None:
    db["cart"].create_index([("user_id", ASCENDING)], unique=True)
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["coupon"].create_index([("code", ASCENDING)], unique=True)


def next_id(db: Database, name: str) -> int:
    counter = db["counter"].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Any:
    """Insert a document stamped with timestamps and a fresh version. Returns the inserted id."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    doc["version"] = 0
    result = db[collection_name].insert_one(doc)
    return result.inserted_id


def create_numbered_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Insert under the next integer id of the collection and return the stored document."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    new_id = next_id(db, collection_name)
    create_document(db, collection_name, dict(data) | {"_id": new_id})
    return db[collection_name].find_one({"_id": new_id})


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  sort: Optional[List[Tuple[str, int]]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def compare_and_swap(db: Database, collection_name: str, doc: Dict[str, Any], changes: Dict[str, Any]) -> bool:
    """Apply ``changes`` only if ``doc`` is still the stored version.

    Returns False when another writer got there first; the caller re-reads and retries.
    """
    result = db[collection_name].update_one(
        {"_id": doc["_id"], "version": doc.get("version")},
        {"$set": changes | {"updated_at": utcnow()}, "$inc": {"version": 1}},
    )
    if result.modified_count != 1:
        logger.warning("Version conflict on %s %s", collection_name, doc["_id"])
        return False
    return True


def to_public(doc: Optional[Dict[str, Any]], key: str = "id") -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    d = dict(doc)
    if "_id" in d:
        _id = d.pop("_id")
        d[key] = _id if isinstance(_id, (int, str)) else str(_id)
    d.pop("version", None)
    return d


def ping(db: Database) -> List[str]:
    """Return collection names, raising if the store cannot be reached."""
    try:
        return db.list_collection_names()
    except PyMongoError as e:
        logger.warning("Store unreachable: %s", e)
        raise
