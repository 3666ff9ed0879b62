"""
MongoDB access helpers.

The client is created once at process start by ``connect`` and handed to the
application; nothing here keeps a module level connection.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import Settings
from errors import StoreError, ValidationError

logger = logging.getLogger(__name__)


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.database_url)
    logger.info("Connected to MongoDB database %s", settings.database_name)
    return client[settings.database_name]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {label}")
    return ObjectId(value)


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Translate driver failures into StoreError."""
    try:
        yield
    except PyMongoError as exc:
        logger.error("Store failure while %s: %s", action, exc)
        raise StoreError(f"Failed to {action}") from exc


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    data = dict(doc)
    if "_id" in data:
        data["id"] = str(data.pop("_id"))
    return data


def create_document(collection: Collection, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True, exclude_none=True)
    else:
        data_dict = dict(data)
    data_dict.pop("_id", None)
    data_dict.pop("id", None)
    with store_errors(f"insert into {collection.name}"):
        result = collection.insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection: Collection,
    filter_dict: Optional[Dict[str, Any]] = None,
    projection: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    with store_errors(f"read {collection.name}"):
        return list(collection.find(filter_dict or {}, projection))
