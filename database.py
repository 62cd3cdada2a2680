"""
Database Helper Functions

MongoDB helpers shared by the API endpoints.
- `db` is the module-level database handle (None when not configured)
- `get_db` is the FastAPI dependency endpoints receive it through
"""

import os
import logging
from datetime import datetime, timezone
from typing import Union, Optional

from bson import ObjectId
from dotenv import load_dotenv
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]
    logger.info("Using MongoDB database %s", database_name)


def get_db():
    """Return the active database handle or fail the request with 503."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database not available. Check DATABASE_URL and DATABASE_NAME")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with createdAt/updatedAt, return its id as string."""
    database = get_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude_none=True)
    else:
        data_dict = data.copy()

    now = utcnow()
    data_dict.setdefault("createdAt", now)
    data_dict["updatedAt"] = now

    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def to_object_id(value: str, what: str = "form") -> ObjectId:
    """Parse a path id; malformed ids are a validation error, not a lookup miss."""
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {what} id")
    return ObjectId(value)


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc = dict(doc)
    for key, value in list(doc.items()):
        if isinstance(value, ObjectId):
            doc[key] = str(value)
    doc.pop("__v", None)
    return doc
