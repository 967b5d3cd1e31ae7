"""
MongoDB connection and document helpers.

The connection is configured from DATABASE_URL and DATABASE_NAME. When either
is missing, ``db`` stays ``None`` and the API reports the database as
unavailable instead of failing at import time.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    try:
        _client = MongoClient(database_url)
        db = _client[database_name]
    except Exception as e:
        logger.error("Could not connect to MongoDB: %s", e)
        _client = None
        db = None


class DatabaseUnavailable(RuntimeError):
    pass


def get_db():
    if db is None:
        raise DatabaseUnavailable("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True)
    else:
        data_dict = dict(data)

    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now

    result = get_db()[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Documents of a collection, newest first."""
    cursor = get_db()[collection_name].find(filter_dict or {}).sort([("created_at", -1), ("_id", -1)])
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
