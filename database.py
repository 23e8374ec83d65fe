"""
MongoDB access for the Textile ERP API

`db` is None when DATABASE_URL / DATABASE_NAME are not set so the app can still
boot and report its state on /test.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Union

from pydantic import BaseModel
from pymongo import MongoClient

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]
else:
    logger.warning("DATABASE_URL or DATABASE_NAME not set, running without a database")


def _now():
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with timestamps and return its id as a string"""
    if db is None:
        raise RuntimeError("Database not configured")
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    now = _now()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)

