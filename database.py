# database.py

import logging
from datetime import datetime
from typing import Any

from bson import ObjectId, errors as bson_errors
from pymongo import MongoClient
from pymongo.server_api import ServerApi

from config import settings
from errors import NotFound

logger = logging.getLogger("DATABASE")

# MongoClient connects lazily, so importing this module never blocks
client = MongoClient(settings.MONGO_URI, server_api=ServerApi('1'), serverSelectionTimeoutMS=5000)
db = client[settings.MONGO_DB_NAME]


def get_db():
    return db


def db_ping():
    client.admin.command('ping')


def to_object_id(value: Any, label: str = "Resource"):
    """Parses an id coming from a path or body; bad ids look exactly like missing ones."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (bson_errors.InvalidId, TypeError):
        raise NotFound(f"{label} not found")


def serialize_doc(doc):
    """
    Makes a Mongo document JSON friendly:
    `_id` becomes `id`, every ObjectId becomes a string, password hashes are dropped.
    """
    if doc is None:
        return None
    if isinstance(doc, list):
        return [serialize_doc(d) for d in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc

    out = {}
    for key, value in doc.items():
        if key == "password":
            continue
        if key == "_id":
            out["id"] = str(value)
        else:
            out[key] = serialize_doc(value)
    return out
