"""
MongoDB connection handling.

One MongoClient per process, created on first use and shared by every
request. Routes receive the database through the `get_db` dependency so
tests can swap in another handle.
"""
import logging
import threading
from datetime import datetime
from typing import Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

USERS = "user"
PROPERTIES = "properties"
REVIEWS = "reviews"
AUDIT_LOGS = "audit_logs"

_client: Optional[MongoClient] = None
_lock = threading.Lock()


def get_client() -> MongoClient:
    global _client
    if _client is None:
        with _lock:
            if _client is None:
                if not config.MONGODB_URI:
                    raise RuntimeError("Please set MONGODB_URI (or DATABASE_URL) in the environment")
                _client = MongoClient(config.MONGODB_URI, tz_aware=False)
                logger.info("MongoDB client created for database %s", config.DATABASE_NAME)
    return _client


def get_db() -> Database:
    """FastAPI dependency returning the application database."""
    return get_client()[config.DATABASE_NAME]


def ensure_indexes(db: Database) -> None:
    db[USERS].create_index([("email", ASCENDING)], unique=True)
    db[PROPERTIES].create_index([("createdAt", DESCENDING)])
    db[PROPERTIES].create_index([("type", ASCENDING), ("category", ASCENDING)])
    db[REVIEWS].create_index([("propertyId", ASCENDING), ("createdAt", DESCENDING)])


def close_client() -> None:
    global _client
    with _lock:
        if _client is not None:
            _client.close()
            _client = None


def utcnow() -> datetime:
    """Current UTC time truncated to the millisecond precision BSON stores."""
    now = datetime.utcnow()
    return now.replace(microsecond=now.microsecond // 1000 * 1000)
