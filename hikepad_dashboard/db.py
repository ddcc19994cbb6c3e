"""
MongoDB connection management.

One MongoClient per process, created lazily with double-checked locking.
Repository functions take a pymongo Database so tests can hand in an
in-memory one.
"""

import logging
import threading

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .config import (
    MONGO_DB_NAME,
    MONGO_URI,
    SALES_RECORDS_COLLECTION,
    USERS_COLLECTION,
)

logger = logging.getLogger(__name__)

for _noisy in ("pymongo", "pymongo.topology", "pymongo.connection", "pymongo.serverSelection"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)


class RecordNotFoundError(LookupError):
    """No user, sales record, or token matched the request."""


class DuplicateRecordError(ValueError):
    """The document being created already exists."""


class InvalidUpdateError(ValueError):
    """A requested field value is not acceptable."""


_client: MongoClient | None = None
_client_lock = threading.Lock()


def get_client() -> MongoClient:
    """Return the process-wide MongoClient, creating it on first use."""
    global _client

    if _client is None:
        with _client_lock:
            if _client is None:
                logger.info("Connecting to MongoDB (database=%s)", MONGO_DB_NAME)
                _client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=10_000)
    return _client


def get_db() -> Database:
    """Return the dashboard database."""
    return get_client()[MONGO_DB_NAME]


def check_connection() -> tuple[bool, str | None]:
    """Ping the server. Returns (is_connected, error_message)."""
    try:
        get_client().admin.command("ping")
        return True, None
    except PyMongoError as e:
        logger.error("MongoDB connection failed: %s", e)
        return False, f"Cannot connect to database: {e}"


def ensure_indexes(db: Database) -> None:
    """Create the lookup indexes used by the upsert writer and user lookups.

    The sales record key is not unique: older data may still hold duplicates
    that records.cleanup_duplicates() removes.
    """
    db[SALES_RECORDS_COLLECTION].create_index(
        [("bde_name", ASCENDING), ("month", ASCENDING), ("fy", ASCENDING), ("branch", ASCENDING)],
        name="record_key",
    )
    db[USERS_COLLECTION].create_index(
        [("name", ASCENDING), ("branch", ASCENDING)],
        name="user_key",
    )
    logger.info("Indexes ensured")
