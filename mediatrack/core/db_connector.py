# core/db_connector.py
import logging

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from .config import get_config

logger = logging.getLogger(__name__)

settings = get_config()

# Centralized MongoDB connection; MongoClient connects lazily on first use
client = MongoClient(
    settings.MONGODB_URI,
    maxPoolSize=settings.MONGODB_MAX_POOL_SIZE,
    minPoolSize=settings.MONGODB_MIN_POOL_SIZE,
    serverSelectionTimeoutMS=settings.MONGODB_TIMEOUT_MS,
    compressors=['zlib']
)

# Provide access to the database and collections
db = client[settings.MONGODB_DB]
watchlist_collection = db[settings.WATCHLIST_COLLECTION]


def check_db_connection():
    """Lightweight health check against the configured server."""
    try:
        client.admin.command("ping")
        return {"status": "connected"}
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {"status": "error", "message": str(e)}
