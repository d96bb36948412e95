import logging
from functools import lru_cache

from elecciones.config import DATA_FILE, MONGO_DB, MONGO_URI, STORAGE_BACKEND
from elecciones.storage import MemoryStore, Store
from elecciones.storage_mongo import MongoStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def get_store() -> Store:
    """Build the configured backend once per process."""
    if STORAGE_BACKEND == "mongo":
        if not MONGO_URI:
            raise ValueError("MONGO_URI not found. Check your .env file.")
        if not MONGO_DB:
            raise ValueError("MONGO_DB not found. Check your .env file.")
        return MongoStore(MONGO_URI, MONGO_DB)
    if STORAGE_BACKEND == "memory":
        logger.info(f"Using in-memory store, file: {DATA_FILE or 'none'}")
        return MemoryStore(DATA_FILE)
    raise ValueError(f"Unknown STORAGE_BACKEND {STORAGE_BACKEND!r}")
