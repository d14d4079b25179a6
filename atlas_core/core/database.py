# atlas_core/core/database.py

import asyncio
from contextlib import AbstractAsyncContextManager
from typing import Any, Awaitable, Callable, Optional, TypeVar, cast

import motor.motor_asyncio
from motor.motor_asyncio import AsyncIOMotorDatabase
from fastapi import HTTPException, status
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    ExecutionTimeout,
    PyMongoError,
    WTimeoutError,
)
from loguru import logger

from atlas_core.core.config import settings

T = TypeVar("T")

DEFAULT_DB_NAME = "atlas"

_TRANSIENT_MARKERS = (
    "timed out",
    "timeout",
    "connection reset",
    "econnreset",
    "connection refused",
    "temporarily unavailable",
    "network is unreachable",
)


# --- Transient error classification ---

def is_transient_error(exc: BaseException | None) -> bool:
    """True when the store error is likely temporary and the caller may retry."""
    if exc is None:
        return False
    # AutoReconnect covers NetworkTimeout and ServerSelectionTimeoutError
    if isinstance(exc, (AutoReconnect, ConnectionFailure, ExecutionTimeout, WTimeoutError)):
        return True
    if isinstance(exc, PyMongoError) and exc.has_error_label("RetryableWriteError"):
        return True
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, ConnectionResetError)):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


async def with_db_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int | None = None,
    delay: float | None = None,
    op_name: str = "db_operation",
) -> T:
    """Runs a store operation, retrying only transient failures with a linear backoff."""
    max_attempts = max(1, attempts or settings.DB_RETRY_ATTEMPTS)
    base_delay = settings.DB_RETRY_DELAY_SECONDS if delay is None else delay
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_transient_error(e) or attempt == max_attempts:
                raise
            logger.warning(f"Transient store error during '{op_name}' (attempt {attempt}/{max_attempts}): {e}")
            await asyncio.sleep(base_delay * attempt)
    raise RuntimeError("unreachable")


# --- MongoDB ---

class MongoDbContext(AbstractAsyncContextManager):
    client: Optional[motor.motor_asyncio.AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    @staticmethod
    def _db_name_from_uri(uri: str) -> str:
        uri_path = uri.rsplit('/', 1)[-1]
        db_name = uri_path.split('?')[0]
        if not db_name or '@' in db_name or ':' in db_name or len(db_name) > 63:
            logger.warning(f"Could not parse DB name from URI, using default: {DEFAULT_DB_NAME}")
            return DEFAULT_DB_NAME
        return db_name

    async def connect(self):
        """Establishes and verifies the connection to MongoDB."""
        if self.client is not None and self.db is not None:
            logger.info("MongoDB connection already established.")
            return

        logger.info("Connecting to MongoDB...")
        try:
            self.client = motor.motor_asyncio.AsyncIOMotorClient(
                settings.MONGODB_URI,
                uuidRepresentation='standard',
                serverSelectionTimeoutMS=5000,
            )
            await self.client.admin.command('ping')
            db_name = self._db_name_from_uri(settings.MONGODB_URI)
            self.db = self.client[db_name]
            logger.success(f"MongoDB connection successful to database '{db_name}'.")
        except Exception as e:
            logger.critical(f"FATAL: Failed to connect to MongoDB: {e}")
            self.client = None
            self.db = None
            raise ConnectionError(f"MongoDB connection failed: {e}") from e

    async def disconnect(self):
        if self.client:
            logger.info("Closing MongoDB connection...")
            try:
                self.client.close()
                logger.info("MongoDB connection closed.")
            finally:
                self.client = None
                self.db = None

    def get_db(self) -> AsyncIOMotorDatabase:
        if self.db is None:
            logger.critical("Attempted to get MongoDB instance, but it's not available.")
            raise RuntimeError("MongoDB database is not connected or initialized.")
        return cast(AsyncIOMotorDatabase, self.db)


mongo_manager = MongoDbContext()


async def create_indexes(db: Any):
    """Creates the indexes the application relies on for uniqueness and range scans."""
    log = logger.bind(service="DatabaseIndexes")
    await db["people"].create_index("username", unique=True, sparse=True)
    await db["people"].create_index("email", unique=True, sparse=True)
    await db["delivery_survey_links"].create_index("survey_token", unique=True)
    await db["delivery_survey_links"].create_index([("order_id", ASCENDING), ("created_at", DESCENDING)])
    await db["delivery_survey_responses"].create_index("survey_link_id", unique=True)
    await db["order_items"].create_index("order_id")
    await db["orders"].create_index("created_at")
    log.info("Database indexes ensured.")


# --- FastAPI dependency ---

async def get_database() -> AsyncIOMotorDatabase:
    """FastAPI dependency returning the connected database."""
    try:
        return mongo_manager.get_db()
    except RuntimeError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="database_unavailable",
        ) from e
