"""
MongoDB Database Client Module

Async MongoDB connection management for media records using Motor:
- Connection pooling sized from Settings
- Connect with retry and exponential backoff
- Health checks using the MongoDB ping command
- Accessor and indexes for the branch_media collection
- Startup/shutdown lifecycle functions for the FastAPI lifespan
"""

import asyncio
import logging

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from app.config import Settings, get_settings


# Configure module logger for structured logging
logger = logging.getLogger(__name__)

BRANCH_MEDIA_COLLECTION = "branch_media"

CONNECT_MAX_RETRIES = 3
CONNECT_INITIAL_DELAY_SECONDS = 1.0
SERVER_SELECTION_TIMEOUT_MS = 5000


class DatabaseClient:
    """
    Async MongoDB client wrapper with connection pooling and lifecycle management.

    Attributes:
        _mongodb_uri: MongoDB connection URI
        _db_name: Database name to connect to
        _min_pool_size: Minimum number of connections in pool
        _max_pool_size: Maximum number of connections in pool
        _client: Motor async MongoDB client instance
        _database: Motor async database instance

    Example usage:
        ```python
        db_client = DatabaseClient(get_settings())
        await db_client.connect()

        media = db_client.get_branch_media_collection()
        await media.find_one({"branch_id": 12})

        await db_client.close()
        ```
    """

    def __init__(self, settings: Settings) -> None:
        self._mongodb_uri = settings.mongodb_uri
        self._db_name = settings.mongodb_db_name
        self._min_pool_size = settings.mongodb_min_pool_size
        self._max_pool_size = settings.mongodb_max_pool_size
        self._client: AsyncIOMotorClient | None = None
        self._database: AsyncIOMotorDatabase | None = None

        logger.info(
            "DatabaseClient initialized with pool size %d-%d for database: %s",
            self._min_pool_size,
            self._max_pool_size,
            self._db_name,
        )

    async def connect(self) -> bool:
        """
        Establish the MongoDB connection with retry logic and exponential backoff.

        Makes up to three attempts, waiting 1s then 2s between them, and
        verifies each attempt with a ping.

        Returns:
            bool: True if connection successful, False on failure after all retries.
        """
        retry_delay = CONNECT_INITIAL_DELAY_SECONDS

        for attempt in range(1, CONNECT_MAX_RETRIES + 1):
            try:
                logger.info(
                    "Attempting MongoDB connection (attempt %d/%d) to %s...",
                    attempt,
                    CONNECT_MAX_RETRIES,
                    self._db_name,
                )

                self._client = AsyncIOMotorClient(
                    self._mongodb_uri,
                    minPoolSize=self._min_pool_size,
                    maxPoolSize=self._max_pool_size,
                    serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS,
                )
                self._database = self._client[self._db_name]

                await self._client.admin.command("ping")

                logger.info("Successfully connected to MongoDB database: %s", self._db_name)
                return True

            except (ServerSelectionTimeoutError, ConnectionFailure):
                logger.exception(
                    "MongoDB connection failure (attempt %d/%d)", attempt, CONNECT_MAX_RETRIES
                )
                # Release the failed attempt's pool before building a new client
                if self._client is not None:
                    self._client.close()
                self._client = None
                self._database = None
                if attempt < CONNECT_MAX_RETRIES:
                    logger.warning("Retrying in %s seconds...", retry_delay)
                    await asyncio.sleep(retry_delay)
                    retry_delay *= 2

        logger.error(
            "Failed to connect to MongoDB after %d attempts. "
            "Check connection URI and server availability.",
            CONNECT_MAX_RETRIES,
        )
        return False

    async def close(self) -> None:
        """Close the MongoDB connection. Safe to call when not connected."""
        if self._client is None:
            logger.warning("MongoDB close called but no active connection exists")
            return

        self._client.close()
        self._client = None
        self._database = None
        logger.info("MongoDB connection closed for database: %s", self._db_name)

    async def ping(self) -> bool:
        """
        Health check using MongoDB admin ping command.

        Returns:
            bool: True if ping successful, False on failure.
        """
        if self._client is None:
            logger.warning("MongoDB ping failed: No active connection")
            return False

        try:
            await self._client.admin.command("ping")
        except PyMongoError:
            logger.exception("MongoDB ping failed")
            return False
        return True

    def get_database(self) -> AsyncIOMotorDatabase:
        """
        Get the database instance for direct operations.

        Raises:
            RuntimeError: If not connected to MongoDB.
        """
        if self._database is None:
            raise RuntimeError(
                "MongoDB database not available. Call connect() first or check connection status."
            )
        return self._database

    def get_branch_media_collection(self) -> AsyncIOMotorCollection:
        """
        Get the branch_media collection.

        Documents hold the branch reference, the opaque S3 key and descriptive
        fields (name, category, file type, original filename).
        """
        return self.get_database()[BRANCH_MEDIA_COLLECTION]

    async def create_indexes(self) -> None:
        """
        Create indexes for the branch media queries.

        - (branch_id, is_child_branch, created_on desc) for per-branch listings
        - created_on for the global listing
        - s3_key (sparse) for lookups by object
        """
        media = self.get_branch_media_collection()

        logger.info("Creating MongoDB indexes for %s...", BRANCH_MEDIA_COLLECTION)
        await media.create_index(
            [("branch_id", 1), ("is_child_branch", 1), ("created_on", -1)], background=True
        )
        await media.create_index("created_on", background=True)
        await media.create_index("s3_key", sparse=True, background=True)
        logger.info("Created indexes on %s collection", BRANCH_MEDIA_COLLECTION)


# Container class for database client singleton to avoid global statements
class _DatabaseClientContainer:
    """Container for database client singleton to avoid global statements."""

    client: DatabaseClient | None = None


_container = _DatabaseClientContainer()


async def init_db(settings: Settings | None = None) -> DatabaseClient:
    """
    Connect the global database client and create indexes.

    Called during FastAPI application startup.

    Raises:
        RuntimeError: If connection to MongoDB fails after all retries.
    """
    if _container.client is not None:
        logger.warning("Database client already initialized, returning existing instance")
        return _container.client

    client = DatabaseClient(settings or get_settings())

    if not await client.connect():
        raise RuntimeError(
            "Failed to establish MongoDB connection. "
            "Check mongodb_uri configuration and server availability."
        )

    await client.create_indexes()

    _container.client = client
    logger.info("MongoDB database client initialization complete")
    return client


async def close_db() -> None:
    """Close the global database client during application shutdown."""
    if _container.client is None:
        logger.warning("close_db called but no database client exists")
        return

    await _container.client.close()
    _container.client = None


def get_db_client() -> DatabaseClient:
    """
    Get the global database client singleton instance.

    Raises:
        RuntimeError: If database client has not been initialized.
    """
    if _container.client is None:
        raise RuntimeError(
            "Database client not initialized. Call init_db() first during application startup."
        )
    return _container.client
