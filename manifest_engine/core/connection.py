"""
Connection management for the manifest engine.

Opens the motor client, verifies it with a ping and hands out the
collections the MongoDB repositories run on.

This module is part of MANIFEST_ENGINE.
"""

import logging
import time

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from ..constants import (
    DEFAULT_MAX_IDLE_TIME_MS,
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from ..exceptions import InitializationError
from ..observability import get_logger as get_contextual_logger
from ..observability import record_operation

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


class ConnectionManager:
    """
    Manages the MongoDB connection lifecycle.
    """

    def __init__(
        self,
        mongo_uri: str,
        db_name: str,
        max_pool_size: int = DEFAULT_MAX_POOL_SIZE,
        min_pool_size: int = DEFAULT_MIN_POOL_SIZE,
        server_selection_timeout_ms: int = DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
    ) -> None:
        self.mongo_uri = mongo_uri
        self.db_name = db_name
        self.max_pool_size = max_pool_size
        self.min_pool_size = min_pool_size
        self.server_selection_timeout_ms = server_selection_timeout_ms

        self._mongo_client: AsyncIOMotorClient | None = None
        self._mongo_db: AsyncIOMotorDatabase | None = None
        self._initialized: bool = False

    async def initialize(self) -> None:
        """
        Connect and verify the connection with a ping.

        Raises:
            InitializationError: If MongoDB is unreachable
        """
        if self._initialized:
            logger.warning("ConnectionManager already initialized. Skipping re-initialization.")
            return

        start_time = time.time()
        contextual_logger.info(
            "Initializing MongoDB connection",
            extra={
                "db_name": self.db_name,
                "max_pool_size": self.max_pool_size,
                "min_pool_size": self.min_pool_size,
            },
        )

        client = AsyncIOMotorClient(
            self.mongo_uri,
            serverSelectionTimeoutMS=self.server_selection_timeout_ms,
            appname="MANIFEST_ENGINE",
            maxPoolSize=self.max_pool_size,
            minPoolSize=self.min_pool_size,
            maxIdleTimeMS=DEFAULT_MAX_IDLE_TIME_MS,
            retryWrites=True,
            retryReads=True,
        )
        try:
            await client.admin.command("ping")
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            client.close()
            duration_ms = (time.time() - start_time) * 1000
            record_operation("connection.initialize", duration_ms, success=False)
            contextual_logger.critical(
                "MongoDB connection failed",
                extra={
                    "error_type": type(e).__name__,
                    "error": str(e),
                    "duration_ms": round(duration_ms, 2),
                },
                exc_info=True,
            )
            raise InitializationError(
                f"Failed to connect to MongoDB: {e}",
                mongo_uri=self.mongo_uri,
                db_name=self.db_name,
                context={"error_type": type(e).__name__},
            ) from e

        self._mongo_client = client
        self._mongo_db = client[self.db_name]
        self._initialized = True

        duration_ms = (time.time() - start_time) * 1000
        record_operation("connection.initialize", duration_ms, success=True)
        contextual_logger.info(
            "MongoDB connection initialized successfully",
            extra={"db_name": self.db_name, "duration_ms": round(duration_ms, 2)},
        )

    async def shutdown(self) -> None:
        """
        Close the client. Safe to call more than once.
        """
        if not self._initialized:
            return

        if self._mongo_client is not None:
            self._mongo_client.close()
        self._initialized = False
        self._mongo_client = None
        self._mongo_db = None
        contextual_logger.info("MongoDB connection closed")

    @property
    def mongo_db(self) -> AsyncIOMotorDatabase:
        """
        Raises:
            RuntimeError: If the connection is not initialized
        """
        if not self._initialized or self._mongo_db is None:
            raise RuntimeError("ConnectionManager not initialized. Call initialize() first.")
        return self._mongo_db

    def collection(self, name: str) -> AsyncIOMotorCollection:
        return self.mongo_db[name]

    @property
    def initialized(self) -> bool:
        return self._initialized
