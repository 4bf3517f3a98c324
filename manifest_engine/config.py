"""
Configuration management for MANIFEST_ENGINE.

Settings are read from the environment (prefix ``MANIFEST_ENGINE_``) or a
``.env`` file. The engine can still be constructed with direct parameters;
``EngineSettings`` only supplies defaults.

Example:
    settings = EngineSettings()
    engine = ManifestEngine.from_settings(settings)
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    APPLICATIONS_COLLECTION,
    DEFAULT_MAX_CONCURRENCY_RETRIES,
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
    ROOMS_COLLECTION,
)
from .exceptions import ConfigurationError


class EngineSettings(BaseSettings):
    """
    Manifest Engine configuration with automatic validation.

    Environment variables:
        MANIFEST_ENGINE_MONGO_URI, MANIFEST_ENGINE_DB_NAME,
        MANIFEST_ENGINE_APPLICATIONS_COLLECTION, MANIFEST_ENGINE_ROOMS_COLLECTION,
        MANIFEST_ENGINE_MAX_POOL_SIZE, MANIFEST_ENGINE_MIN_POOL_SIZE,
        MANIFEST_ENGINE_SERVER_SELECTION_TIMEOUT_MS,
        MANIFEST_ENGINE_MAX_CONCURRENCY_RETRIES
    """

    model_config = SettingsConfigDict(
        env_prefix="MANIFEST_ENGINE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    mongo_uri: str = Field("", description="MongoDB connection URI")
    db_name: str = Field("", description="Database name")
    applications_collection: str = Field(
        APPLICATIONS_COLLECTION, min_length=1, description="Application aggregate collection"
    )
    rooms_collection: str = Field(ROOMS_COLLECTION, min_length=1, description="Room collection")
    max_pool_size: int = Field(
        DEFAULT_MAX_POOL_SIZE, ge=1, description="Maximum connection pool size"
    )
    min_pool_size: int = Field(
        DEFAULT_MIN_POOL_SIZE, ge=1, description="Minimum connection pool size"
    )
    server_selection_timeout_ms: int = Field(
        DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
        ge=1000,
        description="Server selection timeout in milliseconds",
    )
    max_concurrency_retries: int = Field(
        DEFAULT_MAX_CONCURRENCY_RETRIES,
        ge=1,
        le=20,
        description="Compare-and-swap attempts before ConcurrentModificationError",
    )

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "EngineSettings":
        if self.min_pool_size > self.max_pool_size:
            raise ValueError(
                f"min_pool_size ({self.min_pool_size}) cannot be greater than "
                f"max_pool_size ({self.max_pool_size})"
            )
        return self

    def require_mongo(self) -> None:
        """
        Ensure MongoDB connection settings are present.

        Raises:
            ConfigurationError: If mongo_uri or db_name is missing
        """
        if not self.mongo_uri:
            raise ConfigurationError(
                "mongo_uri is required (set MANIFEST_ENGINE_MONGO_URI or pass directly)",
                config_key="mongo_uri",
            )
        if not self.db_name:
            raise ConfigurationError(
                "db_name is required (set MANIFEST_ENGINE_DB_NAME or pass directly)",
                config_key="db_name",
            )
