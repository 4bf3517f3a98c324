"""
Constants for MANIFEST_ENGINE.

This module contains all shared constants used across the codebase to avoid
magic numbers and improve maintainability.
"""

from typing import Final

# ============================================================================
# DATABASE CONSTANTS
# ============================================================================

# Connection pool defaults
DEFAULT_MAX_POOL_SIZE: Final[int] = 50
"""Default maximum MongoDB connection pool size."""

DEFAULT_MIN_POOL_SIZE: Final[int] = 10
"""Default minimum MongoDB connection pool size."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

DEFAULT_MAX_IDLE_TIME_MS: Final[int] = 45000
"""Default maximum idle time before closing connections (milliseconds)."""

APPLICATIONS_COLLECTION: Final[str] = "applications"
"""Collection holding Application aggregates (current manifest plus history)."""

ROOMS_COLLECTION: Final[str] = "rooms"
"""Collection holding Room records and their version locks."""

# ============================================================================
# CONCURRENCY CONSTANTS
# ============================================================================

DEFAULT_MAX_CONCURRENCY_RETRIES: Final[int] = 3
"""Compare-and-swap attempts on one aggregate before giving up."""

# ============================================================================
# MANIFEST CONSTANTS
# ============================================================================

SETTINGS_SCHEMA_KEY: Final[str] = "settings"
"""Manifest key holding the settings schema subtree."""

MANIFEST_META_KEY: Final[str] = "meta"
"""Manifest key holding name/version/description metadata."""

LEAF_TYPES: Final[tuple[str, ...]] = ("string", "number", "integer", "boolean")
"""Scalar types a settings schema leaf may declare."""

MAX_APP_ID_LENGTH: Final[int] = 100
"""Maximum length for application identifiers."""

# ============================================================================
# AUTHORIZATION ACTIONS
# ============================================================================

ACTION_MANAGE_APP: Final[str] = "app:manage"
"""Owner/admin capability required to publish and deprecate manifests."""

ACTION_UPGRADE_ROOM: Final[str] = "room:upgrade"
"""Capability required to move a room to another manifest version."""

ACTION_UPDATE_ROOM: Final[str] = "room:update"
"""Capability required to change a room's settings under its current lock."""

AUTHZ_CACHE_TTL: Final[int] = 300  # 5 minutes
"""Authorization decision cache TTL in seconds."""

MAX_CACHE_SIZE: Final[int] = 1000
"""Maximum cached authorization decisions before eviction."""
