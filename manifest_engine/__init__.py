"""
MANIFEST_ENGINE - Application manifest versioning

Versioned manifest registry for third-party room applications: strict
semver publishing rules, room version locks, settings validation and
explicit room upgrades, on MongoDB or in memory.
"""

# Authorization
from .auth import (
    AuthorizationProvider,
    CasbinAuthorizationProvider,
    StaticAuthorizationProvider,
)
from .config import EngineSettings
# Core
from .core import (
    Application,
    ManifestEngine,
    ManifestHistoryEntry,
    MigrationOutcome,
    MigrationResult,
    Room,
)
from .exceptions import ManifestEngineError

__version__ = "0.1.0"

__all__ = [
    # Core
    "ManifestEngine",
    "EngineSettings",
    "Application",
    "ManifestHistoryEntry",
    "Room",
    "MigrationOutcome",
    "MigrationResult",
    "ManifestEngineError",
    # Auth
    "AuthorizationProvider",
    "StaticAuthorizationProvider",
    "CasbinAuthorizationProvider",
]
