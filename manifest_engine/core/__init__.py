"""
Core manifest engine components.

This module contains the registry, room binder, version resolver and
migration coordinator, plus the value types and pure helpers they share.
"""

from .connection import ConnectionManager
from .engine import ManifestEngine
from .manifest import (
    MANIFEST_SCHEMA,
    ManifestDict,
    ParsedManifest,
    check_manifest_structure,
    get_manifest_version,
    parse_manifest,
    settings_schema_of,
)
from .migration import MigrationCoordinator, MigrationOutcome, MigrationResult
from .registry import ManifestRegistry
from .resolver import VersionResolver, find_manifest
from .rooms import RoomVersionBinder
from .semver import (
    BumpKind,
    SemanticVersion,
    bump_kind,
    is_greater,
    is_valid_version,
    parse_version,
)
from .settings_schema import (
    ArrayNode,
    Compatibility,
    FieldError,
    LeafNode,
    ObjectNode,
    SchemaChange,
    SchemaDiff,
    collect_errors,
    diff_classify,
    diff_schemas,
    is_valid,
    parse_schema,
    validate,
)
from .types import Application, ManifestHistoryEntry, Room

__all__ = [
    # Engine
    "ManifestEngine",
    "ConnectionManager",
    # Components
    "ManifestRegistry",
    "RoomVersionBinder",
    "VersionResolver",
    "MigrationCoordinator",
    "MigrationOutcome",
    "MigrationResult",
    "find_manifest",
    # Types
    "Application",
    "ManifestHistoryEntry",
    "Room",
    # Manifests
    "MANIFEST_SCHEMA",
    "ManifestDict",
    "ParsedManifest",
    "check_manifest_structure",
    "get_manifest_version",
    "parse_manifest",
    "settings_schema_of",
    # Semver
    "BumpKind",
    "SemanticVersion",
    "bump_kind",
    "is_greater",
    "is_valid_version",
    "parse_version",
    # Settings schema
    "ArrayNode",
    "LeafNode",
    "ObjectNode",
    "FieldError",
    "Compatibility",
    "SchemaChange",
    "SchemaDiff",
    "collect_errors",
    "diff_classify",
    "diff_schemas",
    "is_valid",
    "parse_schema",
    "validate",
]
