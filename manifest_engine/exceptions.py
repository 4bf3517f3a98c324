"""
Custom exceptions for MANIFEST_ENGINE.

Every error carries a human readable message plus a ``context`` dictionary
with the structured details (field path, versions, app id, ...) a caller
needs to fix the request and retry.
"""

from typing import Any, Dict, List, Optional


class ManifestEngineError(RuntimeError):
    """
    Base exception for Manifest Engine errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (app_id,
                 room_id, version, etc.)
    """

    code = "MANIFEST_ENGINE_ERROR"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Structured, JSON-serializable representation for API responses."""
        return {"code": self.code, "message": self.message, "details": dict(self.context)}


class InitializationError(ManifestEngineError):
    """
    Raised when engine initialization fails.

    Attributes:
        message: Error message
        mongo_uri: MongoDB connection URI (if available)
        db_name: Database name (if available)
    """

    code = "INITIALIZATION_ERROR"

    def __init__(
        self,
        message: str,
        mongo_uri: Optional[str] = None,
        db_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if mongo_uri:
            context["mongo_uri"] = mongo_uri
        if db_name:
            context["db_name"] = db_name
        super().__init__(message, context=context)
        self.mongo_uri = mongo_uri
        self.db_name = db_name


class ConfigurationError(ManifestEngineError):
    """
    Raised when configuration is invalid or missing.

    Attributes:
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
    """

    code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value


# ============================================================================
# VERSION ERRORS
# ============================================================================


class InvalidSemverError(ManifestEngineError, ValueError):
    """Raised when a version string is not ``MAJOR.MINOR.PATCH``."""

    code = "INVALID_SEMVER"

    def __init__(self, version: Any, context: Optional[Dict[str, Any]] = None) -> None:
        context = context or {}
        context["version"] = version
        super().__init__(
            f"Invalid semantic version {version!r}. Expected format: 'MAJOR.MINOR.PATCH'",
            context=context,
        )
        self.version = version


class VersionNotIncreasingError(ManifestEngineError):
    """Raised when a publish or upgrade targets a version that is not strictly newer."""

    code = "VERSION_NOT_INCREASING"

    def __init__(
        self,
        current_version: str,
        requested_version: str,
        app_id: Optional[str] = None,
    ) -> None:
        context: Dict[str, Any] = {
            "current_version": current_version,
            "requested_version": requested_version,
        }
        if app_id:
            context["app_id"] = app_id
        super().__init__(
            f"Version {requested_version} is not greater than {current_version}",
            context=context,
        )
        self.current_version = current_version
        self.requested_version = requested_version
        self.app_id = app_id


class BreakingChangeVersionMismatchError(ManifestEngineError):
    """
    Raised when a settings schema change is breaking but the version bump is not MAJOR.

    Attributes:
        bump_kind: Bump that was attempted (MINOR, PATCH)
        breaking_changes: Paths of the changes that made the diff breaking
    """

    code = "BREAKING_CHANGE_VERSION_MISMATCH"

    def __init__(
        self,
        app_id: str,
        current_version: str,
        requested_version: str,
        bump_kind: str,
        breaking_changes: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(
            f"Settings schema change from {current_version} to {requested_version} is "
            f"breaking and requires a MAJOR version bump (got {bump_kind})",
            context={
                "app_id": app_id,
                "current_version": current_version,
                "requested_version": requested_version,
                "bump_kind": bump_kind,
                "breaking_changes": breaking_changes or [],
            },
        )
        self.app_id = app_id
        self.bump_kind = bump_kind
        self.breaking_changes = breaking_changes or []


# ============================================================================
# MANIFEST / SCHEMA ERRORS
# ============================================================================


class InvalidManifestError(ManifestEngineError):
    """
    Raised when a manifest document is structurally invalid.

    Attributes:
        error_paths: List of JSON paths with validation errors
    """

    code = "INVALID_MANIFEST"

    def __init__(
        self,
        message: str,
        error_paths: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if error_paths:
            context["error_paths"] = error_paths
        super().__init__(message, context=context)
        self.error_paths = error_paths


class InvalidSettingsSchemaError(InvalidManifestError):
    """Raised when a manifest's settings schema uses unsupported structure."""

    code = "INVALID_SETTINGS_SCHEMA"

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message, error_paths=[path or "settings"])
        self.path = path


class SettingsValidationError(ManifestEngineError):
    """
    Raised when room settings don't satisfy the target settings schema.

    ``path``/``expected``/``actual`` describe the first failure; ``errors``
    holds every failure found.
    """

    code = "SETTINGS_VALIDATION_ERROR"

    def __init__(
        self,
        path: str,
        expected: Any,
        actual: Any,
        errors: Optional[List[Any]] = None,
        version: Optional[str] = None,
    ) -> None:
        errors = errors or []
        context: Dict[str, Any] = {
            "path": path,
            "expected": expected,
            "actual": actual,
            "errors": [e.to_dict() if hasattr(e, "to_dict") else e for e in errors],
        }
        if version:
            context["version"] = version
        super().__init__(
            f"Settings do not match schema at '{path}': expected {expected}, got {actual}",
            context=context,
        )
        self.path = path
        self.expected = expected
        self.actual = actual
        self.errors = errors
        self.version = version


# ============================================================================
# REGISTRY / ROOM ERRORS
# ============================================================================


class DuplicateApplicationError(ManifestEngineError):
    """Raised when registering an app id that already exists."""

    code = "DUPLICATE_APPLICATION"

    def __init__(self, app_id: str) -> None:
        super().__init__(f"Application '{app_id}' is already registered", {"app_id": app_id})
        self.app_id = app_id


class ApplicationNotFoundError(ManifestEngineError):
    """Raised when an app id is unknown."""

    code = "APPLICATION_NOT_FOUND"

    def __init__(self, app_id: str) -> None:
        super().__init__(f"Application '{app_id}' not found", {"app_id": app_id})
        self.app_id = app_id


class ApplicationInactiveError(ManifestEngineError):
    """Raised when creating a room for an app that has been deactivated."""

    code = "APPLICATION_INACTIVE"

    def __init__(self, app_id: str) -> None:
        super().__init__(f"Application '{app_id}' is inactive", {"app_id": app_id})
        self.app_id = app_id


class RoomNotFoundError(ManifestEngineError):
    """Raised when a room id is unknown."""

    code = "ROOM_NOT_FOUND"

    def __init__(self, room_id: str) -> None:
        super().__init__(f"Room '{room_id}' not found", {"room_id": room_id})
        self.room_id = room_id


class ManifestVersionNotFoundError(ManifestEngineError):
    """
    Raised when a room's locked version has no matching manifest.

    This is a data-integrity fault: it can only happen when a superseded
    manifest was not archived. It is never retried.
    """

    code = "MANIFEST_VERSION_NOT_FOUND"

    def __init__(self, app_id: str, version: str, room_id: Optional[str] = None) -> None:
        context: Dict[str, Any] = {"app_id": app_id, "version": version}
        if room_id:
            context["room_id"] = room_id
        super().__init__(
            f"No manifest found for application '{app_id}' at version {version}",
            context=context,
        )
        self.app_id = app_id
        self.version = version
        self.room_id = room_id


class TargetVersionNotFoundError(ManifestEngineError):
    """Raised when an upgrade or deprecation names a version that was never published."""

    code = "TARGET_VERSION_NOT_FOUND"

    def __init__(self, app_id: str, version: str) -> None:
        super().__init__(
            f"Application '{app_id}' has never published version {version}",
            context={"app_id": app_id, "version": version},
        )
        self.app_id = app_id
        self.version = version


class CannotDeprecateCurrentVersionError(ManifestEngineError):
    """Raised when deprecating the version that is still current."""

    code = "CANNOT_DEPRECATE_CURRENT_VERSION"

    def __init__(self, app_id: str, version: str) -> None:
        super().__init__(
            f"Version {version} is the current version of '{app_id}'; "
            "publish a newer version before deprecating it",
            context={"app_id": app_id, "version": version},
        )


class VersionAlreadyDeprecatedError(ManifestEngineError):
    """Raised when deprecating a history entry a second time."""

    code = "VERSION_ALREADY_DEPRECATED"

    def __init__(self, app_id: str, version: str) -> None:
        super().__init__(
            f"Version {version} of '{app_id}' is already deprecated",
            context={"app_id": app_id, "version": version},
        )


# ============================================================================
# MIGRATION ERRORS
# ============================================================================


class MigrationRequiredError(ManifestEngineError):
    """
    Raised when a room's settings cannot move to the target version as-is.

    Attributes:
        missing_fields: Required fields absent from the settings
        invalid_fields: Fields present with the wrong type or enum value
    """

    code = "MIGRATION_REQUIRED"

    def __init__(
        self,
        room_id: Optional[str],
        target_version: str,
        missing_fields: List[str],
        invalid_fields: List[str],
    ) -> None:
        super().__init__(
            f"Room settings require migration to reach version {target_version}",
            context={
                "room_id": room_id,
                "target_version": target_version,
                "missing_fields": missing_fields,
                "invalid_fields": invalid_fields,
            },
        )
        self.room_id = room_id
        self.target_version = target_version
        self.missing_fields = missing_fields
        self.invalid_fields = invalid_fields


class IncompatibleMigrationError(ManifestEngineError):
    """Raised when supplied migration data still leaves the settings invalid."""

    code = "INCOMPATIBLE_MIGRATION"

    def __init__(self, room_id: Optional[str], target_version: str, errors: List[Any]) -> None:
        super().__init__(
            f"Migration data does not make room settings valid for version {target_version}",
            context={
                "room_id": room_id,
                "target_version": target_version,
                "errors": [e.to_dict() if hasattr(e, "to_dict") else e for e in errors],
            },
        )
        self.room_id = room_id
        self.target_version = target_version
        self.errors = errors


# ============================================================================
# ACCESS / CONCURRENCY ERRORS
# ============================================================================


class PermissionDeniedError(ManifestEngineError):
    """Raised when the authorization collaborator rejects an action."""

    code = "PERMISSION_DENIED"

    def __init__(self, actor_id: Optional[str], action: str, resource_id: str) -> None:
        super().__init__(
            f"Actor '{actor_id}' is not allowed to perform '{action}' on '{resource_id}'",
            context={"actor_id": actor_id, "action": action, "resource_id": resource_id},
        )
        self.actor_id = actor_id
        self.action = action
        self.resource_id = resource_id


class ConcurrentModificationError(ManifestEngineError):
    """Raised when a compare-and-swap write keeps losing to concurrent writers."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, resource: str, resource_id: str, attempts: int) -> None:
        super().__init__(
            f"{resource} '{resource_id}' was modified concurrently "
            f"(gave up after {attempts} attempt(s))",
            context={"resource": resource, "resource_id": resource_id, "attempts": attempts},
        )
        self.resource_id = resource_id
        self.attempts = attempts
