"""
Manifest registry.

Owns the Application aggregate lifecycle: registration, publishing new
manifest versions (archive-then-swap) and deprecating archived versions.

Publishing is guarded by optimistic concurrency. Each attempt reads a fresh
snapshot, re-runs every check against it and issues one compare-and-swap
write on the aggregate's ``revision``. Losing the race restarts the attempt;
after ``max_retries`` lost races ``ConcurrentModificationError`` surfaces.

This module is part of MANIFEST_ENGINE.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any, Dict, List, Optional, TypeVar

from ..constants import DEFAULT_MAX_CONCURRENCY_RETRIES, MAX_APP_ID_LENGTH
from ..exceptions import (
    ApplicationNotFoundError,
    BreakingChangeVersionMismatchError,
    CannotDeprecateCurrentVersionError,
    ConcurrentModificationError,
    TargetVersionNotFoundError,
    VersionAlreadyDeprecatedError,
    VersionNotIncreasingError,
)
from ..observability import get_logger as get_contextual_logger
from ..repositories.base import ApplicationRepository
from .manifest import ManifestDict, ParsedManifest, parse_manifest, settings_schema_of
from .semver import BumpKind, bump_kind, is_greater, parse_version
from .settings_schema import SchemaDiff, diff_schemas
from .types import Application, ManifestHistoryEntry, utcnow

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)

T = TypeVar("T")


class _Stale:
    pass


_STALE: Any = _Stale()


class ManifestRegistry:
    """
    Registers applications and manages their manifest versions.
    """

    def __init__(
        self,
        applications: ApplicationRepository,
        max_retries: int = DEFAULT_MAX_CONCURRENCY_RETRIES,
    ) -> None:
        """
        Args:
            applications: Application aggregate store
            max_retries: Compare-and-swap attempts per operation
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self._apps = applications
        self._max_retries = max_retries

    async def get_application(self, app_id: str) -> Application:
        """
        Raises:
            ApplicationNotFoundError: If the app id is unknown
        """
        app = await self._apps.get(app_id)
        if app is None:
            raise ApplicationNotFoundError(app_id)
        return app

    async def register_app(
        self,
        app_id: str,
        manifest: ManifestDict,
        owner_id: Optional[str] = None,
    ) -> Application:
        """
        Register an application at the version embedded in ``manifest``.

        Raises:
            InvalidManifestError: Structure or settings schema is invalid
            InvalidSemverError: Embedded version is malformed
            DuplicateApplicationError: ``app_id`` is already registered
        """
        if not isinstance(app_id, str) or not app_id or len(app_id) > MAX_APP_ID_LENGTH:
            raise ValueError(
                f"app_id must be a non-empty string of at most {MAX_APP_ID_LENGTH} characters"
            )
        parsed = parse_manifest(manifest)
        now = utcnow()
        app = Application(
            app_id=app_id,
            manifest=parsed.document,
            manifest_version=parsed.version_string,
            manifest_history=(),
            published_at=now,
            revision=0,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        await self._apps.insert(app)
        contextual_logger.info(
            "Application registered",
            extra={"app_id": app_id, "manifest_version": app.manifest_version},
        )
        return app

    def check_publishable(self, app: Application, parsed: ParsedManifest) -> SchemaDiff:
        """
        Enforce version-bump discipline for publishing ``parsed`` over ``app``.

        Returns:
            The settings schema diff between the current and new manifest

        Raises:
            VersionNotIncreasingError: New version is not strictly greater
            BreakingChangeVersionMismatchError: Breaking diff without a MAJOR bump
        """
        current = app.manifest_version
        new_version = parsed.version_string
        if not is_greater(new_version, current):
            raise VersionNotIncreasingError(current, new_version, app_id=app.app_id)

        kind = bump_kind(current, new_version)
        diff = diff_schemas(settings_schema_of(app.manifest), parsed.settings_schema)
        if diff.is_breaking and kind != BumpKind.MAJOR:
            raise BreakingChangeVersionMismatchError(
                app_id=app.app_id,
                current_version=current,
                requested_version=new_version,
                bump_kind=kind.value,
                breaking_changes=[c.to_dict() for c in diff.breaking_changes],
            )
        return diff

    async def publish_manifest(self, app_id: str, new_manifest: ManifestDict) -> Application:
        """
        Publish a new manifest version, archiving the current one.

        Raises:
            InvalidManifestError, InvalidSemverError: ``new_manifest`` is malformed
            ApplicationNotFoundError: Unknown app id
            VersionNotIncreasingError: Same or older version
            BreakingChangeVersionMismatchError: Breaking diff without a MAJOR bump
            ConcurrentModificationError: Lost every compare-and-swap attempt
        """
        parsed = parse_manifest(new_manifest)

        async def attempt(app: Application) -> Application:
            diff = self.check_publishable(app, parsed)
            now = utcnow()
            entry = ManifestHistoryEntry(
                seq=app.next_seq,
                version=app.manifest_version,
                manifest=app.manifest,
                published_at=app.published_at,
                archived_at=now,
            )
            swapped = await self._apps.append_history_and_swap(
                app_id,
                app.revision,
                entry,
                parsed.document,
                parsed.version_string,
                now,
            )
            if not swapped:
                return _STALE

            contextual_logger.info(
                "Manifest published",
                extra={
                    "app_id": app_id,
                    "previous_version": app.manifest_version,
                    "manifest_version": parsed.version_string,
                    "bump_kind": bump_kind(app.manifest_version, parsed.version_string).value,
                    "schema_diff": diff.classification.value,
                    "history_length": len(app.manifest_history) + 1,
                },
            )
            return replace(
                app,
                manifest=parsed.document,
                manifest_version=parsed.version_string,
                manifest_history=app.manifest_history + (entry,),
                published_at=now,
                revision=app.revision + 1,
                updated_at=now,
            )

        return await self._compare_and_swap(app_id, attempt)

    async def deprecate_version(self, app_id: str, version: str, reason: str) -> None:
        """
        Mark an archived version as deprecated. Rooms locked to it stay valid.

        Raises:
            InvalidSemverError: ``version`` is malformed
            CannotDeprecateCurrentVersionError: ``version`` is still current
            TargetVersionNotFoundError: ``version`` was never published
            VersionAlreadyDeprecatedError: Already deprecated
            ConcurrentModificationError: Lost every compare-and-swap attempt
        """
        version = str(parse_version(version))

        async def attempt(app: Application) -> None:
            if version == app.manifest_version:
                raise CannotDeprecateCurrentVersionError(app_id, version)
            entry = app.history_entry(version)
            if entry is None:
                raise TargetVersionNotFoundError(app_id, version)
            if entry.is_deprecated:
                raise VersionAlreadyDeprecatedError(app_id, version)
            deprecated = entry.deprecate(reason)
            if not await self._apps.mark_deprecated(app_id, app.revision, deprecated):
                return _STALE
            contextual_logger.info(
                "Manifest version deprecated",
                extra={"app_id": app_id, "version": version, "reason": reason},
            )
            return None

        await self._compare_and_swap(app_id, attempt)

    async def set_active(self, app_id: str, is_active: bool) -> Application:
        """Enable or disable room creation for an application."""

        async def attempt(app: Application) -> Application:
            if not await self._apps.set_active(app_id, app.revision, is_active):
                return _STALE
            logger.info(f"Application '{app_id}' is_active={is_active}")
            return replace(app, is_active=is_active, revision=app.revision + 1)

        return await self._compare_and_swap(app_id, attempt)

    async def list_versions(self, app_id: str) -> List[Dict[str, Any]]:
        """Every published version, oldest first, with deprecation metadata."""
        app = await self.get_application(app_id)
        versions: List[Dict[str, Any]] = [
            {
                "version": entry.version,
                "seq": entry.seq,
                "current": False,
                "published_at": entry.published_at.isoformat(),
                "archived_at": entry.archived_at.isoformat(),
                "deprecated": entry.is_deprecated,
                "deprecated_at": (
                    entry.deprecated_at.isoformat() if entry.deprecated_at else None
                ),
                "deprecation_reason": entry.deprecation_reason,
            }
            for entry in app.manifest_history
        ]
        versions.append(
            {
                "version": app.manifest_version,
                "seq": None,
                "current": True,
                "published_at": app.published_at.isoformat(),
                "archived_at": None,
                "deprecated": False,
                "deprecated_at": None,
                "deprecation_reason": None,
            }
        )
        return versions

    async def _compare_and_swap(
        self, app_id: str, attempt: Callable[[Application], Awaitable[T]]
    ) -> T:
        for attempt_no in range(1, self._max_retries + 1):
            app = await self.get_application(app_id)
            outcome = await attempt(app)
            if outcome is not _STALE:
                return outcome
            logger.info(
                f"Revision conflict on application '{app_id}' "
                f"(attempt {attempt_no}/{self._max_retries})"
            )

        contextual_logger.warning(
            "Giving up after repeated revision conflicts",
            extra={"app_id": app_id, "attempts": self._max_retries},
        )
        raise ConcurrentModificationError("Application", app_id, self._max_retries)
