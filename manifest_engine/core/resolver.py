"""
Version resolver.

Finds the manifest a room must be validated against: the application's
current manifest when the room's lock matches it, otherwise the archived
snapshot with the same version.

This module is part of MANIFEST_ENGINE.
"""

import logging
from typing import Optional

from ..exceptions import ManifestVersionNotFoundError, TargetVersionNotFoundError
from ..observability import get_logger as get_contextual_logger
from ..observability import record_integrity_fault
from .manifest import ManifestDict, settings_schema_of
from .registry import ManifestRegistry
from .settings_schema import FieldError, SchemaNode, collect_errors
from .types import Application, Room

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


def find_manifest(app: Application, version: str) -> Optional[ManifestDict]:
    """Return the manifest ``app`` published as ``version``, or None."""
    if version == app.manifest_version:
        return app.manifest
    entry = app.history_entry(version)
    return entry.manifest if entry is not None else None


class VersionResolver:
    """
    Resolves effective manifests for rooms and arbitrary published versions.
    """

    def __init__(self, registry: ManifestRegistry) -> None:
        self._registry = registry

    def resolve_for_room(self, app: Application, room: Room) -> ManifestDict:
        """
        Resolve a room's locked manifest from an already loaded application.

        Raises:
            ManifestVersionNotFoundError: The lock has no matching manifest.
                This means a superseded manifest was never archived; it is
                logged as critical and never retried.
        """
        manifest = find_manifest(app, room.app_manifest_version)
        if manifest is None:
            record_integrity_fault(app.app_id, room.app_manifest_version)
            contextual_logger.critical(
                "Data integrity fault: room is locked to a manifest version that "
                "is neither current nor archived",
                extra={
                    "app_id": app.app_id,
                    "room_id": room.id,
                    "locked_version": room.app_manifest_version,
                    "current_version": app.manifest_version,
                    "archived_versions": [e.version for e in app.manifest_history],
                },
            )
            raise ManifestVersionNotFoundError(
                app.app_id, room.app_manifest_version, room_id=room.id
            )
        return manifest

    async def get_effective_manifest(self, room: Room) -> ManifestDict:
        """
        Return the manifest ``room`` is locked to.

        Raises:
            ApplicationNotFoundError: The room's application no longer exists
            ManifestVersionNotFoundError: Integrity fault, see ``resolve_for_room``
        """
        app = await self._registry.get_application(room.app_id)
        return self.resolve_for_room(app, room)

    async def get_effective_schema(self, room: Room) -> SchemaNode:
        return settings_schema_of(await self.get_effective_manifest(room))

    @staticmethod
    def resolve_version(app: Application, version: str) -> ManifestDict:
        """
        Resolve a caller-supplied version (upgrade target, deprecation, ...).

        Raises:
            TargetVersionNotFoundError: ``app`` never published ``version``
        """
        manifest = find_manifest(app, version)
        if manifest is None:
            raise TargetVersionNotFoundError(app.app_id, version)
        return manifest

    async def revalidate_room(self, room: Room) -> list[FieldError]:
        """
        Re-check a room's stored settings against its locked schema.

        Returns:
            Every validation failure (empty when the room is consistent)
        """
        schema = await self.get_effective_schema(room)
        errors = collect_errors(room.app_settings, schema)
        if errors:
            logger.warning(
                f"Room '{room.id}' settings no longer match locked version "
                f"{room.app_manifest_version}: {[e.path for e in errors]}"
            )
        return errors
