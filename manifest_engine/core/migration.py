"""
Migration coordinator.

Moves a room to a newer manifest version. The outcome is decided by one
question: does the settings document validate against the target schema,
either as-is (AUTOMATIC) or after shallow-merging caller supplied
``migration_data`` (ASSISTED)? Anything else is rejected without mutation;
the caller then supplies a fully transformed payload through
``manual_migrate``. Fields are never renamed or retyped automatically.

This module is part of MANIFEST_ENGINE.
"""

import copy
import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..exceptions import (
    ConcurrentModificationError,
    IncompatibleMigrationError,
    MigrationRequiredError,
    VersionNotIncreasingError,
)
from ..observability import get_logger as get_contextual_logger
from ..repositories.base import RoomRepository
from .manifest import settings_schema_of
from .registry import ManifestRegistry
from .resolver import VersionResolver
from .semver import is_greater, parse_version
from .settings_schema import FieldError, SchemaNode, collect_errors, validate
from .types import Room, utcnow

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


class MigrationOutcome(str, enum.Enum):
    AUTOMATIC = "AUTOMATIC"
    ASSISTED = "ASSISTED"
    MANUAL = "MANUAL"


@dataclass
class MigrationResult:
    room: Room
    outcome: MigrationOutcome
    from_version: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "room": self.room.to_dict(),
            "outcome": self.outcome.value,
            "from_version": self.from_version,
            "to_version": self.room.app_manifest_version,
        }


class MigrationCoordinator:
    """
    Orchestrates automatic, assisted and manual room upgrades.
    """

    def __init__(
        self,
        registry: ManifestRegistry,
        rooms: RoomRepository,
        resolver: VersionResolver,
    ) -> None:
        self._registry = registry
        self._rooms = rooms
        self._resolver = resolver

    async def _target_schema(self, room: Room, target_version: str) -> SchemaNode:
        if not is_greater(target_version, room.app_manifest_version):
            raise VersionNotIncreasingError(
                room.app_manifest_version, target_version, app_id=room.app_id
            )
        # One consistent read of the application at resolution time
        app = await self._registry.get_application(room.app_id)
        return settings_schema_of(self._resolver.resolve_version(app, target_version))

    async def upgrade_room(
        self,
        room: Room,
        target_version: str,
        migration_data: Optional[Dict[str, Any]] = None,
    ) -> MigrationResult:
        """
        Upgrade ``room`` to ``target_version``.

        Raises:
            InvalidSemverError: ``target_version`` is malformed
            VersionNotIncreasingError: Target is not newer than the lock
            TargetVersionNotFoundError: Target was never published
            MigrationRequiredError: Settings don't fit and no migration data was given,
                or type/enum failures remain after merging it
            IncompatibleMigrationError: Only fields were missing and the merge left
                some unresolved
            ConcurrentModificationError: The room was written meanwhile
        """
        target_version = str(parse_version(target_version))
        schema = await self._target_schema(room, target_version)

        errors = collect_errors(room.app_settings, schema)
        if not errors:
            return await self._commit(
                room, target_version, room.app_settings, MigrationOutcome.AUTOMATIC
            )

        if migration_data is None:
            raise self._migration_required(room, target_version, errors)

        merged = {**room.app_settings, **migration_data}
        remaining = collect_errors(merged, schema)
        if not remaining:
            return await self._commit(room, target_version, merged, MigrationOutcome.ASSISTED)
        if all(e.kind == FieldError.MISSING for e in errors):
            raise IncompatibleMigrationError(room.id, target_version, remaining)
        # Type or enum failures the data did not repair need a manual migration
        raise self._migration_required(room, target_version, remaining)

    def _migration_required(
        self, room: Room, target_version: str, errors: List[FieldError]
    ) -> MigrationRequiredError:
        missing = [e.path for e in errors if e.kind == FieldError.MISSING]
        invalid = [e.path for e in errors if e.kind != FieldError.MISSING]
        contextual_logger.info(
            "Room upgrade needs migration",
            extra={
                "room_id": room.id,
                "target_version": target_version,
                "missing_fields": missing,
                "invalid_fields": invalid,
            },
        )
        return MigrationRequiredError(room.id, target_version, missing, invalid)

    async def manual_migrate(
        self,
        room: Room,
        target_version: str,
        new_settings: Dict[str, Any],
    ) -> MigrationResult:
        """
        Replace settings with a caller-transformed payload and move the lock.

        Raises:
            SettingsValidationError: ``new_settings`` don't match the target schema
            VersionNotIncreasingError, TargetVersionNotFoundError,
            ConcurrentModificationError: As for ``upgrade_room``
        """
        target_version = str(parse_version(target_version))
        schema = await self._target_schema(room, target_version)
        validate(new_settings, schema, version=target_version)
        return await self._commit(room, target_version, new_settings, MigrationOutcome.MANUAL)

    async def _commit(
        self,
        room: Room,
        target_version: str,
        settings: Dict[str, Any],
        outcome: MigrationOutcome,
    ) -> MigrationResult:
        from_version = room.app_manifest_version
        settings = copy.deepcopy(settings)
        if not await self._rooms.update_lock(room.id, room.revision, target_version, settings):
            logger.warning(
                f"Room '{room.id}' was written concurrently during upgrade from {from_version}"
            )
            raise ConcurrentModificationError("Room", room.id, 1)

        contextual_logger.info(
            "Room upgraded",
            extra={
                "room_id": room.id,
                "app_id": room.app_id,
                "from_version": from_version,
                "to_version": target_version,
                "outcome": outcome.value,
            },
        )
        room.app_manifest_version = target_version
        room.app_settings = settings
        room.revision += 1
        room.updated_at = utcnow()
        return MigrationResult(room=room, outcome=outcome, from_version=from_version)
