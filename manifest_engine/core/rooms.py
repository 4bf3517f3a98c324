"""
Room version binder.

Creates rooms locked to the application's manifest version at the moment
of creation. Validation and the stored lock come from the same snapshot, so
a publish racing with creation can never leave a room validated against one
version but locked to another.

This module is part of MANIFEST_ENGINE.
"""

import copy
import logging
from typing import Any, Dict, Optional

from ..exceptions import (
    ApplicationInactiveError,
    ConcurrentModificationError,
    RoomNotFoundError,
)
from ..observability import get_logger as get_contextual_logger
from ..repositories.base import RoomRepository
from .manifest import settings_schema_of
from .registry import ManifestRegistry
from .resolver import VersionResolver
from .settings_schema import validate
from .types import Room, utcnow

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


class RoomVersionBinder:
    """
    Creates rooms and edits their settings under the existing lock.
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

    async def get_room(self, room_id: str) -> Room:
        """
        Raises:
            RoomNotFoundError: If the room id is unknown
        """
        room = await self._rooms.get(room_id)
        if room is None:
            raise RoomNotFoundError(room_id)
        return room

    async def create_room(
        self,
        app_id: str,
        app_settings: Dict[str, Any],
        organizer_id: Optional[str] = None,
        name: str = "",
        description: Optional[str] = None,
    ) -> Room:
        """
        Validate settings against the current manifest and persist the lock.

        Raises:
            ApplicationNotFoundError: Unknown app id
            ApplicationInactiveError: App no longer accepts new rooms
            SettingsValidationError: Settings don't match the current schema;
                nothing is created
        """
        app = await self._registry.get_application(app_id)
        if not app.is_active:
            raise ApplicationInactiveError(app_id)

        validate(app_settings, settings_schema_of(app.manifest), version=app.manifest_version)

        now = utcnow()
        room = Room(
            app_id=app_id,
            app_manifest_version=app.manifest_version,
            app_settings=copy.deepcopy(app_settings),
            organizer_id=organizer_id,
            name=name,
            description=description,
            created_at=now,
            updated_at=now,
        )
        await self._rooms.add(room)
        contextual_logger.info(
            "Room created",
            extra={
                "app_id": app_id,
                "room_id": room.id,
                "locked_version": room.app_manifest_version,
            },
        )
        return room

    async def update_room_settings(self, room: Room, app_settings: Dict[str, Any]) -> Room:
        """
        Replace a room's settings, validated against its locked version.

        Raises:
            SettingsValidationError: Settings don't match the locked schema
            ManifestVersionNotFoundError: Integrity fault on the lock
            ConcurrentModificationError: The room was written while updating
        """
        schema = await self._resolver.get_effective_schema(room)
        validate(app_settings, schema, version=room.app_manifest_version)

        settings = copy.deepcopy(app_settings)
        if not await self._rooms.update_settings(room.id, room.revision, settings):
            raise ConcurrentModificationError("Room", room.id, 1)

        logger.info(f"Room '{room.id}' settings updated under {room.app_manifest_version}")
        room.app_settings = settings
        room.revision += 1
        room.updated_at = utcnow()
        return room
