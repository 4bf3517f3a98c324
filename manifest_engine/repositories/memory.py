"""
In-memory repository implementations.

Used for unit tests and for embedding the engine without a database. Data
is stored as plain documents and re-hydrated on every read, so callers
never share mutable state with the store.
"""

import copy
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.types import Application, ManifestHistoryEntry, Room, utcnow
from ..exceptions import DuplicateApplicationError
from .base import ApplicationRepository, RoomRepository

logger = logging.getLogger(__name__)


class InMemoryApplicationRepository(ApplicationRepository):
    """
    Application store backed by a dictionary.

    Each write checks and bumps ``revision`` without awaiting in between, so
    it is atomic with respect to other coroutines on the same event loop.
    """

    def __init__(self) -> None:
        self._storage: Dict[str, Dict[str, Any]] = {}

    async def get(self, app_id: str) -> Optional[Application]:
        data = self._storage.get(app_id)
        if data is None:
            return None
        return Application.from_document(copy.deepcopy(data))

    async def insert(self, app: Application) -> None:
        if app.app_id in self._storage:
            raise DuplicateApplicationError(app.app_id)
        self._storage[app.app_id] = app.to_document()

    def _current(self, app_id: str, expected_revision: int) -> Optional[Dict[str, Any]]:
        data = self._storage.get(app_id)
        if data is None or data["revision"] != expected_revision:
            return None
        return data

    async def append_history_and_swap(
        self,
        app_id: str,
        expected_revision: int,
        entry: ManifestHistoryEntry,
        manifest: Dict[str, Any],
        manifest_version: str,
        published_at: datetime,
    ) -> bool:
        data = self._current(app_id, expected_revision)
        if data is None:
            return False
        data["manifest_history"].append(entry.to_document())
        data["manifest"] = copy.deepcopy(manifest)
        data["manifest_version"] = manifest_version
        data["published_at"] = published_at
        data["revision"] += 1
        data["updated_at"] = utcnow()
        return True

    async def mark_deprecated(
        self, app_id: str, expected_revision: int, entry: ManifestHistoryEntry
    ) -> bool:
        data = self._current(app_id, expected_revision)
        if data is None:
            return False
        for stored in data["manifest_history"]:
            if stored["version"] == entry.version and stored.get("deprecated_at") is None:
                stored["deprecated_at"] = entry.deprecated_at
                stored["deprecation_reason"] = entry.deprecation_reason
                data["revision"] += 1
                data["updated_at"] = utcnow()
                return True
        return False

    async def set_active(self, app_id: str, expected_revision: int, is_active: bool) -> bool:
        data = self._current(app_id, expected_revision)
        if data is None:
            return False
        data["is_active"] = is_active
        data["revision"] += 1
        data["updated_at"] = utcnow()
        return True

    def clear(self) -> None:
        """Clear all applications (useful for test setup)."""
        self._storage.clear()


class InMemoryRoomRepository(RoomRepository):
    """
    Room store backed by a dictionary with sequential string ids.

    Writes check and bump the room's ``revision`` without awaiting in between.
    """

    def __init__(self) -> None:
        self._storage: Dict[str, Dict[str, Any]] = {}
        self._counter = 0

    async def add(self, room: Room) -> str:
        self._counter += 1
        room.id = str(self._counter)
        self._storage[room.id] = room.to_document()
        logger.debug(f"Added room id={room.id} locked to {room.app_manifest_version}")
        return room.id

    async def get(self, room_id: str) -> Optional[Room]:
        data = self._storage.get(room_id)
        if data is None:
            return None
        return Room.from_document(copy.deepcopy(data))

    async def update_lock(
        self,
        room_id: str,
        expected_revision: int,
        new_version: str,
        app_settings: Dict[str, Any],
    ) -> bool:
        data = self._storage.get(room_id)
        if data is None or data["revision"] != expected_revision:
            return False
        data["app_manifest_version"] = new_version
        data["app_settings"] = copy.deepcopy(app_settings)
        data["revision"] += 1
        data["updated_at"] = utcnow()
        return True

    async def update_settings(
        self, room_id: str, expected_revision: int, app_settings: Dict[str, Any]
    ) -> bool:
        data = self._storage.get(room_id)
        if data is None or data["revision"] != expected_revision:
            return False
        data["app_settings"] = copy.deepcopy(app_settings)
        data["revision"] += 1
        data["updated_at"] = utcnow()
        return True

    async def find_by_version(self, app_id: str, version: str) -> List[Room]:
        return [
            Room.from_document(copy.deepcopy(data))
            for data in self._storage.values()
            if data["app_id"] == app_id and data["app_manifest_version"] == version
        ]

    async def delete(self, room_id: str) -> bool:
        return self._storage.pop(room_id, None) is not None

    def clear(self) -> None:
        """Clear all rooms (useful for test setup)."""
        self._storage.clear()
        self._counter = 0
