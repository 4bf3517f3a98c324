"""
Abstract Repository Pattern

Defines the storage contracts the engine needs. Application writes are
compare-and-swap on the aggregate's ``revision``; room settings and lock
writes are compare-and-swap on the room's own ``revision``. A ``False``
return means the precondition no longer held (a concurrent writer won).
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.types import Application, ManifestHistoryEntry, Room


class ApplicationRepository(ABC):
    """
    Storage for Application aggregates.

    Example:
        app = await repo.get("app_lottery_v1")
        swapped = await repo.append_history_and_swap(
            app.app_id, app.revision, entry, new_manifest, "1.1.0", now
        )
    """

    @abstractmethod
    async def get(self, app_id: str) -> Optional[Application]:
        """
        Read one consistent snapshot of an application.

        Returns:
            Application if found, None otherwise
        """

    @abstractmethod
    async def insert(self, app: Application) -> None:
        """
        Create an application.

        Raises:
            DuplicateApplicationError: If the app id already exists
        """

    @abstractmethod
    async def append_history_and_swap(
        self,
        app_id: str,
        expected_revision: int,
        entry: ManifestHistoryEntry,
        manifest: Dict[str, Any],
        manifest_version: str,
        published_at: datetime,
    ) -> bool:
        """
        Archive ``entry`` and make ``manifest`` current in one atomic write.

        Returns:
            True if applied, False if ``expected_revision`` is stale
        """

    @abstractmethod
    async def mark_deprecated(
        self, app_id: str, expected_revision: int, entry: ManifestHistoryEntry
    ) -> bool:
        """
        Copy the deprecation fields of ``entry`` (as returned by
        ``ManifestHistoryEntry.deprecate``) onto the stored, not yet
        deprecated history entry of the same version.

        Returns:
            True if applied, False if the revision is stale or the entry
            is already deprecated
        """

    @abstractmethod
    async def set_active(self, app_id: str, expected_revision: int, is_active: bool) -> bool:
        """
        Toggle whether new rooms may be created for the application.

        Returns:
            True if applied, False if ``expected_revision`` is stale
        """


class RoomRepository(ABC):
    """Storage for Room records."""

    @abstractmethod
    async def add(self, room: Room) -> str:
        """
        Insert a room.

        Returns:
            ID of the created room (also set on ``room.id``)
        """

    @abstractmethod
    async def get(self, room_id: str) -> Optional[Room]:
        """Return the room or None."""

    @abstractmethod
    async def update_lock(
        self,
        room_id: str,
        expected_revision: int,
        new_version: str,
        app_settings: Dict[str, Any],
    ) -> bool:
        """
        Write settings and lock version together, bumping ``revision``.

        Returns:
            True if applied, False if the room's revision is no longer
            ``expected_revision`` (or the room is gone)
        """

    @abstractmethod
    async def update_settings(
        self, room_id: str, expected_revision: int, app_settings: Dict[str, Any]
    ) -> bool:
        """
        Replace settings while keeping the lock, bumping ``revision``.

        Returns:
            True if applied, False if the room was written in the meantime
        """

    @abstractmethod
    async def find_by_version(self, app_id: str, version: str) -> List[Room]:
        """Return every room of ``app_id`` locked to ``version``."""

    @abstractmethod
    async def delete(self, room_id: str) -> bool:
        """
        Delete a room. Application history is unaffected.

        Returns:
            True if the room was deleted, False if not found
        """
