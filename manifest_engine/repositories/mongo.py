"""
MongoDB Repository Implementation

Implements the repository contracts on motor collections. Application
aggregates are stored one document per app (``_id`` = app id) with the
manifest history embedded as an array. Every application and room write is a
single-document update guarded by ``revision``, which MongoDB applies atomically.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from ..core.types import Application, ManifestHistoryEntry, Room, utcnow
from ..exceptions import DuplicateApplicationError
from .base import ApplicationRepository, RoomRepository

logger = logging.getLogger(__name__)


def _object_id(value: str) -> Any:
    return ObjectId(value) if ObjectId.is_valid(value) else value


class MongoApplicationRepository(ApplicationRepository):
    """
    MongoDB implementation of ``ApplicationRepository``.

    Example:
        repo = MongoApplicationRepository(db.applications)
        app = await repo.get("app_lottery_v1")
    """

    def __init__(self, collection: AsyncIOMotorCollection):
        """
        Args:
            collection: Motor collection holding application documents
        """
        self._collection = collection

    async def get(self, app_id: str) -> Optional[Application]:
        doc = await self._collection.find_one({"_id": app_id})
        if doc is None:
            return None
        return Application.from_document(doc)

    async def insert(self, app: Application) -> None:
        try:
            await self._collection.insert_one(app.to_document())
        except DuplicateKeyError as e:
            raise DuplicateApplicationError(app.app_id) from e
        logger.debug(f"Inserted application '{app.app_id}' at {app.manifest_version}")

    async def append_history_and_swap(
        self,
        app_id: str,
        expected_revision: int,
        entry: ManifestHistoryEntry,
        manifest: Dict[str, Any],
        manifest_version: str,
        published_at: datetime,
    ) -> bool:
        result = await self._collection.update_one(
            {"_id": app_id, "revision": expected_revision},
            {
                "$push": {"manifest_history": entry.to_document()},
                "$set": {
                    "manifest": manifest,
                    "manifest_version": manifest_version,
                    "published_at": published_at,
                    "updated_at": utcnow(),
                },
                "$inc": {"revision": 1},
            },
        )
        return result.matched_count == 1

    async def mark_deprecated(
        self, app_id: str, expected_revision: int, entry: ManifestHistoryEntry
    ) -> bool:
        result = await self._collection.update_one(
            {
                "_id": app_id,
                "revision": expected_revision,
                "manifest_history": {
                    "$elemMatch": {"version": entry.version, "deprecated_at": None}
                },
            },
            {
                "$set": {
                    "manifest_history.$.deprecated_at": entry.deprecated_at,
                    "manifest_history.$.deprecation_reason": entry.deprecation_reason,
                    "updated_at": utcnow(),
                },
                "$inc": {"revision": 1},
            },
        )
        return result.matched_count == 1

    async def set_active(self, app_id: str, expected_revision: int, is_active: bool) -> bool:
        result = await self._collection.update_one(
            {"_id": app_id, "revision": expected_revision},
            {"$set": {"is_active": is_active, "updated_at": utcnow()}, "$inc": {"revision": 1}},
        )
        return result.matched_count == 1


class MongoRoomRepository(RoomRepository):
    """MongoDB implementation of ``RoomRepository``."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self._collection = collection

    async def ensure_indexes(self) -> None:
        """Create the (app_id, app_manifest_version) index used by affected-room lookups."""
        await self._collection.create_index(
            [("app_id", ASCENDING), ("app_manifest_version", ASCENDING)],
            name="app_id_manifest_version",
        )

    async def add(self, room: Room) -> str:
        doc = room.to_document()
        doc.pop("_id", None)
        result = await self._collection.insert_one(doc)
        room.id = str(result.inserted_id)
        logger.debug(f"Added room id={room.id} locked to {room.app_manifest_version}")
        return room.id

    async def get(self, room_id: str) -> Optional[Room]:
        doc = await self._collection.find_one({"_id": _object_id(room_id)})
        if doc is None:
            return None
        return Room.from_document(doc)

    async def update_lock(
        self,
        room_id: str,
        expected_revision: int,
        new_version: str,
        app_settings: Dict[str, Any],
    ) -> bool:
        result = await self._collection.update_one(
            {"_id": _object_id(room_id), "revision": expected_revision},
            {
                "$set": {
                    "app_manifest_version": new_version,
                    "app_settings": app_settings,
                    "updated_at": utcnow(),
                },
                "$inc": {"revision": 1},
            },
        )
        return result.matched_count == 1

    async def update_settings(
        self, room_id: str, expected_revision: int, app_settings: Dict[str, Any]
    ) -> bool:
        result = await self._collection.update_one(
            {"_id": _object_id(room_id), "revision": expected_revision},
            {
                "$set": {"app_settings": app_settings, "updated_at": utcnow()},
                "$inc": {"revision": 1},
            },
        )
        return result.matched_count == 1

    async def find_by_version(self, app_id: str, version: str) -> List[Room]:
        cursor = self._collection.find({"app_id": app_id, "app_manifest_version": version})
        docs = await cursor.to_list(length=None)
        return [Room.from_document(doc) for doc in docs]

    async def delete(self, room_id: str) -> bool:
        result = await self._collection.delete_one({"_id": _object_id(room_id)})
        return result.deleted_count > 0
