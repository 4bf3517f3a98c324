"""
Unit tests for the MongoDB repositories.

Uses mocked motor collections; no database is required.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from manifest_engine.core.types import Application, ManifestHistoryEntry, Room, utcnow
from manifest_engine.exceptions import DuplicateApplicationError
from manifest_engine.repositories import MongoApplicationRepository, MongoRoomRepository


def _update_result(matched: int) -> MagicMock:
    result = MagicMock()
    result.matched_count = matched
    return result


def _app(**overrides) -> Application:
    fields = {
        "app_id": "app_lottery_v1",
        "manifest": {"meta": {"name": "Lottery", "version": "1.0.0"}},
        "manifest_version": "1.0.0",
        "owner_id": "owner-1",
    }
    fields.update(overrides)
    return Application(**fields)


class TestMongoApplicationRepository:
    """Test application persistence on a motor collection."""

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_collection):
        """Test that an unknown app id returns None."""
        repo = MongoApplicationRepository(mock_collection)
        assert await repo.get("nope") is None
        mock_collection.find_one.assert_awaited_once_with({"_id": "nope"})

    @pytest.mark.asyncio
    async def test_get_converts_naive_datetimes(self, mock_collection):
        """Test that stored naive UTC datetimes come back timezone aware."""
        naive = datetime(2024, 1, 1, 12, 0, 0)
        doc = _app().to_document()
        doc.update(published_at=naive, created_at=naive, updated_at=naive)
        doc["manifest_history"] = [
            {
                "seq": 1,
                "version": "0.9.0",
                "manifest": {"meta": {"version": "0.9.0"}},
                "published_at": naive,
                "archived_at": naive,
                "deprecated_at": None,
                "deprecation_reason": None,
            }
        ]
        mock_collection.find_one = AsyncMock(return_value=doc)
        repo = MongoApplicationRepository(mock_collection)

        app = await repo.get("app_lottery_v1")

        assert app.published_at.tzinfo is timezone.utc
        assert app.manifest_history[0].archived_at.tzinfo is timezone.utc
        assert app.known_versions() == ["0.9.0", "1.0.0"]

    @pytest.mark.asyncio
    async def test_insert_duplicate(self, mock_collection):
        """Test that a duplicate key becomes DuplicateApplicationError."""
        mock_collection.insert_one = AsyncMock(side_effect=DuplicateKeyError("dup"))
        repo = MongoApplicationRepository(mock_collection)
        with pytest.raises(DuplicateApplicationError) as exc_info:
            await repo.insert(_app())
        assert exc_info.value.app_id == "app_lottery_v1"

    @pytest.mark.asyncio
    async def test_insert_uses_app_id_as_key(self, mock_collection):
        """Test that the document is keyed by app id."""
        repo = MongoApplicationRepository(mock_collection)
        await repo.insert(_app())
        doc = mock_collection.insert_one.call_args[0][0]
        assert doc["_id"] == "app_lottery_v1"
        assert doc["revision"] == 0

    @pytest.mark.asyncio
    async def test_swap_is_guarded_by_revision(self, mock_collection):
        """Test the compare-and-swap filter and the result mapping."""
        mock_collection.update_one = AsyncMock(return_value=_update_result(1))
        repo = MongoApplicationRepository(mock_collection)
        now = utcnow()
        entry = ManifestHistoryEntry(
            seq=1,
            version="1.0.0",
            manifest={"meta": {"version": "1.0.0"}},
            published_at=now,
            archived_at=now,
        )

        swapped = await repo.append_history_and_swap(
            "app_lottery_v1", 4, entry, {"meta": {"version": "1.1.0"}}, "1.1.0", now
        )

        assert swapped is True
        filter_doc, update_doc = mock_collection.update_one.call_args[0]
        assert filter_doc == {"_id": "app_lottery_v1", "revision": 4}
        assert update_doc["$push"]["manifest_history"]["version"] == "1.0.0"
        assert update_doc["$set"]["manifest_version"] == "1.1.0"
        assert update_doc["$inc"] == {"revision": 1}

    @pytest.mark.asyncio
    async def test_swap_lost_race(self, mock_collection):
        """Test that a stale revision reports False."""
        mock_collection.update_one = AsyncMock(return_value=_update_result(0))
        repo = MongoApplicationRepository(mock_collection)
        assert not await repo.set_active("app_lottery_v1", 1, False)

    @pytest.mark.asyncio
    async def test_mark_deprecated_targets_undeprecated_entry(self, mock_collection):
        """Test that deprecation matches only a not-yet-deprecated entry."""
        mock_collection.update_one = AsyncMock(return_value=_update_result(1))
        repo = MongoApplicationRepository(mock_collection)

        now = utcnow()
        entry = ManifestHistoryEntry(
            seq=1,
            version="1.0.0",
            manifest={"meta": {"version": "1.0.0"}},
            published_at=now,
            archived_at=now,
        ).deprecate("EOL", at=now)

        assert await repo.mark_deprecated("app_lottery_v1", 2, entry)

        filter_doc, update_doc = mock_collection.update_one.call_args[0]
        assert filter_doc["manifest_history"] == {
            "$elemMatch": {"version": "1.0.0", "deprecated_at": None}
        }
        assert update_doc["$set"]["manifest_history.$.deprecation_reason"] == "EOL"
        assert update_doc["$set"]["manifest_history.$.deprecated_at"] == now


class TestMongoRoomRepository:
    """Test room persistence on a motor collection."""

    @pytest.mark.asyncio
    async def test_add_sets_id(self, mock_collection):
        """Test that the inserted id is assigned back to the room."""
        oid = ObjectId()
        mock_collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id=oid))
        repo = MongoRoomRepository(mock_collection)
        room = Room(app_id="app_lottery_v1", app_manifest_version="1.0.0", app_settings={})

        room_id = await repo.add(room)

        assert room_id == str(oid)
        assert room.id == str(oid)
        assert "_id" not in mock_collection.insert_one.call_args[0][0]

    @pytest.mark.asyncio
    async def test_get_by_object_id(self, mock_collection):
        """Test that hex ids are queried as ObjectIds."""
        oid = ObjectId()
        now = utcnow()
        mock_collection.find_one = AsyncMock(
            return_value={
                "_id": oid,
                "app_id": "app_lottery_v1",
                "app_manifest_version": "1.0.0",
                "app_settings": {"ticketCount": 100},
                "created_at": now,
                "updated_at": now,
            }
        )
        repo = MongoRoomRepository(mock_collection)

        room = await repo.get(str(oid))

        mock_collection.find_one.assert_awaited_once_with({"_id": oid})
        assert room.id == str(oid)
        assert room.app_settings == {"ticketCount": 100}

    @pytest.mark.asyncio
    async def test_update_lock_is_guarded_by_revision(self, mock_collection):
        """Test that the lock moves only from the expected room revision."""
        mock_collection.update_one = AsyncMock(return_value=_update_result(1))
        repo = MongoRoomRepository(mock_collection)

        assert await repo.update_lock("room-1", 3, "2.0.0", {"drawType": "random"})

        filter_doc, update_doc = mock_collection.update_one.call_args[0]
        assert filter_doc == {"_id": "room-1", "revision": 3}
        assert update_doc["$set"]["app_manifest_version"] == "2.0.0"
        assert update_doc["$set"]["app_settings"] == {"drawType": "random"}
        assert update_doc["$inc"] == {"revision": 1}

    @pytest.mark.asyncio
    async def test_update_settings_stale_revision(self, mock_collection):
        """Test that settings edits are guarded by the room revision."""
        mock_collection.update_one = AsyncMock(return_value=_update_result(0))
        repo = MongoRoomRepository(mock_collection)

        assert not await repo.update_settings("room-1", 2, {"ticketCount": 5})

        filter_doc, update_doc = mock_collection.update_one.call_args[0]
        assert filter_doc == {"_id": "room-1", "revision": 2}
        assert update_doc["$inc"] == {"revision": 1}
        assert "app_manifest_version" not in update_doc["$set"]

    @pytest.mark.asyncio
    async def test_find_by_version(self, mock_collection):
        """Test the affected-room query."""
        now = utcnow()
        cursor = MagicMock()
        cursor.to_list = AsyncMock(
            return_value=[
                {
                    "_id": "r1",
                    "app_id": "app_lottery_v1",
                    "app_manifest_version": "1.0.0",
                    "created_at": now,
                    "updated_at": now,
                }
            ]
        )
        mock_collection.find = MagicMock(return_value=cursor)
        repo = MongoRoomRepository(mock_collection)

        rooms = await repo.find_by_version("app_lottery_v1", "1.0.0")

        mock_collection.find.assert_called_once_with(
            {"app_id": "app_lottery_v1", "app_manifest_version": "1.0.0"}
        )
        assert [r.id for r in rooms] == ["r1"]

    @pytest.mark.asyncio
    async def test_ensure_indexes(self, mock_collection):
        """Test that the version lookup index is created."""
        repo = MongoRoomRepository(mock_collection)
        await repo.ensure_indexes()
        keys = mock_collection.create_index.call_args[0][0]
        assert keys == [("app_id", 1), ("app_manifest_version", 1)]
