"""
Unit tests for MigrationCoordinator.

Covers automatic, assisted and manual upgrades plus the rejections that
leave a room untouched.
"""

from unittest.mock import AsyncMock

import pytest

from manifest_engine.core.migration import MigrationCoordinator, MigrationOutcome
from manifest_engine.core.resolver import VersionResolver
from manifest_engine.core.rooms import RoomVersionBinder
from manifest_engine.exceptions import (
    ConcurrentModificationError,
    IncompatibleMigrationError,
    InvalidSemverError,
    MigrationRequiredError,
    SettingsValidationError,
    TargetVersionNotFoundError,
    VersionNotIncreasingError,
)

APP_ID = "app_lottery_v1"


@pytest.fixture
def resolver(registry):
    return VersionResolver(registry)


@pytest.fixture
def binder(registry, room_repo, resolver):
    return RoomVersionBinder(registry, room_repo, resolver)


@pytest.fixture
def coordinator(registry, room_repo, resolver):
    return MigrationCoordinator(registry, room_repo, resolver)


class TestUpgradeRoom:
    """Test upgrade outcomes."""

    @pytest.mark.asyncio
    async def test_scenario_c_automatic(self, registry, binder, coordinator, lottery_v1, lottery_v1_1):
        """Test that settings valid for the target move the lock unchanged."""
        await registry.register_app(APP_ID, lottery_v1)
        room = await binder.create_room(APP_ID, {"ticketCount": 100})
        await registry.publish_manifest(APP_ID, lottery_v1_1)

        result = await coordinator.upgrade_room(room, "1.1.0")
        assert result.outcome == MigrationOutcome.AUTOMATIC
        assert result.from_version == "1.0.0"
        assert result.room.app_manifest_version == "1.1.0"

        stored = await binder.get_room(room.id)
        assert stored.app_manifest_version == "1.1.0"
        assert stored.app_settings == {"ticketCount": 100}
        assert result.to_dict()["to_version"] == "1.1.0"

    @pytest.mark.asyncio
    async def test_scenario_d_migration_required_then_assisted(
        self, registry, binder, coordinator, lottery_v1, lottery_v1_1, lottery_v2
    ):
        """Test that missing fields are reported, then supplied via migration data."""
        await registry.register_app(APP_ID, lottery_v1)
        room = await binder.create_room(APP_ID, {"ticketCount": 100})
        await registry.publish_manifest(APP_ID, lottery_v1_1)
        await registry.publish_manifest(APP_ID, lottery_v2)
        room = (await coordinator.upgrade_room(room, "1.1.0")).room

        with pytest.raises(MigrationRequiredError) as exc_info:
            await coordinator.upgrade_room(room, "2.0.0")
        assert exc_info.value.missing_fields == ["drawType"]
        assert exc_info.value.invalid_fields == []

        unchanged = await binder.get_room(room.id)
        assert unchanged.app_manifest_version == "1.1.0"
        assert unchanged.app_settings == {"ticketCount": 100}

        result = await coordinator.upgrade_room(
            unchanged, "2.0.0", migration_data={"drawType": "random"}
        )
        assert result.outcome == MigrationOutcome.ASSISTED
        stored = await binder.get_room(room.id)
        assert stored.app_manifest_version == "2.0.0"
        assert stored.app_settings == {"ticketCount": 100, "drawType": "random"}

    @pytest.mark.asyncio
    async def test_incompatible_migration_data(
        self, registry, binder, coordinator, lottery_v1_1, lottery_v2
    ):
        """Test that merged data which still fails is rejected without mutation."""
        await registry.register_app(APP_ID, lottery_v1_1)
        room = await binder.create_room(APP_ID, {"ticketCount": 100})
        await registry.publish_manifest(APP_ID, lottery_v2)

        with pytest.raises(IncompatibleMigrationError) as exc_info:
            await coordinator.upgrade_room(room, "2.0.0", migration_data={"drawType": 3})
        assert [e.path for e in exc_info.value.errors] == ["drawType"]
        assert (await binder.get_room(room.id)).app_manifest_version == "1.1.0"

    @pytest.mark.asyncio
    async def test_invalid_fields_reported(
        self, registry, binder, coordinator, room_repo, lottery_v1_1, lottery_v2
    ):
        """Test that values invalid under the target are listed separately."""
        await registry.register_app(APP_ID, lottery_v1_1)
        room = await binder.create_room(APP_ID, {"ticketCount": 100})
        await registry.publish_manifest(APP_ID, lottery_v2)
        room.app_settings = {"ticketCount": "many"}

        with pytest.raises(MigrationRequiredError) as exc_info:
            await coordinator.upgrade_room(room, "2.0.0")
        assert exc_info.value.missing_fields == ["drawType"]
        assert exc_info.value.invalid_fields == ["ticketCount"]

    @pytest.mark.asyncio
    async def test_unrepaired_type_mismatch_requires_migration(
        self, registry, binder, coordinator, lottery_v1_1, lottery_v2
    ):
        """Test that migration data which leaves a type mismatch asks for manual migration."""
        await registry.register_app(APP_ID, lottery_v1_1)
        room = await binder.create_room(APP_ID, {"ticketCount": 100})
        await registry.publish_manifest(APP_ID, lottery_v2)
        room.app_settings = {"ticketCount": "many"}

        with pytest.raises(MigrationRequiredError) as exc_info:
            await coordinator.upgrade_room(room, "2.0.0", migration_data={"drawType": "random"})
        assert exc_info.value.missing_fields == []
        assert exc_info.value.invalid_fields == ["ticketCount"]

        stored = await binder.get_room(room.id)
        assert stored.app_manifest_version == "1.1.0"
        assert stored.app_settings == {"ticketCount": 100}

    @pytest.mark.asyncio
    async def test_migration_data_can_repair_type_mismatch(
        self, registry, binder, coordinator, lottery_v1_1, lottery_v2
    ):
        """Test that migration data overriding an invalid value is accepted."""
        await registry.register_app(APP_ID, lottery_v1_1)
        room = await binder.create_room(APP_ID, {"ticketCount": 100})
        await registry.publish_manifest(APP_ID, lottery_v2)
        room.app_settings = {"ticketCount": "many"}

        result = await coordinator.upgrade_room(
            room, "2.0.0", migration_data={"ticketCount": 5, "drawType": "random"}
        )
        assert result.outcome == MigrationOutcome.ASSISTED
        assert result.room.app_settings == {"ticketCount": 5, "drawType": "random"}

    @pytest.mark.asyncio
    async def test_merge_keeps_existing_keys(
        self, registry, binder, coordinator, lottery_v1_1, lottery_v2
    ):
        """Test that incoming keys win and no keys are removed."""
        await registry.register_app(APP_ID, lottery_v1_1)
        room = await binder.create_room(APP_ID, {"ticketCount": 100, "theme": "christmas"})
        await registry.publish_manifest(APP_ID, lottery_v2)

        result = await coordinator.upgrade_room(
            room, "2.0.0", migration_data={"drawType": "weighted", "ticketCount": 50}
        )
        assert result.room.app_settings == {
            "ticketCount": 50,
            "theme": "christmas",
            "drawType": "weighted",
        }

    @pytest.mark.asyncio
    async def test_target_must_be_newer(self, registry, binder, coordinator, lottery_v1):
        """Test that same or older targets are rejected."""
        await registry.register_app(APP_ID, lottery_v1)
        room = await binder.create_room(APP_ID, {"ticketCount": 1})
        with pytest.raises(VersionNotIncreasingError):
            await coordinator.upgrade_room(room, "1.0.0")
        with pytest.raises(VersionNotIncreasingError):
            await coordinator.upgrade_room(room, "0.5.0")

    @pytest.mark.asyncio
    async def test_unpublished_target(self, registry, binder, coordinator, lottery_v1):
        """Test that an unpublished target is a caller error."""
        await registry.register_app(APP_ID, lottery_v1)
        room = await binder.create_room(APP_ID, {"ticketCount": 1})
        with pytest.raises(TargetVersionNotFoundError):
            await coordinator.upgrade_room(room, "9.0.0")

    @pytest.mark.asyncio
    async def test_malformed_target(self, registry, binder, coordinator, lottery_v1):
        """Test that the target version must be strict semver."""
        await registry.register_app(APP_ID, lottery_v1)
        room = await binder.create_room(APP_ID, {"ticketCount": 1})
        with pytest.raises(InvalidSemverError):
            await coordinator.upgrade_room(room, "2.0")

    @pytest.mark.asyncio
    async def test_lost_lock_race(
        self, registry, binder, coordinator, room_repo, lottery_v1, lottery_v1_1
    ):
        """Test that a room upgraded elsewhere meanwhile is not overwritten."""
        await registry.register_app(APP_ID, lottery_v1)
        room = await binder.create_room(APP_ID, {"ticketCount": 1})
        await registry.publish_manifest(APP_ID, lottery_v1_1)
        room_repo.update_lock = AsyncMock(return_value=False)

        with pytest.raises(ConcurrentModificationError):
            await coordinator.upgrade_room(room, "1.1.0")
        assert room.app_manifest_version == "1.0.0"


class TestManualMigrate:
    """Test manual migration with a caller-transformed payload."""

    @pytest.mark.asyncio
    async def test_manual_replaces_settings(
        self, registry, binder, coordinator, lottery_v1_1, lottery_v2
    ):
        """Test that the new settings replace the old ones entirely."""
        await registry.register_app(APP_ID, lottery_v1_1)
        room = await binder.create_room(APP_ID, {"ticketCount": 100, "theme": "new-year"})
        await registry.publish_manifest(APP_ID, lottery_v2)

        result = await coordinator.manual_migrate(
            room, "2.0.0", {"ticketCount": 10, "drawType": "random"}
        )
        assert result.outcome == MigrationOutcome.MANUAL
        stored = await binder.get_room(room.id)
        assert stored.app_settings == {"ticketCount": 10, "drawType": "random"}
        assert stored.app_manifest_version == "2.0.0"

    @pytest.mark.asyncio
    async def test_manual_validates(self, registry, binder, coordinator, lottery_v1_1, lottery_v2):
        """Test that an invalid payload is rejected without mutation."""
        await registry.register_app(APP_ID, lottery_v1_1)
        room = await binder.create_room(APP_ID, {"ticketCount": 100})
        await registry.publish_manifest(APP_ID, lottery_v2)

        with pytest.raises(SettingsValidationError) as exc_info:
            await coordinator.manual_migrate(room, "2.0.0", {"ticketCount": 10})
        assert exc_info.value.version == "2.0.0"
        assert (await binder.get_room(room.id)).app_manifest_version == "1.1.0"
