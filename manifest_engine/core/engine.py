"""
Engine

The entry point of MANIFEST_ENGINE. Wires the registry, room binder,
version resolver and migration coordinator over a pair of repositories and
guards every mutating operation with the authorization provider.

Two ways to build one:

    # In-process (tests, embedding)
    engine = ManifestEngine(authz_provider=StaticAuthorizationProvider(grants))

    # MongoDB, configured from MANIFEST_ENGINE_* environment variables
    async with ManifestEngine.from_settings(authz_provider=authz) as engine:
        await engine.register_app("app_lottery_v1", manifest)

This module is part of MANIFEST_ENGINE.
"""

import copy
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from ..auth import check_permission
from ..config import EngineSettings
from ..constants import (
    ACTION_MANAGE_APP,
    ACTION_UPDATE_ROOM,
    ACTION_UPGRADE_ROOM,
    DEFAULT_MAX_CONCURRENCY_RETRIES,
)
from ..exceptions import ConcurrentModificationError, PermissionDeniedError
from ..observability import get_logger as get_contextual_logger
from ..observability import get_metrics_collector, set_app_context, timed_operation
from ..repositories import (
    InMemoryApplicationRepository,
    InMemoryRoomRepository,
    MongoApplicationRepository,
    MongoRoomRepository,
)
from ..repositories.base import ApplicationRepository, RoomRepository
from .connection import ConnectionManager
from .manifest import ManifestDict
from .migration import MigrationCoordinator, MigrationResult
from .registry import ManifestRegistry
from .resolver import VersionResolver
from .rooms import RoomVersionBinder
from .semver import parse_version
from .types import Application, Room

if TYPE_CHECKING:
    from ..auth import AuthorizationProvider

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)

T = TypeVar("T")


class ManifestEngine:
    """
    Manifest versioning and room settings engine.

    Authorization fails closed: without a provider every guarded operation
    is denied.
    """

    def __init__(
        self,
        applications: Optional[ApplicationRepository] = None,
        rooms: Optional[RoomRepository] = None,
        authz_provider: Optional["AuthorizationProvider"] = None,
        max_retries: int = DEFAULT_MAX_CONCURRENCY_RETRIES,
    ) -> None:
        """
        Args:
            applications: Application store (in-memory when omitted)
            rooms: Room store (in-memory when omitted)
            authz_provider: Authorization provider (can be set later)
            max_retries: Compare-and-swap attempts per operation
        """
        self.authz_provider = authz_provider
        self.max_retries = max_retries
        self._settings: Optional[EngineSettings] = None
        self._connection_manager: Optional[ConnectionManager] = None
        self._wire(
            applications if applications is not None else InMemoryApplicationRepository(),
            rooms if rooms is not None else InMemoryRoomRepository(),
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[EngineSettings] = None,
        authz_provider: Optional["AuthorizationProvider"] = None,
    ) -> "ManifestEngine":
        """
        Build a MongoDB backed engine. Call ``initialize()`` before use.

        Raises:
            ConfigurationError: mongo_uri or db_name is missing
        """
        settings = settings if settings is not None else EngineSettings()
        settings.require_mongo()
        engine = cls(authz_provider=authz_provider, max_retries=settings.max_concurrency_retries)
        engine._settings = settings
        engine._connection_manager = ConnectionManager(
            mongo_uri=settings.mongo_uri,
            db_name=settings.db_name,
            max_pool_size=settings.max_pool_size,
            min_pool_size=settings.min_pool_size,
            server_selection_timeout_ms=settings.server_selection_timeout_ms,
        )
        return engine

    def _wire(self, applications: ApplicationRepository, rooms: RoomRepository) -> None:
        self._applications = applications
        self._rooms = rooms
        self.registry = ManifestRegistry(applications, max_retries=self.max_retries)
        self.resolver = VersionResolver(self.registry)
        self.binder = RoomVersionBinder(self.registry, rooms, self.resolver)
        self.migrations = MigrationCoordinator(self.registry, rooms, self.resolver)

    async def initialize(self) -> None:
        """
        Connect to MongoDB and switch to the Mongo repositories.
        A no-op for engines built on injected repositories.

        Raises:
            InitializationError: If MongoDB is unreachable
        """
        if self._connection_manager is None or self._settings is None:
            logger.debug("ManifestEngine uses injected repositories; nothing to initialize")
            return
        if self._connection_manager.initialized:
            return

        await self._connection_manager.initialize()
        rooms = MongoRoomRepository(
            self._connection_manager.collection(self._settings.rooms_collection)
        )
        await rooms.ensure_indexes()
        self._wire(
            MongoApplicationRepository(
                self._connection_manager.collection(self._settings.applications_collection)
            ),
            rooms,
        )

    async def shutdown(self) -> None:
        """Close the MongoDB connection, if any. Idempotent."""
        if self._connection_manager is not None:
            await self._connection_manager.shutdown()

    async def __aenter__(self) -> "ManifestEngine":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    async def _authorize(self, actor_id: Optional[str], action: str, resource_id: str) -> None:
        if await check_permission(self.authz_provider, actor_id, action, resource_id):
            return
        contextual_logger.warning(
            "Permission denied",
            extra={"actor_id": actor_id, "action": action, "resource_id": resource_id},
        )
        raise PermissionDeniedError(actor_id, action, resource_id)

    async def _authorize_room(self, room: Room, actor_id: Optional[str], action: str) -> None:
        if action == ACTION_UPGRADE_ROOM and (not actor_id or room.organizer_id != actor_id):
            contextual_logger.warning(
                "Permission denied: actor is not the room organizer",
                extra={"actor_id": actor_id, "room_id": room.id, "action": action},
            )
            raise PermissionDeniedError(actor_id, action, room.id)
        await self._authorize(actor_id, action, room.id)

    async def _retry_room_write(
        self, room_id: str, write: Callable[[Room], Awaitable[T]]
    ) -> T:
        """Reload the room and repeat ``write`` while its lock keeps moving."""
        for attempt_no in range(1, self.max_retries + 1):
            room = await self.binder.get_room(room_id)
            try:
                return await write(room)
            except ConcurrentModificationError:
                logger.info(
                    f"Lock conflict on room '{room_id}' "
                    f"(attempt {attempt_no}/{self.max_retries})"
                )
        raise ConcurrentModificationError("Room", room_id, self.max_retries)

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    @timed_operation("engine.register_app")
    async def register_app(
        self, app_id: str, manifest: ManifestDict, owner_id: Optional[str] = None
    ) -> Application:
        set_app_context(app_id=app_id, actor_id=owner_id)
        return await self.registry.register_app(app_id, manifest, owner_id=owner_id)

    @timed_operation("engine.publish_manifest")
    async def publish_manifest(
        self, app_id: str, new_manifest: ManifestDict, actor_id: Optional[str]
    ) -> Application:
        """
        Publish a new manifest version for ``app_id``.

        Raises:
            PermissionDeniedError: ``actor_id`` lacks ``app:manage``
            VersionNotIncreasingError, BreakingChangeVersionMismatchError,
            InvalidManifestError, ConcurrentModificationError
        """
        set_app_context(app_id=app_id, actor_id=actor_id)
        await self._authorize(actor_id, ACTION_MANAGE_APP, app_id)
        return await self.registry.publish_manifest(app_id, new_manifest)

    @timed_operation("engine.deprecate_version")
    async def deprecate_version(
        self, app_id: str, version: str, reason: str, actor_id: Optional[str]
    ) -> None:
        set_app_context(app_id=app_id, actor_id=actor_id, version=version)
        await self._authorize(actor_id, ACTION_MANAGE_APP, app_id)
        await self.registry.deprecate_version(app_id, version, reason)

    @timed_operation("engine.set_app_active")
    async def set_app_active(
        self, app_id: str, is_active: bool, actor_id: Optional[str]
    ) -> Application:
        set_app_context(app_id=app_id, actor_id=actor_id)
        await self._authorize(actor_id, ACTION_MANAGE_APP, app_id)
        return await self.registry.set_active(app_id, is_active)

    async def get_application(self, app_id: str) -> Application:
        return await self.registry.get_application(app_id)

    async def list_versions(self, app_id: str) -> List[Dict[str, Any]]:
        return await self.registry.list_versions(app_id)

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    @timed_operation("engine.create_room")
    async def create_room(
        self,
        app_id: str,
        app_settings: Dict[str, Any],
        organizer_id: Optional[str],
        name: str = "",
        description: Optional[str] = None,
    ) -> Room:
        set_app_context(app_id=app_id, actor_id=organizer_id)
        return await self.binder.create_room(
            app_id, app_settings, organizer_id=organizer_id, name=name, description=description
        )

    async def get_room(self, room_id: str) -> Room:
        return await self.binder.get_room(room_id)

    @timed_operation("engine.update_room_settings")
    async def update_room_settings(
        self, room_id: str, app_settings: Dict[str, Any], actor_id: Optional[str]
    ) -> Room:
        """
        Replace a room's settings under its current lock.

        Raises:
            RoomNotFoundError, PermissionDeniedError, SettingsValidationError,
            ConcurrentModificationError
        """
        room = await self.binder.get_room(room_id)
        set_app_context(app_id=room.app_id, room_id=room_id, actor_id=actor_id)
        await self._authorize_room(room, actor_id, ACTION_UPDATE_ROOM)
        return await self._retry_room_write(
            room_id, lambda fresh: self.binder.update_room_settings(fresh, app_settings)
        )

    @timed_operation("engine.upgrade_room")
    async def upgrade_room(
        self,
        room_id: str,
        target_version: str,
        actor_id: Optional[str],
        migration_data: Optional[Dict[str, Any]] = None,
    ) -> MigrationResult:
        """
        Move a room to ``target_version`` (AUTOMATIC or ASSISTED).

        Raises:
            RoomNotFoundError: Unknown room
            PermissionDeniedError: Actor is not the organizer or lacks ``room:upgrade``
            VersionNotIncreasingError, TargetVersionNotFoundError,
            MigrationRequiredError, IncompatibleMigrationError,
            ConcurrentModificationError
        """
        room = await self.binder.get_room(room_id)
        set_app_context(
            app_id=room.app_id, room_id=room_id, actor_id=actor_id, version=target_version
        )
        await self._authorize_room(room, actor_id, ACTION_UPGRADE_ROOM)
        return await self._retry_room_write(
            room_id,
            lambda fresh: self.migrations.upgrade_room(fresh, target_version, migration_data),
        )

    @timed_operation("engine.manual_migrate_room")
    async def manual_migrate_room(
        self,
        room_id: str,
        target_version: str,
        new_settings: Dict[str, Any],
        actor_id: Optional[str],
    ) -> Room:
        room = await self.binder.get_room(room_id)
        set_app_context(
            app_id=room.app_id, room_id=room_id, actor_id=actor_id, version=target_version
        )
        await self._authorize_room(room, actor_id, ACTION_UPGRADE_ROOM)
        result = await self._retry_room_write(
            room_id,
            lambda fresh: self.migrations.manual_migrate(fresh, target_version, new_settings),
        )
        return result.room

    async def get_effective_manifest(self, room_id: str) -> ManifestDict:
        """
        Manifest the room is locked to.

        Raises:
            RoomNotFoundError: Unknown room
            ManifestVersionNotFoundError: The lock has no archived manifest
        """
        room = await self.binder.get_room(room_id)
        return copy.deepcopy(await self.resolver.get_effective_manifest(room))

    async def revalidate_room(self, room_id: str) -> List[Dict[str, Any]]:
        room = await self.binder.get_room(room_id)
        return [error.to_dict() for error in await self.resolver.revalidate_room(room)]

    async def list_affected_rooms(self, app_id: str, version: str) -> List[Room]:
        """Rooms of ``app_id`` still locked to ``version``."""
        version = str(parse_version(version))
        await self.registry.get_application(app_id)
        return await self._rooms.find_by_version(app_id, version)

    def get_metrics(self) -> Dict[str, Any]:
        """Operation metrics recorded so far."""
        return get_metrics_collector().get_summary()
