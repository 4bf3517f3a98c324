"""
Pytest configuration and shared fixtures for MANIFEST_ENGINE tests.

This module provides:
- Lottery manifest factories at 1.0.0, 1.1.0 and 2.0.0
- In-memory repositories and a wired engine
- Mock motor collection fixtures
"""

import copy
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest
from motor.motor_asyncio import AsyncIOMotorCollection

from manifest_engine.auth import StaticAuthorizationProvider
from manifest_engine.constants import (
    ACTION_MANAGE_APP,
    ACTION_UPDATE_ROOM,
    ACTION_UPGRADE_ROOM,
)
from manifest_engine.core.engine import ManifestEngine
from manifest_engine.core.registry import ManifestRegistry
from manifest_engine.observability import clear_app_context, get_metrics_collector
from manifest_engine.repositories import InMemoryApplicationRepository, InMemoryRoomRepository

APP_ID = "app_lottery_v1"
OWNER = "owner-1"
ORGANIZER = "organizer-1"


# ============================================================================
# MANIFEST FACTORIES
# ============================================================================


def make_lottery_manifest(version: str, settings: Dict[str, Any]) -> Dict[str, Any]:
    """Build a lottery manifest with the given version and settings schema."""
    return {
        "meta": {"name": "Holiday Lottery", "version": version},
        "baseUrl": "https://lottery.example.com",
        "capabilities": ["winnerSelection"],
        "permissions": ["read:participants"],
        "settings": copy.deepcopy(settings),
    }


_V1_SETTINGS: Dict[str, Any] = {
    "type": "object",
    "properties": {"ticketCount": {"type": "integer"}},
    "required": ["ticketCount"],
}

_V1_1_SETTINGS: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "ticketCount": {"type": "integer"},
        "theme": {"type": "string", "enum": ["new-year", "christmas"]},
    },
    "required": ["ticketCount"],
}

_V2_SETTINGS: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "ticketCount": {"type": "integer"},
        "theme": {"type": "string", "enum": ["new-year", "christmas"]},
        "drawType": {"type": "string"},
    },
    "required": ["ticketCount", "drawType"],
}


@pytest.fixture
def lottery_v1() -> Dict[str, Any]:
    """Lottery manifest 1.0.0: required integer ticketCount."""
    return make_lottery_manifest("1.0.0", _V1_SETTINGS)


@pytest.fixture
def lottery_v1_1() -> Dict[str, Any]:
    """Lottery manifest 1.1.0: adds optional theme enum."""
    return make_lottery_manifest("1.1.0", _V1_1_SETTINGS)


@pytest.fixture
def lottery_v2() -> Dict[str, Any]:
    """Lottery manifest 2.0.0: adds required drawType without default."""
    return make_lottery_manifest("2.0.0", _V2_SETTINGS)


@pytest.fixture
def quiz_manifest() -> Dict[str, Any]:
    """Quiz manifest with nested array settings and an enum status."""
    return {
        "meta": {"name": "Live Quiz", "version": "1.0.0"},
        "baseUrl": "https://quiz.example.com",
        "settings": {
            "type": "object",
            "properties": {
                "questions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "text": {"type": "string"},
                            "answers": {"type": "array", "items": {"type": "string"}},
                            "correctIndex": {"type": "integer"},
                        },
                        "required": ["text", "answers", "correctIndex"],
                    },
                },
                "currentQuestionIndex": {"type": "integer", "default": 0},
                "quizStatus": {
                    "type": "string",
                    "enum": ["waiting", "running", "finished"],
                    "default": "waiting",
                },
            },
            "required": ["questions", "currentQuestionIndex", "quizStatus"],
        },
    }


# ============================================================================
# ENGINE FIXTURES
# ============================================================================


@pytest.fixture
def app_repo() -> InMemoryApplicationRepository:
    return InMemoryApplicationRepository()


@pytest.fixture
def room_repo() -> InMemoryRoomRepository:
    return InMemoryRoomRepository()


@pytest.fixture
def registry(app_repo: InMemoryApplicationRepository) -> ManifestRegistry:
    return ManifestRegistry(app_repo)


@pytest.fixture
def authz() -> StaticAuthorizationProvider:
    """Owner manages the lottery app; organizer may upgrade and edit any room."""
    return StaticAuthorizationProvider(
        [
            (OWNER, ACTION_MANAGE_APP, APP_ID),
            (ORGANIZER, ACTION_UPGRADE_ROOM, "*"),
            (ORGANIZER, ACTION_UPDATE_ROOM, "*"),
        ]
    )


@pytest.fixture
def engine(
    app_repo: InMemoryApplicationRepository,
    room_repo: InMemoryRoomRepository,
    authz: StaticAuthorizationProvider,
) -> ManifestEngine:
    """Engine over in-memory repositories with the static grant table."""
    return ManifestEngine(applications=app_repo, rooms=room_repo, authz_provider=authz)


@pytest.fixture(autouse=True)
def reset_observability():
    """Start every test with empty metrics and no logging context."""
    get_metrics_collector().reset()
    yield
    clear_app_context()


# ============================================================================
# MOCK MONGODB FIXTURES
# ============================================================================


@pytest.fixture
def mock_collection() -> MagicMock:
    """Create a mock motor collection with async CRUD methods."""
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock()
    collection.update_one = AsyncMock()
    collection.delete_one = AsyncMock()
    collection.create_index = AsyncMock(return_value="index_name")
    collection.find = MagicMock()
    return collection
