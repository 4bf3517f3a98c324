"""
Manifest Engine Repository Pattern

Storage contracts for Application aggregates and Rooms, with in-memory and
MongoDB implementations.

Usage:
    from manifest_engine.repositories import (
        InMemoryApplicationRepository,
        InMemoryRoomRepository,
    )

    registry = ManifestRegistry(InMemoryApplicationRepository())
"""

from .base import ApplicationRepository, RoomRepository
from .memory import InMemoryApplicationRepository, InMemoryRoomRepository
from .mongo import MongoApplicationRepository, MongoRoomRepository

__all__ = [
    "ApplicationRepository",
    "RoomRepository",
    "InMemoryApplicationRepository",
    "InMemoryRoomRepository",
    "MongoApplicationRepository",
    "MongoRoomRepository",
]
