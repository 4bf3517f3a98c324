"""
Domain types for MANIFEST_ENGINE.

``Application`` is the aggregate that owns the current manifest and the
append-only manifest history. ``Room`` carries the version lock captured at
creation. Both convert to storage documents (``to_document``) and to plain
JSON-serializable dictionaries (``to_dict``).

This module is part of MANIFEST_ENGINE.
"""

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # pymongo hands back naive UTC datetimes unless tz_aware=True
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class ManifestHistoryEntry:
    """
    A superseded manifest, archived as a full snapshot.

    Entries are immutable; only ``deprecated_at``/``deprecation_reason`` are
    ever set, once, via ``deprecate()`` which returns a new entry.
    """

    seq: int
    version: str
    manifest: Dict[str, Any]
    published_at: datetime
    archived_at: datetime
    deprecated_at: Optional[datetime] = None
    deprecation_reason: Optional[str] = None

    @property
    def is_deprecated(self) -> bool:
        return self.deprecated_at is not None

    def deprecate(self, reason: str, at: Optional[datetime] = None) -> "ManifestHistoryEntry":
        if self.is_deprecated:
            raise ValueError(f"History entry {self.version} is already deprecated")
        return replace(self, deprecated_at=at or utcnow(), deprecation_reason=reason)

    def to_document(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "version": self.version,
            "manifest": copy.deepcopy(self.manifest),
            "published_at": self.published_at,
            "archived_at": self.archived_at,
            "deprecated_at": self.deprecated_at,
            "deprecation_reason": self.deprecation_reason,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_document()
        for key in ("published_at", "archived_at", "deprecated_at"):
            data[key] = _iso(data[key])
        return data

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "ManifestHistoryEntry":
        return cls(
            seq=data["seq"],
            version=data["version"],
            manifest=copy.deepcopy(data["manifest"]),
            published_at=_aware(data["published_at"]),
            archived_at=_aware(data["archived_at"]),
            deprecated_at=_aware(data.get("deprecated_at")),
            deprecation_reason=data.get("deprecation_reason"),
        )


@dataclass
class Application:
    """
    Application aggregate.

    Invariant: no history entry has ``version == manifest_version``.
    ``revision`` is the optimistic-concurrency token; every write bumps it.
    """

    app_id: str
    manifest: Dict[str, Any]
    manifest_version: str
    manifest_history: Tuple[ManifestHistoryEntry, ...] = ()
    published_at: datetime = field(default_factory=utcnow)
    revision: int = 0
    owner_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def next_seq(self) -> int:
        return self.manifest_history[-1].seq + 1 if self.manifest_history else 1

    def history_entry(self, version: str) -> Optional[ManifestHistoryEntry]:
        for entry in self.manifest_history:
            if entry.version == version:
                return entry
        return None

    def known_versions(self) -> List[str]:
        """Every version this app has ever published, oldest first."""
        return [e.version for e in self.manifest_history] + [self.manifest_version]

    def to_document(self) -> Dict[str, Any]:
        return {
            "_id": self.app_id,
            "app_id": self.app_id,
            "manifest": copy.deepcopy(self.manifest),
            "manifest_version": self.manifest_version,
            "manifest_history": [e.to_document() for e in self.manifest_history],
            "published_at": self.published_at,
            "revision": self.revision,
            "owner_id": self.owner_id,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "app_id": self.app_id,
            "manifest": copy.deepcopy(self.manifest),
            "manifest_version": self.manifest_version,
            "manifest_history": [e.to_dict() for e in self.manifest_history],
            "published_at": _iso(self.published_at),
            "revision": self.revision,
            "owner_id": self.owner_id,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "Application":
        return cls(
            app_id=data["app_id"],
            manifest=copy.deepcopy(data["manifest"]),
            manifest_version=data["manifest_version"],
            manifest_history=tuple(
                ManifestHistoryEntry.from_document(e) for e in data.get("manifest_history", [])
            ),
            published_at=_aware(data["published_at"]),
            revision=data.get("revision", 0),
            owner_id=data.get("owner_id"),
            is_active=data.get("is_active", True),
            created_at=_aware(data["created_at"]),
            updated_at=_aware(data["updated_at"]),
        )


@dataclass
class Room:
    """
    A room (event) bound to one manifest version of its application.

    ``app_manifest_version`` is the lock; it only moves through a successful
    migration. ``revision`` is bumped by every settings or lock write.
    """

    app_id: str
    app_manifest_version: str
    app_settings: Dict[str, Any]
    organizer_id: Optional[str] = None
    name: str = ""
    description: Optional[str] = None
    id: Optional[str] = None
    revision: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        doc = {
            "app_id": self.app_id,
            "app_manifest_version": self.app_manifest_version,
            "app_settings": copy.deepcopy(self.app_settings),
            "organizer_id": self.organizer_id,
            "name": self.name,
            "description": self.description,
            "revision": self.revision,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.id is not None:
            doc["_id"] = self.id
        return doc

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "app_id": self.app_id,
            "app_manifest_version": self.app_manifest_version,
            "app_settings": copy.deepcopy(self.app_settings),
            "organizer_id": self.organizer_id,
            "name": self.name,
            "description": self.description,
            "revision": self.revision,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "Room":
        return cls(
            id=str(data["_id"]) if data.get("_id") is not None else None,
            app_id=data["app_id"],
            app_manifest_version=data["app_manifest_version"],
            app_settings=copy.deepcopy(data.get("app_settings", {})),
            organizer_id=data.get("organizer_id"),
            name=data.get("name", ""),
            description=data.get("description"),
            revision=data.get("revision", 0),
            created_at=_aware(data["created_at"]),
            updated_at=_aware(data["updated_at"]),
        )
