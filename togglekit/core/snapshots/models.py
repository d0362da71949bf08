"""Snapshot data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from togglekit.core.context import ActorRef
from togglekit.core.feature_store.base import FeatureValue


class SnapshotEventType(str, Enum):
    CREATED = "created"
    RESTORED = "restored"
    PARTIAL_RESTORE = "partial_restore"
    DELETED = "deleted"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class SnapshotEntry:
    """One captured feature value."""
    name: str
    value: Any
    is_active: bool

    @classmethod
    def of(cls, name: str, value: Any) -> "SnapshotEntry":
        return cls(name=name, value=value, is_active=value is not False and value is not None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": FeatureValue.of(self.value).to_dict(),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SnapshotEntry":
        return cls(
            name=data["name"],
            value=FeatureValue.from_dict(data["value"]).value,
            is_active=bool(data["is_active"]),
        )


@dataclass
class SnapshotEvent:
    """Audit record for something that happened to a snapshot."""
    type: SnapshotEventType
    timestamp: datetime
    performed_by: Optional[ActorRef] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "performed_by": self.performed_by.to_dict() if self.performed_by else None,
            "metadata": dict(self.metadata),
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SnapshotEvent":
        return cls(
            id=data.get("id"),
            type=SnapshotEventType(data["type"]),
            performed_by=ActorRef.from_dict(data.get("performed_by")),
            metadata=dict(data.get("metadata") or {}),
            timestamp=_parse_iso(data["timestamp"]),
        )


@dataclass
class Snapshot:
    """Point-in-time copy of a context's feature map with its audit trail."""
    id: str
    context_key: str
    entries: List[SnapshotEntry]
    created_at: datetime
    label: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_by: Optional[ActorRef] = None
    restored_at: Optional[datetime] = None
    restored_by: Optional[ActorRef] = None
    events: List[SnapshotEvent] = field(default_factory=list)

    @property
    def features(self) -> Dict[str, Any]:
        """Captured values keyed by feature name, in capture order."""
        return {entry.name: entry.value for entry in self.entries}

    def entry(self, name: str) -> Optional[SnapshotEntry]:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "context_key": self.context_key,
            "label": self.label,
            "entries": [entry.to_dict() for entry in self.entries],
            "metadata": dict(self.metadata),
            "created_by": self.created_by.to_dict() if self.created_by else None,
            "created_at": _iso(self.created_at),
            "restored_at": _iso(self.restored_at),
            "restored_by": self.restored_by.to_dict() if self.restored_by else None,
            "events": [event.to_dict() for event in self.events],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Snapshot":
        return cls(
            id=data["id"],
            context_key=data["context_key"],
            label=data.get("label"),
            entries=[SnapshotEntry.from_dict(e) for e in data.get("entries", [])],
            metadata=dict(data.get("metadata") or {}),
            created_by=ActorRef.from_dict(data.get("created_by")),
            created_at=_parse_iso(data["created_at"]),
            restored_at=_parse_iso(data.get("restored_at")),
            restored_by=ActorRef.from_dict(data.get("restored_by")),
            events=[SnapshotEvent.from_dict(e) for e in data.get("events", [])],
        )
