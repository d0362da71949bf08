"""Named feature groups, persisted in the durable store's database.

A group is an ordered, de-duplicated list of feature names plus free-form
metadata. Groups let callers activate or inspect related features together.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from togglekit.core.database import SQLiteDatabase
from togglekit.core.errors import FeatureGroupNotFoundError

logger = logging.getLogger(__name__)


def _unique(names: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(names))


@dataclass
class FeatureGroup:
    name: str
    features: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[float] = None
    updated_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "features": list(self.features),
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_db(cls, row: sqlite3.Row) -> "FeatureGroup":
        return cls(
            name=row["name"],
            features=json.loads(row["features"]),
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class DatabaseGroupRepository:
    """CRUD for feature groups in the ``feature_groups`` table."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS feature_groups (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            features TEXT NOT NULL,
            metadata TEXT,
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL
        );
    """

    def __init__(self, database: SQLiteDatabase):
        self.database = database
        self.database.execute_script(self.SCHEMA)

    def define(
        self,
        name: str,
        features: Iterable[str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> FeatureGroup:
        """Create or replace a group. Redefining keeps the same row."""
        now = time.time()
        with self.database.connect() as conn:
            conn.execute(
                """
                INSERT INTO feature_groups (name, features, metadata, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (name) DO UPDATE SET
                    features = excluded.features,
                    metadata = excluded.metadata,
                    updated_at = excluded.updated_at
                """,
                (
                    name,
                    json.dumps(_unique(features)),
                    json.dumps(metadata or {}),
                    now,
                    now,
                ),
            )
        logger.debug(f"Defined feature group '{name}'")
        return self.get(name)

    def find(self, name: str) -> Optional[FeatureGroup]:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT * FROM feature_groups WHERE name = ?", (name,)
            ).fetchone()
        return FeatureGroup.from_db(row) if row else None

    def get(self, name: str) -> FeatureGroup:
        group = self.find(name)
        if group is None:
            raise FeatureGroupNotFoundError(name)
        return group

    def all(self) -> List[FeatureGroup]:
        with self.database.connect() as conn:
            rows = conn.execute("SELECT * FROM feature_groups ORDER BY name").fetchall()
        return [FeatureGroup.from_db(r) for r in rows]

    def exists(self, name: str) -> bool:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM feature_groups WHERE name = ?", (name,)
            ).fetchone()
        return row is not None

    def delete(self, name: str) -> bool:
        with self.database.connect() as conn:
            cursor = conn.execute("DELETE FROM feature_groups WHERE name = ?", (name,))
            return cursor.rowcount > 0

    def update(
        self,
        name: str,
        features: Optional[Iterable[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> FeatureGroup:
        """Replace a group's features and/or metadata. The group must exist."""
        group = self.get(name)
        new_features = _unique(features) if features is not None else group.features
        new_metadata = metadata if metadata is not None else group.metadata
        self._write(name, new_features, new_metadata)
        return self.get(name)

    def add_features(self, name: str, features: Iterable[str]) -> FeatureGroup:
        group = self.get(name)
        self._write(name, _unique([*group.features, *features]), group.metadata)
        return self.get(name)

    def remove_features(self, name: str, features: Iterable[str]) -> FeatureGroup:
        group = self.get(name)
        drop = set(features)
        self._write(name, [f for f in group.features if f not in drop], group.metadata)
        return self.get(name)

    def _write(self, name: str, features: List[str], metadata: Dict[str, Any]) -> None:
        with self.database.connect() as conn:
            conn.execute(
                """
                UPDATE feature_groups
                SET features = ?, metadata = ?, updated_at = ?
                WHERE name = ?
                """,
                (json.dumps(features), json.dumps(metadata), time.time(), name),
            )
