"""SQLite snapshot repository.

Snapshots, their entries and their events live in three tables. Entries and
events reference the snapshot with ``ON DELETE CASCADE`` so deleting or
pruning a snapshot removes everything that belongs to it.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, List, Optional

from togglekit.core.context import ActorRef
from togglekit.core.database import SQLiteDatabase
from togglekit.core.feature_store.base import FeatureValue
from togglekit.core.snapshots.base import SnapshotRepository
from togglekit.core.snapshots.models import (
    Snapshot,
    SnapshotEntry,
    SnapshotEvent,
    SnapshotEventType,
)

logger = logging.getLogger(__name__)


def _ts(value: Optional[datetime]) -> Optional[float]:
    return value.timestamp() if value is not None else None


def _dt(value: Optional[float]) -> Optional[datetime]:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None


def _actor_json(actor: Optional[ActorRef]) -> Optional[str]:
    return json.dumps(actor.to_dict()) if actor else None


def _actor_from_json(raw: Optional[str]) -> Optional[ActorRef]:
    return ActorRef.from_dict(json.loads(raw)) if raw else None


class DatabaseSnapshotRepository(SnapshotRepository):
    driver_name = "database"

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS feature_snapshots (
            id TEXT PRIMARY KEY,
            context_key TEXT NOT NULL,
            label TEXT,
            metadata TEXT,
            created_by TEXT,
            created_at REAL NOT NULL,
            restored_at REAL,
            restored_by TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_snapshots_context
            ON feature_snapshots(context_key, created_at);
        CREATE TABLE IF NOT EXISTS feature_snapshot_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            snapshot_id TEXT NOT NULL
                REFERENCES feature_snapshots(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            name TEXT NOT NULL,
            value TEXT NOT NULL,
            is_active INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_snapshot_entries_snapshot
            ON feature_snapshot_entries(snapshot_id);
        CREATE TABLE IF NOT EXISTS feature_snapshot_events (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            snapshot_id TEXT NOT NULL
                REFERENCES feature_snapshots(id) ON DELETE CASCADE,
            type TEXT NOT NULL,
            performed_by TEXT,
            metadata TEXT,
            created_at REAL NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_snapshot_events_snapshot
            ON feature_snapshot_events(snapshot_id);
    """

    def __init__(self, store: Any, database: SQLiteDatabase, **kwargs: Any):
        super().__init__(store, **kwargs)
        self.database = database
        self.database.execute_script(self.SCHEMA)

    def _insert(self, snapshot: Snapshot) -> None:
        with self.database.connect() as conn:
            conn.execute(
                """
                INSERT INTO feature_snapshots
                (id, context_key, label, metadata, created_by, created_at, restored_at, restored_by)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    snapshot.id,
                    snapshot.context_key,
                    snapshot.label,
                    json.dumps(snapshot.metadata),
                    _actor_json(snapshot.created_by),
                    _ts(snapshot.created_at),
                    _ts(snapshot.restored_at),
                    _actor_json(snapshot.restored_by),
                ),
            )
            conn.executemany(
                """
                INSERT INTO feature_snapshot_entries
                (snapshot_id, position, name, value, is_active)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (
                        snapshot.id,
                        position,
                        entry.name,
                        FeatureValue.of(entry.value).to_json(),
                        int(entry.is_active),
                    )
                    for position, entry in enumerate(snapshot.entries)
                ],
            )
            for event in snapshot.events:
                self._insert_event(conn, snapshot.id, event)

    def _insert_event(self, conn: sqlite3.Connection, snapshot_id: str, event: SnapshotEvent) -> None:
        conn.execute(
            """
            INSERT INTO feature_snapshot_events
            (id, snapshot_id, type, performed_by, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                snapshot_id,
                event.type.value,
                _actor_json(event.performed_by),
                json.dumps(event.metadata),
                _ts(event.timestamp),
            ),
        )

    def _load(self, snapshot_id: str, context_key: str) -> Optional[Snapshot]:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT * FROM feature_snapshots WHERE id = ? AND context_key = ?",
                (snapshot_id, context_key),
            ).fetchone()
            return self._hydrate(conn, row) if row else None

    def _load_all(self, context_key: str) -> List[Snapshot]:
        with self.database.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM feature_snapshots
                WHERE context_key = ?
                ORDER BY created_at, rowid
                """,
                (context_key,),
            ).fetchall()
            return [self._hydrate(conn, row) for row in rows]

    def _append_event(self, snapshot: Snapshot, event: SnapshotEvent) -> None:
        with self.database.connect() as conn:
            conn.execute(
                "UPDATE feature_snapshots SET restored_at = ?, restored_by = ? WHERE id = ?",
                (_ts(snapshot.restored_at), _actor_json(snapshot.restored_by), snapshot.id),
            )
            self._insert_event(conn, snapshot.id, event)

    def _remove(self, snapshot: Snapshot, event: SnapshotEvent) -> None:
        with self.database.connect() as conn:
            self._insert_event(conn, snapshot.id, event)
            conn.execute("DELETE FROM feature_snapshots WHERE id = ?", (snapshot.id,))

    def _events_for(self, snapshot_id: str) -> List[SnapshotEvent]:
        with self.database.connect() as conn:
            return self._fetch_events(conn, snapshot_id)

    def _prune_before(self, cutoff: datetime) -> int:
        with self.database.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM feature_snapshots WHERE created_at < ?", (_ts(cutoff),)
            )
            return cursor.rowcount

    def _fetch_events(self, conn: sqlite3.Connection, snapshot_id: str) -> List[SnapshotEvent]:
        rows = conn.execute(
            """
            SELECT * FROM feature_snapshot_events
            WHERE snapshot_id = ?
            ORDER BY created_at, seq
            """,
            (snapshot_id,),
        ).fetchall()
        return [
            SnapshotEvent(
                id=r["id"],
                type=SnapshotEventType(r["type"]),
                performed_by=_actor_from_json(r["performed_by"]),
                metadata=json.loads(r["metadata"]) if r["metadata"] else {},
                timestamp=_dt(r["created_at"]),
            )
            for r in rows
        ]

    def _hydrate(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Snapshot:
        entries = conn.execute(
            """
            SELECT * FROM feature_snapshot_entries
            WHERE snapshot_id = ?
            ORDER BY position
            """,
            (row["id"],),
        ).fetchall()
        return Snapshot(
            id=row["id"],
            context_key=row["context_key"],
            label=row["label"],
            entries=[
                SnapshotEntry(
                    name=e["name"],
                    value=FeatureValue.from_json(e["value"]).value,
                    is_active=bool(e["is_active"]),
                )
                for e in entries
            ],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_by=_actor_from_json(row["created_by"]),
            created_at=_dt(row["created_at"]),
            restored_at=_dt(row["restored_at"]),
            restored_by=_actor_from_json(row["restored_by"]),
            events=self._fetch_events(conn, row["id"]),
        )
