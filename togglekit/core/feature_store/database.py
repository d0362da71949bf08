"""Durable feature store over SQLite.

Rows are unique per ``(name, context_type, context_id)``. Concurrent
resolvers race on insert; the loser catches the uniqueness violation,
re-reads the winning row and returns it. Retries are bounded by
``max_retries`` after which ``ConcurrencyConflictError`` is raised.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from togglekit.core.context import Context
from togglekit.core.database import SQLiteDatabase
from togglekit.core.errors import ConcurrencyConflictError, UniqueConstraintViolation
from togglekit.core.feature_store.base import (
    UNKNOWN_FEATURE_VALUE,
    FeatureRecord,
    FeatureStore,
    StaticResolver,
    decode_value,
    encode_value,
)
from togglekit.utils.metrics import store_conflicts_total

logger = logging.getLogger(__name__)

# (name, context_type, context_id)
RowKey = Tuple[str, str, str]

# Three bound parameters per pair; stays under SQLITE_MAX_VARIABLE_NUMBER (999)
FETCH_CHUNK_SIZE = 300

_MISSING = object()


@dataclass
class FeatureRow:
    """One row of the ``features`` table. ``value`` is the encoded envelope."""
    name: str
    context_type: str
    context_id: str
    value: str
    expires_at: Optional[float] = None
    created_at: Optional[float] = None
    updated_at: Optional[float] = None
    id: Optional[int] = None

    @property
    def key(self) -> RowKey:
        return (self.name, self.context_type, self.context_id)

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    @classmethod
    def from_db(cls, row: sqlite3.Row) -> "FeatureRow":
        return cls(
            id=row["id"],
            name=row["name"],
            context_type=row["context_type"],
            context_id=row["context_id"],
            value=row["value"],
            expires_at=row["expires_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _is_unique_violation(error: sqlite3.IntegrityError) -> bool:
    return "UNIQUE" in str(error).upper()


class FeatureTable:
    """Table gateway for the ``features`` table."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS features (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            context_type TEXT NOT NULL,
            context_id TEXT NOT NULL,
            value TEXT NOT NULL,
            expires_at REAL,
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL,
            UNIQUE (name, context_type, context_id)
        );
        CREATE INDEX IF NOT EXISTS idx_features_context
            ON features(context_type, context_id);
        CREATE INDEX IF NOT EXISTS idx_features_expires_at
            ON features(expires_at);
    """

    def __init__(self, database: SQLiteDatabase):
        self.database = database
        self.database.execute_script(self.SCHEMA)

    def fetch(self, name: str, context_type: str, context_id: str) -> Optional[FeatureRow]:
        with self.database.connect() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM features
                WHERE name = ? AND context_type = ? AND context_id = ?
                """,
                (name, context_type, context_id),
            )
            row = cursor.fetchone()
        return FeatureRow.from_db(row) if row else None

    def fetch_many(self, keys: Sequence[RowKey]) -> List[FeatureRow]:
        """Fetch rows for many keys with one OR-disjunction query per chunk."""
        unique_keys = list(dict.fromkeys(keys))
        rows: List[FeatureRow] = []
        if not unique_keys:
            return rows

        with self.database.connect() as conn:
            for start in range(0, len(unique_keys), FETCH_CHUNK_SIZE):
                chunk = unique_keys[start:start + FETCH_CHUNK_SIZE]
                predicate = " OR ".join(
                    ["(name = ? AND context_type = ? AND context_id = ?)"] * len(chunk)
                )
                params = [part for key in chunk for part in key]
                cursor = conn.execute(f"SELECT * FROM features WHERE {predicate}", params)
                rows.extend(FeatureRow.from_db(r) for r in cursor.fetchall())
        return rows

    def fetch_context(self, context_type: str, context_id: str) -> List[FeatureRow]:
        with self.database.connect() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM features
                WHERE context_type = ? AND context_id = ?
                ORDER BY name
                """,
                (context_type, context_id),
            )
            return [FeatureRow.from_db(r) for r in cursor.fetchall()]

    def insert(self, row: FeatureRow) -> None:
        self.insert_many([row])

    def insert_many(self, rows: Sequence[FeatureRow]) -> None:
        """Insert rows in one transaction; any collision rolls back all of them."""
        if not rows:
            return
        try:
            with self.database.connect() as conn:
                conn.executemany(
                    """
                    INSERT INTO features
                    (name, context_type, context_id, value, expires_at, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            r.name,
                            r.context_type,
                            r.context_id,
                            r.value,
                            r.expires_at,
                            r.created_at,
                            r.updated_at,
                        )
                        for r in rows
                    ],
                )
        except sqlite3.IntegrityError as e:
            if _is_unique_violation(e):
                raise UniqueConstraintViolation(str(e), store="database") from e
            raise

    def upsert(self, row: FeatureRow) -> None:
        with self.database.connect() as conn:
            conn.execute(
                """
                INSERT INTO features
                (name, context_type, context_id, value, expires_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (name, context_type, context_id) DO UPDATE SET
                    value = excluded.value,
                    expires_at = excluded.expires_at,
                    updated_at = excluded.updated_at
                """,
                (
                    row.name,
                    row.context_type,
                    row.context_id,
                    row.value,
                    row.expires_at,
                    row.created_at,
                    row.updated_at,
                ),
            )

    def delete(self, name: str, context_type: str, context_id: str) -> int:
        with self.database.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM features WHERE name = ? AND context_type = ? AND context_id = ?",
                (name, context_type, context_id),
            )
            return cursor.rowcount

    def delete_names(self, names: Sequence[str]) -> int:
        if not names:
            return 0
        placeholders = ", ".join("?" * len(names))
        with self.database.connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM features WHERE name IN ({placeholders})", list(names)
            )
            return cursor.rowcount

    def delete_all(self) -> int:
        with self.database.connect() as conn:
            return conn.execute("DELETE FROM features").rowcount

    def delete_expired(self, now: float) -> int:
        with self.database.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM features WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (now,),
            )
            return cursor.rowcount

    def distinct_names(self) -> List[str]:
        with self.database.connect() as conn:
            cursor = conn.execute("SELECT DISTINCT name FROM features ORDER BY name")
            return [r["name"] for r in cursor.fetchall()]


def _to_datetime(timestamp: Optional[float]) -> Optional[datetime]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _to_timestamp(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return float(value)


class DatabaseFeatureStore(FeatureStore):
    """Feature store backed by a FeatureTable."""

    driver_name = "database"

    def __init__(
        self,
        table: FeatureTable,
        max_retries: int = 3,
        clock: Callable[[], float] = time.time,
        *args: Any,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.table = table
        self.max_retries = max(1, int(max_retries))
        self.clock = clock

    @classmethod
    def from_path(cls, db_path: str, timeout: float = 5.0, **kwargs: Any) -> "DatabaseFeatureStore":
        return cls(FeatureTable(SQLiteDatabase(db_path, timeout=timeout)), **kwargs)

    def resolve(self, name: str, context: Context) -> Any:
        context_type, context_id = context.split_key()
        value = _MISSING
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            row = self.table.fetch(name, context_type, context_id)
            if row is not None:
                if not row.is_expired(self.clock()):
                    self._record_hit()
                    return decode_value(row.value)
                self.table.delete(name, context_type, context_id)

            if not self.is_defined(name):
                return self._unknown(name, context)

            if value is _MISSING:
                value = self._evaluate(name, context)

            try:
                self.table.insert(self._new_row(name, context, value))
                return value
            except UniqueConstraintViolation:
                store_conflicts_total.labels(store=self.driver_name, operation="resolve").inc()
                logger.info(
                    f"Lost insert race for '{name}' ({attempt}/{attempts}), re-reading",
                    extra={
                        "feature": name,
                        "context_key": context.key,
                        "store": self.driver_name,
                        "attempt": attempt,
                    },
                )

        logger.warning(
            f"Giving up on '{name}' after {attempts} conflicting inserts",
            extra={"feature": name, "context_key": context.key, "store": self.driver_name},
        )
        raise ConcurrencyConflictError(
            f"Unable to resolve feature [{name}] after {attempts} attempts",
            attempts=attempts,
            feature=name,
            store=self.driver_name,
        )

    def resolve_many(
        self, features: Mapping[str, Sequence[Context]]
    ) -> Dict[str, List[Any]]:
        """Resolve many (feature, context) pairs with one read and one bulk insert.

        On a uniqueness violation the whole batch is read again, reusing values
        already computed by the resolvers.
        """
        computed: Dict[RowKey, Any] = {}
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            keys = [
                (name, *context.split_key())
                for name, contexts in features.items()
                for context in contexts
            ]
            existing = {row.key: row for row in self.table.fetch_many(keys)}

            now = self.clock()
            for key, row in list(existing.items()):
                if row.is_expired(now):
                    self.table.delete(*key)
                    del existing[key]

            results: Dict[str, List[Any]] = {}
            pending: Dict[RowKey, FeatureRow] = {}
            unknown: List[Tuple[str, Context]] = []
            hits = 0

            for name, contexts in features.items():
                values = results.setdefault(name, [])
                for context in contexts:
                    key = (name, *context.split_key())
                    if key in existing:
                        hits += 1
                        values.append(decode_value(existing[key].value))
                    elif not self.is_defined(name):
                        unknown.append((name, context))
                        values.append(UNKNOWN_FEATURE_VALUE)
                    else:
                        if key not in computed:
                            computed[key] = self._evaluate(name, context)
                        if key not in pending:
                            pending[key] = self._new_row(name, context, computed[key])
                        values.append(computed[key])

            try:
                self.table.insert_many(list(pending.values()))
            except UniqueConstraintViolation:
                store_conflicts_total.labels(
                    store=self.driver_name, operation="resolve_many"
                ).inc()
                logger.info(
                    f"Bulk insert of {len(pending)} rows conflicted "
                    f"({attempt}/{attempts}), retrying batch",
                    extra={"store": self.driver_name, "attempt": attempt},
                )
                continue

            for _ in range(hits):
                self._record_hit()
            for name, context in unknown:
                self._unknown(name, context)
            return results

        raise ConcurrencyConflictError(
            f"Unable to resolve feature batch after {attempts} attempts",
            attempts=attempts,
            store=self.driver_name,
        )

    def retrieve(self, name: str, context: Context) -> Optional[FeatureRecord]:
        row = self.table.fetch(name, *context.split_key())
        if row is None or row.is_expired(self.clock()):
            return None
        return self._to_record(row)

    def values_for(self, context: Context) -> Dict[str, Any]:
        now = self.clock()
        return {
            row.name: decode_value(row.value)
            for row in self.table.fetch_context(*context.split_key())
            if not row.is_expired(now)
        }

    def set(
        self,
        name: str,
        context: Context,
        value: Any,
        expires_at: Optional[Any] = None,
    ) -> None:
        """Upsert a value; ``expires_at`` takes a datetime or epoch seconds."""
        self.table.upsert(self._new_row(name, context, value, expires_at=expires_at))

    def set_for_all_contexts(self, name: str, value: Any) -> None:
        self.table.delete_names([name])
        self._resolvers[name] = StaticResolver(value)

    def delete(self, name: str, context: Context) -> None:
        self.table.delete(name, *context.split_key())

    def purge(self, names: Optional[Iterable[str]] = None) -> None:
        names = self._normalize_names(names)
        if names is None:
            self.table.delete_all()
            return
        self.table.delete_names(names)

    def list_stored(self) -> List[str]:
        return self.table.distinct_names()

    def flush_cache(self) -> None:
        # Every read goes to the table; nothing is held in process
        return None

    def prune_expired(self) -> int:
        """Delete expired rows and return how many were removed."""
        removed = self.table.delete_expired(self.clock())
        if removed:
            logger.info(
                f"Pruned {removed} expired feature rows", extra={"store": self.driver_name}
            )
        return removed

    def _new_row(
        self,
        name: str,
        context: Context,
        value: Any,
        expires_at: Optional[Any] = None,
    ) -> FeatureRow:
        context_type, context_id = context.split_key()
        now = self.clock()
        return FeatureRow(
            name=name,
            context_type=context_type,
            context_id=context_id,
            value=encode_value(value),
            expires_at=_to_timestamp(expires_at),
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _to_record(row: FeatureRow) -> FeatureRecord:
        return FeatureRecord(
            name=row.name,
            context_key=f"{row.context_type}|{row.context_id}",
            value=decode_value(row.value),
            expires_at=_to_datetime(row.expires_at),
        )
