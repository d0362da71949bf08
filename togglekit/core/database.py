"""SQLite connection helper shared by the durable backends."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

logger = logging.getLogger(__name__)


class SQLiteDatabase:
    """Opens short-lived connections to one SQLite file.

    Each ``connect()`` block is a transaction: committed on success, rolled
    back on any exception, and the connection is always closed.
    """

    def __init__(self, db_path: Union[str, Path], timeout: float = 5.0):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute_script(self, script: str) -> None:
        with self.connect() as conn:
            conn.executescript(script)

    def __repr__(self) -> str:
        return f"SQLiteDatabase({str(self.db_path)!r})"
