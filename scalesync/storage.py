"""SQLite storage layer for canonical body-composition records (one row per calendar date)."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
import uuid
from datetime import date
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from .models import NUMERIC_FIELDS, CanonicalRecord, StoredRecord


class RecordStore(Protocol):
    """What the ingest pipeline needs from a store. Calls are awaited one at a time."""

    async def find_by_date(self, record_date: date) -> Optional[StoredRecord]: ...

    async def create(self, record: CanonicalRecord) -> StoredRecord: ...

    async def update(self, record_id: str, record: CanonicalRecord) -> StoredRecord: ...


def _dict_factory(cursor: sqlite3.Cursor, row: tuple) -> dict:
    return {col[0]: row[i] for i, col in enumerate(cursor.description)}


_COLUMNS = ", ".join(NUMERIC_FIELDS)
_SELECT = f"SELECT id, date, {_COLUMNS}, created_at, updated_at FROM records"


def _to_stored(row: dict) -> StoredRecord:
    row = dict(row)
    row["date"] = date.fromisoformat(row["date"])
    return StoredRecord(**row)


class Storage:
    """SQLite-backed record store for scalesync."""

    def __init__(self, db_path: str | Path = "scalesync.db"):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        if self._conn is None:
            # AsyncStorage runs calls on worker threads, serialized by its lock
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = _dict_factory
            self._ensure_schema()
        return self._conn

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_schema(self) -> None:
        conn = self.connect()
        numeric_cols = ",\n".join(f"                {name} REAL NOT NULL DEFAULT 0" for name in NUMERIC_FIELDS)
        conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS records (
                id TEXT PRIMARY KEY,
                date TEXT NOT NULL,
{numeric_cols},
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            CREATE UNIQUE INDEX IF NOT EXISTS idx_records_date ON records(date);
        """)
        conn.commit()

    def find_by_date(self, record_date: date) -> Optional[StoredRecord]:
        conn = self.connect()
        row = conn.execute(f"{_SELECT} WHERE date = ?", (record_date.isoformat(),)).fetchone()
        return _to_stored(row) if row else None

    def create(self, record: CanonicalRecord) -> StoredRecord:
        conn = self.connect()
        record_id = generate_id("rec")
        placeholders = ", ".join("?" for _ in NUMERIC_FIELDS)
        conn.execute(
            f"INSERT INTO records (id, date, {_COLUMNS}) VALUES (?, ?, {placeholders})",
            (record_id, record.date.isoformat(), *record.measurements().values()),
        )
        conn.commit()
        return self.get_record(record_id)

    def update(self, record_id: str, record: CanonicalRecord) -> StoredRecord:
        """Replace the date and every measurement of an existing record."""
        conn = self.connect()
        assignments = ", ".join(f"{name} = ?" for name in NUMERIC_FIELDS)
        cur = conn.execute(
            f"UPDATE records SET date = ?, {assignments}, updated_at = datetime('now') WHERE id = ?",
            (record.date.isoformat(), *record.measurements().values(), record_id),
        )
        conn.commit()
        if cur.rowcount == 0:
            raise KeyError(f"record not found: {record_id}")
        return self.get_record(record_id)

    def get_record(self, record_id: str) -> Optional[StoredRecord]:
        row = self.connect().execute(f"{_SELECT} WHERE id = ?", (record_id,)).fetchone()
        return _to_stored(row) if row else None

    def list_records(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[StoredRecord]:
        """Return records in ascending date order, optionally within [start, end]."""
        conn = self.connect()
        query = f"{_SELECT} WHERE 1 = 1"
        params: list = []
        if start:
            query += " AND date >= ?"
            params.append(start.isoformat())
        if end:
            query += " AND date <= ?"
            params.append(end.isoformat())
        query += " ORDER BY date ASC"
        return [_to_stored(r) for r in conn.execute(query, params).fetchall()]

    def delete_record(self, record_id: str) -> bool:
        conn = self.connect()
        cur = conn.execute("DELETE FROM records WHERE id = ?", (record_id,))
        conn.commit()
        return cur.rowcount > 0

    def clear(self) -> int:
        """Delete every record; return how many were removed."""
        conn = self.connect()
        cur = conn.execute("DELETE FROM records")
        conn.commit()
        return cur.rowcount


class AsyncStorage:
    """
    Awaitable front for Storage: each call runs on a worker thread via asyncio.to_thread,
    so the event loop keeps serving other requests while SQLite works. A lock keeps
    calls on the shared connection one at a time.
    """

    def __init__(self, storage: Storage):
        self.storage = storage
        self._lock = threading.Lock()

    def _locked(self, fn: Callable[..., Any], *args: Any) -> Any:
        with self._lock:
            return fn(*args)

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(self._locked, fn, *args)

    async def find_by_date(self, record_date: date) -> Optional[StoredRecord]:
        return await self._run(self.storage.find_by_date, record_date)

    async def create(self, record: CanonicalRecord) -> StoredRecord:
        return await self._run(self.storage.create, record)

    async def update(self, record_id: str, record: CanonicalRecord) -> StoredRecord:
        return await self._run(self.storage.update, record_id, record)

    async def get_record(self, record_id: str) -> Optional[StoredRecord]:
        return await self._run(self.storage.get_record, record_id)

    async def list_records(self, start: Optional[date] = None, end: Optional[date] = None) -> list[StoredRecord]:
        return await self._run(self.storage.list_records, start, end)

    async def delete_record(self, record_id: str) -> bool:
        return await self._run(self.storage.delete_record, record_id)

    async def clear(self) -> int:
        return await self._run(self.storage.clear)

    def close(self) -> None:
        self.storage.close()


def generate_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"
