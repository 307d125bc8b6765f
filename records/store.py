"""
records/store.py -- SQLAlchemy-backed persistence for health records.

Uses SQLAlchemy Core (not ORM) so the dataclass in records/models.py remains
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. HealthRecordStore is the repository;
_row_to_record is the mapper.

Write semantics: one row per account, upsert, last-write-wins. save() runs
UPDATE-then-INSERT inside a single transaction and keeps updated_at strictly
increasing per account. If a concurrent writer inserts first, the INSERT
fails on the primary key and the write is retried, so the later writer still
wins and nothing is merged.

Authorization: account_id is trusted input. Callers resolve it from a valid
session (api/routes/v1/records.py) or are themselves trusted (the CLI).

Usage:
    store = HealthRecordStore()
    store.save(42, {"weight_kg": {"value": 71.2, "recorded_at": "2024-05-01T07:00:00Z"}})
    record = store.get(42)     # HealthRecord or None
    store.close()
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.config import get_settings
from core.db import from_iso, make_engine, storage_guard, to_iso, utcnow
from records.models import HealthRecord

logger = logging.getLogger("healthtrack.records")

# Smallest step to_iso() can represent.
_MIN_STEP = timedelta(microseconds=1)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_health_records = Table(
    "health_records",
    _metadata,
    Column("account_id", Integer, primary_key=True, autoincrement=False),
    Column("payload", Text, nullable=False),  # JSON object serialized as text
    Column("updated_at", String(32), nullable=False),
)


class HealthRecordStore:
    """Repository for HealthRecord rows, one per account."""

    def __init__(self, db_url: str | None = None, clock: Callable[[], datetime] = utcnow) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        self._clock = clock
        with storage_guard("schema setup"):
            _metadata.create_all(self.engine)

    def get(self, account_id: int) -> HealthRecord | None:
        """Return the account's record, or None if it has never been written."""
        with storage_guard("record lookup"), self.engine.connect() as conn:
            row = conn.execute(
                _health_records.select().where(_health_records.c.account_id == account_id)
            ).fetchone()
        return _row_to_record(row) if row is not None else None

    def save(self, account_id: int, payload: Mapping[str, Any]) -> datetime:
        """Create or replace the account's record. Returns the new updated_at.

        updated_at is strictly greater than the previous one even if the clock
        stalls or steps backwards. Raises TypeError if payload is not a
        mapping or is not JSON-serializable.
        """
        if not isinstance(payload, Mapping):
            raise TypeError("payload must be a mapping of measurement name to value.")
        body = json.dumps(dict(payload), separators=(",", ":"), sort_keys=True)
        now = self._clock()

        with storage_guard("record save"):
            try:
                with self.engine.begin() as conn:
                    updated_at = self._write(conn, account_id, body, now)
            except IntegrityError:
                # Lost the insert race to another writer; overwrite its row.
                with self.engine.begin() as conn:
                    updated_at = self._write(conn, account_id, body, now)

        logger.debug("Health record saved for account %s", account_id)
        return updated_at

    def delete(self, account_id: int) -> bool:
        """Remove the account's record. Returns True if one existed."""
        with storage_guard("record delete"), self.engine.begin() as conn:
            result = conn.execute(_health_records.delete().where(_health_records.c.account_id == account_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()

    @staticmethod
    def _write(conn, account_id: int, body: str, now: datetime) -> datetime:
        stamp = to_iso(now)
        # Common case: the row exists and the clock has moved on. Running the
        # UPDATE first also takes the write lock before anything is read.
        result = conn.execute(
            _health_records.update()
            .where((_health_records.c.account_id == account_id) & (_health_records.c.updated_at < stamp))
            .values(payload=body, updated_at=stamp)
        )
        if result.rowcount > 0:
            return now

        row = conn.execute(
            select(_health_records.c.updated_at).where(_health_records.c.account_id == account_id)
        ).fetchone()
        if row is None:
            conn.execute(_health_records.insert().values(account_id=account_id, payload=body, updated_at=stamp))
            return now

        updated_at = from_iso(row.updated_at) + _MIN_STEP
        conn.execute(
            _health_records.update()
            .where(_health_records.c.account_id == account_id)
            .values(payload=body, updated_at=to_iso(updated_at))
        )
        return updated_at


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_record(row) -> HealthRecord:
    return HealthRecord(
        account_id=row.account_id,
        payload=json.loads(row.payload),
        updated_at=from_iso(row.updated_at),
    )
