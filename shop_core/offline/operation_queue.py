# =============================================================================
# shop_core/offline/operation_queue.py
# Durable FIFO queue of pending (not yet reconciled) mutations
# =============================================================================
"""
OperationQueue - the pending-operation log kept next to the entity snapshots.

Features:
- FIFO by insertion (sqlite AUTOINCREMENT ids never reuse a value)
- JSON-safe payloads (datetime, numpy and NaN values are cleaned)
- Failure bookkeeping without dequeuing (attempts, last error)
"""

from __future__ import annotations
import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional
import logging

import numpy as np
import pandas as pd

from shop_core.entities import EntityKind

if TYPE_CHECKING:
    from shop_core.offline.local_store import LocalStore

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    """Kind of mutation recorded in the queue."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class PendingOperation:
    """A recorded, not-yet-confirmed mutation."""
    id: int
    operation: OperationType
    entity: EntityKind
    entity_id: str
    data: Dict[str, Any]
    timestamp: str
    attempts: int = 0
    last_error: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> PendingOperation:
        return cls(
            id=row["id"],
            operation=OperationType(row["operation"]),
            entity=EntityKind(row["entity"]),
            entity_id=row["entity_id"],
            data=json.loads(row["data_json"]) if row["data_json"] else {},
            timestamp=row["timestamp"],
            attempts=row["attempts"],
            last_error=row["last_error"],
        )

    def describe(self) -> str:
        return f"#{self.id} {self.operation.value} {self.entity.value}/{self.entity_id}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def clean_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Make a payload JSON-serializable (rows may come from a DataFrame)."""
    clean_data = {}
    for k, v in data.items():
        if isinstance(v, datetime):
            clean_data[k] = None if pd.isna(v) else v.isoformat()
        elif isinstance(v, np.bool_):
            clean_data[k] = bool(v)
        elif isinstance(v, np.integer):
            clean_data[k] = int(v)
        elif isinstance(v, np.floating):
            clean_data[k] = None if np.isnan(v) else float(v)
        elif isinstance(v, (dict, list, tuple)):
            clean_data[k] = list(v) if isinstance(v, tuple) else v
        elif pd.isna(v):
            clean_data[k] = None
        else:
            clean_data[k] = v
    return clean_data


class OperationQueue:
    """
    Pending-operation log stored in the ``pending_operations`` table.

    Shares the LocalStore connection so a snapshot write and its queue
    entry can be committed in one transaction.
    """

    TABLE_SCHEMA = """
        CREATE TABLE IF NOT EXISTS pending_operations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            operation TEXT NOT NULL,
            entity TEXT NOT NULL,
            entity_id TEXT NOT NULL,
            data_json TEXT,
            timestamp TEXT NOT NULL,
            attempts INTEGER DEFAULT 0,
            last_error TEXT
        )
    """

    def __init__(self, store: LocalStore):
        self._store = store

    # =========================================================================
    # WRITES
    # =========================================================================

    def insert(
        self,
        conn: sqlite3.Connection,
        operation: OperationType,
        kind: EntityKind,
        entity_id: str,
        data: Dict[str, Any],
    ) -> PendingOperation:
        """Append an operation inside an already-open transaction."""
        timestamp = utc_timestamp()
        payload = clean_payload(data)
        cursor = conn.execute(
            """
            INSERT INTO pending_operations (operation, entity, entity_id, data_json, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            [operation.value, kind.value, entity_id, json.dumps(payload), timestamp],
        )
        op = PendingOperation(
            id=cursor.lastrowid,
            operation=operation,
            entity=kind,
            entity_id=entity_id,
            data=payload,
            timestamp=timestamp,
        )
        logger.debug(f"Queued {op.describe()}")
        return op

    def enqueue(
        self,
        operation: OperationType,
        kind: EntityKind,
        entity_id: str,
        data: Dict[str, Any],
    ) -> PendingOperation:
        """Append an operation in its own transaction."""
        with self._store.transaction() as conn:
            return self.insert(conn, operation, kind, entity_id, data)

    def discard_for(self, conn: sqlite3.Connection, kind: EntityKind, entity_id: str) -> int:
        """Drop every entry for one entity inside an already-open transaction."""
        cursor = conn.execute(
            "DELETE FROM pending_operations WHERE entity = ? AND entity_id = ?",
            [kind.value, entity_id],
        )
        if cursor.rowcount:
            logger.debug(f"Discarded {cursor.rowcount} queued change(s) for {kind.value}/{entity_id}")
        return cursor.rowcount

    def remove(self, op_id: int) -> None:
        """Remove one entry. Removing an already-removed id is a no-op."""
        self._store.execute("DELETE FROM pending_operations WHERE id = ?", [op_id])

    def record_failure(self, op_id: int, error: str) -> None:
        """Keep the entry queued but remember the failed attempt."""
        self._store.execute(
            """
            UPDATE pending_operations
            SET attempts = attempts + 1, last_error = ?
            WHERE id = ?
            """,
            [error, op_id],
        )

    # =========================================================================
    # READS
    # =========================================================================

    def list(self) -> List[PendingOperation]:
        """All pending operations in FIFO order."""
        rows = self._store.query("SELECT * FROM pending_operations ORDER BY id ASC")
        return [PendingOperation.from_row(row) for row in rows]

    def count(self) -> int:
        result = self._store.query("SELECT COUNT(*) AS count FROM pending_operations")
        return result[0]["count"] if result else 0

    def has_pending_for(self, kind: EntityKind, entity_id: str) -> bool:
        result = self._store.query(
            "SELECT 1 FROM pending_operations WHERE entity = ? AND entity_id = ? LIMIT 1",
            [kind.value, entity_id],
        )
        return bool(result)

    def latest_for(self, kind: EntityKind, entity_id: str) -> Optional[PendingOperation]:
        """Most recent operation recorded for one entity (ties broken by id)."""
        rows = self._store.query(
            """
            SELECT * FROM pending_operations
            WHERE entity = ? AND entity_id = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT 1
            """,
            [kind.value, entity_id],
        )
        return PendingOperation.from_row(rows[0]) if rows else None

    def pending_entity_ids(self, kind: EntityKind) -> set:
        rows = self._store.query(
            "SELECT DISTINCT entity_id FROM pending_operations WHERE entity = ?",
            [kind.value],
        )
        return {row["entity_id"] for row in rows}
