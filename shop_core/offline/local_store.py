# =============================================================================
# shop_core/offline/local_store.py
# Local SQLite store for entity snapshots and the pending-operation queue
# =============================================================================
"""
LocalStore - durable SQLite storage that survives restarts.

Features:
- Entity snapshots keyed by (kind, id), payload stored as JSON
- Pending-operation log (see operation_queue.py) in the same database
- Every mutating call commits before returning
- Small key/value settings table
"""

from __future__ import annotations
import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging

from shop_core.config import DEFAULT_DB_PATH
from shop_core.entities import EntityKind, validate_entity
from shop_core.errors import StorageError
from shop_core.offline.operation_queue import (
    OperationQueue,
    OperationType,
    PendingOperation,
    clean_payload,
)

logger = logging.getLogger(__name__)


class LocalStore:
    """
    Local SQLite database for offline entity storage.

    One store holds every entity kind; the queue lives in the same file so a
    snapshot and its pending operation are written in one transaction.
    """

    SCHEMA = {
        "entities": """
            CREATE TABLE IF NOT EXISTS entities (
                kind TEXT NOT NULL,
                id TEXT NOT NULL,
                payload_json TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (kind, id)
            )
        """,
        "pending_operations": OperationQueue.TABLE_SCHEMA,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
    }

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize local store (call initialize() before use).

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._initialized = False
        self._last_created_at = ""
        self.queue = OperationQueue(self)

    # =========================================================================
    # CONNECTION & LIFECYCLE
    # =========================================================================

    def _get_connection(self) -> sqlite3.Connection:
        """Get (opening if needed) the database connection."""
        if self._connection is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._connection = sqlite3.connect(
                    str(self.db_path),
                    check_same_thread=False,
                )
                self._connection.row_factory = sqlite3.Row
            except (sqlite3.Error, OSError) as e:
                raise StorageError(
                    f"Cannot open local database: {e}",
                    db_path=str(self.db_path),
                ) from e
        return self._connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        with self._lock:
            conn = self._get_connection()
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(
                    f"Local database error: {e}",
                    db_path=str(self.db_path),
                ) from e
            except Exception:
                conn.rollback()
                raise

    def initialize(self) -> None:
        """Create the schema if missing."""
        if self._initialized:
            return

        with self.transaction() as conn:
            for table_name, schema in self.SCHEMA.items():
                conn.execute(schema)
                logger.debug(f"Created/verified table: {table_name}")
            row = conn.execute("SELECT MAX(created_at) AS latest FROM entities").fetchone()
            self._last_created_at = (row["latest"] if row else None) or ""

        self._initialized = True
        logger.info(f"Local store initialized at: {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
            self._initialized = False

    def query(self, sql: str, params: Optional[List] = None) -> List[sqlite3.Row]:
        """Execute a read-only query."""
        with self._lock:
            try:
                cursor = self._get_connection().execute(sql, params or [])
                return cursor.fetchall()
            except sqlite3.Error as e:
                raise StorageError(
                    f"Local database error: {e}",
                    db_path=str(self.db_path),
                ) from e

    def execute(self, sql: str, params: Optional[List] = None) -> int:
        """Execute a statement and commit."""
        with self.transaction() as conn:
            cursor = conn.execute(sql, params or [])
            return cursor.rowcount

    # =========================================================================
    # ENTITY SNAPSHOTS
    # =========================================================================

    def _next_created_at(self) -> str:
        """ISO timestamp that never sorts before a previously issued one."""
        now = datetime.now(timezone.utc).isoformat()
        self._last_created_at = max(now, self._last_created_at)
        return self._last_created_at

    @staticmethod
    def _decode(row: sqlite3.Row) -> Dict[str, Any]:
        try:
            return json.loads(row["payload_json"])
        except (TypeError, json.JSONDecodeError) as e:
            raise StorageError(f"Corrupted snapshot {row['kind']}/{row['id']}: {e}") from e

    def _fetch(self, conn: sqlite3.Connection, kind: EntityKind, entity_id: str) -> Optional[Dict]:
        row = conn.execute(
            "SELECT * FROM entities WHERE kind = ? AND id = ?",
            [kind.value, entity_id],
        ).fetchone()
        return self._decode(row) if row else None

    @staticmethod
    def _write(conn: sqlite3.Connection, kind: EntityKind, data: Dict[str, Any]) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO entities (kind, id, payload_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                kind.value,
                str(data["id"]),
                json.dumps(data),
                data.get("created_at") or "",
                datetime.now(timezone.utc).isoformat(),
            ],
        )

    def get_all(self, kind: Any) -> List[Dict[str, Any]]:
        """All locally known entities of a kind, newest first."""
        kind = EntityKind.parse(kind)
        rows = self.query(
            "SELECT * FROM entities WHERE kind = ? ORDER BY created_at DESC, rowid DESC",
            [kind.value],
        )
        return [self._decode(row) for row in rows]

    def get_by_id(self, kind: Any, entity_id: str) -> Optional[Dict[str, Any]]:
        """Point lookup. Returns None when absent."""
        kind = EntityKind.parse(kind)
        rows = self.query(
            "SELECT * FROM entities WHERE kind = ? AND id = ?",
            [kind.value, str(entity_id)],
        )
        return self._decode(rows[0]) if rows else None

    def save_locally(
        self,
        kind: Any,
        entity: Mapping[str, Any],
        queue: bool = True,
    ) -> Dict[str, Any]:
        """
        Upsert a snapshot by id and (optionally) record the pending operation.

        Args:
            kind: Entity kind
            entity: Payload; an empty/missing id gets a generated uuid
            queue: False when the write is already confirmed by the remote

        Returns:
            The stored entity with its resolved id and created_at
        """
        kind = EntityKind.parse(kind)
        data = validate_entity(kind, entity)

        with self.transaction() as conn:
            existing = self._fetch(conn, kind, str(data["id"])) if data["id"] else None

            if not data["id"]:
                data["id"] = str(uuid.uuid4())
            else:
                data["id"] = str(data["id"])

            if existing and existing.get("created_at"):
                data["created_at"] = existing["created_at"]
            elif not data.get("created_at"):
                data["created_at"] = self._next_created_at()

            data = clean_payload(data)
            self._write(conn, kind, data)

            if queue:
                operation = OperationType.UPDATE if existing else OperationType.CREATE
                unchanged = existing == data and self.queue.has_pending_for(kind, data["id"])
                if unchanged:
                    logger.debug(f"Skipping duplicate update for {kind.value}/{data['id']}")
                else:
                    self.queue.insert(conn, operation, kind, data["id"], data)

        return data

    def remove_locally(self, kind: Any, entity_id: str) -> None:
        """
        Delete the snapshot and record a delete operation.

        The queued payload is the last snapshot when one exists, else just the
        id. Missing snapshots are not an error. A delete is not queued twice in
        a row for the same entity.
        """
        kind = EntityKind.parse(kind)
        entity_id = str(entity_id)

        with self.transaction() as conn:
            snapshot = self._fetch(conn, kind, entity_id)
            conn.execute(
                "DELETE FROM entities WHERE kind = ? AND id = ?",
                [kind.value, entity_id],
            )
            latest = self.queue.latest_for(kind, entity_id)
            if latest is not None and latest.operation is OperationType.DELETE:
                logger.debug(f"Delete already queued for {kind.value}/{entity_id}")
                return
            payload = {**(snapshot or {}), "id": entity_id}
            self.queue.insert(conn, OperationType.DELETE, kind, entity_id, payload)

    def delete_local_only(self, kind: Any, entity_id: str) -> None:
        """Delete the snapshot without touching the pending-operation queue."""
        kind = EntityKind.parse(kind)
        self.execute(
            "DELETE FROM entities WHERE kind = ? AND id = ?",
            [kind.value, str(entity_id)],
        )

    def discard_entity(self, kind: Any, entity_id: str) -> int:
        """
        Forget an entity on this device: drop its snapshot and every queued
        change for it in one transaction. Nothing is sent to the remote.

        Returns:
            Number of queued changes discarded
        """
        kind = EntityKind.parse(kind)
        entity_id = str(entity_id)

        with self.transaction() as conn:
            conn.execute(
                "DELETE FROM entities WHERE kind = ? AND id = ?",
                [kind.value, entity_id],
            )
            return self.queue.discard_for(conn, kind, entity_id)

    def replace_snapshots(self, kind: Any, rows: Iterable[Mapping[str, Any]]) -> int:
        """
        Mirror confirmed remote rows into the store without queueing.

        Entities with pending operations keep their local snapshot (or absence);
        every other snapshot is replaced by the remote set.

        Returns:
            Number of remote rows written
        """
        kind = EntityKind.parse(kind)
        pending_ids = self.queue.pending_entity_ids(kind)
        written = 0

        with self.transaction() as conn:
            local_ids = {
                row["id"]
                for row in conn.execute("SELECT id FROM entities WHERE kind = ?", [kind.value])
            }
            for stale_id in local_ids - pending_ids:
                conn.execute(
                    "DELETE FROM entities WHERE kind = ? AND id = ?",
                    [kind.value, stale_id],
                )
            for row in rows:
                data = clean_payload(dict(row))
                if not data.get("id") or str(data["id"]) in pending_ids:
                    continue
                data["id"] = str(data["id"])
                self._write(conn, kind, data)
                written += 1

        return written

    # =========================================================================
    # PENDING OPERATIONS
    # =========================================================================

    def get_pending_operations(self) -> List[PendingOperation]:
        """Full queue in FIFO order."""
        return self.queue.list()

    def count_pending_operations(self) -> int:
        return self.queue.count()

    def remove_pending_operation(self, op_id: int) -> None:
        self.queue.remove(op_id)

    def record_sync_failure(self, op_id: int, error: str) -> None:
        self.queue.record_failure(op_id, error)

    def has_pending_for(self, kind: Any, entity_id: str) -> bool:
        return self.queue.has_pending_for(EntityKind.parse(kind), str(entity_id))

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an app setting."""
        result = self.query(
            "SELECT value FROM app_settings WHERE key = ?",
            [key]
        )
        if result:
            try:
                return json.loads(result[0]["value"])
            except json.JSONDecodeError:
                return result[0]["value"]
        return default

    def set_setting(self, key: str, value: Any) -> None:
        """Set an app setting."""
        value_str = json.dumps(value) if not isinstance(value, str) else value
        self.execute(
            """
            INSERT OR REPLACE INTO app_settings (key, value, updated_at)
            VALUES (?, ?, ?)
            """,
            [key, value_str, datetime.now(timezone.utc).isoformat()]
        )
