# =============================================================================
# shop_core/offline/synchronizer.py
# Replays the pending-operation queue against the remote backend
# =============================================================================
"""
Synchronizer - drains the pending-operation queue, one operation at a time.

Features:
- Strict FIFO over a snapshot of the queue taken at the start of a pass
- Partial-failure tolerance (a failed operation stays queued, the pass goes on)
- At most one pass in flight; overlapping triggers are no-ops
- Per-operation progress callbacks and a persisted last-sync summary
"""

from __future__ import annotations
import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from shop_core.config import SyncSettings
from shop_core.data.remote_backend import RemoteBackend
from shop_core.errors import RemoteError, ShopSyncError, StorageError
from shop_core.offline.connectivity import ConnectivityMonitor
from shop_core.offline.local_store import LocalStore
from shop_core.offline.operation_queue import OperationType, PendingOperation
from shop_core.services import BaseService
from shop_core.ui.notifications import LogNotifier, Notifier


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one synchronizer pass."""
    success: bool
    processed: int = 0
    failed: int = 0
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SyncState:
    """Current sync state."""
    is_syncing: bool = False
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    last_result: Optional[SyncResult] = None
    failed_count: int = 0
    total_synced: int = 0


OperationHook = Callable[[PendingOperation, bool], None]
StateCallback = Callable[[SyncState], None]


class Synchronizer(BaseService):
    """
    Drains pending operations against the remote backend.

    Usage:
        synchronizer = Synchronizer(store, monitor, backend, settings)
        result = await synchronizer.run()
        print(result.processed, result.failed)
    """

    LAST_SYNC_SETTING = "last_sync"

    def __init__(
        self,
        store: LocalStore,
        monitor: ConnectivityMonitor,
        backend: Optional[RemoteBackend],
        settings: Optional[SyncSettings] = None,
        notifier: Optional[Notifier] = None,
    ):
        super().__init__()
        self.store = store
        self.monitor = monitor
        self.backend = backend
        self.settings = settings or SyncSettings()
        self.notifier = notifier or LogNotifier()
        self._state = SyncState()
        self._lock = asyncio.Lock()
        self._callbacks: List[StateCallback] = []
        self._operation_hook: Optional[OperationHook] = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    @property
    def pending_count(self) -> int:
        return self.store.count_pending_operations()

    def set_operation_hook(self, hook: Optional[OperationHook]) -> None:
        """Called with (operation, succeeded) after each operation, before the next."""
        self._operation_hook = hook

    # =========================================================================
    # PASS
    # =========================================================================

    async def run(self) -> SyncResult:
        """
        Perform one synchronizer pass.

        Returns:
            SyncResult(success, processed, failed); never raises for remote
            or storage failures
        """
        if not self.monitor.is_online:
            self.logger.debug("Cannot sync: offline")
            return SyncResult(success=False)

        if self.backend is None:
            self.logger.warning("Cannot sync: no remote backend configured")
            return SyncResult(success=False)

        if self._lock.locked():
            self.logger.debug("Sync pass already running; trigger ignored")
            return SyncResult(success=False, skipped=True)

        async with self._lock:
            return await self._perform_sync()

    async def _perform_sync(self) -> SyncResult:
        self._state.is_syncing = True
        self._state.last_sync = datetime.now()
        self._notify_callbacks()

        try:
            try:
                pending = self.store.get_pending_operations()
            except StorageError as e:
                self.logger.error(f"Cannot read pending operations: {e}")
                return self._finish(SyncResult(success=False))

            if not pending:
                return self._finish(SyncResult(success=True))

            total = len(pending)
            processed = 0
            failed = 0
            self.notifier.progress(f"Syncing {total} changes...")

            with self.log_operation(f"Sync pass ({total} operations)"):
                for index, op in enumerate(pending, start=1):
                    ok = await self._sync_operation(op)
                    if ok:
                        processed += 1
                    else:
                        failed += 1

                    self._update_progress(
                        int(index * 100 / total),
                        f"Syncing... ({index}/{total})",
                    )
                    self.notifier.progress(f"Syncing... ({processed}/{total})")
                    if self._operation_hook is not None:
                        try:
                            self._operation_hook(op, ok)
                        except Exception as e:
                            self.logger.error(f"Error in operation hook: {e}")

            self.logger.info(f"Sync complete: {processed} success, {failed} failed")
            result = SyncResult(success=failed == 0, processed=processed, failed=failed)

            if failed == 0:
                self.notifier.success(f"Sync complete! {processed} changes sent.")
            else:
                self.notifier.error(f"Partial sync: {failed} changes not synchronized.")

            return self._finish(result)

        finally:
            self._state.is_syncing = False
            self._notify_callbacks()

    def _finish(self, result: SyncResult) -> SyncResult:
        self._state.last_result = result
        self._state.total_synced += result.processed
        self._state.failed_count = result.failed
        if result.success:
            self._state.last_sync_success = datetime.now()

        try:
            self.store.set_setting(self.LAST_SYNC_SETTING, {
                "at": self._state.last_sync.isoformat() if self._state.last_sync else None,
                **result.to_dict(),
            })
        except StorageError as e:
            self.logger.error(f"Could not persist sync summary: {e}")

        return result

    async def _sync_operation(self, op: PendingOperation) -> bool:
        """
        Submit one operation; dequeue it only after the remote confirms.

        Returns:
            True if the remote applied it and it left the queue
        """
        ok, error, row = await self._submit(op)

        if not ok:
            self.logger.warning(f"Failed to sync {op.describe()}: {error}")
            try:
                self.store.record_sync_failure(op.id, error)
            except StorageError as e:
                self.logger.error(f"Could not record failure for {op.describe()}: {e}")
            return False

        try:
            self.store.remove_pending_operation(op.id)
        except StorageError as e:
            # Stays queued; upsert/delete are idempotent on replay
            self.logger.error(f"Synced {op.describe()} but could not dequeue it: {e}")
            return False

        if row is not None:
            self._reconcile_snapshot(op, row)
        return True

    async def _submit(
        self, op: PendingOperation
    ) -> Tuple[bool, Optional[str], Optional[Dict[str, Any]]]:
        timeout = self.settings.remote_timeout
        try:
            if op.operation is OperationType.DELETE:
                await asyncio.wait_for(self.backend.delete(op.entity, op.entity_id), timeout)
                return True, None, None
            row = await asyncio.wait_for(self.backend.upsert(op.entity, op.data), timeout)
            return True, None, row
        except asyncio.TimeoutError:
            return False, f"timed out after {timeout:g}s", None
        except RemoteError as e:
            return False, e.message, None
        except Exception as e:
            # Any backend rejection counts as a failed operation, not a failed pass
            return False, str(e) or type(e).__name__, None

    def _reconcile_snapshot(self, op: PendingOperation, row: Dict[str, Any]) -> None:
        """Adopt the server's copy when no newer local change is waiting."""
        try:
            if self.store.has_pending_for(op.entity, op.entity_id):
                return
            if self.store.get_by_id(op.entity, op.entity_id) is None:
                return
            self.store.save_locally(op.entity, row, queue=False)
        except ShopSyncError as e:
            self.logger.warning(f"Could not reconcile {op.describe()} with server copy: {e}")

    # =========================================================================
    # CALLBACKS & STATUS
    # =========================================================================

    def register_callback(self, callback: StateCallback) -> None:
        """Register a callback for sync state changes (start/end of a pass)."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: StateCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                self.logger.error(f"Error in sync callback: {e}")

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        last = self._state.last_result
        return {
            "is_syncing": self._state.is_syncing,
            "last_sync": self._state.last_sync.isoformat() if self._state.last_sync else None,
            "last_success": (
                self._state.last_sync_success.isoformat()
                if self._state.last_sync_success else None
            ),
            "last_result": last.to_dict() if last else self.store.get_setting(self.LAST_SYNC_SETTING),
            "pending_count": self.pending_count,
            "failed_count": self._state.failed_count,
            "total_synced": self._state.total_synced,
        }
