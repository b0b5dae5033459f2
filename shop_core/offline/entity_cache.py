# =============================================================================
# shop_core/offline/entity_cache.py
# Per-kind in-memory entity set with load/save/delete and live sync status
# =============================================================================
"""
EntityCache - what a page talks to for one entity kind.

Two backing modes, fixed per instance:
- REMOTE_AUTHORITATIVE: writes go straight to the backend; offline writes fail
- OFFLINE_TOLERANT: writes land in the local store first and are queued

Features:
- Stale-load guard (an older load never overwrites a newer one)
- Reload on connectivity recovery and on backend push notifications
- Periodic pending-count refresh for the UI badge
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Tuple
import logging

import pandas as pd

from shop_core.config import SyncSettings
from shop_core.data.remote_backend import RemoteBackend
from shop_core.entities import EntityKind, get_schema, validate_entity
from shop_core.errors import (
    ConfigurationError,
    LoadError,
    OfflineError,
    RemoteError,
    ShopSyncError,
    ValidationError,
    error_boundary,
    handle_error,
)
from shop_core.offline.connectivity import ConnectionState, ConnectivityMonitor
from shop_core.offline.local_store import LocalStore
from shop_core.offline.synchronizer import SyncResult, SyncState, Synchronizer
from shop_core.ui.notifications import LogNotifier, Notifier

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    """How writes reach the backend."""
    REMOTE_AUTHORITATIVE = "remote_authoritative"
    OFFLINE_TOLERANT = "offline_tolerant"


@dataclass
class CacheState:
    """In-memory state of one cache."""
    entities: List[Dict[str, Any]] = field(default_factory=list)
    loading: bool = False
    pending_count: int = 0
    last_loaded: Optional[datetime] = None
    last_error: Optional[str] = None


class EntityCache:
    """
    In-memory entity set for one kind, kept in step with store and backend.

    Usage:
        cache = EntityCache(EntityKind.MECHANIC, store, monitor,
                            mode=SyncMode.OFFLINE_TOLERANT,
                            backend=backend, synchronizer=synchronizer)
        await cache.start()
        saved = await cache.save({"nome": "Carlos"})
        await cache.delete(saved["id"])
        await cache.stop()
    """

    def __init__(
        self,
        kind: Any,
        store: LocalStore,
        monitor: ConnectivityMonitor,
        mode: Any = SyncMode.OFFLINE_TOLERANT,
        backend: Optional[RemoteBackend] = None,
        synchronizer: Optional[Synchronizer] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[SyncSettings] = None,
    ):
        self.kind = EntityKind.parse(kind)
        self.schema = get_schema(self.kind)
        self.mode = SyncMode(mode)
        self.store = store
        self.monitor = monitor
        self.backend = backend
        self.synchronizer = synchronizer
        self.notifier = notifier or LogNotifier()
        self.settings = settings or SyncSettings()

        if self.mode is SyncMode.REMOTE_AUTHORITATIVE and backend is None:
            raise ConfigurationError(
                "Remote-authoritative mode requires a remote backend",
                config_key="mode",
            )

        self._state = CacheState()
        self._generation = 0
        self._background: Set[asyncio.Task] = set()
        self._poll_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], Awaitable[None]]] = None
        self._started = False

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def entities(self) -> List[Dict[str, Any]]:
        return list(self._state.entities)

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def pending_count(self) -> int:
        return self._state.pending_count

    @property
    def connected(self) -> bool:
        return self.monitor.is_online

    @property
    def label(self) -> str:
        return self.schema.label

    def _remote_available(self) -> bool:
        return self.backend is not None and self.monitor.is_online

    def refresh_pending_count(self) -> int:
        """Re-read the queue size from the local store."""
        try:
            self._state.pending_count = self.store.count_pending_operations()
        except ShopSyncError as e:
            logger.warning(f"Could not count pending operations: {e}")
        return self._state.pending_count

    def _index_of(self, entity_id: Any) -> Optional[int]:
        for index, entity in enumerate(self._state.entities):
            if str(entity.get("id")) == str(entity_id):
                return index
        return None

    def _merge(self, entity: Dict[str, Any]) -> None:
        """Last write wins: replace by id, else append."""
        index = self._index_of(entity["id"])
        if index is None:
            self._state.entities.append(entity)
        else:
            self._state.entities[index] = entity

    def _discard(self, entity_id: Any) -> None:
        self._state.entities = [
            e for e in self._state.entities if str(e.get("id")) != str(entity_id)
        ]

    # =========================================================================
    # LOAD
    # =========================================================================

    async def load(self) -> List[Dict[str, Any]]:
        """
        Replace the in-memory set with the current authoritative set.

        Reads the backend when connected, the local store otherwise. On
        failure the previous set is kept and an empty list is returned.
        """
        self._generation += 1
        generation = self._generation
        self._state.loading = True

        try:
            rows = await self._fetch_remote() if self._remote_available() else None
            if generation != self._generation:
                logger.debug(f"Discarding superseded load of {self.kind.value}")
                return []
            entities = self._apply_rows(rows)
        except Exception as e:
            if generation != self._generation:
                return []
            error = e if isinstance(e, LoadError) else LoadError(
                f"Could not load {self.label.lower()}s: {e}",
                entity=self.kind.value,
                source="remote" if self._remote_available() else "local",
            )
            self._state.last_error = error.message
            handle_error(error, self.notifier)
            return []
        finally:
            if generation == self._generation:
                self._state.loading = False

        self._state.entities = entities
        self._state.last_loaded = datetime.now()
        self._state.last_error = None
        self.refresh_pending_count()
        logger.debug(f"Loaded {len(entities)} {self.kind.value}")
        return list(entities)

    async def _fetch_remote(self) -> List[Dict[str, Any]]:
        try:
            rows = await asyncio.wait_for(
                self.backend.list(self.kind), self.settings.remote_timeout
            )
        except asyncio.TimeoutError as e:
            raise LoadError(
                f"Timed out loading {self.label.lower()}s",
                entity=self.kind.value,
                source="remote",
            ) from e
        except RemoteError as e:
            raise LoadError(e.message, entity=self.kind.value, source="remote") from e
        return [dict(row) for row in rows]

    def _apply_rows(self, rows: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        """Mirror remote rows into the store and pick the view to show."""
        if rows is None:
            return self.store.get_all(self.kind)

        if self.mode is SyncMode.REMOTE_AUTHORITATIVE:
            try:
                self.store.replace_snapshots(self.kind, rows)
            except ShopSyncError as e:
                logger.warning(f"Could not mirror {self.kind.value} locally: {e}")
            return rows

        # Local view keeps writes the backend has not seen yet
        self.store.replace_snapshots(self.kind, rows)
        return self.store.get_all(self.kind)

    # =========================================================================
    # SAVE / DELETE
    # =========================================================================

    async def save(self, entity: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Create or update an entity.

        Returns:
            The stored entity (server copy in remote-authoritative mode)

        Raises:
            OfflineError: remote-authoritative mode while disconnected
            RemoteError, StorageError, ValidationError
        """
        try:
            if self.mode is SyncMode.REMOTE_AUTHORITATIVE:
                saved, created = await self._save_remote(entity)
            else:
                saved, created = self._save_local(entity)
        except ShopSyncError as e:
            handle_error(e, self.notifier, user_message=self._save_failure_message(e))
            raise

        self.notifier.success(f"{self.label} {'created' if created else 'updated'}")
        return saved

    def _save_failure_message(self, error: ShopSyncError) -> str:
        if isinstance(error, OfflineError):
            return "You are offline. Cannot save"
        if isinstance(error, ValidationError):
            return error.message
        return f"Could not save {self.label.lower()}"

    async def _save_remote(self, entity: Mapping[str, Any]) -> Tuple[Dict[str, Any], bool]:
        if not self.connected:
            raise OfflineError(
                "You are offline. Cannot save",
                operation="save",
                entity=self.kind.value,
            )

        data = validate_entity(self.kind, entity)
        created = not data["id"] or self._index_of(data["id"]) is None
        try:
            row = await asyncio.wait_for(
                self.backend.upsert(self.kind, data), self.settings.remote_timeout
            )
        except asyncio.TimeoutError as e:
            raise RemoteError(
                f"Timed out saving {self.label.lower()}",
                table=self.kind.value,
                operation="upsert",
            ) from e

        row = dict(row)
        self._merge(row)
        try:
            self.store.save_locally(self.kind, row, queue=False)
        except ShopSyncError as e:
            logger.warning(f"Could not mirror {self.kind.value}/{row.get('id')} locally: {e}")
        return row, created

    def _save_local(self, entity: Mapping[str, Any]) -> Tuple[Dict[str, Any], bool]:
        entity_id = entity.get("id") if isinstance(entity, Mapping) else None
        existed = bool(entity_id) and self.store.get_by_id(self.kind, entity_id) is not None

        saved = self.store.save_locally(self.kind, entity)
        self._merge(saved)

        if self.connected:
            self._schedule_sync()
        pending = self.refresh_pending_count()
        if not self.connected:
            self.notifier.info(f"You are offline. Changes are queued ({pending} pending)")
        return saved, not existed

    async def delete(self, entity_id: Any, permanent: bool = False) -> None:
        """
        Remove an entity.

        Args:
            entity_id: Id of the entity
            permanent: Offline-tolerant mode only; drop the local snapshot
                and any queued changes for it without recording a delete
        """
        entity_id = str(entity_id)
        try:
            if self.mode is SyncMode.REMOTE_AUTHORITATIVE:
                await self._delete_remote(entity_id)
            else:
                self._delete_local(entity_id, permanent)
        except ShopSyncError as e:
            message = (
                "You are offline. Cannot delete"
                if isinstance(e, OfflineError)
                else f"Could not remove {self.label.lower()}"
            )
            handle_error(e, self.notifier, user_message=message)
            raise

        self._discard(entity_id)
        self.notifier.success(f"{self.label} removed")

    async def _delete_remote(self, entity_id: str) -> None:
        if not self.connected:
            raise OfflineError(
                "You are offline. Cannot delete",
                operation="delete",
                entity=self.kind.value,
            )
        try:
            await asyncio.wait_for(
                self.backend.delete(self.kind, entity_id), self.settings.remote_timeout
            )
        except asyncio.TimeoutError as e:
            raise RemoteError(
                f"Timed out removing {self.label.lower()}",
                table=self.kind.value,
                operation="delete",
            ) from e

        try:
            self.store.delete_local_only(self.kind, entity_id)
        except ShopSyncError as e:
            logger.warning(f"Could not drop local copy of {self.kind.value}/{entity_id}: {e}")

    def _delete_local(self, entity_id: str, permanent: bool) -> None:
        if permanent:
            self.store.discard_entity(self.kind, entity_id)
        else:
            self.store.remove_locally(self.kind, entity_id)
            if self.connected:
                self._schedule_sync()
        self.refresh_pending_count()

    # =========================================================================
    # LOOKUP & MANUAL SYNC
    # =========================================================================

    @error_boundary(default_return=None)
    async def get_item(self, entity_id: Any) -> Optional[Dict[str, Any]]:
        """Point lookup; None when absent or when every source fails."""
        entity_id = str(entity_id)

        if self.mode is SyncMode.OFFLINE_TOLERANT:
            local = self.store.get_by_id(self.kind, entity_id)
            if local is not None or not self._remote_available():
                return local
            return await self._get_remote(entity_id)

        if self._remote_available():
            try:
                return await self._get_remote(entity_id)
            except (RemoteError, asyncio.TimeoutError) as e:
                logger.warning(f"Remote lookup of {self.kind.value}/{entity_id} failed: {e}")
        return self.store.get_by_id(self.kind, entity_id)

    async def _get_remote(self, entity_id: str) -> Optional[Dict[str, Any]]:
        row = await asyncio.wait_for(
            self.backend.get(self.kind, entity_id), self.settings.remote_timeout
        )
        return dict(row) if row is not None else None

    async def sync_now(self) -> SyncResult:
        """Run a sync pass now, then refresh the count and the entity set."""
        if self.synchronizer is None:
            self.notifier.error("Sync is not configured")
            return SyncResult(success=False)
        if not self.connected:
            self.notifier.error("You are offline. Cannot sync")
            return SyncResult(success=False)

        result = await self.synchronizer.run()
        if result.skipped:
            self.notifier.info("Sync already in progress")

        self.refresh_pending_count()
        await self.load()
        return result

    def _schedule_sync(self) -> None:
        if self.synchronizer is None:
            return
        task = asyncio.get_running_loop().create_task(
            self._background_sync(), name=f"sync:{self.kind.value}"
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_idle(self) -> None:
        """Wait for sync passes scheduled by save/delete to finish."""
        pending = [t for t in self._background if not t.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [t for t in self._background if not t.done()]

    async def _background_sync(self) -> None:
        try:
            await self.synchronizer.run()
        except Exception as e:
            logger.error(f"Background sync failed: {e}", exc_info=True)
        self.refresh_pending_count()

    # =========================================================================
    # REACTIVITY
    # =========================================================================

    async def start(self) -> None:
        """Subscribe to connectivity, sync and backend changes, then load."""
        if self._started:
            return
        self._started = True

        self.monitor.register_callback(self._on_connection_change)
        if self.synchronizer is not None:
            self.synchronizer.register_callback(self._on_sync_state)

        if self.backend is not None:
            try:
                self._unsubscribe = await self.backend.subscribe(self.kind, self._on_remote_change)
            except Exception as e:
                logger.warning(f"Push notifications unavailable for {self.kind.value}: {e}")

        self._poll_task = asyncio.get_running_loop().create_task(
            self._poll_pending_count(), name=f"pending:{self.kind.value}"
        )
        await self.load()

    async def stop(self) -> None:
        """Cancel timers and background work, drop subscriptions."""
        if not self._started:
            return
        self._started = False

        self.monitor.unregister_callback(self._on_connection_change)
        if self.synchronizer is not None:
            self.synchronizer.unregister_callback(self._on_sync_state)

        tasks = list(self._background)
        if self._poll_task is not None:
            tasks.append(self._poll_task)
            self._poll_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            try:
                await unsubscribe()
            except Exception as e:
                logger.warning(f"Could not unsubscribe from {self.kind.value}: {e}")

    async def _on_connection_change(self, state: ConnectionState) -> None:
        if not state.is_online:
            return

        if self.mode is SyncMode.OFFLINE_TOLERANT and self.synchronizer is not None:
            # One pass per reconnect is enough for every cache sharing the synchronizer
            last_pass = self.synchronizer.state.last_sync
            already_ran = (
                last_pass is not None
                and state.last_change is not None
                and last_pass >= state.last_change
            )
            if not already_ran and self.refresh_pending_count() > 0:
                await self.synchronizer.run()
                self.refresh_pending_count()

        await self.load()

    async def _on_remote_change(self, payload: Dict[str, Any]) -> None:
        logger.debug(f"Remote change on {self.kind.value}: {payload.get('eventType', '?')}")
        await self.load()

    def _on_sync_state(self, state: SyncState) -> None:
        if not state.is_syncing:
            self.refresh_pending_count()

    async def _poll_pending_count(self) -> None:
        while True:
            await asyncio.sleep(self.settings.pending_poll_interval)
            self.refresh_pending_count()

    # =========================================================================
    # DISPLAY
    # =========================================================================

    def as_dataframe(self) -> pd.DataFrame:
        """Entities as a DataFrame for st.dataframe."""
        if not self._state.entities:
            columns = ["id", *self.schema.required, *self.schema.optional, "created_at"]
            return pd.DataFrame(columns=columns)
        return pd.DataFrame(self._state.entities)

    def get_status_display(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "label": self.label,
            "mode": self.mode.value,
            "count": len(self._state.entities),
            "loading": self._state.loading,
            "pending_count": self._state.pending_count,
            "connected": self.connected,
            "last_loaded": (
                self._state.last_loaded.isoformat() if self._state.last_loaded else None
            ),
            "last_error": self._state.last_error,
        }
