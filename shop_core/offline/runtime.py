# =============================================================================
# shop_core/offline/runtime.py
# Wires store, monitor, synchronizer and caches into one service
# =============================================================================
"""
OfflineRuntime - single entry point for the offline sync layer.

All sync logic runs on one asyncio event loop. Streamlit reruns the page
script on its own threads, so the loop lives on a daemon thread
(BackgroundLoop) and the page hands coroutines to it.

Usage:
    from shop_core.offline import get_runtime

    runtime = get_runtime()
    mechanics = runtime.cache("mecanicos")
    runtime.call(mechanics.save({"nome": "Carlos"}))
"""

from __future__ import annotations
import asyncio
import concurrent.futures
import threading
from typing import Any, Awaitable, Dict, Iterable, Optional, TypeVar
import logging

from supabase import AsyncClient

from shop_core.config import SyncSettings, load_settings
from shop_core.data import SupabaseBackend, close_supabase_client, create_supabase_client
from shop_core.data.remote_backend import RemoteBackend
from shop_core.entities import EntityKind
from shop_core.errors import ConfigurationError, ShopSyncError
from shop_core.offline.connectivity import ConnectionState, ConnectivityMonitor
from shop_core.offline.entity_cache import EntityCache, SyncMode
from shop_core.offline.local_store import LocalStore
from shop_core.offline.synchronizer import Synchronizer
from shop_core.ui.notifications import LogNotifier, Notifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundLoop:
    """An asyncio event loop running forever on a daemon thread."""

    def __init__(self, name: str = "ShopSyncLoop"):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._loop.is_closed()

    def submit(self, coro: Awaitable[T]) -> concurrent.futures.Future:
        """Schedule a coroutine without waiting for it."""
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Run a coroutine on the loop and block until it finishes."""
        return self.submit(coro).result(timeout)

    def stop(self, timeout: float = 5.0) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        if not self._thread.is_alive():
            self._loop.close()


class OfflineRuntime:
    """
    Owns one LocalStore, one ConnectivityMonitor, one Synchronizer and one
    EntityCache per entity kind.
    """

    def __init__(
        self,
        settings: Optional[SyncSettings] = None,
        backend: Optional[RemoteBackend] = None,
        notifier: Optional[Notifier] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        kinds: Optional[Iterable[Any]] = None,
    ):
        self.settings = settings or SyncSettings()
        self.backend = backend
        self.notifier = notifier or LogNotifier()
        self.mode = SyncMode(self.settings.mode)

        if self.mode is SyncMode.REMOTE_AUTHORITATIVE and backend is None:
            raise ConfigurationError(
                "Remote-authoritative mode needs Supabase credentials",
                config_key="supabase",
            )

        self.store = LocalStore(self.settings.db_path)
        self.monitor = monitor or ConnectivityMonitor(self.settings)
        self.synchronizer = Synchronizer(
            self.store, self.monitor, backend, self.settings, self.notifier
        )
        self.caches: Dict[EntityKind, EntityCache] = {}
        for kind in (kinds or EntityKind):
            kind = EntityKind.parse(kind)
            self.caches[kind] = EntityCache(
                kind,
                self.store,
                self.monitor,
                mode=self.mode,
                backend=backend,
                synchronizer=self.synchronizer,
                notifier=self.notifier,
                settings=self.settings,
            )

        self.background: Optional[BackgroundLoop] = None
        self._client: Optional[AsyncClient] = None
        self._started = False

    @classmethod
    async def create(
        cls,
        settings: Optional[SyncSettings] = None,
        notifier: Optional[Notifier] = None,
    ) -> OfflineRuntime:
        """Build a runtime, connecting to Supabase when credentials exist."""
        settings = settings or load_settings()
        client: Optional[AsyncClient] = None
        backend: Optional[RemoteBackend] = None

        if settings.has_remote:
            try:
                client = await create_supabase_client(settings)
                backend = SupabaseBackend(client)
            except Exception as e:
                # Offline at startup is normal; the store still works
                logger.warning(f"Supabase unavailable, running local-only: {e}")
        else:
            logger.info("No Supabase credentials configured; running local-only")

        runtime = cls(settings, backend=backend, notifier=notifier)
        runtime._client = client
        return runtime

    def cache(self, kind: Any) -> EntityCache:
        return self.caches[EntityKind.parse(kind)]

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    @property
    def pending_count(self) -> int:
        return self.store.count_pending_operations()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Open the store, determine connectivity, start caches and probing."""
        if self._started:
            return

        self.store.initialize()
        self.monitor.register_callback(self._on_connection_change)
        await self.monitor.check_connection()

        for cache in self.caches.values():
            await cache.start()

        # Changes left over from an earlier session
        if self.is_online and self.mode is SyncMode.OFFLINE_TOLERANT and self.pending_count:
            await self._sync_left_over()

        self.monitor.start()
        self._started = True
        logger.info(
            f"Offline runtime started. Mode: {self.mode.value}, "
            f"online: {self.is_online}, pending: {self.pending_count}"
        )

    async def stop(self) -> None:
        """Stop background work and release the store and the client."""
        if not self._started:
            return
        self._started = False

        self.monitor.unregister_callback(self._on_connection_change)
        await self.monitor.stop()
        for cache in self.caches.values():
            await cache.stop()

        client, self._client = self._client, None
        try:
            await close_supabase_client(client)
        except Exception as e:
            logger.error(f"Error closing Supabase client: {e}")
        self.store.close()
        logger.info("Offline runtime stopped")

    async def _sync_left_over(self) -> None:
        result = await self.synchronizer.run()
        logger.info(
            f"Startup sync: {result.processed} sent, {result.failed} failed"
        )
        for cache in self.caches.values():
            cache.refresh_pending_count()
            await cache.load()

    async def _on_connection_change(self, state: ConnectionState) -> None:
        if not state.is_online:
            self.notifier.info("You are offline. Changes will be saved on this device")
            return

        try:
            pending = self.store.count_pending_operations()
        except ShopSyncError as e:
            logger.warning(f"Could not count pending operations: {e}")
            pending = 0

        if pending:
            self.notifier.info(f"Back online. Syncing {pending} changes...")
        else:
            self.notifier.info("Back online")

    # =========================================================================
    # THREAD BRIDGE
    # =========================================================================

    def call(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Run a coroutine on the runtime's background loop from page code."""
        if self.background is None:
            raise RuntimeError("OfflineRuntime has no background loop; use get_runtime()")
        return self.background.run(coro, timeout)

    def get_status(self) -> Dict[str, Any]:
        """Status information for UI display."""
        return {
            "mode": self.mode.value,
            "has_remote": self.backend is not None,
            "connection": self.monitor.get_status_display(),
            "sync": self.synchronizer.get_status_display(),
            "caches": {kind.value: c.get_status_display() for kind, c in self.caches.items()},
            "is_online": self.is_online,
            "pending_sync": self.pending_count,
        }


# Singleton accessor
_runtime: Optional[OfflineRuntime] = None
_runtime_lock = threading.Lock()


def get_runtime(
    settings: Optional[SyncSettings] = None,
    notifier: Optional[Notifier] = None,
) -> OfflineRuntime:
    """
    Get the process-wide OfflineRuntime, starting it on first use.

    Returns:
        A started OfflineRuntime bound to a BackgroundLoop
    """
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            background = BackgroundLoop()
            try:
                runtime = background.run(OfflineRuntime.create(settings, notifier))
                runtime.background = background
                background.run(runtime.start())
            except Exception:
                background.stop()
                raise
            _runtime = runtime
    return _runtime


def shutdown_runtime(timeout: float = 10.0) -> None:
    """Stop the process-wide runtime and its loop."""
    global _runtime
    with _runtime_lock:
        runtime, _runtime = _runtime, None
    if runtime is None or runtime.background is None:
        return
    try:
        runtime.call(runtime.stop(), timeout)
    except Exception as e:
        logger.error(f"Error during runtime shutdown: {e}")
    runtime.background.stop()
