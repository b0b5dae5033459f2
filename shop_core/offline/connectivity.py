# =============================================================================
# shop_core/offline/connectivity.py
# Connection Status Detection and Transition Events
# =============================================================================
"""
ConnectivityMonitor - tracks online/offline state for the sync layer.

Features:
- Platform signal entry point (set_online) with de-duplicated transitions
- Optional periodic TCP probe of the Supabase host
- Async callbacks fired exactly once per state change
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlparse
import logging

from shop_core.config import SyncSettings

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Backend reachable
    OFFLINE = "offline"         # No connectivity
    UNKNOWN = "unknown"         # Initial state


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    last_change: Optional[datetime] = None
    consecutive_failures: int = 0
    transitions: int = 0
    error_message: Optional[str] = None

    @property
    def is_online(self) -> bool:
        return self.status == ConnectionStatus.ONLINE


ConnectionCallback = Callable[[ConnectionState], Awaitable[None]]
Probe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """
    Observes online/offline transitions and notifies listeners.

    Usage:
        monitor = ConnectivityMonitor(settings)
        monitor.register_callback(on_change)
        await monitor.check_connection()
        monitor.start()          # periodic probing
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        settings: Optional[SyncSettings] = None,
        probe: Optional[Probe] = None,
        initial_online: Optional[bool] = None,
    ):
        """
        Args:
            settings: Intervals/timeouts and the Supabase URL to probe
            probe: Custom reachability check; defaults to a TCP probe of the
                Supabase host when a URL is configured
            initial_online: Seed state without emitting a transition
        """
        self.settings = settings or SyncSettings()
        self._state = ConnectionState()
        self._callbacks: List[ConnectionCallback] = []
        self._monitor_task: Optional[asyncio.Task] = None

        if probe is not None:
            self._probe = probe
        elif self.settings.supabase_url:
            self._probe = self._probe_host
        else:
            self._probe = None

        if initial_online is not None:
            self._state.status = (
                ConnectionStatus.ONLINE if initial_online else ConnectionStatus.OFFLINE
            )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        return self._state.status == ConnectionStatus.OFFLINE

    # =========================================================================
    # SIGNALS
    # =========================================================================

    async def set_online(self, online: bool, error: Optional[str] = None) -> bool:
        """
        Feed a platform online/offline signal.

        Returns:
            True if the signal changed the state (callbacks were fired)
        """
        now = datetime.now()
        self._state.last_check = now

        if online:
            self._state.last_online = now
            self._state.consecutive_failures = 0
            self._state.error_message = None
        else:
            self._state.consecutive_failures += 1
            if error:
                self._state.error_message = error

        old_status = self._state.status
        new_status = ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE
        if old_status == new_status:
            return False

        self._state.status = new_status
        self._state.last_change = now
        self._state.transitions += 1
        logger.info(f"Connection status changed: {old_status.value} -> {new_status.value}")
        await self._notify_callbacks()
        return True

    async def force_offline(self) -> None:
        """Force offline mode (for testing or user preference)."""
        await self.set_online(False, error="forced offline")
        logger.info("Forced offline mode")

    # =========================================================================
    # PROBING
    # =========================================================================

    async def check_connection(self) -> ConnectionState:
        """Probe the backend once and feed the result into set_online."""
        if self._probe is None:
            return self._state

        try:
            ok = await self._probe()
            error = None if ok else "backend unreachable"
        except Exception as e:
            ok, error = False, str(e)
            logger.debug(f"Connectivity probe failed: {e}")

        await self.set_online(ok, error=error)
        return self._state

    async def _probe_host(self) -> bool:
        """TCP connect to the Supabase host within the connection timeout."""
        parsed = urlparse(self.settings.supabase_url or "")
        host = parsed.hostname
        if not host:
            return False
        port = parsed.port or (443 if parsed.scheme != "http" else 80)

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self.settings.connection_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            self._state.error_message = str(e) or type(e).__name__
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    def start(self) -> None:
        """Start background probing (no-op without a probe)."""
        if self._probe is None:
            logger.debug("No connectivity probe configured; relying on set_online signals")
            return
        if self._monitor_task is not None and not self._monitor_task.done():
            return
        self._monitor_task = asyncio.get_running_loop().create_task(
            self._monitoring_loop(), name="ConnectivityMonitor"
        )
        logger.debug("Connection monitoring started")

    async def stop(self) -> None:
        """Stop background probing."""
        task, self._monitor_task = self._monitor_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Connection monitoring stopped")

    async def _monitoring_loop(self) -> None:
        while True:
            interval = (
                self.settings.check_interval_online
                if self.is_online
                else self.settings.check_interval_offline
            )
            await asyncio.sleep(interval)
            try:
                await self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def register_callback(self, callback: ConnectionCallback) -> None:
        """Register an async callback fired with ConnectionState on every change."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: ConnectionCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                await callback(self._state)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}", exc_info=True)

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
