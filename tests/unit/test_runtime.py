# =============================================================================
# tests/unit/test_runtime.py
# Unit Tests for OfflineRuntime and BackgroundLoop
# =============================================================================

import asyncio
from dataclasses import replace

import pytest

from shop_core.entities import EntityKind
from shop_core.errors import ConfigurationError
from shop_core.offline.entity_cache import SyncMode
from shop_core.offline.runtime import (
    BackgroundLoop,
    OfflineRuntime,
    get_runtime,
    shutdown_runtime,
)


class TestOfflineRuntime:
    """Wiring and lifecycle"""

    def test_one_cache_per_kind(self, settings, remote):
        runtime = OfflineRuntime(settings, backend=remote)
        assert set(runtime.caches) == set(EntityKind)
        assert runtime.cache("vales").synchronizer is runtime.synchronizer
        assert runtime.cache(EntityKind.MECHANIC).mode is SyncMode.OFFLINE_TOLERANT

    def test_remote_mode_needs_backend(self, settings):
        with pytest.raises(ConfigurationError):
            OfflineRuntime(replace(settings, mode="remote_authoritative"))

    @pytest.mark.asyncio
    async def test_reconnect_runs_one_pass_for_all_caches(
        self, settings, remote, offline_monitor, notifier
    ):
        runtime = OfflineRuntime(settings, backend=remote, notifier=notifier, monitor=offline_monitor)
        await runtime.start()
        try:
            await runtime.cache(EntityKind.MECHANIC).save({"nome": "Carlos"})
            await runtime.cache(EntityKind.VOUCHER).save(
                {"mecanico_nome": "Carlos", "status": "pendente", "valor": 20}
            )

            await offline_monitor.set_online(True)

            assert "Back online. Syncing 2 changes..." in notifier.texts("info")
            assert len(remote.calls_to("upsert")) == 2
            assert runtime.pending_count == 0
            assert all(c.pending_count == 0 for c in runtime.caches.values())
        finally:
            await runtime.stop()

    @pytest.mark.asyncio
    async def test_offline_transition_notifies(self, settings, remote, monitor, notifier):
        runtime = OfflineRuntime(settings, backend=remote, notifier=notifier, monitor=monitor)
        await runtime.start()
        try:
            await monitor.set_online(False)
            assert any("offline" in m for m in notifier.texts("info"))
        finally:
            await runtime.stop()

    @pytest.mark.asyncio
    async def test_start_online_sends_queue_left_in_store(self, settings, store, remote, monitor):
        left_over = store.save_locally(
            EntityKind.VOUCHER, {"mecanico_nome": "Rui", "status": "pendente", "valor": 15}
        )

        runtime = OfflineRuntime(settings, backend=remote, monitor=monitor)
        await runtime.start()
        try:
            assert set(remote.rows(EntityKind.VOUCHER)) == {left_over["id"]}
            assert runtime.pending_count == 0
            assert [v["id"] for v in runtime.cache(EntityKind.VOUCHER).entities] == [left_over["id"]]
        finally:
            await runtime.stop()

    @pytest.mark.asyncio
    async def test_start_offline_keeps_queue(self, settings, store, remote, offline_monitor):
        store.save_locally(EntityKind.MECHANIC, {"nome": "Carlos"})

        runtime = OfflineRuntime(settings, backend=remote, monitor=offline_monitor)
        await runtime.start()
        try:
            assert remote.calls_to("upsert") == []
            assert runtime.pending_count == 1
        finally:
            await runtime.stop()

    @pytest.mark.asyncio
    async def test_status(self, settings, remote, monitor):
        runtime = OfflineRuntime(settings, backend=remote, monitor=monitor)
        await runtime.start()
        try:
            status = runtime.get_status()
            assert status["is_online"] is True
            assert status["has_remote"] is True
            assert set(status["caches"]) == {"mecanicos", "servicos", "vales"}
        finally:
            await runtime.stop()

    @pytest.mark.asyncio
    async def test_stop_releases_subscriptions(self, settings, remote, monitor):
        runtime = OfflineRuntime(settings, backend=remote, monitor=monitor)
        await runtime.start()
        await runtime.stop()
        assert all(not subs for subs in remote.subscribers.values())


class TestBackgroundLoop:
    """Thread bridge used by the Streamlit page"""

    def test_run_coroutine(self):
        background = BackgroundLoop()
        try:
            async def double(value):
                await asyncio.sleep(0)
                return value * 2

            assert background.run(double(21), timeout=5) == 42
            assert background.is_running
        finally:
            background.stop()
        assert not background.is_running


class TestGetRuntime:
    """Process-wide singleton"""

    def test_local_only_runtime(self, settings, notifier):
        try:
            runtime = get_runtime(settings, notifier)
            assert get_runtime() is runtime
            assert runtime.backend is None

            cache = runtime.cache(EntityKind.MECHANIC)
            saved = runtime.call(cache.save({"nome": "Carlos"}), timeout=5)
            assert saved["id"]
            assert runtime.pending_count == 1
        finally:
            shutdown_runtime()
