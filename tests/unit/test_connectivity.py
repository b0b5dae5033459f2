# =============================================================================
# tests/unit/test_connectivity.py
# Unit Tests for ConnectivityMonitor
# =============================================================================

import asyncio

import pytest

from shop_core.config import SyncSettings
from shop_core.offline.connectivity import ConnectionStatus, ConnectivityMonitor


class TestTransitions:
    """One event per state change"""

    @pytest.mark.asyncio
    async def test_initial_state_unknown(self):
        monitor = ConnectivityMonitor(SyncSettings())
        assert monitor.status is ConnectionStatus.UNKNOWN
        assert not monitor.is_online
        assert not monitor.is_offline

    @pytest.mark.asyncio
    async def test_repeated_signals_emit_once(self):
        monitor = ConnectivityMonitor(SyncSettings(), initial_online=False)
        events = []

        async def on_change(state):
            events.append(state.status)

        monitor.register_callback(on_change)
        assert await monitor.set_online(True)
        assert not await monitor.set_online(True)
        assert await monitor.set_online(False)
        assert not await monitor.set_online(False)

        assert events == [ConnectionStatus.ONLINE, ConnectionStatus.OFFLINE]
        assert monitor.state.transitions == 2

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_block_others(self):
        monitor = ConnectivityMonitor(SyncSettings(), initial_online=False)
        seen = []

        async def broken(state):
            raise RuntimeError("boom")

        async def healthy(state):
            seen.append(state.is_online)

        monitor.register_callback(broken)
        monitor.register_callback(healthy)
        await monitor.set_online(True)
        assert seen == [True]

    @pytest.mark.asyncio
    async def test_unregister_callback(self):
        monitor = ConnectivityMonitor(SyncSettings(), initial_online=False)
        events = []

        async def on_change(state):
            events.append(state.status)

        monitor.register_callback(on_change)
        monitor.unregister_callback(on_change)
        await monitor.set_online(True)
        assert events == []

    @pytest.mark.asyncio
    async def test_force_offline(self):
        monitor = ConnectivityMonitor(SyncSettings(), initial_online=True)
        await monitor.force_offline()
        assert monitor.is_offline
        assert monitor.get_status_display()["error"] == "forced offline"


class TestProbing:
    """check_connection feeds the probe result into set_online"""

    @pytest.mark.asyncio
    async def test_probe_result_sets_state(self):
        results = [True, False]

        async def probe():
            return results.pop(0)

        monitor = ConnectivityMonitor(SyncSettings(), probe=probe)
        await monitor.check_connection()
        assert monitor.is_online
        await monitor.check_connection()
        assert monitor.is_offline
        assert monitor.state.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_probe_exception_means_offline(self):
        async def probe():
            raise OSError("network unreachable")

        monitor = ConnectivityMonitor(SyncSettings(), probe=probe)
        await monitor.check_connection()
        assert monitor.is_offline
        assert "unreachable" in monitor.state.error_message

    @pytest.mark.asyncio
    async def test_no_probe_without_url(self):
        monitor = ConnectivityMonitor(SyncSettings())
        state = await monitor.check_connection()
        assert state.status is ConnectionStatus.UNKNOWN
        monitor.start()  # no-op
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_periodic_probe_can_be_stopped(self):
        calls = []

        async def probe():
            calls.append(1)
            return True

        settings = SyncSettings(check_interval_online=0.01, check_interval_offline=0.01)
        monitor = ConnectivityMonitor(settings, probe=probe)
        monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()
        count = len(calls)
        await asyncio.sleep(0.03)

        assert count >= 1
        assert len(calls) == count
        assert monitor.is_online

    @pytest.mark.asyncio
    async def test_tcp_probe_of_closed_port(self):
        settings = SyncSettings(supabase_url="http://127.0.0.1:9", connection_timeout=0.5)
        monitor = ConnectivityMonitor(settings)
        await monitor.check_connection()
        assert monitor.is_offline
