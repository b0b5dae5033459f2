# =============================================================================
# shop_core/ui/sync_status.py
# Sidebar connection badge, pending-changes indicator and "Sync now" button
# =============================================================================
from __future__ import annotations
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import streamlit as st

if TYPE_CHECKING:
    from shop_core.offline.runtime import OfflineRuntime
    from shop_core.ui.notifications import StreamlitNotifier


def _format_time(value: Optional[str]) -> str:
    if not value:
        return "never"
    try:
        return datetime.fromisoformat(value).strftime("%d/%m %H:%M")
    except ValueError:
        return value


def render_sync_status(
    runtime: OfflineRuntime,
    notifier: Optional[StreamlitNotifier] = None,
) -> None:
    """
    Draw the sync indicator in the sidebar.

    Shows the online/offline badge, how many changes are waiting, the last
    sync summary, and a button that runs a sync pass immediately.
    """
    status = runtime.get_status()
    sync = status["sync"]
    pending = status["pending_sync"]

    with st.sidebar:
        if status["is_online"]:
            st.success("🟢 Online")
        elif status["connection"]["status"] == "unknown":
            st.info("⚪ Connection unknown")
        else:
            st.warning("🔴 Offline")

        if pending:
            st.caption(f"🕓 {pending} changes waiting to sync")
        else:
            st.caption("All changes synced")

        last = sync.get("last_result") or {}
        if last:
            st.caption(
                f"Last sync {_format_time(last.get('at') or sync.get('last_sync'))}: "
                f"{last.get('processed', 0)} sent, {last.get('failed', 0)} failed"
            )

        disabled = not status["is_online"] or sync["is_syncing"]
        if st.button("🔄 Sync now", disabled=disabled, use_container_width=True):
            first_cache = next(iter(runtime.caches.values()), None)
            if first_cache is not None:
                runtime.call(first_cache.sync_now())
                for cache in runtime.caches.values():
                    if cache is not first_cache:
                        runtime.call(cache.load())

    if notifier is not None:
        notifier.flush()
