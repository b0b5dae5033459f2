"""
Repair-shop dashboard entry page.

Shows mechanics, service orders and vouchers from the offline sync layer,
plus the sidebar sync indicator.

Run with:
    streamlit run app.py
"""

import streamlit as st

from shop_core.config import load_settings
from shop_core.entities import EntityKind
from shop_core.logging import setup_logging
from shop_core.offline import get_runtime
from shop_core.ui import StreamlitNotifier, render_sync_status

st.set_page_config(page_title="Oficina", page_icon="🔧", layout="wide")


@st.cache_resource
def _start_runtime():
    settings = load_settings()
    setup_logging(level=settings.log_level)
    notifier = StreamlitNotifier()
    return get_runtime(settings, notifier), notifier


runtime, notifier = _start_runtime()
render_sync_status(runtime, notifier)

st.title("🔧 Oficina")

tabs = st.tabs([runtime.cache(kind).label + "s" for kind in EntityKind])
for tab, kind in zip(tabs, EntityKind):
    cache = runtime.cache(kind)
    with tab:
        col1, col2 = st.columns(2)
        col1.metric("Records", len(cache.entities))
        col2.metric("Pending changes", cache.pending_count)
        if cache.loading:
            st.caption("Loading...")
        st.dataframe(cache.as_dataframe(), use_container_width=True, hide_index=True)
