# =============================================================================
# shop_core/ui/__init__.py
# Streamlit-facing helpers for the sync layer
# =============================================================================

from .notifications import Notifier, Notification, LogNotifier, StreamlitNotifier
from .sync_status import render_sync_status

__all__ = [
    "Notifier",
    "Notification",
    "LogNotifier",
    "StreamlitNotifier",
    "render_sync_status",
]
