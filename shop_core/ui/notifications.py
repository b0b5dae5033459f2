# =============================================================================
# shop_core/ui/notifications.py
# Transient user notifications (toasts) for save/delete/sync outcomes
# =============================================================================
"""
The offline layer reports outcomes through a Notifier so it never imports
UI code directly.

StreamlitNotifier buffers messages because the sync layer runs on the
background event loop thread, where Streamlit has no script context.
The page drains the buffer with ``flush()`` on each rerun.
"""

from __future__ import annotations
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Protocol

import streamlit as st

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def success(self, message: str) -> None: ...
    def error(self, message: str) -> None: ...
    def info(self, message: str) -> None: ...
    def progress(self, message: str) -> None: ...


@dataclass(frozen=True)
class Notification:
    level: str
    message: str


class LogNotifier:
    """Headless notifier: every message goes to the log."""

    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.warning(message)

    def info(self, message: str) -> None:
        logger.info(message)

    def progress(self, message: str) -> None:
        logger.debug(message)


class StreamlitNotifier:
    """Buffers notifications and shows them as st.toast on the next rerun."""

    ICONS = {
        "success": "✅",
        "error": "⚠️",
        "info": "ℹ️",
        "progress": "🔄",
    }

    def __init__(self, max_pending: int = 50):
        self._pending: Deque[Notification] = deque(maxlen=max_pending)
        self._lock = threading.Lock()

    def _push(self, level: str, message: str) -> None:
        with self._lock:
            # Only the latest progress line is worth showing
            if level == "progress" and self._pending and self._pending[-1].level == "progress":
                self._pending.pop()
            self._pending.append(Notification(level, message))

    def success(self, message: str) -> None:
        self._push("success", message)

    def error(self, message: str) -> None:
        self._push("error", message)

    def info(self, message: str) -> None:
        self._push("info", message)

    def progress(self, message: str) -> None:
        self._push("progress", message)

    def drain(self) -> List[Notification]:
        with self._lock:
            items = list(self._pending)
            self._pending.clear()
        return items

    def flush(self) -> int:
        """Show buffered notifications. Must run in the Streamlit script thread."""
        items = self.drain()
        for item in items:
            st.toast(item.message, icon=self.ICONS.get(item.level))
        return len(items)
