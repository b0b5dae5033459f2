# =============================================================================
# shop_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from __future__ import annotations
from abc import ABC
from typing import Optional, Callable

from shop_core.logging import get_logger, LogContext


ProgressCallback = Callable[[int, str], None]


class BaseService(ABC):
    """
    Abstract base class for long-running services.

    Provides common functionality:
    - Logging
    - Progress callbacks

    Usage:
        class MyService(BaseService):
            async def run(self):
                with self.log_operation("Doing something"):
                    self._update_progress(50, "half way")
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)
        self._progress_callback: Optional[ProgressCallback] = None

    def set_progress_callback(self, callback: Optional[ProgressCallback]) -> None:
        """
        Set a callback for progress updates.

        Args:
            callback: Function that takes (percentage: int, message: str)
        """
        self._progress_callback = callback

    def _update_progress(self, percentage: int, message: str = "") -> None:
        """Update progress via callback if set"""
        if self._progress_callback:
            try:
                self._progress_callback(percentage, message)
            except Exception as e:
                self.logger.error(f"Error in progress callback: {e}")

    def log_operation(self, operation: str) -> LogContext:
        """
        Create a logging context for an operation.

        Usage:
            with self.log_operation("Sync pass"):
                ...
        """
        return LogContext(self.logger, operation)
