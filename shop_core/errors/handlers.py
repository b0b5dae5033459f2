# =============================================================================
# shop_core/errors/handlers.py
# Error Handling Utilities for the offline sync layer
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar

from shop_core.logging import get_logger
from .exceptions import ShopSyncError

if TYPE_CHECKING:
    from shop_core.ui.notifications import Notifier

logger = get_logger(__name__)

T = TypeVar("T")


def handle_error(
    error: Exception,
    notifier: Optional[Notifier] = None,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        notifier: Where to show a transient message to the user (None = log only)
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)
    """
    if isinstance(error, ShopSyncError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=error,
        )

    if notifier is not None:
        if recoverable:
            notifier.error(message)
        else:
            notifier.error(f"Critical error: {message}. Please contact support.")


def error_boundary(
    default_return: Any = None,
    error_message: Optional[str] = None,
    log: bool = True,
):
    """
    Decorator for coroutine methods that must never raise.

    The wrapped object's ``notifier`` attribute (if any) receives
    ``error_message`` when the call fails.

    Usage:
        @error_boundary(default_return=None, error_message="Could not fetch item")
        async def get_item(self, item_id): ...
    """
    def decorator(
        func: Callable[..., Awaitable[T]]
    ) -> Callable[..., Awaitable[Optional[T]]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if log:
                    logger.warning(
                        f"Error in {func.__name__}: {e}",
                        exc_info=True,
                    )
                notifier = getattr(args[0], "notifier", None) if args else None
                if error_message and notifier is not None:
                    notifier.error(error_message)
                return default_return

        return wrapper

    return decorator
