# =============================================================================
# shop_core/errors/__init__.py
# Centralized Error Handling for the offline sync layer
# =============================================================================

from .exceptions import (
    ShopSyncError,
    OfflineError,
    RemoteError,
    StorageError,
    LoadError,
    ValidationError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    error_boundary,
)

__all__ = [
    # Exceptions
    "ShopSyncError",
    "OfflineError",
    "RemoteError",
    "StorageError",
    "LoadError",
    "ValidationError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "error_boundary",
]
