# =============================================================================
# shop_core/services/__init__.py
# Service base classes shared by the offline layer
# =============================================================================

from .base_service import BaseService, ProgressCallback

__all__ = ["BaseService", "ProgressCallback"]
