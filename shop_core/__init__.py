# =============================================================================
# shop_core/__init__.py
# Core package for the repair-shop dashboard (mechanics, service orders, vouchers)
# =============================================================================
"""
shop_core - offline-first data layer for the repair-shop dashboard.

The UI pages only talk to ``EntityCache`` instances obtained from an
``OfflineRuntime``; everything below that (local SQLite store, pending
operation queue, synchronizer, connectivity monitor, Supabase backend)
lives in this package.
"""

__version__ = "0.3.0"
