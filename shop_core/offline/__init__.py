# =============================================================================
# shop_core/offline/__init__.py
# Offline-First Sync Layer for the repair-shop dashboard
# =============================================================================
"""
Offline-First Sync Layer

Mechanics, service orders and vouchers can be created, edited and deleted
while the shop has no internet. Changes are kept on disk and replayed
against Supabase when the connection returns.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                      OFFLINE-FIRST SYNC                          │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │          EntityCache (one per kind, used by pages)        │  │
│   └──────────────────────────────────────────────────────────┘  │
│              │                │                  │               │
│              ▼                ▼                  ▼               │
│   ┌──────────────────┐  ┌──────────────┐  ┌──────────────────┐  │
│   │ConnectivityMonitor│  │ Synchronizer │  │   LocalStore     │  │
│   │ (Online/Offline)  │  │ (FIFO drain) │  │ (SQLite + queue) │  │
│   └──────────────────┘  └──────────────┘  └──────────────────┘  │
│                                │                                 │
│                                ▼                                 │
│                        ┌──────────────┐                          │
│                        │   Supabase   │                          │
│                        └──────────────┘                          │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from shop_core.offline import get_runtime

runtime = get_runtime()
orders = runtime.cache("servicos")
runtime.call(orders.save({...}))

print(runtime.is_online)      # True/False
print(runtime.pending_count)  # Number of queued changes
"""

from shop_core.offline.operation_queue import (
    OperationQueue,
    OperationType,
    PendingOperation,
)

from shop_core.offline.local_store import LocalStore

from shop_core.offline.connectivity import (
    ConnectionState,
    ConnectionStatus,
    ConnectivityMonitor,
)

from shop_core.offline.synchronizer import (
    SyncResult,
    SyncState,
    Synchronizer,
)

from shop_core.offline.entity_cache import (
    CacheState,
    EntityCache,
    SyncMode,
)

from shop_core.offline.runtime import (
    BackgroundLoop,
    OfflineRuntime,
    get_runtime,
    shutdown_runtime,
)

__all__ = [
    # Queue
    "OperationQueue",
    "OperationType",
    "PendingOperation",
    # Store
    "LocalStore",
    # Connectivity
    "ConnectionState",
    "ConnectionStatus",
    "ConnectivityMonitor",
    # Sync
    "SyncResult",
    "SyncState",
    "Synchronizer",
    # Cache
    "CacheState",
    "EntityCache",
    "SyncMode",
    # Runtime
    "BackgroundLoop",
    "OfflineRuntime",
    "get_runtime",
    "shutdown_runtime",
]
