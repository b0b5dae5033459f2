# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

from shop_core.config import SyncSettings
from shop_core.entities import EntityKind
from shop_core.errors import RemoteError
from shop_core.offline.connectivity import ConnectivityMonitor
from shop_core.offline.entity_cache import EntityCache, SyncMode
from shop_core.offline.local_store import LocalStore
from shop_core.offline.synchronizer import Synchronizer


# =============================================================================
# FAKES
# =============================================================================

class InMemoryRemote:
    """RemoteBackend kept in dicts, with per-call failure injection."""

    def __init__(self):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {k.value: {} for k in EntityKind}
        self.calls: List[Tuple[str, str, Optional[str]]] = []
        self.fail_ids: Set[str] = set()
        self.fail_methods: Set[str] = set()
        self.delay = 0.0
        self.list_delays: List[float] = []
        self.subscribers: Dict[str, List[Any]] = defaultdict(list)
        self._next_id = 1

    def _check(self, method: str, kind: EntityKind, entity_id: Optional[str] = None) -> None:
        self.calls.append((method, kind.value, entity_id))
        if method in self.fail_methods or (entity_id is not None and str(entity_id) in self.fail_ids):
            raise RemoteError(
                f"injected failure: {method} {entity_id}",
                table=kind.value,
                operation=method,
            )

    def seed(self, kind: EntityKind, row: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(row)
        data.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self.tables[kind.value][str(data["id"])] = data
        return dict(data)

    def rows(self, kind: EntityKind) -> Dict[str, Dict[str, Any]]:
        return self.tables[kind.value]

    def calls_to(self, method: str) -> List[Tuple[str, str, Optional[str]]]:
        return [c for c in self.calls if c[0] == method]

    async def list(self, kind):
        self._check("list", kind)
        rows = sorted(
            self.tables[kind.value].values(),
            key=lambda r: r.get("created_at") or "",
            reverse=True,
        )
        snapshot = [dict(r) for r in rows]
        delay = self.list_delays.pop(0) if self.list_delays else self.delay
        if delay:
            await asyncio.sleep(delay)
        return snapshot

    async def get(self, kind, entity_id):
        self._check("get", kind, entity_id)
        row = self.tables[kind.value].get(str(entity_id))
        return dict(row) if row is not None else None

    async def upsert(self, kind, payload):
        data = dict(payload)
        self._check("upsert", kind, data.get("id"))
        if self.delay:
            await asyncio.sleep(self.delay)
        if not data.get("id"):
            data["id"] = f"srv-{self._next_id}"
            self._next_id += 1
        if not data.get("created_at"):
            data["created_at"] = datetime.now(timezone.utc).isoformat()
        data["id"] = str(data["id"])
        self.tables[kind.value][data["id"]] = data
        return dict(data)

    async def delete(self, kind, entity_id):
        self._check("delete", kind, entity_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        self.tables[kind.value].pop(str(entity_id), None)

    async def subscribe(self, kind, callback):
        self.subscribers[kind.value].append(callback)

        async def unsubscribe():
            self.subscribers[kind.value].remove(callback)

        return unsubscribe

    async def push(self, kind: EntityKind, payload: Optional[Dict[str, Any]] = None) -> None:
        """Deliver a change notification to every subscriber of ``kind``."""
        for callback in list(self.subscribers[kind.value]):
            await callback(payload or {"eventType": "UPDATE"})


class RecordingNotifier:
    """Notifier that keeps every message for assertions."""

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def success(self, message):
        self.messages.append(("success", message))

    def error(self, message):
        self.messages.append(("error", message))

    def info(self, message):
        self.messages.append(("info", message))

    def progress(self, message):
        self.messages.append(("progress", message))

    def texts(self, level: Optional[str] = None) -> List[str]:
        return [m for lvl, m in self.messages if level is None or lvl == level]


# =============================================================================
# CORE FIXTURES
# =============================================================================

@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary database, no Supabase URL"""
    return SyncSettings(
        db_path=tmp_path / "oficina.db",
        remote_timeout=1.0,
        pending_poll_interval=3600.0,
    )


@pytest.fixture
def store(settings):
    """Initialized LocalStore on a temporary sqlite file"""
    local_store = LocalStore(settings.db_path)
    local_store.initialize()
    yield local_store
    local_store.close()


@pytest.fixture
def remote():
    return InMemoryRemote()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def monitor(settings):
    """Monitor that starts online (no probe configured)"""
    return ConnectivityMonitor(settings, initial_online=True)


@pytest.fixture
def offline_monitor(settings):
    """Monitor that starts offline (no probe configured)"""
    return ConnectivityMonitor(settings, initial_online=False)


@pytest.fixture
def synchronizer(store, monitor, remote, settings, notifier):
    return Synchronizer(store, monitor, remote, settings, notifier)


@pytest.fixture
def make_cache(store, remote, settings, notifier):
    """Factory: make_cache(monitor, kind=..., mode=...) sharing one Synchronizer per monitor"""
    synchronizers: Dict[int, Synchronizer] = {}

    def _make(
        monitor,
        kind=EntityKind.MECHANIC,
        mode=SyncMode.OFFLINE_TOLERANT,
        backend=remote,
    ):
        sync = synchronizers.get(id(monitor))
        if sync is None:
            sync = Synchronizer(store, monitor, backend, settings, notifier)
            synchronizers[id(monitor)] = sync
        return EntityCache(
            kind,
            store,
            monitor,
            mode=mode,
            backend=backend,
            synchronizer=sync,
            notifier=notifier,
            settings=settings,
        )

    return _make


# =============================================================================
# SAMPLE DATA
# =============================================================================

@pytest.fixture
def mechanic_payload():
    return {"id": "", "nome": "Carlos", "telefone": "11999990000"}


@pytest.fixture
def service_order_payload():
    return {
        "cliente": "Ana Souza",
        "veiculo": "Fiat Uno 2012",
        "descricao": "Troca de óleo e filtro",
        "mecanico_nome": "Carlos",
        "status": "em_andamento",
        "valor": "180.50",
    }


@pytest.fixture
def voucher_payload():
    return {"mecanico_nome": "Carlos", "status": "pendente", "valor": 50}
