# =============================================================================
# tests/unit/test_operation_queue.py
# Unit Tests for the pending-operation queue
# =============================================================================

import math
from datetime import datetime

import numpy as np
import pandas as pd

from shop_core.entities import EntityKind
from shop_core.offline.operation_queue import OperationType, clean_payload


class TestCleanPayload:
    """Payloads must be JSON-safe before they are stored"""

    def test_numpy_and_pandas_values(self):
        cleaned = clean_payload({
            "valor": np.float64(12.5),
            "qtd": np.int64(3),
            "ok": np.bool_(True),
            "vazio": np.float64("nan"),
            "nada": pd.NaT,
        })
        assert cleaned == {"valor": 12.5, "qtd": 3, "ok": True, "vazio": None, "nada": None}
        assert type(cleaned["qtd"]) is int

    def test_datetime_becomes_isoformat(self):
        cleaned = clean_payload({"data": datetime(2024, 3, 1, 10, 30)})
        assert cleaned["data"] == "2024-03-01T10:30:00"

    def test_plain_nan_becomes_none(self):
        assert clean_payload({"valor": math.nan})["valor"] is None

    def test_containers_are_kept(self):
        cleaned = clean_payload({"tags": ("a", "b"), "meta": {"x": 1}})
        assert cleaned["tags"] == ["a", "b"]
        assert cleaned["meta"] == {"x": 1}


class TestOperationQueue:
    """Test FIFO order and failure bookkeeping"""

    def test_fifo_order(self, store):
        queue = store.queue
        first = queue.enqueue(OperationType.CREATE, EntityKind.MECHANIC, "a", {"id": "a"})
        second = queue.enqueue(OperationType.UPDATE, EntityKind.VOUCHER, "b", {"id": "b"})
        third = queue.enqueue(OperationType.DELETE, EntityKind.MECHANIC, "a", {"id": "a"})

        ops = queue.list()
        assert [op.id for op in ops] == [first.id, second.id, third.id]
        assert first.id < second.id < third.id
        assert ops[1].entity is EntityKind.VOUCHER
        assert ops[2].operation is OperationType.DELETE

    def test_ids_are_not_reused_after_removal(self, store):
        queue = store.queue
        op = queue.enqueue(OperationType.CREATE, EntityKind.MECHANIC, "a", {"id": "a"})
        queue.remove(op.id)
        newer = queue.enqueue(OperationType.CREATE, EntityKind.MECHANIC, "b", {"id": "b"})
        assert newer.id > op.id

    def test_remove_is_idempotent(self, store):
        op = store.queue.enqueue(OperationType.CREATE, EntityKind.MECHANIC, "a", {"id": "a"})
        store.queue.remove(op.id)
        store.queue.remove(op.id)
        assert store.queue.count() == 0

    def test_record_failure_keeps_operation(self, store):
        op = store.queue.enqueue(OperationType.CREATE, EntityKind.MECHANIC, "a", {"id": "a"})
        store.queue.record_failure(op.id, "HTTP 500")
        store.queue.record_failure(op.id, "timeout")

        (kept,) = store.queue.list()
        assert kept.attempts == 2
        assert kept.last_error == "timeout"

    def test_latest_for_and_has_pending(self, store):
        queue = store.queue
        queue.enqueue(OperationType.CREATE, EntityKind.MECHANIC, "a", {"id": "a"})
        queue.enqueue(OperationType.DELETE, EntityKind.MECHANIC, "a", {"id": "a"})

        assert queue.has_pending_for(EntityKind.MECHANIC, "a")
        assert not queue.has_pending_for(EntityKind.VOUCHER, "a")
        assert queue.latest_for(EntityKind.MECHANIC, "a").operation is OperationType.DELETE
        assert queue.latest_for(EntityKind.MECHANIC, "zzz") is None

    def test_pending_entity_ids(self, store):
        queue = store.queue
        queue.enqueue(OperationType.CREATE, EntityKind.MECHANIC, "a", {"id": "a"})
        queue.enqueue(OperationType.CREATE, EntityKind.VOUCHER, "v", {"id": "v"})
        assert queue.pending_entity_ids(EntityKind.MECHANIC) == {"a"}

    def test_describe(self, store):
        op = store.queue.enqueue(OperationType.UPDATE, EntityKind.SERVICE_ORDER, "os-1", {})
        assert op.describe() == f"#{op.id} update servicos/os-1"
