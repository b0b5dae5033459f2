# =============================================================================
# shop_core/data/remote_backend.py
# Remote backend boundary (list / get / upsert / delete / push notifications)
# =============================================================================
"""
RemoteBackend - the only backend surface the sync layer relies on.

SupabaseBackend implements it over the async Supabase client. Every call
failure is raised as RemoteError so callers only handle one type.
"""

from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol
import logging

from supabase import AsyncClient

from shop_core.entities import EntityKind
from shop_core.errors import RemoteError

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Dict[str, Any]], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


class RemoteBackend(Protocol):
    """Operations the sync layer needs from the backend, per entity kind."""

    async def list(self, kind: EntityKind) -> List[Dict[str, Any]]:
        """All rows, newest (created_at) first."""
        ...

    async def get(self, kind: EntityKind, entity_id: str) -> Optional[Dict[str, Any]]:
        """One row, or None when it does not exist."""
        ...

    async def upsert(self, kind: EntityKind, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert when id is absent, insert-or-update otherwise. Returns the stored row."""
        ...

    async def delete(self, kind: EntityKind, entity_id: str) -> None:
        ...

    async def subscribe(self, kind: EntityKind, callback: ChangeCallback) -> Unsubscribe:
        """Call ``callback`` on every remote change of ``kind``."""
        ...


# Columns that only exist locally and must never be sent
LOCAL_ONLY_FIELDS = ("sync_status",)


def _outgoing(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if k not in LOCAL_ONLY_FIELDS}


class SupabaseBackend:
    """RemoteBackend over ``supabase.AsyncClient``."""

    def __init__(self, client: AsyncClient, schema: str = "public"):
        self.client = client
        self.schema = schema

    async def list(self, kind: EntityKind) -> List[Dict[str, Any]]:
        try:
            response = await (
                self.client.table(kind.value)
                .select("*")
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise RemoteError(f"Could not list {kind.value}: {e}", table=kind.value, operation="list") from e
        return list(response.data or [])

    async def get(self, kind: EntityKind, entity_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = await (
                self.client.table(kind.value)
                .select("*")
                .eq("id", entity_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise RemoteError(f"Could not fetch {kind.value}/{entity_id}: {e}", table=kind.value, operation="get") from e
        return response.data[0] if response.data else None

    async def upsert(self, kind: EntityKind, payload: Mapping[str, Any]) -> Dict[str, Any]:
        data = _outgoing(payload)
        is_new_item = not data.get("id")
        if is_new_item:
            # Let the database assign the id
            data.pop("id", None)
        if not data.get("created_at"):
            data.pop("created_at", None)

        try:
            table = self.client.table(kind.value)
            if is_new_item:
                response = await table.insert(data).execute()
            else:
                response = await table.upsert(data, on_conflict="id").execute()
        except Exception as e:
            raise RemoteError(
                f"Could not save {kind.value}: {e}",
                table=kind.value,
                operation="insert" if is_new_item else "upsert",
            ) from e

        if not response.data:
            raise RemoteError(
                f"Backend returned no row for {kind.value}",
                table=kind.value,
                operation="upsert",
            )
        return response.data[0]

    async def delete(self, kind: EntityKind, entity_id: str) -> None:
        try:
            await self.client.table(kind.value).delete().eq("id", entity_id).execute()
        except Exception as e:
            raise RemoteError(f"Could not delete {kind.value}/{entity_id}: {e}", table=kind.value, operation="delete") from e

    async def subscribe(self, kind: EntityKind, callback: ChangeCallback) -> Unsubscribe:
        """Subscribe to postgres_changes for one table over Supabase realtime."""
        loop = asyncio.get_running_loop()

        def _on_change(payload: Dict[str, Any]) -> None:
            loop.create_task(callback(payload))

        channel = self.client.channel(f"{self.schema}:{kind.value}")
        channel.on_postgres_changes(
            "*",
            schema=self.schema,
            table=kind.value,
            callback=_on_change,
        )
        await channel.subscribe()
        logger.debug(f"Subscribed to realtime changes on {kind.value}")

        async def unsubscribe() -> None:
            await self.client.remove_channel(channel)

        return unsubscribe
