"""Persistence for the tool servers each user installs for themselves.

Every read and write is scoped to one user; a row owned by someone else is
indistinguishable from a missing one.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import uuid4

from supabase import Client, create_client

from agenthub.models.errors import UserServerNotFoundError, UserServerStoreError
from agenthub.models.tools import UserToolServer
from agenthub.utils.logging import get_logger

logger = get_logger(__name__)


class UserServerStore(Protocol):
    """Per-user tool server installations."""

    async def list_servers(self, user_id: str) -> list[UserToolServer]: ...

    async def create(
        self, user_id: str, qualified_name: str, config: dict[str, Any]
    ) -> UserToolServer: ...

    async def update(
        self, user_id: str, server_id: str, config: dict[str, Any]
    ) -> UserToolServer: ...

    async def delete(self, user_id: str, server_id: str) -> None: ...


class InMemoryUserServerStore:
    """Process-local store, used for development and tests."""

    def __init__(self) -> None:
        self._rows: dict[str, UserToolServer] = {}

    async def list_servers(self, user_id: str) -> list[UserToolServer]:
        rows = [row for row in self._rows.values() if row.user_id == user_id]
        # Newest first; among equal timestamps the later insert comes first.
        return list(reversed(sorted(rows, key=lambda row: row.created_at)))

    async def create(
        self, user_id: str, qualified_name: str, config: dict[str, Any]
    ) -> UserToolServer:
        now = datetime.now(UTC)
        row = UserToolServer(
            id=str(uuid4()),
            user_id=user_id,
            qualified_name=qualified_name,
            config=config,
            created_at=now,
            updated_at=now,
        )
        self._rows[row.id] = row
        return row

    async def update(
        self, user_id: str, server_id: str, config: dict[str, Any]
    ) -> UserToolServer:
        row = self._rows.get(server_id)
        if row is None or row.user_id != user_id:
            raise UserServerNotFoundError(server_id)
        updated = row.model_copy(update={"config": config, "updated_at": datetime.now(UTC)})
        self._rows[server_id] = updated
        return updated

    async def delete(self, user_id: str, server_id: str) -> None:
        row = self._rows.get(server_id)
        if row is not None and row.user_id == user_id:
            del self._rows[server_id]

    def __len__(self) -> int:
        return len(self._rows)


class SupabaseUserServerStore:
    """
    User tool server store backed by the `user_mcp_servers` table in Supabase.

    The supabase client is synchronous, so every call runs in a worker thread
    to keep the event loop free.
    """

    def __init__(self, url: str, service_key: str, table: str = "user_mcp_servers") -> None:
        if not url or not service_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
        self.table = table
        self.client: Client = create_client(url, service_key)

    @classmethod
    def from_client(
        cls, client: Client, table: str = "user_mcp_servers"
    ) -> "SupabaseUserServerStore":
        store = cls.__new__(cls)
        store.table = table
        store.client = client
        return store

    async def _execute(self, operation: str, query: Any) -> list[dict[str, Any]]:
        try:
            response = await asyncio.to_thread(query.execute)
        except Exception as e:
            logger.error("user_server_store_failed", operation=operation, error=str(e))
            raise UserServerStoreError(f"Failed to {operation} user tool server: {e}") from e
        return response.data or []

    async def list_servers(self, user_id: str) -> list[UserToolServer]:
        rows = await self._execute(
            "list",
            self.client.table(self.table)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True),
        )
        return [UserToolServer.model_validate(row) for row in rows]

    async def create(
        self, user_id: str, qualified_name: str, config: dict[str, Any]
    ) -> UserToolServer:
        rows = await self._execute(
            "create",
            self.client.table(self.table).insert(
                {"user_id": user_id, "qualified_name": qualified_name, "config": config}
            ),
        )
        if not rows:
            raise UserServerStoreError("Failed to create user tool server: no row returned")
        return UserToolServer.model_validate(rows[0])

    async def update(
        self, user_id: str, server_id: str, config: dict[str, Any]
    ) -> UserToolServer:
        rows = await self._execute(
            "update",
            self.client.table(self.table)
            .update({"config": config, "updated_at": datetime.now(UTC).isoformat()})
            .eq("id", server_id)
            .eq("user_id", user_id),
        )
        if not rows:
            raise UserServerNotFoundError(server_id)
        return UserToolServer.model_validate(rows[0])

    async def delete(self, user_id: str, server_id: str) -> None:
        await self._execute(
            "delete",
            self.client.table(self.table).delete().eq("id", server_id).eq("user_id", user_id),
        )
