"""Persistence for per-user OAuth credentials.

One row per (user, provider); writes are upserts on that pair.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any, Protocol

from supabase import Client, create_client

from agenthub.models.auth import OAuthCredential
from agenthub.models.errors import CredentialStoreError
from agenthub.utils.logging import get_logger

logger = get_logger(__name__)


class CredentialStore(Protocol):
    """Key-value store of OAuth credentials keyed by (user_id, provider)."""

    async def upsert(self, user_id: str, provider: str, credential: OAuthCredential) -> None: ...

    async def get(self, user_id: str, provider: str) -> OAuthCredential | None: ...

    async def delete(self, user_id: str, provider: str) -> None: ...


class InMemoryCredentialStore:
    """Process-local store, used for development and tests."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, str], OAuthCredential] = {}

    async def upsert(self, user_id: str, provider: str, credential: OAuthCredential) -> None:
        self._rows[(user_id, provider)] = credential.model_copy(
            update={"updated_at": datetime.now(UTC)}
        )

    async def get(self, user_id: str, provider: str) -> OAuthCredential | None:
        return self._rows.get((user_id, provider))

    async def delete(self, user_id: str, provider: str) -> None:
        self._rows.pop((user_id, provider), None)

    def __len__(self) -> int:
        return len(self._rows)


class SupabaseCredentialStore:
    """
    Credential store backed by the `oauth_tokens` table in Supabase.

    The supabase client is synchronous, so every call runs in a worker thread
    to keep the event loop free.
    """

    def __init__(self, url: str, service_key: str, table: str = "oauth_tokens") -> None:
        if not url or not service_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
        self.table = table
        self.client: Client = create_client(url, service_key)

    @classmethod
    def from_client(cls, client: Client, table: str = "oauth_tokens") -> "SupabaseCredentialStore":
        store = cls.__new__(cls)
        store.table = table
        store.client = client
        return store

    @staticmethod
    def _to_row(user_id: str, provider: str, credential: OAuthCredential) -> dict[str, Any]:
        return {
            "user_id": user_id,
            "provider": provider,
            "access_token": credential.access_token,
            "refresh_token": credential.refresh_token,
            "expires_at": credential.expires_at.isoformat() if credential.expires_at else None,
            "token_type": credential.token_type,
            "scope": credential.scope,
            "updated_at": datetime.now(UTC).isoformat(),
        }

    async def upsert(self, user_id: str, provider: str, credential: OAuthCredential) -> None:
        row = self._to_row(user_id, provider, credential)
        try:
            await asyncio.to_thread(
                lambda: self.client.table(self.table)
                .upsert(row, on_conflict="user_id,provider")
                .execute()
            )
        except Exception as e:
            logger.error("credential_store_upsert_failed", provider=provider, error=str(e))
            raise CredentialStoreError(f"Failed to store token: {e}") from e

    async def get(self, user_id: str, provider: str) -> OAuthCredential | None:
        try:
            response = await asyncio.to_thread(
                lambda: self.client.table(self.table)
                .select("*")
                .eq("user_id", user_id)
                .eq("provider", provider)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("credential_store_get_failed", provider=provider, error=str(e))
            raise CredentialStoreError(f"Failed to read token: {e}") from e

        rows = response.data or []
        if not rows:
            return None
        return OAuthCredential.model_validate({k: v for k, v in rows[0].items() if v is not None})

    async def delete(self, user_id: str, provider: str) -> None:
        try:
            await asyncio.to_thread(
                lambda: self.client.table(self.table)
                .delete()
                .eq("user_id", user_id)
                .eq("provider", provider)
                .execute()
            )
        except Exception as e:
            logger.error("credential_store_delete_failed", provider=provider, error=str(e))
            raise CredentialStoreError(f"Failed to revoke token: {e}") from e
