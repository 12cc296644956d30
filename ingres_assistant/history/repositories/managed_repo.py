# ingres_assistant/history/repositories/managed_repo.py
from __future__ import annotations

from typing import Any

import httpx
import structlog

from ingres_assistant.history.models import (
    Conversation,
    Role,
    StoredMessage,
    StoreResult,
)
from ingres_assistant.history.repositories.base import (
    DEFAULT_LIST_LIMIT,
    ConversationStore,
)
from ingres_assistant.logging_utils import handle_store_errors

logger = structlog.get_logger(__name__)

REST_PREFIX = "/rest/v1"


class ManagedConversationStore(ConversationStore):
    """
    ConversationStore over a hosted backend-as-a-service table API.

    Speaks the PostgREST dialect used by Supabase: `conversations` and
    `messages` tables, filters such as `id=eq.<id>`, and
    `Prefer: return=representation` to get inserted rows back.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.client: httpx.AsyncClient = http_client or httpx.AsyncClient(
            base_url=f"{self.base_url}{REST_PREFIX}",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
            },
            timeout=timeout,
        )

    @staticmethod
    def _single_row(response: httpx.Response) -> dict[str, Any]:
        rows = response.json()
        if not isinstance(rows, list) or not rows:
            raise ValueError("Backend returned no row for the inserted record")
        return rows[0]

    @handle_store_errors("list_conversations")
    async def list_conversations(
        self, limit: int = DEFAULT_LIST_LIMIT
    ) -> StoreResult[list[Conversation]]:
        response = await self.client.get(
            "/conversations",
            params={"select": "*", "order": "updated_at.desc", "limit": str(limit)},
        )
        response.raise_for_status()
        return StoreResult.success(
            [Conversation.model_validate(row) for row in response.json()]
        )

    @handle_store_errors("fetch_messages")
    async def fetch_messages(
        self, conversation_id: str
    ) -> StoreResult[list[StoredMessage]]:
        response = await self.client.get(
            "/messages",
            params={
                "select": "*",
                "conversation_id": f"eq.{conversation_id}",
                "order": "created_at.asc",
            },
        )
        response.raise_for_status()
        return StoreResult.success(
            [StoredMessage.model_validate(row) for row in response.json()]
        )

    @handle_store_errors("create_conversation")
    async def create_conversation(
        self, title: str | None
    ) -> StoreResult[Conversation]:
        response = await self.client.post(
            "/conversations",
            json={"title": title},
            headers={"Prefer": "return=representation"},
        )
        response.raise_for_status()
        return StoreResult.success(
            Conversation.model_validate(self._single_row(response))
        )

    @handle_store_errors("append_message")
    async def append_message(
        self, conversation_id: str, role: Role, content: str
    ) -> StoreResult[StoredMessage]:
        response = await self.client.post(
            "/messages",
            json={"conversation_id": conversation_id, "role": role, "content": content},
            headers={"Prefer": "return=representation"},
        )
        response.raise_for_status()
        return StoreResult.success(
            StoredMessage.model_validate(self._single_row(response))
        )

    @handle_store_errors("rename_conversation")
    async def rename_conversation(
        self, conversation_id: str, title: str
    ) -> StoreResult[None]:
        response = await self.client.patch(
            "/conversations",
            params={"id": f"eq.{conversation_id}"},
            json={"title": title},
        )
        response.raise_for_status()
        return StoreResult.success()

    @handle_store_errors("delete_conversation")
    async def delete_conversation(self, conversation_id: str) -> StoreResult[None]:
        # Messages first to satisfy the foreign key on messages.conversation_id
        response = await self.client.delete(
            "/messages", params={"conversation_id": f"eq.{conversation_id}"}
        )
        response.raise_for_status()

        response = await self.client.delete(
            "/conversations", params={"id": f"eq.{conversation_id}"}
        )
        response.raise_for_status()

        logger.info("Conversation deleted", conversation_id=conversation_id)
        return StoreResult.success()

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> ManagedConversationStore:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
