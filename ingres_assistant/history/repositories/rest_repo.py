# ingres_assistant/history/repositories/rest_repo.py
from __future__ import annotations

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


class RestConversationStore(ConversationStore):
    """
    ConversationStore over the gateway's plain REST surface.

    The REST API has no rename or delete endpoints; those operations return
    an explicit not-supported failure.
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.client: httpx.AsyncClient = http_client or httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout
        )

    @handle_store_errors("list_conversations")
    async def list_conversations(
        self, limit: int = DEFAULT_LIST_LIMIT
    ) -> StoreResult[list[Conversation]]:
        response = await self.client.get("/conversations", params={"limit": limit})
        response.raise_for_status()
        return StoreResult.success(
            [Conversation.model_validate(row) for row in response.json()]
        )

    @handle_store_errors("fetch_messages")
    async def fetch_messages(
        self, conversation_id: str
    ) -> StoreResult[list[StoredMessage]]:
        response = await self.client.get(f"/conversations/{conversation_id}/messages")
        response.raise_for_status()
        return StoreResult.success(
            [StoredMessage.model_validate(row) for row in response.json()]
        )

    @handle_store_errors("create_conversation")
    async def create_conversation(
        self, title: str | None
    ) -> StoreResult[Conversation]:
        response = await self.client.post("/conversations", json={"title": title})
        response.raise_for_status()
        return StoreResult.success(Conversation.model_validate(response.json()))

    @handle_store_errors("append_message")
    async def append_message(
        self, conversation_id: str, role: Role, content: str
    ) -> StoreResult[StoredMessage]:
        response = await self.client.post(
            f"/conversations/{conversation_id}/messages",
            json={"role": role, "content": content},
        )
        response.raise_for_status()
        return StoreResult.success(StoredMessage.model_validate(response.json()))

    async def rename_conversation(
        self, conversation_id: str, title: str
    ) -> StoreResult[None]:
        logger.warning(
            "Rename endpoint not available", conversation_id=conversation_id
        )
        return StoreResult.unsupported("rename_conversation")

    async def delete_conversation(self, conversation_id: str) -> StoreResult[None]:
        logger.warning(
            "Delete endpoint not available", conversation_id=conversation_id
        )
        return StoreResult.unsupported("delete_conversation")

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> RestConversationStore:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
