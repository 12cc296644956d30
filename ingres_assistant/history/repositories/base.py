# ingres_assistant/history/repositories/base.py
from __future__ import annotations

from typing import Protocol

from ingres_assistant.history.models import (
    Conversation,
    Role,
    StoredMessage,
    StoreResult,
)

DEFAULT_LIST_LIMIT = 20


class ConversationStore(Protocol):
    """
    Interface for storing and retrieving conversations and their messages.

    Every operation reports failure through the returned `StoreResult`
    rather than raising; implementations log a diagnostic for each failure.
    """

    async def list_conversations(
        self, limit: int = DEFAULT_LIST_LIMIT
    ) -> StoreResult[list[Conversation]]:
        """
        Return conversations, most recently updated first.
        """
        ...

    async def fetch_messages(
        self, conversation_id: str
    ) -> StoreResult[list[StoredMessage]]:
        """
        Return the messages of a conversation in creation order.
        """
        ...

    async def create_conversation(
        self, title: str | None
    ) -> StoreResult[Conversation]:
        """
        Create and return a new conversation.
        """
        ...

    async def append_message(
        self, conversation_id: str, role: Role, content: str
    ) -> StoreResult[StoredMessage]:
        """
        Persist a message at the end of a conversation.
        """
        ...

    async def rename_conversation(
        self, conversation_id: str, title: str
    ) -> StoreResult[None]:
        """
        Change the title of a conversation.
        """
        ...

    async def delete_conversation(self, conversation_id: str) -> StoreResult[None]:
        """
        Delete a conversation and all of its messages.  No orphan messages
        may remain afterwards.
        """
        ...

    async def close(self) -> None:
        """
        Release connections held by the store.
        """
        ...
