"""Interchangeable ConversationStore backends."""

from __future__ import annotations

from .base import ConversationStore
from .managed_repo import ManagedConversationStore
from .rest_repo import RestConversationStore
from .sql_repo import AsyncSqlConversationStore

__all__ = [
    "AsyncSqlConversationStore",
    "ConversationStore",
    "ManagedConversationStore",
    "RestConversationStore",
]
