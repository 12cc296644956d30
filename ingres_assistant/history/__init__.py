"""Conversation history models and stores."""

from __future__ import annotations

from .models import (
    Conversation,
    Message,
    StoredMessage,
    StoreResult,
    make_conversation_title,
)

__all__ = [
    "Conversation",
    "Message",
    "StoreResult",
    "StoredMessage",
    "make_conversation_title",
]
