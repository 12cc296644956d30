# ingres_assistant/history/models.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, Field

Role = Literal["user", "assistant"]

DEFAULT_TITLE_LENGTH = 50
TITLE_ELLIPSIS = "..."

T = TypeVar("T")


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class Message(BaseModel):
    """
    A message in the visible thread.

    Assistant messages start empty with `is_streaming=True` and only accept
    appended text until streaming ends.
    """
    id: str = Field(default_factory=_new_id)
    role: Role
    content: str = ""
    is_streaming: bool = False

    def append(self, text: str) -> None:
        if not self.is_streaming:
            raise ValueError(f"Message {self.id} is no longer streaming")
        self.content += text


class Conversation(BaseModel):
    """A persisted conversation."""
    id: str = Field(default_factory=_new_id)
    title: str | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime | None = None


class StoredMessage(BaseModel):
    """The persisted copy of a message."""
    id: str = Field(default_factory=_new_id)
    conversation_id: str
    role: Role
    content: str
    created_at: datetime = Field(default_factory=_now)

    def to_message(self) -> Message:
        return Message(id=self.id, role=self.role, content=self.content)


def make_conversation_title(
    first_message: str, max_length: int = DEFAULT_TITLE_LENGTH
) -> str:
    """Title derived from the first user message, ellipsized when cut."""
    if len(first_message) <= max_length:
        return first_message
    return first_message[:max_length] + TITLE_ELLIPSIS


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """
    Outcome of a store operation.

    Stores never raise to their callers; failures come back here with a
    diagnostic, and `not_supported` marks operations the backend lacks.
    """
    ok: bool
    value: T | None = None
    error: str | None = None
    not_supported: bool = False

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: T | None = None) -> StoreResult[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> StoreResult[T]:
        return cls(ok=False, error=error)

    @classmethod
    def unsupported(cls, operation: str) -> StoreResult[T]:
        return cls(
            ok=False,
            error=f"{operation} is not supported by this backend",
            not_supported=True,
        )
