"""
Chat orchestration for INGRES AI Assistant.

This module owns the state behind the chat UI:
- The visible message thread and the conversation list
- One in-flight streaming session at a time (Idle -> Sending -> Streaming)
- Reconciling streamed deltas into the assistant placeholder
- Best-effort persistence of user and assistant messages
- User-facing notifications for every failure
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, SkipValidation

from ingres_assistant.history.models import (
    Conversation,
    Message,
    make_conversation_title,
)
from ingres_assistant.history.repositories.base import ConversationStore
from ingres_assistant.llm.client import StreamingChatClient
from ingres_assistant.llm.models import ChatTurn, MessageRole
from ingres_assistant.llm.streaming.models import (
    FailureKind,
    StreamDelta,
    StreamDone,
    StreamFailed,
)
from ingres_assistant.logging_utils import ContextualLogger, log_operation


class ChatState(Enum):
    """Lifecycle of one chat session."""
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"


class Notification(BaseModel):
    """A short, user-facing message (toast)."""
    title: str
    description: str
    variant: Literal["default", "destructive"] = "destructive"


FAILURE_TITLES = {
    FailureKind.RATE_LIMITED: "Too many requests",
    FailureKind.UNAVAILABLE: "Service unavailable",
    FailureKind.TRANSPORT: "Connection error",
}

TRANSPORT_FAILURE_MESSAGE = (
    "Could not reach the assistant. Please check your connection and try again."
)
RATE_LIMIT_MESSAGE = "Too many requests. Please try again shortly."


class ChatOrchestrator:
    """
    View-model for one chat window.

    1. Rejects blank input and any submit while a reply is in flight
    2. Creates the conversation on the first message
    3. Streams the reply into a placeholder assistant message
    4. Persists the final text, or drops the placeholder on error
    """

    class OrchestratorConfig(BaseModel):
        model_config = ConfigDict(arbitrary_types_allowed=True)

        client: SkipValidation[StreamingChatClient]
        store: SkipValidation[ConversationStore]
        title_max_length: int = 50
        conversation_list_limit: int = 20

    def __init__(
        self,
        config: ChatOrchestrator.OrchestratorConfig,
        notify: Callable[[Notification], None] | None = None,
        on_change: Callable[[], None] | None = None,
    ):
        self.client = config.client
        self.store = config.store
        self.title_max_length = config.title_max_length
        self.conversation_list_limit = config.conversation_list_limit

        self.messages: list[Message] = []
        self.conversations: list[Conversation] = []
        self.conversation_id: str | None = None
        self.state = ChatState.IDLE

        self._notify_callback = notify
        self._on_change = on_change
        self._active_task: asyncio.Task[None] | None = None
        self._log = ContextualLogger({"component": "chat_orchestrator"})

    @property
    def is_busy(self) -> bool:
        return self.state is not ChatState.IDLE

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _notify(
        self,
        title: str,
        description: str,
        variant: Literal["default", "destructive"] = "destructive",
    ) -> None:
        notification = Notification(
            title=title, description=description, variant=variant
        )
        if variant == "destructive":
            self._log.warning("User notification", title=title, description=description)
        if self._notify_callback is not None:
            self._notify_callback(notification)

    def _remove_message(self, message_id: str) -> None:
        self.messages = [m for m in self.messages if m.id != message_id]

    # ------------------------------------------------------------------ #
    # Sending                                                            #
    # ------------------------------------------------------------------ #

    async def submit(self, content: str) -> bool:
        """
        Send a user message and stream the assistant's reply.

        Returns False when the input is rejected (blank, or a session is
        already active) or the conversation could not be created; the
        visible thread is left untouched in those cases.
        """
        if not content.strip() or self.is_busy:
            self._log.debug(
                "Submit rejected", state=self.state.value, blank=not content.strip()
            )
            return False

        self.state = ChatState.SENDING
        self._changed()

        try:
            conversation_id = await self._ensure_conversation(content)
            if conversation_id is None:
                return False

            history = [
                ChatTurn(role=MessageRole(m.role), content=m.content)
                for m in self.messages
            ]
            user_message = Message(role="user", content=content)
            history.append(ChatTurn(role=MessageRole.USER, content=content))
            self.messages.append(user_message)
            self._changed()

            saved = await self.store.append_message(conversation_id, "user", content)
            if not saved:
                self._notify("Error", "Failed to save your message")

            placeholder = Message(role="assistant", is_streaming=True)
            self.messages.append(placeholder)
            self._changed()

            self._active_task = asyncio.create_task(
                self._stream_reply(history, conversation_id, placeholder)
            )
            try:
                await self._active_task
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise
                # Cancelled through cancel(); the reply task cleaned up
            return True

        finally:
            self._active_task = None
            self.state = ChatState.IDLE
            self._changed()

    async def _ensure_conversation(self, first_message: str) -> str | None:
        if self.conversation_id is not None:
            return self.conversation_id

        title = make_conversation_title(first_message, self.title_max_length)
        result = await self.store.create_conversation(title)
        if not result or result.value is None:
            self._notify("Error", "Failed to create conversation")
            return None

        self.conversation_id = result.value.id
        self._log.info("Conversation created", conversation_id=self.conversation_id)
        await self.load_conversations()
        return self.conversation_id

    async def _stream_reply(
        self,
        history: list[ChatTurn],
        conversation_id: str,
        placeholder: Message,
    ) -> None:
        reply_log = self._log.bind(conversation_id=conversation_id)
        try:
            async for event in self.client.stream_chat(history, conversation_id):
                if isinstance(event, StreamDelta):
                    self.state = ChatState.STREAMING
                    placeholder.append(event.text)
                    self._changed()
                elif isinstance(event, StreamDone):
                    await self._finish_reply(conversation_id, placeholder)
                elif isinstance(event, StreamFailed):
                    self._fail_reply(placeholder, event, reply_log)
        except asyncio.CancelledError:
            self._cancel_reply(placeholder, reply_log)
            raise

    async def _finish_reply(self, conversation_id: str, placeholder: Message) -> None:
        placeholder.is_streaming = False
        self._changed()

        if not placeholder.content:
            return

        saved = await self.store.append_message(
            conversation_id, "assistant", placeholder.content
        )
        if not saved:
            # The reply stays visible; persistence is best-effort
            self._notify("Error", "Failed to save the assistant's reply")

    def _fail_reply(
        self, placeholder: Message, event: StreamFailed, log: ContextualLogger
    ) -> None:
        self._remove_message(placeholder.id)
        self._changed()

        title = FAILURE_TITLES.get(event.kind, "Error")
        if event.kind is FailureKind.TRANSPORT:
            description = TRANSPORT_FAILURE_MESSAGE
        elif event.kind is FailureKind.RATE_LIMITED:
            description = event.message or RATE_LIMIT_MESSAGE
        else:
            description = event.message

        log.error(
            "Assistant reply failed",
            failure_kind=event.kind.value,
            status_code=event.status_code,
            error_message=event.message,
        )
        self._notify(title, description)

    def _cancel_reply(self, placeholder: Message, log: ContextualLogger) -> None:
        placeholder.is_streaming = False
        if not placeholder.content:
            self._remove_message(placeholder.id)
        log.info("Assistant reply cancelled", received_chars=len(placeholder.content))
        self._changed()

    def cancel(self) -> bool:
        """Abort the in-flight reply. Returns False when nothing is running."""
        if self._active_task is None or self._active_task.done():
            return False
        self._active_task.cancel()
        return True

    # ------------------------------------------------------------------ #
    # Conversation management                                            #
    # ------------------------------------------------------------------ #

    @log_operation("load_conversations")
    async def load_conversations(self) -> bool:
        result = await self.store.list_conversations(self.conversation_list_limit)
        if not result:
            self._log.error("Error loading conversations", error=result.error)
            return False
        self.conversations = list(result.value or [])
        self._changed()
        return True

    @log_operation("load_messages")
    async def load_messages(self, conversation_id: str) -> bool:
        """Replace the visible thread with a stored conversation."""
        if self.is_busy:
            return False

        result = await self.store.fetch_messages(conversation_id)
        if not result:
            self._notify("Error", "Failed to load messages")
            return False

        self.messages = [stored.to_message() for stored in result.value or []]
        self.conversation_id = conversation_id
        self._changed()
        return True

    def start_new_chat(self) -> bool:
        """Clear the thread; the next submit creates a new conversation."""
        if self.is_busy:
            return False
        self.messages = []
        self.conversation_id = None
        self._changed()
        return True

    async def rename_conversation(self, conversation_id: str, title: str) -> bool:
        result = await self.store.rename_conversation(conversation_id, title)
        if not result:
            if result.not_supported:
                self._notify("Not implemented", "Rename endpoint not available")
            else:
                self._notify("Error", "Failed to rename conversation")
            return False

        await self.load_conversations()
        return True

    async def delete_conversation(self, conversation_id: str) -> bool:
        if self.is_busy and conversation_id == self.conversation_id:
            self._log.debug("Delete rejected", conversation_id=conversation_id)
            return False

        result = await self.store.delete_conversation(conversation_id)
        if not result:
            if result.not_supported:
                self._notify("Not implemented", "Delete endpoint not available")
            else:
                self._notify("Error", "Failed to delete conversation")
            return False

        if self.conversation_id == conversation_id:
            self.messages = []
            self.conversation_id = None

        await self.load_conversations()
        self._notify(
            "Deleted", "Conversation deleted successfully", variant="default"
        )
        return True
