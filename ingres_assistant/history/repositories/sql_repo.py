# ingres_assistant/history/repositories/sql_repo.py
from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

import aiosqlite

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

logger = logging.getLogger(__name__)


class AsyncSqlConversationStore(ConversationStore):
    """
    SQLite implementation of ConversationStore.

    Messages reference their conversation with ON DELETE CASCADE, and the
    delete path also removes them explicitly first, so no orphans survive
    either way. Uses one persistent connection guarded by a lock.
    """

    def __init__(self, db_path: str = "conversations.db"):
        self.db_path = db_path
        self._init_lock = asyncio.Lock()
        self._initialized = False
        self._connection_lock = asyncio.Lock()  # Serialize database access
        self._connection: aiosqlite.Connection | None = None

    async def _initialize(self) -> aiosqlite.Connection:
        """
        Lazily create tables and indices on first use.
        """
        if self._initialized and self._connection:
            return self._connection
        async with self._init_lock:
            if self._initialized and self._connection:
                return self._connection

            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row

            await self._connection.execute("PRAGMA foreign_keys=ON")
            if self.db_path != ":memory:":
                await self._connection.execute("PRAGMA journal_mode=WAL")
                await self._connection.execute("PRAGMA synchronous=NORMAL")
            # 30 second timeout
            await self._connection.execute("PRAGMA busy_timeout=30000")

            await self._connection.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    id TEXT PRIMARY KEY,
                    title TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                )
            """)
            await self._connection.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    conversation_id TEXT NOT NULL
                        REFERENCES conversations(id) ON DELETE CASCADE,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            await self._connection.execute("""
                CREATE INDEX IF NOT EXISTS idx_messages_conversation_seq
                ON messages(conversation_id, seq)
            """)
            await self._connection.commit()

            logger.info(f"Conversation store initialized at {self.db_path}")
            self._initialized = True
            return self._connection

    async def close(self) -> None:
        """
        Close the persistent database connection.
        """
        if self._connection:
            await self._connection.close()
            self._connection = None
            self._initialized = False

    async def __aenter__(self) -> AsyncSqlConversationStore:
        """Async context manager entry."""
        await self._initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    @handle_store_errors("list_conversations")
    async def list_conversations(
        self, limit: int = DEFAULT_LIST_LIMIT
    ) -> StoreResult[list[Conversation]]:
        conn = await self._initialize()
        async with self._connection_lock:
            cursor = await conn.execute(
                """
                SELECT id, title, created_at, updated_at FROM conversations
                ORDER BY COALESCE(updated_at, created_at) DESC, rowid DESC
                LIMIT ?
                """,
                (limit,),
            )
            rows = await cursor.fetchall()

        return StoreResult.success([Conversation(**dict(row)) for row in rows])

    @handle_store_errors("fetch_messages")
    async def fetch_messages(
        self, conversation_id: str
    ) -> StoreResult[list[StoredMessage]]:
        conn = await self._initialize()
        async with self._connection_lock:
            cursor = await conn.execute(
                """
                SELECT id, conversation_id, role, content, created_at
                FROM messages
                WHERE conversation_id = ?
                ORDER BY seq ASC
                """,
                (conversation_id,),
            )
            rows = await cursor.fetchall()

        return StoreResult.success([StoredMessage(**dict(row)) for row in rows])

    @handle_store_errors("create_conversation")
    async def create_conversation(
        self, title: str | None
    ) -> StoreResult[Conversation]:
        conn = await self._initialize()
        conversation = Conversation(title=title)
        created = conversation.created_at.isoformat()

        async with self._connection_lock:
            await conn.execute(
                """
                INSERT INTO conversations (id, title, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (conversation.id, title, created, created),
            )
            await conn.commit()

        return StoreResult.success(
            conversation.model_copy(update={"updated_at": conversation.created_at})
        )

    @handle_store_errors("append_message")
    async def append_message(
        self, conversation_id: str, role: Role, content: str
    ) -> StoreResult[StoredMessage]:
        conn = await self._initialize()
        message = StoredMessage(
            conversation_id=conversation_id, role=role, content=content
        )
        created = message.created_at.isoformat()

        async with self._connection_lock:
            try:
                await conn.execute(
                    """
                    INSERT INTO messages
                        (id, conversation_id, role, content, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (message.id, conversation_id, role, content, created),
                )
                await conn.execute(
                    "UPDATE conversations SET updated_at = ? WHERE id = ?",
                    (created, conversation_id),
                )
                await conn.commit()
            except aiosqlite.Error:
                await conn.rollback()
                raise

        return StoreResult.success(message)

    @handle_store_errors("rename_conversation")
    async def rename_conversation(
        self, conversation_id: str, title: str
    ) -> StoreResult[None]:
        conn = await self._initialize()
        async with self._connection_lock:
            cursor = await conn.execute(
                "UPDATE conversations SET title = ?, updated_at = ? WHERE id = ?",
                (title, datetime.now(UTC).isoformat(), conversation_id),
            )
            await conn.commit()
            updated = cursor.rowcount

        if not updated:
            logger.warning(f"Rename of unknown conversation {conversation_id}")
            return StoreResult.failure(f"Conversation {conversation_id} not found")
        return StoreResult.success()

    @handle_store_errors("delete_conversation")
    async def delete_conversation(self, conversation_id: str) -> StoreResult[None]:
        conn = await self._initialize()
        async with self._connection_lock:
            try:
                # Messages first, then the conversation they reference
                await conn.execute(
                    "DELETE FROM messages WHERE conversation_id = ?",
                    (conversation_id,),
                )
                cursor = await conn.execute(
                    "DELETE FROM conversations WHERE id = ?", (conversation_id,)
                )
                await conn.commit()
            except aiosqlite.Error:
                await conn.rollback()
                raise
            deleted = cursor.rowcount

        if not deleted:
            logger.warning(f"Delete of unknown conversation {conversation_id}")
            return StoreResult.failure(f"Conversation {conversation_id} not found")
        return StoreResult.success()
