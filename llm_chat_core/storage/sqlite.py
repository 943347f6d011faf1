"""SQLite-backed chat storage."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import aiosqlite

from ..models.messages import Conversation, Message, MessageRole
from .base import ChatStorage, StorageError

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    text TEXT NOT NULL,
    role TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    tokens INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation
    ON messages(conversation_id, timestamp);
"""


class SQLiteStorage(ChatStorage):
    """
    Conversation and message rows in a local SQLite file.

    Usage::

        async with SQLiteStorage("chat.db") as storage:
            await storage.insert_message(message)

    ``":memory:"`` gives a throwaway database.
    """

    def __init__(self, db_path: str = "chat.db"):
        self._db_path = db_path if db_path == ":memory:" else str(Path(db_path).expanduser())
        self._conn: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Open the connection and apply the schema."""
        if self._conn is not None:
            return
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = await aiosqlite.connect(self._db_path)
        except aiosqlite.Error as e:
            raise StorageError("initialize", e) from e
        try:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA foreign_keys=ON")
            await conn.executescript(SCHEMA)
            await conn.commit()
        except aiosqlite.Error as e:
            await conn.close()
            raise StorageError("initialize", e) from e
        self._conn = conn
        logger.debug(f"SQLite storage initialized at {self._db_path}")

    async def close(self) -> None:
        """Close the connection if open."""
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    async def __aenter__(self) -> "SQLiteStorage":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _conn_or_raise(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("connect", RuntimeError("Storage is not initialized. Call initialize() first."))
        return self._conn

    async def upsert_conversation(self, conversation: Conversation) -> None:
        conn = self._conn_or_raise()
        try:
            # ON CONFLICT keeps the row (and its messages) instead of REPLACE's delete+insert
            await conn.execute(
                """
                INSERT INTO conversations (id, title, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    created_at = excluded.created_at,
                    updated_at = excluded.updated_at
                """,
                (conversation.id, conversation.title,
                 conversation.created_at, conversation.updated_at),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageError("upsert_conversation", e) from e

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        conn = self._conn_or_raise()
        try:
            async with conn.execute(
                "SELECT id, title, created_at, updated_at FROM conversations WHERE id = ?",
                (conversation_id,),
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError("get_conversation", e) from e
        if row is None:
            return None
        return Conversation(
            id=row["id"],
            title=row["title"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def insert_message(self, message: Message) -> None:
        conn = self._conn_or_raise()
        try:
            await conn.execute(
                """
                INSERT OR REPLACE INTO messages
                    (id, conversation_id, text, role, timestamp, tokens)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (message.id, message.conversation_id, message.text,
                 message.role.value, message.timestamp, message.token_count),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageError("insert_message", e) from e

    async def list_messages(self, conversation_id: str) -> List[Message]:
        conn = self._conn_or_raise()
        try:
            async with conn.execute(
                """
                SELECT id, conversation_id, text, role, timestamp, tokens
                FROM messages
                WHERE conversation_id = ?
                ORDER BY timestamp ASC, rowid ASC
                """,
                (conversation_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageError("list_messages", e) from e
        return [self._row_to_message(row) for row in rows]

    async def delete_messages(self, conversation_id: str) -> None:
        conn = self._conn_or_raise()
        try:
            await conn.execute(
                "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageError("delete_messages", e) from e

    async def count_messages(self, conversation_id: str) -> int:
        conn = self._conn_or_raise()
        try:
            async with conn.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ?",
                (conversation_id,),
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError("count_messages", e) from e
        return int(row[0]) if row else 0

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> Message:
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            text=row["text"],
            role=MessageRole(row["role"]),
            timestamp=row["timestamp"],
            token_count=row["tokens"],
        )
