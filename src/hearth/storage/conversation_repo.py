"""Conversation repository with CRUD and FTS5 full-text search."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

import aiosqlite

from hearth.core.types import ConversationType, MessageRole
from hearth.log import get_logger
from hearth.storage.database import Database
from hearth.storage.models import Conversation, Message, ToolCall, utcnow

logger = get_logger(__name__)


class ConversationRepository:
    """CRUD + FTS5 search over conversations and their messages."""

    def __init__(self, db: Database):
        self._db = db

    @staticmethod
    async def insert(conn: aiosqlite.Connection, conversation: Conversation) -> None:
        """Insert inside a transaction the caller already holds."""
        await conn.execute(
            """INSERT INTO conversations (id, agent_id, type, label, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                conversation.id,
                conversation.agent_id,
                conversation.type.value,
                conversation.label,
                conversation.created_at.isoformat(),
                conversation.updated_at.isoformat(),
            ),
        )

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_conversation(row) if row else None

    async def list_conversations(self, agent_id: Optional[str] = None) -> list[Conversation]:
        if agent_id:
            cursor = await self._db.conn.execute(
                "SELECT * FROM conversations WHERE agent_id = ? ORDER BY updated_at DESC",
                (agent_id,),
            )
        else:
            cursor = await self._db.conn.execute(
                "SELECT * FROM conversations ORDER BY updated_at DESC"
            )
        rows = await cursor.fetchall()
        return [self._row_to_conversation(row) for row in rows]

    async def delete(self, conversation_id: str) -> bool:
        """Delete a conversation; messages and its session entry cascade."""
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM conversations WHERE id = ?", (conversation_id,)
            )
        return cursor.rowcount > 0

    async def append(self, conversation_id: str, message: Message) -> int:
        """Insert a message and touch the conversation. Returns the message ID."""
        tool_calls_json = (
            json.dumps([tc.to_dict() for tc in message.tool_calls])
            if message.tool_calls
            else None
        )
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                """INSERT INTO messages
                   (conversation_id, role, content, run_id, tool_calls_json, tool_call_id, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    conversation_id,
                    message.role.value,
                    message.content,
                    message.run_id,
                    tool_calls_json,
                    message.tool_call_id,
                    message.timestamp.isoformat(),
                ),
            )
            await conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                (utcnow().isoformat(), conversation_id),
            )
        message.id = cursor.lastrowid
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_messages(self, conversation_id: str, limit: Optional[int] = None) -> list[Message]:
        """Return the most recent *limit* messages, oldest first."""
        if limit is None:
            cursor = await self._db.conn.execute(
                "SELECT * FROM messages WHERE conversation_id = ? ORDER BY id ASC",
                (conversation_id,),
            )
            rows = await cursor.fetchall()
        else:
            cursor = await self._db.conn.execute(
                """SELECT * FROM messages WHERE conversation_id = ?
                   ORDER BY id DESC LIMIT ?""",
                (conversation_id, limit),
            )
            rows = list(reversed(await cursor.fetchall()))
        return [self._row_to_message(row) for row in rows]

    async def search(
        self,
        query: str,
        agent_id: Optional[str] = None,
        exclude_conversation: Optional[str] = None,
        limit: int = 20,
    ) -> list[Message]:
        """Full-text search across user and assistant messages."""
        sql = """SELECT m.* FROM messages m
                 JOIN messages_fts f ON m.id = f.rowid
                 JOIN conversations c ON c.id = m.conversation_id
                 WHERE messages_fts MATCH ? AND m.role IN ('user', 'assistant')"""
        params: list = [query]
        if agent_id:
            sql += " AND c.agent_id = ?"
            params.append(agent_id)
        if exclude_conversation:
            sql += " AND m.conversation_id != ?"
            params.append(exclude_conversation)
        sql += " ORDER BY rank LIMIT ?"
        params.append(limit)
        cursor = await self._db.conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    @staticmethod
    def _row_to_conversation(row) -> Conversation:
        return Conversation(
            id=row["id"],
            agent_id=row["agent_id"],
            type=ConversationType(row["type"]),
            label=row["label"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_message(row) -> Message:
        tool_calls = []
        if row["tool_calls_json"]:
            tool_calls = [ToolCall.from_dict(d) for d in json.loads(row["tool_calls_json"])]
        return Message(
            id=row["id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            run_id=row["run_id"],
            tool_calls=tool_calls,
            tool_call_id=row["tool_call_id"],
            timestamp=datetime.fromisoformat(row["created_at"]),
        )
