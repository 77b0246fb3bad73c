"""Session store: one delivery-context entry per session key."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import aiosqlite

from hearth.storage.conversation_repo import ConversationRepository
from hearth.storage.database import Database
from hearth.storage.models import Conversation, SessionStoreEntry, utcnow


class SessionRepository:
    """Persists SessionStoreEntry rows keyed by session key."""

    def __init__(self, db: Database):
        self._db = db

    async def get(self, session_key: str) -> Optional[SessionStoreEntry]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM session_entries WHERE session_key = ?", (session_key,)
        )
        row = await cursor.fetchone()
        return self._row_to_entry(row) if row else None

    async def find_by_session_id(self, session_id: str) -> Optional[SessionStoreEntry]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM session_entries WHERE session_id = ? ORDER BY updated_at DESC LIMIT 1",
            (session_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_entry(row) if row else None

    async def all(self) -> list[SessionStoreEntry]:
        cursor = await self._db.conn.execute("SELECT * FROM session_entries")
        rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    @staticmethod
    async def _insert_row(conn: aiosqlite.Connection, entry: SessionStoreEntry) -> None:
        await conn.execute(
            """INSERT INTO session_entries
               (session_key, session_id, agent_id, last_channel, last_to,
                origin_channel, origin_account, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                entry.session_key,
                entry.session_id,
                entry.agent_id,
                entry.last_channel,
                entry.last_to,
                entry.origin_channel,
                entry.origin_account,
                entry.created_at.isoformat(),
                entry.updated_at.isoformat(),
            ),
        )

    async def claim(self, entry: SessionStoreEntry, conversation: Conversation) -> Optional[SessionStoreEntry]:
        """Create *conversation* and its entry together unless the key is taken.

        Returns None when both rows were written, or the entry that already
        holds the key. The check and both inserts share one transaction.
        """
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "SELECT * FROM session_entries WHERE session_key = ?", (entry.session_key,)
            )
            row = await cursor.fetchone()
            if row:
                return self._row_to_entry(row)
            await ConversationRepository.insert(conn, conversation)
            await self._insert_row(conn, entry)
        return None

    async def upsert_delivery(
        self,
        session_key: str,
        session_id: str,
        agent_id: str,
        channel: str,
        to: str,
        account_id: Optional[str] = None,
    ) -> None:
        """Record the last channel/recipient; origin is written only once."""
        now = utcnow().isoformat()
        async with self._db.transaction() as conn:
            await conn.execute(
                """INSERT INTO session_entries
                   (session_key, session_id, agent_id, last_channel, last_to,
                    origin_channel, origin_account, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(session_key) DO UPDATE SET
                       session_id = excluded.session_id,
                       last_channel = excluded.last_channel,
                       last_to = excluded.last_to,
                       origin_channel = COALESCE(session_entries.origin_channel, excluded.origin_channel),
                       origin_account = COALESCE(session_entries.origin_account, excluded.origin_account),
                       updated_at = excluded.updated_at""",
                (session_key, session_id, agent_id, channel, to, channel, account_id, now, now),
            )

    @staticmethod
    def _row_to_entry(row) -> SessionStoreEntry:
        return SessionStoreEntry(
            session_key=row["session_key"],
            session_id=row["session_id"],
            agent_id=row["agent_id"],
            last_channel=row["last_channel"],
            last_to=row["last_to"],
            origin_channel=row["origin_channel"],
            origin_account=row["origin_account"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
