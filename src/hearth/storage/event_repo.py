"""Calendar event persistence: one JSON document per row."""

from __future__ import annotations

import json
from typing import Iterable, Optional

from hearth.log import get_logger
from hearth.services.calendar_models import CalendarEvent
from hearth.storage.database import Database
from hearth.storage.models import utcnow

logger = get_logger(__name__)


class EventRepository:
    def __init__(self, db: Database):
        self._db = db

    async def save(self, event: CalendarEvent) -> None:
        await self.save_many([event])

    async def save_many(self, events: Iterable[CalendarEvent]) -> None:
        """Write events in one transaction."""
        now = utcnow().isoformat()
        rows = [
            (
                event.id,
                1 if event.enabled else 0,
                event.next_occurrence_at.isoformat() if event.next_occurrence_at else None,
                json.dumps(event.to_document()),
                now,
            )
            for event in events
        ]
        async with self._db.transaction() as conn:
            await conn.executemany(
                """INSERT INTO calendar_events (id, enabled, next_occurrence, document_json, updated_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       enabled = excluded.enabled,
                       next_occurrence = excluded.next_occurrence,
                       document_json = excluded.document_json,
                       updated_at = excluded.updated_at""",
                rows,
            )

    async def get(self, event_id: str) -> Optional[CalendarEvent]:
        cursor = await self._db.conn.execute(
            "SELECT document_json FROM calendar_events WHERE id = ?", (event_id,)
        )
        row = await cursor.fetchone()
        return CalendarEvent.model_validate(json.loads(row["document_json"])) if row else None

    async def all(self) -> list[CalendarEvent]:
        cursor = await self._db.conn.execute("SELECT id, document_json FROM calendar_events")
        rows = await cursor.fetchall()
        events = []
        for row in rows:
            try:
                events.append(CalendarEvent.model_validate(json.loads(row["document_json"])))
            except ValueError as e:
                logger.error("event_document_invalid", event_id=row["id"], error=str(e))
        return events

    async def count(self) -> int:
        cursor = await self._db.conn.execute("SELECT COUNT(*) FROM calendar_events")
        row = await cursor.fetchone()
        return row[0]

    async def delete(self, event_id: str) -> bool:
        async with self._db.transaction() as conn:
            cursor = await conn.execute("DELETE FROM calendar_events WHERE id = ?", (event_id,))
        return cursor.rowcount > 0
