"""Full-text index over an agent's memory files."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from hearth.storage.database import Database


@dataclass(frozen=True)
class MemoryChunk:
    path: str
    start_line: int
    end_line: int
    text: str


@dataclass(frozen=True)
class MemoryFileState:
    mtime: float
    size: int


@dataclass(frozen=True)
class MemoryHit:
    chunk: MemoryChunk
    rank: float


class MemoryRepository:
    def __init__(self, db: Database):
        self._db = db

    async def file_states(self, agent_id: str) -> dict[str, MemoryFileState]:
        cursor = await self._db.conn.execute(
            "SELECT path, mtime, size FROM memory_files WHERE agent_id = ?", (agent_id,)
        )
        return {row["path"]: MemoryFileState(row["mtime"], row["size"]) for row in await cursor.fetchall()}

    async def replace_file(
        self, agent_id: str, path: str, state: MemoryFileState, chunks: Iterable[MemoryChunk]
    ) -> None:
        """Swap every chunk of *path* for *chunks* in one transaction."""
        rows = [(c.text, agent_id, c.path, c.start_line, c.end_line) for c in chunks]
        async with self._db.transaction() as conn:
            await conn.execute("DELETE FROM memory_chunks WHERE agent_id = ? AND path = ?", (agent_id, path))
            await conn.executemany(
                "INSERT INTO memory_chunks (text, agent_id, path, start_line, end_line) VALUES (?, ?, ?, ?, ?)",
                rows,
            )
            await conn.execute(
                """INSERT INTO memory_files (agent_id, path, mtime, size, chunks) VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(agent_id, path) DO UPDATE SET
                       mtime = excluded.mtime, size = excluded.size, chunks = excluded.chunks""",
                (agent_id, path, state.mtime, state.size, len(rows)),
            )

    async def delete_files(self, agent_id: str, paths: Iterable[str]) -> None:
        params = [(agent_id, path) for path in paths]
        if not params:
            return
        async with self._db.transaction() as conn:
            await conn.executemany("DELETE FROM memory_chunks WHERE agent_id = ? AND path = ?", params)
            await conn.executemany("DELETE FROM memory_files WHERE agent_id = ? AND path = ?", params)

    async def totals(self, agent_id: str) -> tuple[int, int]:
        """Return (file count, chunk count) for *agent_id*."""
        cursor = await self._db.conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(chunks), 0) FROM memory_files WHERE agent_id = ?", (agent_id,)
        )
        row = await cursor.fetchone()
        return row[0], row[1]

    async def search(self, agent_id: str, match: str, limit: int) -> list[MemoryHit]:
        """Best chunks first. ``rank`` is the FTS5 bm25 value, lower is better."""
        cursor = await self._db.conn.execute(
            """SELECT path, start_line, end_line, text, rank
               FROM memory_chunks
               WHERE memory_chunks MATCH ? AND agent_id = ?
               ORDER BY rank
               LIMIT ?""",
            (match, agent_id, limit),
        )
        return [
            MemoryHit(
                MemoryChunk(row["path"], int(row["start_line"]), int(row["end_line"]), row["text"]),
                row["rank"],
            )
            for row in await cursor.fetchall()
        ]
