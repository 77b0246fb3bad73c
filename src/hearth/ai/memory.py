"""Long-term memory: recall from past conversations and search over memory files."""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import aiosqlite

from hearth.log import get_logger
from hearth.storage.conversation_repo import ConversationRepository
from hearth.storage.memory_repo import MemoryChunk, MemoryFileState, MemoryRepository

logger = get_logger(__name__)

_WORD = re.compile(r"\w{3,}", re.UNICODE)
_MAX_SNIPPET = 300


class MemoryRetriever(ABC):
    @abstractmethod
    async def retrieve(self, agent_id: str, conversation_id: str, query: str) -> str:
        """Return memory text for the prompt, or an empty string."""
        ...


class NullMemory(MemoryRetriever):
    async def retrieve(self, agent_id: str, conversation_id: str, query: str) -> str:
        return ""


def fts_query(text: str, max_terms: int = 8) -> str:
    """Turn free text into a safe FTS5 OR-query of quoted terms."""
    seen: list[str] = []
    for word in _WORD.findall(text.lower()):
        if word not in seen:
            seen.append(word)
        if len(seen) >= max_terms:
            break
    return " OR ".join(f'"{w}"' for w in seen)


class ConversationMemory(MemoryRetriever):
    """Recalls related messages from the agent's other conversations via FTS5."""

    def __init__(self, repo: ConversationRepository, limit: int = 5):
        self._repo = repo
        self._limit = limit

    async def retrieve(self, agent_id: str, conversation_id: str, query: str) -> str:
        if self._limit <= 0:
            return ""
        match = fts_query(query)
        if not match:
            return ""
        try:
            hits = await self._repo.search(
                match,
                agent_id=agent_id,
                exclude_conversation=conversation_id,
                limit=self._limit,
            )
        except aiosqlite.Error as e:
            logger.warning("memory_retrieval_failed", error=str(e))
            return ""
        if not hits:
            return ""

        lines = ["Relevant memories from earlier conversations:"]
        for hit in hits:
            snippet = hit.content.replace("\n", " ")
            if len(snippet) > _MAX_SNIPPET:
                snippet = snippet[:_MAX_SNIPPET] + "..."
            lines.append(f"- [{hit.timestamp:%Y-%m-%d}] ({hit.role.value}) {snippet}")
        return "\n".join(lines)


MEMORY_FILE = "MEMORY.md"
MEMORY_DIR = "memory"
_MAX_CHUNK_SNIPPET = 700


@dataclass(frozen=True)
class MemoryMatch:
    path: str
    start_line: int
    end_line: int
    score: float
    snippet: str


def memory_files(root: Path) -> dict[str, Path]:
    """MEMORY.md and memory/*.md under *root*, keyed by their relative path."""
    files: dict[str, Path] = {}
    top = root / MEMORY_FILE
    if top.is_file():
        files[MEMORY_FILE] = top
    notes = root / MEMORY_DIR
    if notes.is_dir():
        for path in sorted(notes.glob("*.md")):
            if path.is_file():
                files[f"{MEMORY_DIR}/{path.name}"] = path
    return files


def chunk_markdown(path: str, text: str, max_lines: int = 20) -> list[MemoryChunk]:
    """Split at headings and every *max_lines* lines. Line numbers are 1-based."""
    chunks: list[MemoryChunk] = []
    block: list[str] = []
    start = 1
    for number, line in enumerate(text.splitlines(), start=1):
        if block and (line.startswith("#") or len(block) >= max_lines):
            _add_chunk(chunks, path, start, block)
            block = []
            start = number
        block.append(line)
    _add_chunk(chunks, path, start, block)
    return chunks


def _add_chunk(chunks: list[MemoryChunk], path: str, start: int, block: list[str]) -> None:
    body = "\n".join(block).strip()
    if not body:
        return
    end = start + len(block) - 1
    while not block[end - start].strip():
        end -= 1
    chunks.append(MemoryChunk(path, start, end, body))


def _stat_files(root: Path) -> dict[str, tuple[Path, MemoryFileState]]:
    found = {}
    for rel, path in memory_files(root).items():
        stat = path.stat()
        found[rel] = (path, MemoryFileState(stat.st_mtime, stat.st_size))
    return found


class MemoryFileIndex:
    """FTS5 index over each agent's MEMORY.md and memory/*.md.

    Every search first syncs the agent's directory: files whose mtime or size
    changed are re-chunked, vanished files are dropped. Scores are the bm25
    rank relative to the best hit, so the top result always scores 1.0.
    """

    def __init__(self, repo: MemoryRepository, root: Path, chunk_lines: int = 20):
        self._repo = repo
        self._root = root
        self._chunk_lines = chunk_lines
        self._lock = asyncio.Lock()

    def root_for(self, agent_id: str) -> Path:
        return self._root / agent_id

    async def sync(self, agent_id: str) -> None:
        root = self.root_for(agent_id)
        async with self._lock:
            stored = await self._repo.file_states(agent_id)
            found = await asyncio.to_thread(_stat_files, root)
            for rel, (path, state) in found.items():
                if stored.get(rel) == state:
                    continue
                try:
                    text = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
                except OSError as e:
                    logger.warning("memory_file_unreadable", agent_id=agent_id, path=rel, error=str(e))
                    continue
                chunks = chunk_markdown(rel, text, self._chunk_lines)
                await self._repo.replace_file(agent_id, rel, state, chunks)
                logger.info("memory_file_indexed", agent_id=agent_id, path=rel, chunks=len(chunks))
            await self._repo.delete_files(agent_id, [rel for rel in stored if rel not in found])

    async def search(
        self, agent_id: str, query: str, max_results: int = 6, min_score: float = 0.35
    ) -> list[MemoryMatch]:
        await self.sync(agent_id)
        match = fts_query(query)
        if not match:
            return []
        hits = await self._repo.search(agent_id, match, max_results)
        if not hits:
            return []

        best = hits[0].rank
        matches = []
        for hit in hits:
            score = round(hit.rank / best, 3) if best < 0 else 1.0
            if score < min_score:
                break
            snippet = hit.chunk.text
            if len(snippet) > _MAX_CHUNK_SNIPPET:
                snippet = snippet[:_MAX_CHUNK_SNIPPET] + "..."
            matches.append(MemoryMatch(hit.chunk.path, hit.chunk.start_line, hit.chunk.end_line, score, snippet))
        return matches

    async def totals(self, agent_id: str) -> tuple[int, int]:
        return await self._repo.totals(agent_id)
