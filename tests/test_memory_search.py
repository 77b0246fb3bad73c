"""Tests for the memory file index and the memory_search tool."""

import os

import pytest

from hearth.ai.memory import MemoryFileIndex, chunk_markdown
from hearth.ai.tools.base import ToolExecutionContext
from hearth.ai.tools.memory_search import MemorySearchTool
from hearth.storage.memory_repo import MemoryRepository

MEMORY_MD = """# Preferences
Favourite colour is teal and the garden gate is green.

# Projects
The solar panel install finished in March.

# People
Sam handles the weekly grocery run.
"""

DAILY_MD = """# Monday
Painted the shed a dark colour before the rain.

# Tuesday
Booked the dentist for next month.
"""


@pytest.fixture
def memory_root(tmp_path):
    return tmp_path / "memory"


@pytest.fixture
def write_memory(memory_root):
    def _write(relative, text, agent_id="main"):
        path = memory_root / agent_id / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def index(db, memory_root):
    return MemoryFileIndex(MemoryRepository(db), memory_root)


@pytest.fixture
def notes(write_memory):
    write_memory("MEMORY.md", MEMORY_MD)
    return write_memory("memory/2026-01-05.md", DAILY_MD)


def context(agent_id="main"):
    return ToolExecutionContext(conversation_id="conv-1", agent_id=agent_id)


# --------------------------------------------------------------------------- #
# Chunking                                                                     #
# --------------------------------------------------------------------------- #

def test_chunk_markdown_splits_at_headings():
    chunks = chunk_markdown("MEMORY.md", MEMORY_MD)
    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 2), (4, 5), (7, 8)]
    assert chunks[0].text == "# Preferences\nFavourite colour is teal and the garden gate is green."
    assert all(c.path == "MEMORY.md" for c in chunks)


def test_chunk_markdown_splits_long_sections():
    text = "\n".join(f"note {i}" for i in range(1, 6))
    chunks = chunk_markdown("memory/log.md", text, max_lines=2)
    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 2), (3, 4), (5, 5)]


def test_chunk_markdown_skips_blank_text():
    assert chunk_markdown("MEMORY.md", "\n\n   \n") == []


# --------------------------------------------------------------------------- #
# Index                                                                        #
# --------------------------------------------------------------------------- #

async def test_best_match_scores_one(index, notes):
    matches = await index.search("main", "teal colour")

    assert len(matches) == 1
    best = matches[0]
    assert (best.path, best.start_line, best.end_line) == ("MEMORY.md", 1, 2)
    assert best.score == 1.0
    assert "teal" in best.snippet


async def test_zero_min_score_keeps_weaker_matches(index, notes):
    matches = await index.search("main", "teal colour", min_score=0)

    assert [m.path for m in matches] == ["MEMORY.md", "memory/2026-01-05.md"]
    assert 0 < matches[1].score < matches[0].score == 1.0


async def test_max_results_limits_matches(index, notes):
    matches = await index.search("main", "teal colour", max_results=1, min_score=0)
    assert [m.path for m in matches] == ["MEMORY.md"]


async def test_query_without_terms_matches_nothing(index, notes):
    assert await index.search("main", "a b") == []
    assert await index.search("main", "zeppelin") == []


async def test_sync_picks_up_changed_and_removed_files(index, notes, write_memory):
    assert await index.search("main", "dentist")
    assert await index.totals("main") == (2, 5)

    path = write_memory("MEMORY.md", MEMORY_MD + "\n# Travel\nFlights to Lisbon are booked for June.\n")
    os.utime(path, (path.stat().st_atime, path.stat().st_mtime + 10))
    notes.unlink()

    assert await index.search("main", "dentist") == []
    [match] = await index.search("main", "Lisbon flights")
    assert (match.path, match.start_line, match.end_line) == ("MEMORY.md", 10, 11)
    assert await index.totals("main") == (1, 4)


async def test_agents_are_isolated(index, notes, write_memory):
    write_memory("MEMORY.md", "# Ops\nThe backup server lives in rack four.\n", agent_id="ops")

    assert await index.search("main", "backup server") == []
    [match] = await index.search("ops", "backup server")
    assert match.path == "MEMORY.md"
    assert await index.search("ops", "teal") == []


async def test_missing_directory_is_empty(index):
    assert await index.search("main", "anything here") == []
    assert await index.totals("main") == (0, 0)


# --------------------------------------------------------------------------- #
# Tool                                                                         #
# --------------------------------------------------------------------------- #

async def test_tool_returns_snippets_with_lines(index, notes, security, memory_root):
    result = await MemorySearchTool(index).execute({"query": "grocery run"}, security, context())

    assert result.success
    assert result.result["results"] == [
        {
            "path": "MEMORY.md",
            "startLine": 7,
            "endLine": 8,
            "score": 1.0,
            "snippet": "# People\nSam handles the weekly grocery run.",
        }
    ]
    assert result.result["totalFiles"] == 2
    assert result.result["totalChunks"] == 5
    assert result.result["root"] == str(memory_root / "main")


async def test_tool_passes_limits(index, notes, security):
    result = await MemorySearchTool(index).execute(
        {"query": "teal colour", "maxResults": 5, "minScore": 0}, security, context()
    )
    assert len(result.result["results"]) == 2


@pytest.mark.parametrize(
    "params,error",
    [
        ({}, "Query parameter is required and must be a string"),
        ({"query": 42}, "Query parameter is required and must be a string"),
        ({"query": "x", "maxResults": 0}, "maxResults must be a positive integer"),
        ({"query": "x", "maxResults": True}, "maxResults must be a positive integer"),
        ({"query": "x", "minScore": 1.5}, "minScore must be a number between 0 and 1"),
        ({"query": "x", "minScore": "high"}, "minScore must be a number between 0 and 1"),
    ],
)
async def test_tool_validation(index, security, params, error):
    result = await MemorySearchTool(index).execute(params, security, context())
    assert not result.success
    assert result.error == error
