"""Tests for hearth.ai.tools.batch.BatchTool."""

import time

import pytest

from hearth.ai.tools.batch import MAX_BATCH_CALLS, BatchTool
from hearth.ai.tools.truncation import MAX_BYTES, is_truncated
from hearth.storage.models import ToolCall


@pytest.fixture
def batch_registry(registry):
    registry.register(BatchTool(registry))
    return registry


async def run_batch(registry, security, context, calls):
    return await registry.execute(ToolCall("b1", "batch", {"calls": calls}), security, context)


async def test_results_keep_call_order(batch_registry, security, exec_context):
    calls = [
        {"tool": "sleepy", "params": {"delay": 0.01, "label": "first"}},
        {"tool": "sleepy", "params": {"delay": 0.1, "label": "second"}},
        {"tool": "sleepy", "params": {"delay": 0.02, "label": "third"}},
    ]
    result = await run_batch(batch_registry, security, exec_context, calls)

    assert result.success
    assert result.result["summary"] == "3/3 calls succeeded"
    assert [r["output"] for r in result.result["results"]] == ["first", "second", "third"]
    assert [r["index"] for r in result.result["results"]] == [0, 1, 2]


async def test_calls_run_concurrently(batch_registry, security, exec_context):
    calls = [{"tool": "sleepy", "params": {"delay": 0.2, "label": str(i)}} for i in range(5)]
    started = time.monotonic()
    result = await run_batch(batch_registry, security, exec_context, calls)
    assert result.success
    assert time.monotonic() - started < 0.8


async def test_failures_are_per_call(batch_registry, make_security, exec_context):
    security = make_security(deny={"echo"})
    calls = [
        {"tool": "echo", "params": {"text": "x"}},
        {"tool": "boom"},
        {"tool": "sleepy", "params": {"label": "ok"}},
        {"tool": "missing"},
    ]
    result = await run_batch(batch_registry, security, exec_context, calls)

    assert result.success
    outcomes = result.result["results"]
    assert result.result["summary"] == "1/4 calls succeeded"
    assert "not allowed" in outcomes[0]["output"]
    assert outcomes[1]["output"] == "Error: Error executing tool boom: kaboom"
    assert outcomes[2] == {"index": 2, "tool": "sleepy", "success": True, "output": "ok"}
    assert 'Tool "missing" not found' in outcomes[3]["output"]


async def test_nested_batch_refused(batch_registry, security, exec_context):
    calls = [{"tool": "batch", "params": {"calls": [{"tool": "echo"}]}}, {"tool": "echo", "params": {"text": "y"}}]
    result = await run_batch(batch_registry, security, exec_context, calls)

    first, second = result.result["results"]
    assert first["success"] is False
    assert first["output"] == "Error: batch calls cannot be nested"
    assert second["output"] == "echo: y"


async def test_malformed_entry(batch_registry, security, exec_context):
    result = await run_batch(batch_registry, security, exec_context, [{"params": {}}])
    assert result.result["results"][0]["output"] == "Error: each call needs a 'tool'"


async def test_empty_batch_fails(batch_registry, security, exec_context):
    result = await run_batch(batch_registry, security, exec_context, [])
    assert not result.success
    assert result.error == "calls must be a non-empty list"


async def test_oversized_batch_fails(batch_registry, security, exec_context):
    calls = [{"tool": "echo"}] * (MAX_BATCH_CALLS + 1)
    result = await run_batch(batch_registry, security, exec_context, calls)
    assert not result.success
    assert f"at most {MAX_BATCH_CALLS}" in result.error


@pytest.mark.parametrize("count", [3, MAX_BATCH_CALLS])
async def test_combined_output_stays_within_budget(batch_registry, security, exec_context, count):
    calls = [{"tool": "big", "params": {"lines": 3000}}] * count
    result = await run_batch(batch_registry, security, exec_context, calls)

    assert result.success
    assert result.truncated is False
    assert len(result.to_text().encode("utf-8")) <= MAX_BYTES
    outputs = [r["output"] for r in result.result["results"]]
    assert len(outputs) == count
    assert all(o.startswith("line 0\nline 1") for o in outputs)
    assert all(is_truncated(o) for o in outputs)
