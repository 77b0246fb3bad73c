"""Tests for hearth.ai.tools.truncation."""

from hearth.ai.tools.truncation import TRUNCATION_MARKER, is_truncated, truncate_output


def _lines(n):
    return "\n".join(f"line {i}" for i in range(n))


def test_within_budget_is_unchanged():
    text = _lines(10)
    result = truncate_output(text, max_lines=10, max_bytes=1000)
    assert result.content == text
    assert result.truncated is False


def test_empty_text_is_unchanged():
    result = truncate_output("")
    assert result.content == ""
    assert result.truncated is False


def test_head_keeps_first_lines():
    result = truncate_output(_lines(10), max_lines=3)
    assert result.truncated is True
    assert result.content.startswith("line 0\nline 1\nline 2\n\n...7 lines truncated...")
    assert "line 3" not in result.content


def test_tail_keeps_last_lines():
    result = truncate_output(_lines(10), max_lines=2, direction="tail")
    assert result.truncated is True
    assert result.content.startswith("...8 lines truncated...")
    assert result.content.endswith("line 8\nline 9")
    assert "line 7" not in result.content


def test_byte_budget_cuts_at_whole_lines():
    text = "a" * 100 + "\n" + "b" * 100
    result = truncate_output(text, max_lines=100, max_bytes=150)
    assert result.truncated is True
    assert result.content.startswith("a" * 100 + "\n\n...101 bytes truncated...")
    assert "b" not in result.content.split("...")[0]


def test_notice_carries_marker_and_hint():
    result = truncate_output(_lines(50), max_lines=5)
    assert is_truncated(result.content)
    assert TRUNCATION_MARKER in result.content
    assert "offset/limit" in result.content


def test_truncation_is_idempotent():
    first = truncate_output(_lines(50), max_lines=5)
    second = truncate_output(first.content, max_lines=5)
    assert second.content == first.content
    assert second.truncated is False


def test_multibyte_text_counts_bytes():
    text = "é" * 60  # 120 bytes, one line
    result = truncate_output(text + "\nrest", max_bytes=100)
    assert result.truncated is True
    assert "bytes truncated" in result.content


def test_joined_truncated_outputs_are_bounded_again():
    piece = truncate_output(_lines(500), max_lines=200).content
    joined = "\n".join([piece] * 3)

    result = truncate_output(joined, max_lines=200, max_bytes=100_000)

    assert result.truncated is True
    assert result.content.startswith("line 0\n")
    assert len(result.content.split("\n")) <= 200 + 10
