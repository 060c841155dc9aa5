from __future__ import annotations

from simple_agent.text import TRUNCATION_MARKER, clip_text, compress_for_llm, format_shell_text


def test_compress_collapses_spaces_and_blank_lines() -> None:
    text = "a    b   \n\n\n\n\nc\r\n"

    assert compress_for_llm(text) == "a b\n\n\nc\n"


def test_compress_keeps_indentation() -> None:
    assert compress_for_llm("    def  f():\n\t\treturn   1") == "    def f():\n\t\treturn 1"


def test_compress_normalizes_non_breaking_spaces() -> None:
    assert compress_for_llm("a\u00a0\u2007b") == "a b"


def test_compress_empty() -> None:
    assert compress_for_llm(None) == ""
    assert compress_for_llm("") == ""


def test_clip_text_counts_non_whitespace_only() -> None:
    assert clip_text("a b c", 3) == "a b c"
    assert clip_text("abcdef", 3) == "abc" + TRUNCATION_MARKER


def test_clip_text_zero_limit_disables_clipping() -> None:
    assert clip_text("x" * 100, 0) == "x" * 100


def test_format_shell_text_unescapes_literal_newlines() -> None:
    assert format_shell_text("line1\\nline2") == "line1\nline2"
    assert format_shell_text("a\r\nb") == "a\nb"
