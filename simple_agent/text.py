"""
Text shaping for command output before it is shown or sent to the model.
"""
import re
from typing import Optional

_RE_NBSP = re.compile(r"[\u00A0\u2007\u202F]")  # common non-breaking spaces
_RE_HSPACE = re.compile(r"[ \t\u2000-\u200A\u205F]+")  # horizontal whitespace (space-like)
_RE_TRAIL_SPACE = re.compile(r"[ \t]+(?=\r?\n)")  # trailing spaces before newline
_RE_INDENT = re.compile(r"^[ \t]+")

TRUNCATION_MARKER = "\n...[truncated]"


def compress_for_llm(
        s: Optional[str],
        *,
        keep_indentation: bool = True,
        max_consecutive_blank_lines: int = 2,
) -> str:
    """
    Whitespace compression for observation text:
    - Normalizes CRLF and NBSP-like chars
    - Removes trailing spaces at line ends
    - Collapses runs of horizontal whitespace, keeping leading indentation
    - Limits consecutive blank lines

    Unlike a display formatter this keeps a final newline, since the model
    may care whether the output ended with one.
    """
    if not s:
        return ""

    s = s.replace("\r\n", "\n").replace("\r", "\n")
    s = _RE_NBSP.sub(" ", s)
    s = _RE_TRAIL_SPACE.sub("", s)

    out_lines = []
    for line in s.split("\n"):
        if keep_indentation:
            m = _RE_INDENT.match(line)
            indent = m.group(0) if m else ""
            rest = _RE_HSPACE.sub(" ", line[len(indent):]).strip(" ")
            out_lines.append(indent + rest if rest else "")
        else:
            out_lines.append(_RE_HSPACE.sub(" ", line).strip(" "))

    s = "\n".join(out_lines)
    n = max(0, int(max_consecutive_blank_lines))
    return re.sub(r"\n{" + str(n + 2) + r",}", "\n" * (n + 1), s)


def clip_text(s: Optional[str], limit: int) -> str:
    """Keep at most `limit` non-whitespace characters; 0 or less disables clipping."""
    if not s:
        return ""
    if limit <= 0:
        return s
    count = 0
    end_idx = 0
    for i, ch in enumerate(s):
        if not ch.isspace():
            count += 1
        if count > limit:
            break
        end_idx = i + 1
    if count <= limit:
        return s
    return s[:end_idx] + TRUNCATION_MARKER


def format_shell_text(s: str) -> str:
    """
    If s contains literal backslash-n sequences (\\n) instead of real newlines,
    convert them. Also normalize CRLF. Display only.
    """
    if not s:
        return ""
    if "\\n" in s and "\n" not in s:
        s = s.replace("\\r\\n", "\n").replace("\\n", "\n").replace("\\r", "\n")
    return s.replace("\r\n", "\n")
