"""Locate placeholder tokens in templates.

Two syntaxes mark text a human or the assistant replaces during setup:
``{{NAME}}`` tokens and HTML comment stand-ins (``<!-- describe X -->``).
Nothing here substitutes values; the scanners only report where a
find-and-replace pass would have to look.
"""

from __future__ import annotations

from bisect import bisect_right
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Iterable, Literal
import re

from rulekit.documents import Document
from rulekit.markdown import scan_fences

PlaceholderStyle = Literal["curly", "comment"]

NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")
OPEN = "{{"
CLOSE = "}}"
COMMENT_OPEN = "<!--"
COMMENT_CLOSE = "-->"


@dataclass(frozen=True)
class Placeholder:
    token: str
    style: PlaceholderStyle
    line: int
    column: int


@dataclass(frozen=True)
class MalformedPlaceholder:
    line: int
    column: int
    problem: str
    snippet: str


def _line_starts(text: str) -> list[int]:
    starts = [0]
    for idx, char in enumerate(text):
        if char == "\n":
            starts.append(idx + 1)
    return starts


def _position(starts: list[int], offset: int) -> tuple[int, int]:
    line_idx = bisect_right(starts, offset) - 1
    return line_idx + 1, offset - starts[line_idx] + 1


def _scan_curly_line(line: str) -> tuple[list[tuple[int, str]], list[tuple[int, str, str]]]:
    """Return well-formed ``(col, name)`` and malformed ``(col, problem, snippet)``."""
    tokens: list[tuple[int, str]] = []
    problems: list[tuple[int, str, str]] = []
    consumed: set[int] = set()
    pos = 0
    while True:
        start = line.find(OPEN, pos)
        if start < 0:
            break
        if line.startswith("{", start + 2):
            run_end = start
            while run_end < len(line) and line[run_end] == "{":
                run_end += 1
            close = line.find(CLOSE, run_end)
            stop = close + 2 if close >= 0 else run_end
            while stop < len(line) and line[stop] == "}":
                stop += 1
            consumed.update(range(start, stop))
            problems.append((start + 1, "triple braces", line[start:stop]))
            pos = stop
            continue
        close = line.find(CLOSE, start + 2)
        reopen = line.find(OPEN, start + 2)
        if close < 0 or (0 <= reopen < close):
            problems.append((start + 1, "unclosed '{{'", line[start : start + 24]))
            consumed.update(range(start, start + 2))
            pos = start + 2
            continue
        stop = close + 2
        if line.startswith("}", stop):
            while stop < len(line) and line[stop] == "}":
                stop += 1
            consumed.update(range(start, stop))
            problems.append((start + 1, "triple braces", line[start:stop]))
            pos = stop
            continue
        consumed.update(range(start, stop))
        name = line[start + 2 : close].strip()
        if not name:
            problems.append((start + 1, "empty placeholder", line[start:stop]))
        elif not NAME_RE.match(name):
            problems.append((start + 1, "invalid placeholder name", line[start:stop]))
        else:
            tokens.append((start + 1, name))
        pos = stop
    pos = 0
    while True:
        stray = line.find(CLOSE, pos)
        if stray < 0:
            break
        if stray not in consumed:
            problems.append((stray + 1, "stray '}}'", line[max(0, stray - 20) : stray + 2]))
            consumed.update(range(stray, stray + 2))
        pos = stray + 2
    return tokens, problems


def _scan_comments(text: str) -> tuple[list[tuple[int, str]], list[tuple[int, str, str]]]:
    comments: list[tuple[int, str]] = []
    problems: list[tuple[int, str, str]] = []
    pos = 0
    while True:
        start = text.find(COMMENT_OPEN, pos)
        if start < 0:
            break
        end = text.find(COMMENT_CLOSE, start + len(COMMENT_OPEN))
        if end < 0:
            problems.append((start, "unclosed '<!--'", text[start : start + 24]))
            break
        content = " ".join(text[start + len(COMMENT_OPEN) : end].split())
        if content:
            comments.append((start, content))
        else:
            problems.append((start, "empty comment placeholder", text[start : end + 3]))
        pos = end + len(COMMENT_CLOSE)
    return comments, problems


def scan_placeholders(text: str) -> list[Placeholder]:
    """Return every well-formed placeholder in document order."""
    found: list[Placeholder] = []
    for line_no, line in enumerate(text.split("\n"), start=1):
        tokens, _ = _scan_curly_line(line)
        found.extend(
            Placeholder(token=name, style="curly", line=line_no, column=col)
            for col, name in tokens
        )
    starts = _line_starts(text)
    comments, _ = _scan_comments(text)
    for offset, content in comments:
        line_no, col = _position(starts, offset)
        found.append(Placeholder(token=content, style="comment", line=line_no, column=col))
    return sorted(found, key=lambda item: (item.line, item.column))


def scan_malformed(text: str) -> list[MalformedPlaceholder]:
    """Return placeholder syntax errors outside fenced code blocks."""
    lines = text.split("\n")
    fences = scan_fences(lines)
    problems: list[MalformedPlaceholder] = []
    for idx, line in enumerate(lines):
        if idx in fences.fenced:
            continue
        _, line_problems = _scan_curly_line(line)
        problems.extend(
            MalformedPlaceholder(line=idx + 1, column=col, problem=problem, snippet=snippet)
            for col, problem, snippet in line_problems
        )
    starts = _line_starts(text)
    _, comment_problems = _scan_comments(text)
    for offset, problem, snippet in comment_problems:
        line_no, col = _position(starts, offset)
        if line_no - 1 in fences.fenced:
            continue
        problems.append(MalformedPlaceholder(line=line_no, column=col, problem=problem, snippet=snippet))
    return sorted(problems, key=lambda item: (item.line, item.column))


@dataclass(frozen=True)
class InventoryEntry:
    token: str
    style: PlaceholderStyle
    count: int
    documents: tuple[str, ...]


def placeholder_inventory(documents: Iterable[Document]) -> list[InventoryEntry]:
    """Count placeholder occurrences across documents, grouped by token."""
    counts: Counter[tuple[str, PlaceholderStyle]] = Counter()
    where: defaultdict[tuple[str, PlaceholderStyle], set[str]] = defaultdict(set)
    for doc in documents:
        for placeholder in scan_placeholders(doc.text):
            key = (placeholder.token, placeholder.style)
            counts[key] += 1
            where[key].add(doc.rel)
    return [
        InventoryEntry(token=token, style=style, count=counts[(token, style)], documents=tuple(sorted(where[(token, style)])))
        for token, style in sorted(counts, key=lambda key: (key[1], key[0]))
    ]
