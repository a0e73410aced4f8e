from __future__ import annotations

from dataclasses import dataclass
import re

_FENCE_RE = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})")
_TABLE_ROW_RE = re.compile(r"^\s*\|.*\|\s*$")
_TABLE_RULE_CELL_RE = re.compile(r"^\s*:?-{3,}:?\s*$")


@dataclass(frozen=True)
class FenceScan:
    fenced: frozenset[int]
    unclosed_at: int | None


def scan_fences(lines: list[str]) -> FenceScan:
    """Return 0-based indices of lines inside fenced code blocks.

    Fence delimiter lines count as fenced. A closing fence uses the same
    character and is at least as long as the opening one.
    """
    fenced: set[int] = set()
    opener: str | None = None
    opened_at: int | None = None
    for idx, line in enumerate(lines):
        match = _FENCE_RE.match(line)
        if opener is None:
            if match is not None:
                opener = match.group("fence")
                opened_at = idx
                fenced.add(idx)
            continue
        fenced.add(idx)
        if match is None:
            continue
        fence = match.group("fence")
        if fence[0] == opener[0] and len(fence) >= len(opener) and not line.strip()[len(fence):].strip():
            opener = None
            opened_at = None
    return FenceScan(fenced=frozenset(fenced), unclosed_at=opened_at)


def split_table_row(line: str) -> list[str]:
    inner = line.strip()
    if inner.startswith("|"):
        inner = inner[1:]
    if inner.endswith("|"):
        inner = inner[:-1]
    return [cell.strip() for cell in inner.split("|")]


@dataclass(frozen=True)
class MarkdownTable:
    header_index: int
    header: tuple[str, ...]
    rows: tuple[tuple[int, tuple[str, ...]], ...]

    def column(self, *names: str) -> int | None:
        wanted = {name.lower() for name in names}
        for idx, cell in enumerate(self.header):
            if cell.strip("`*_ ").lower() in wanted:
                return idx
        return None


def iter_tables(lines: list[str]) -> list[MarkdownTable]:
    """Return every pipe table outside fenced code.

    A table is a header row followed by a ``---`` separator row; body rows
    carry their 0-based line index.
    """
    fences = scan_fences(lines)
    tables: list[MarkdownTable] = []
    idx = 0
    while idx < len(lines):
        if idx in fences.fenced or not _TABLE_ROW_RE.match(lines[idx]):
            idx += 1
            continue
        if idx + 1 < len(lines) and all(
            _TABLE_RULE_CELL_RE.match(cell) for cell in split_table_row(lines[idx + 1])
        ):
            header_index = idx
            rows: list[tuple[int, tuple[str, ...]]] = []
            idx += 2
            while idx < len(lines) and idx not in fences.fenced and _TABLE_ROW_RE.match(lines[idx]):
                rows.append((idx, tuple(split_table_row(lines[idx]))))
                idx += 1
            tables.append(
                MarkdownTable(
                    header_index=header_index,
                    header=tuple(split_table_row(lines[header_index])),
                    rows=tuple(rows),
                )
            )
            continue
        idx += 1
    return tables
