from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import re
from typing import Any, Mapping

import yaml

from rulekit.errors import FrontmatterError

DELIMITER = "---"

# Host tools write globs unquoted (``globs: *.ts,*.tsx`` or ``globs: [*.ts]``);
# YAML would read the leading star as an alias reference. Block scalar text is
# left as written.
_BARE_STAR_VALUE_RE = re.compile(r"^(?P<lead>\s*(?:[A-Za-z_][\w-]*:|-)\s+)(?P<value>\*.*?)\s*$")
_FLOW_STAR_SEQ_RE = re.compile(r"""^(?P<lead>\s*(?:[A-Za-z_][\w-]*:|-)\s+)\[(?P<items>[^\]\['"{}]*)\]\s*$""")
_BLOCK_SCALAR_RE = re.compile(r"^\s*(?:[A-Za-z_][\w-]*:|-)\s+[|>][+-]?\d*[+-]?\s*(?:#.*)?$")


@dataclass(frozen=True)
class FrontmatterBlock:
    present: bool
    data: Mapping[str, Any] = field(default_factory=dict)
    body: str = ""
    body_line: int = 1


def _yaml_loader():
    class Loader(yaml.SafeLoader):
        pass

    # Dates stay strings; front matter is metadata for another tool.
    Loader.yaml_implicit_resolvers = {
        key: [(tag, regexp) for tag, regexp in values if tag != "tag:yaml.org,2002:timestamp"]
        for key, values in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }
    return Loader


_LOADER = _yaml_loader()


def _quote_star_items(items: str) -> str | None:
    parts = [part.strip() for part in items.split(",")]
    if not any(part.startswith("*") for part in parts):
        return None
    quoted = [f"'{part}'" if part.startswith("*") else part for part in parts if part]
    return ", ".join(quoted)


def _quote_bare_stars(lines: list[str]) -> list[str]:
    quoted: list[str] = []
    block_indent: int | None = None
    for line in lines:
        indent = len(line) - len(line.lstrip())
        if block_indent is not None:
            if not line.strip() or indent > block_indent:
                quoted.append(line)
                continue
            block_indent = None
        if _BLOCK_SCALAR_RE.match(line):
            block_indent = indent
            quoted.append(line)
            continue
        flow = _FLOW_STAR_SEQ_RE.match(line)
        if flow is not None:
            items = _quote_star_items(flow.group("items"))
            quoted.append(line if items is None else f"{flow.group('lead')}[{items}]")
            continue
        match = _BARE_STAR_VALUE_RE.match(line)
        if match is None:
            quoted.append(line)
            continue
        value = match.group("value").replace("'", "''")
        quoted.append(f"{match.group('lead')}'{value}'")
    return quoted


def frontmatter_block(lines: list[str]) -> tuple[list[str], int] | None:
    """Return the lines between the delimiters and the closing index.

    ``None`` when the text does not open with a delimiter. An opening
    delimiter with no closing one raises.
    """
    if not lines or lines[0].strip() != DELIMITER:
        return None
    for idx in range(1, len(lines)):
        if lines[idx].strip() == DELIMITER:
            return lines[1:idx], idx
    raise FrontmatterError("front matter opened with '---' but never closed", line=1)


def parse_frontmatter_lines(lines: list[str], *, first_line: int = 2) -> dict[str, Any]:
    source = "\n".join(_quote_bare_stars(lines))
    if not source.strip():
        return {}
    try:
        payload = yaml.load(source, Loader=_LOADER)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = first_line + mark.line if mark is not None else first_line
        problem = getattr(exc, "problem", None) or str(exc)
        raise FrontmatterError(f"invalid YAML front matter: {problem}", line=line) from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise FrontmatterError(
            f"front matter must be a mapping, got {type(payload).__name__}",
            line=first_line,
        )
    return {str(key): value for key, value in payload.items()}


def split_frontmatter(text: str, *, path: Path | None = None) -> FrontmatterBlock:
    normalized = text.lstrip("\ufeff").replace("\r\n", "\n")
    lines = normalized.split("\n")
    try:
        block = frontmatter_block(lines)
        if block is None:
            return FrontmatterBlock(present=False, data={}, body=normalized, body_line=1)
        fm_lines, end = block
        data = parse_frontmatter_lines(fm_lines)
    except FrontmatterError as exc:
        if path is None:
            raise
        raise FrontmatterError(exc.reason, path=path, line=exc.line) from exc
    return FrontmatterBlock(
        present=True,
        data=data,
        body="\n".join(lines[end + 1 :]),
        body_line=end + 2,
    )

