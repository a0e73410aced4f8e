from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable
import logging
import re

from rulekit.documents import Document, DocumentKind
from rulekit.frontmatter import FrontmatterBlock, split_frontmatter
from rulekit.layout import AssetLayout
from rulekit.markdown import iter_tables, scan_fences

_COMMAND_RE = re.compile(r"(?:^|(?<=[\s`(]))/(?P<name>[a-z0-9][a-z0-9_-]*)(?![\w/.-])")
_DOC_PATH_RE = re.compile(r"`(?P<path>[^`\s]+\.mdc?)(?:#[^`]*)?`")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandReference:
    name: str
    path: str | None
    line: int


@dataclass(frozen=True)
class UnresolvedReference:
    source: str
    line: int
    target: str
    detail: str


def parse_reference_table(text: str, *, first_line: int = 1) -> list[CommandReference]:
    """Return the slash commands listed in the tables of ``text``.

    The name is read from the ``Command`` column when the header has one and
    from the first column otherwise, so a ``/path`` mentioned in a
    description cell is not taken for a command. The path is the first
    backticked document path in any other cell of the row.
    """
    refs: list[CommandReference] = []
    for table in iter_tables(text.split("\n")):
        name_col = table.column("command", "commands")
        if name_col is None:
            name_col = 0
        for idx, cells in table.rows:
            if name_col >= len(cells):
                continue
            command = _COMMAND_RE.search(cells[name_col])
            if command is None:
                continue
            path: str | None = None
            for col, cell in enumerate(cells):
                if col == name_col:
                    continue
                doc_path = _DOC_PATH_RE.search(cell)
                if doc_path is not None:
                    path = doc_path.group("path")
                    break
            refs.append(CommandReference(name=command.group("name"), path=path, line=first_line + idx))
    return refs


def resolve_corpus_path(layout: AssetLayout, raw: str) -> Path:
    posix = PurePosixPath(raw)
    parts = [part for part in posix.parts if part != "."]
    if parts and parts[0] == layout.assistant_dir:
        return layout.root.joinpath(*parts)
    return layout.base.joinpath(*parts)


def load_reference_doc(layout: AssetLayout) -> FrontmatterBlock | None:
    """Read and split the reference doc; ``None`` when there is none.

    Raises ``FrontmatterError``, ``UnicodeDecodeError`` or ``OSError``.
    """
    path = layout.base / layout.reference_doc
    if not path.is_file():
        logger.debug("no reference document at %s", path)
        return None
    return split_frontmatter(path.read_text(encoding="utf-8"), path=path)


def _names_command(name: str, path: str) -> bool:
    posix = PurePosixPath(path)
    return posix.stem == name and DocumentKind.COMMAND.dirname in posix.parent.parts


def check_command_references(
    layout: AssetLayout,
    documents: Iterable[Document],
    references: Iterable[CommandReference],
) -> list[UnresolvedReference]:
    commands = {doc.command_name for doc in documents if doc.kind is DocumentKind.COMMAND}
    missing: list[UnresolvedReference] = []
    for ref in references:
        expected = f"{DocumentKind.COMMAND.dirname}/{ref.name}.md"
        if ref.path is not None:
            if not _names_command(ref.name, ref.path):
                detail = f"/{ref.name} points at {ref.path}, which is not a command document named {ref.name}"
            elif not resolve_corpus_path(layout, ref.path).is_file():
                detail = f"/{ref.name} points at {ref.path}, which does not exist"
            else:
                continue
            missing.append(
                UnresolvedReference(source=layout.reference_doc, line=ref.line, target=ref.path, detail=detail)
            )
            continue
        if f"/{ref.name}" not in commands:
            missing.append(
                UnresolvedReference(
                    source=layout.reference_doc,
                    line=ref.line,
                    target=expected,
                    detail=f"/{ref.name} has no command document at {expected}",
                )
            )
    return missing


def _is_corpus_path(layout: AssetLayout, raw: str) -> bool:
    head = PurePosixPath(raw).parts[:1]
    if not head:
        return False
    prefixes = {layout.assistant_dir, *(kind.dirname for kind in DocumentKind)}
    return head[0] in prefixes


def _dangling_in_body(layout: AssetLayout, source: str, body: str, body_line: int) -> list[UnresolvedReference]:
    lines = body.split("\n")
    fences = scan_fences(lines)
    dangling: list[UnresolvedReference] = []
    for idx, line in enumerate(lines):
        if idx in fences.fenced:
            continue
        for match in _DOC_PATH_RE.finditer(line):
            raw = match.group("path")
            if not _is_corpus_path(layout, raw) or resolve_corpus_path(layout, raw).is_file():
                continue
            dangling.append(
                UnresolvedReference(
                    source=source,
                    line=body_line + idx,
                    target=raw,
                    detail=f"reference to {raw} does not resolve",
                )
            )
    return dangling


def check_cross_references(
    layout: AssetLayout,
    documents: Iterable[Document],
    *,
    reference: FrontmatterBlock | None = None,
) -> list[UnresolvedReference]:
    """Report backticked corpus paths in document bodies that do not exist.

    Only paths rooted at the assistant dir or one of its kind folders are
    checked; other ``.md`` mentions usually name files of the downstream
    project. ``reference`` is the split reference doc, scanned as well.
    """
    dangling: list[UnresolvedReference] = []
    seen: set[str] = set()
    for doc in documents:
        seen.add(doc.rel)
        dangling.extend(_dangling_in_body(layout, doc.rel, doc.body, doc.body_line))
    if reference is not None and layout.reference_doc not in seen:
        dangling.extend(_dangling_in_body(layout, layout.reference_doc, reference.body, reference.body_line))
    return dangling
