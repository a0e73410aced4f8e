"""Consistency audit for always-on rule documents.

The host loads every ``alwaysApply: true`` rule into each conversation, so
two of them telling the assistant to do and not do the same thing can never
both be honoured.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable
import re

from pydantic import ValidationError

from rulekit.documents import Document, DocumentKind
from rulekit.markdown import scan_fences

_BULLET_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(?P<text>.+)$")
_NEGATIVE_RE = re.compile(r"\b(?:do not|don't|dont|must not|mustn't|never|avoid|no longer)\b")
_MODAL_RE = re.compile(
    r"\b(?:do not|don't|dont|must not|mustn't|never|avoid|no longer|always|must|shall|should|"
    r"required|prefer)\b"
)
_STOPWORDS = frozenset({"a", "an", "the", "to", "for", "of", "in", "on", "and", "or", "any", "all"})


@dataclass(frozen=True)
class Directive:
    source: str
    line: int
    text: str
    normalized: str
    stem: str
    negative: bool


@dataclass(frozen=True)
class DirectiveConflict:
    stem: str
    positive: tuple[Directive, ...]
    negative: tuple[Directive, ...]


@dataclass(frozen=True)
class DirectiveDuplicate:
    normalized: str
    occurrences: tuple[Directive, ...]


def directive_normalized(text: str) -> str:
    lowered = text.strip().lower().replace("\u2019", "'")
    lowered = re.sub(r"[`*_]", "", lowered)
    lowered = re.sub(r"\s+", " ", lowered)
    return lowered.rstrip(".;:")


def directive_is_negative(text: str) -> bool:
    return bool(_NEGATIVE_RE.search(directive_normalized(text)))


def directive_stem(text: str) -> str:
    lowered = directive_normalized(text)
    lowered = _MODAL_RE.sub(" ", lowered)
    lowered = re.sub(r"[^a-z0-9\s]", " ", lowered)
    words = [word for word in lowered.split() if word not in _STOPWORDS]
    return " ".join(words)


def extract_directives(doc: Document) -> list[Directive]:
    numbered = doc.body_lines()
    fences = scan_fences([line for _, line in numbered])
    directives: list[Directive] = []
    for idx, (line_no, raw) in enumerate(numbered):
        if idx in fences.fenced:
            continue
        match = _BULLET_RE.match(raw)
        if match is None:
            continue
        text = match.group("text").strip()
        if not text:
            continue
        directives.append(
            Directive(
                source=doc.rel,
                line=line_no,
                text=text,
                normalized=directive_normalized(text),
                stem=directive_stem(text),
                negative=directive_is_negative(text),
            )
        )
    return directives


def always_apply_rules(documents: Iterable[Document]) -> list[Document]:
    selected: list[Document] = []
    for doc in documents:
        if doc.kind is not DocumentKind.RULE:
            continue
        try:
            metadata = doc.rule_metadata()
        except ValidationError:
            continue
        if metadata.always_apply:
            selected.append(doc)
    return selected


def find_conflicts(documents: Iterable[Document]) -> tuple[list[DirectiveConflict], list[DirectiveDuplicate]]:
    """Compare directives across always-apply rules.

    A conflict needs a positive and a negative directive with the same stem
    coming from at least two different documents. Duplicates are the same
    normalized directive repeated in more than one document.
    """
    directives: list[Directive] = []
    for doc in always_apply_rules(documents):
        directives.extend(extract_directives(doc))

    by_stem: dict[str, list[Directive]] = defaultdict(list)
    by_norm: dict[str, list[Directive]] = defaultdict(list)
    for directive in directives:
        if directive.stem:
            by_stem[directive.stem].append(directive)
        by_norm[directive.normalized].append(directive)

    conflicts: list[DirectiveConflict] = []
    for stem, group in sorted(by_stem.items()):
        negatives = tuple(item for item in group if item.negative)
        positives = tuple(item for item in group if not item.negative)
        if not negatives or not positives:
            continue
        if len({item.source for item in group}) < 2:
            continue
        conflicts.append(DirectiveConflict(stem=stem, positive=positives, negative=negatives))

    duplicates: list[DirectiveDuplicate] = []
    for norm, group in sorted(by_norm.items()):
        if len({item.source for item in group}) > 1:
            duplicates.append(DirectiveDuplicate(normalized=norm, occurrences=tuple(group)))
    return conflicts, duplicates
