from __future__ import annotations

from collections import Counter
from typing import Iterable
import logging

from pydantic import ValidationError

from rulekit.config import RulekitConfig
from rulekit.conflicts import find_conflicts
from rulekit.documents import Document, DocumentKind
from rulekit.errors import FrontmatterError
from rulekit.frontmatter import FrontmatterBlock
from rulekit.layout import AssetLayout, Discovery, discover
from rulekit.markdown import scan_fences
from rulekit.placeholders import scan_malformed
from rulekit.references import (
    check_command_references,
    check_cross_references,
    load_reference_doc,
    parse_reference_table,
)
from rulekit.schema import FindingDTO, LintReportDTO, LintSummaryDTO, Severity

FRONTMATTER_INVALID = "frontmatter_invalid"
FRONTMATTER_FIELD = "frontmatter_field"
DOCUMENT_ENCODING = "document_encoding"
DOCUMENT_UNREADABLE = "document_unreadable"
RULE_MISSING_DESCRIPTION = "rule_missing_description"
RULE_SCOPE_CONFLICT = "rule_scope_conflict"
MARKDOWN_UNCLOSED_FENCE = "markdown_unclosed_fence"
COMMAND_REFERENCE_MISSING = "command_reference_missing"
CROSS_REFERENCE_DANGLING = "cross_reference_dangling"
PLACEHOLDER_MALFORMED = "placeholder_malformed"
ALWAYS_APPLY_CONFLICT = "always_apply_conflict"
ALWAYS_APPLY_DUPLICATE = "always_apply_duplicate"

FINDING_KINDS: dict[str, Severity] = {
    FRONTMATTER_INVALID: "error",
    FRONTMATTER_FIELD: "error",
    DOCUMENT_ENCODING: "error",
    DOCUMENT_UNREADABLE: "error",
    RULE_MISSING_DESCRIPTION: "warning",
    RULE_SCOPE_CONFLICT: "warning",
    MARKDOWN_UNCLOSED_FENCE: "error",
    COMMAND_REFERENCE_MISSING: "error",
    CROSS_REFERENCE_DANGLING: "warning",
    PLACEHOLDER_MALFORMED: "error",
    ALWAYS_APPLY_CONFLICT: "error",
    ALWAYS_APPLY_DUPLICATE: "warning",
}

logger = logging.getLogger(__name__)


def _finding(kind: str, path: str, line: int, message: str) -> FindingDTO:
    return FindingDTO(kind=kind, severity=FINDING_KINDS[kind], path=path, line=line, message=message)


def _field_name(loc: tuple[object, ...]) -> str:
    aliases = {"always_apply": "alwaysApply"}
    parts = [aliases.get(str(part), str(part)) for part in loc]
    return ".".join(parts) or "?"


_FAILURE_KINDS = {
    "frontmatter": FRONTMATTER_INVALID,
    "encoding": DOCUMENT_ENCODING,
    "unreadable": DOCUMENT_UNREADABLE,
}


def _discovery_findings(discovery: Discovery) -> list[FindingDTO]:
    findings: list[FindingDTO] = []
    for failure in discovery.failures:
        findings.append(_finding(_FAILURE_KINDS[failure.problem], failure.rel, failure.line, failure.message))
    return findings


def _rule_findings(doc: Document) -> list[FindingDTO]:
    try:
        metadata = doc.rule_metadata()
    except ValidationError as exc:
        return [
            _finding(
                FRONTMATTER_FIELD,
                doc.rel,
                1,
                f"front matter field '{_field_name(error['loc'])}': {error['msg']}",
            )
            for error in exc.errors()
        ]
    findings: list[FindingDTO] = []
    if metadata.always_apply and metadata.globs:
        findings.append(
            _finding(
                RULE_SCOPE_CONFLICT,
                doc.rel,
                1,
                "alwaysApply is true, so the globs list is ignored by the host",
            )
        )
    if not metadata.always_apply and not metadata.globs and metadata.description is None:
        findings.append(
            _finding(
                RULE_MISSING_DESCRIPTION,
                doc.rel,
                1,
                "rule has no description, globs or alwaysApply; the host has no way to select it",
            )
        )
    return findings


def _fence_findings(doc: Document) -> list[FindingDTO]:
    numbered = doc.body_lines()
    fences = scan_fences([line for _, line in numbered])
    if fences.unclosed_at is None:
        return []
    line_no = numbered[fences.unclosed_at][0]
    return [_finding(MARKDOWN_UNCLOSED_FENCE, doc.rel, line_no, "fenced code block is never closed")]


def _placeholder_findings(doc: Document) -> list[FindingDTO]:
    return [
        _finding(
            PLACEHOLDER_MALFORMED,
            doc.rel,
            problem.line,
            f"{problem.problem} at column {problem.column}: {problem.snippet!r}",
        )
        for problem in scan_malformed(doc.text)
    ]


def _reference_findings(layout: AssetLayout, documents: list[Document]) -> list[FindingDTO]:
    findings: list[FindingDTO] = []
    reference: FrontmatterBlock | None = None
    try:
        reference = load_reference_doc(layout)
    except FrontmatterError as exc:
        findings.append(_finding(FRONTMATTER_INVALID, layout.reference_doc, exc.line, exc.reason))
    except UnicodeDecodeError as exc:
        findings.append(_finding(DOCUMENT_ENCODING, layout.reference_doc, 1, f"not valid UTF-8 ({exc.reason})"))
    except OSError as exc:
        findings.append(
            _finding(DOCUMENT_UNREADABLE, layout.reference_doc, 1, f"cannot read file ({exc.strerror or exc})")
        )
    references = (
        parse_reference_table(reference.body, first_line=reference.body_line) if reference is not None else []
    )
    logger.debug("reference table lists %d command(s)", len(references))
    missing = check_command_references(layout, documents, references)
    findings.extend(
        _finding(COMMAND_REFERENCE_MISSING, item.source, item.line, item.detail) for item in missing
    )
    # A table row with a broken command path is reported once.
    reported = {(item.source, item.line) for item in missing}
    findings.extend(
        _finding(CROSS_REFERENCE_DANGLING, dangling.source, dangling.line, dangling.detail)
        for dangling in check_cross_references(layout, documents, reference=reference)
        if (dangling.source, dangling.line) not in reported
    )
    return findings


def _conflict_findings(documents: list[Document]) -> list[FindingDTO]:
    conflicts, duplicates = find_conflicts(documents)
    findings: list[FindingDTO] = []
    for conflict in conflicts:
        anchor = conflict.negative[0]
        others = ", ".join(f"{item.source}:{item.line}" for item in conflict.positive)
        findings.append(
            _finding(
                ALWAYS_APPLY_CONFLICT,
                anchor.source,
                anchor.line,
                f"'{anchor.text}' contradicts always-apply directive(s) at {others}",
            )
        )
    for duplicate in duplicates:
        first, *rest = duplicate.occurrences
        for item in rest:
            if item.source == first.source:
                continue
            findings.append(
                _finding(
                    ALWAYS_APPLY_DUPLICATE,
                    item.source,
                    item.line,
                    f"directive repeats {first.source}:{first.line}: '{item.text}'",
                )
            )
    return findings


def finalize_findings(
    findings: Iterable[FindingDTO],
    *,
    ignore: Iterable[str] = (),
    strict: bool = False,
) -> list[FindingDTO]:
    ignored = set(ignore)
    kept: list[FindingDTO] = []
    for finding in findings:
        if finding.kind in ignored:
            continue
        if strict and finding.severity == "warning":
            finding = finding.model_copy(update={"severity": "error"})
        kept.append(finding)
    return sorted(kept, key=lambda item: (item.path, item.line, item.kind, item.message))


def lint_corpus(layout: AssetLayout, config: RulekitConfig) -> LintReportDTO:
    """Run every documentation check over the assistant dir.

    Raises ``LayoutError`` when the assistant dir itself is missing.
    """
    discovery = discover(layout)
    documents = discovery.documents
    placeholder_kinds: set[DocumentKind] = set()
    for value in config.placeholder_kinds:
        try:
            placeholder_kinds.add(DocumentKind.parse(value))
        except ValueError:
            logger.warning("ignoring unknown placeholder kind %r", value)

    findings = _discovery_findings(discovery)
    for doc in documents:
        if doc.kind is DocumentKind.RULE:
            findings.extend(_rule_findings(doc))
        findings.extend(_fence_findings(doc))
        if doc.kind in placeholder_kinds:
            findings.extend(_placeholder_findings(doc))
    findings.extend(_reference_findings(layout, documents))
    findings.extend(_conflict_findings(documents))

    final = finalize_findings(findings, ignore=config.ignore, strict=config.strict)
    severities = Counter(finding.severity for finding in final)
    kinds = Counter(finding.kind for finding in final)
    logger.info(
        "linted %d document(s): %d error(s), %d warning(s)",
        len(documents) + len(discovery.failures),
        severities["error"],
        severities["warning"],
    )
    return LintReportDTO(
        root=str(layout.root),
        assistant_dir=layout.assistant_dir,
        findings=final,
        summary=LintSummaryDTO(
            documents=len(documents) + len(discovery.failures),
            errors=severities["error"],
            warnings=severities["warning"],
            by_kind=dict(sorted(kinds.items())),
        ),
    )
