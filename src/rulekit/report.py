from __future__ import annotations

from pathlib import Path
import json

from rulekit.schema import LintReportDTO

STDOUT_ALIAS = "-"


def render_text(report: LintReportDTO) -> str:
    lines = [
        f"{finding.path}:{finding.line}: {finding.severity}: {finding.message} [{finding.kind}]"
        for finding in report.findings
    ]
    summary = report.summary
    lines.append(
        f"{summary.documents} document(s) checked: "
        f"{summary.errors} error(s), {summary.warnings} warning(s)"
    )
    return "\n".join(lines)


def render_json(report: LintReportDTO) -> str:
    return json.dumps(report.model_dump(), indent=2, sort_keys=True)


def _md_cell(value: object) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def render_markdown(report: LintReportDTO) -> str:
    summary = report.summary
    lines = [
        f"# rulekit lint: `{report.assistant_dir}`",
        "",
        f"- Documents: {summary.documents}",
        f"- Errors: {summary.errors}",
        f"- Warnings: {summary.warnings}",
        "",
    ]
    if not report.findings:
        lines.append("No findings.")
        return "\n".join(lines) + "\n"
    lines.extend(
        [
            "| Severity | Kind | Location | Message |",
            "| --- | --- | --- | --- |",
        ]
    )
    for finding in report.findings:
        lines.append(
            f"| {finding.severity} | `{finding.kind}` | `{finding.path}:{finding.line}` "
            f"| {_md_cell(finding.message)} |"
        )
    return "\n".join(lines) + "\n"


RENDERERS = {
    "text": render_text,
    "json": render_json,
    "md": render_markdown,
}


def write_text_to_target(target: Path, payload: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if not payload.endswith("\n"):
        payload += "\n"
    target.write_text(payload, encoding="utf-8")
