from __future__ import annotations

from pathlib import Path

from rulekit.layout import discover
from rulekit.references import (
    check_command_references,
    check_cross_references,
    load_reference_doc,
    parse_reference_table,
)

REFERENCE_DOC = """
# Commands

| Command | File | Purpose |
| --- | --- | --- |
| `/deploy` | `commands/deploy.md` | Ship it |
| /rollback | | Undo the last deploy |
| `/audit` | `.cursor/commands/audit.md` | Audit docs |
| See `rules/style.mdc` | | Not a command |

```
| `/fenced` | `commands/fenced.md` |
| --- | --- |
```
"""


def test_parse_reference_table_reads_names_and_paths() -> None:
    refs = parse_reference_table(REFERENCE_DOC.lstrip("\n"))
    assert [(ref.name, ref.path, ref.line) for ref in refs] == [
        ("deploy", "commands/deploy.md", 5),
        ("rollback", None, 6),
        ("audit", ".cursor/commands/audit.md", 7),
    ]


def test_parse_reference_table_honours_first_line() -> None:
    refs = parse_reference_table("| a | b |\n| --- | --- |\n| `/x` | y |\n", first_line=10)
    assert [(ref.name, ref.line) for ref in refs] == [("x", 12)]


def _reference_table(layout):
    block = load_reference_doc(layout)
    return parse_reference_table(block.body, first_line=block.body_line) if block is not None else []


def test_check_command_references_reports_missing_targets(tmp_path: Path, write_corpus) -> None:
    layout = write_corpus(
        tmp_path,
        {
            "README.md": REFERENCE_DOC,
            "commands/deploy.md": "1. Deploy\n",
        },
    )
    discovery = discover(layout)
    missing = check_command_references(layout, discovery.documents, _reference_table(layout))
    assert [(item.line, item.target) for item in missing] == [
        (6, "commands/rollback.md"),
        (7, ".cursor/commands/audit.md"),
    ]
    assert "/rollback" in missing[0].detail


def test_reference_table_with_frontmatter_keeps_file_lines(tmp_path: Path, write_corpus) -> None:
    layout = write_corpus(
        tmp_path,
        {"README.md": "---\ntitle: Index\n---\n| C |\n| --- |\n| `/missing` |\n"},
    )
    refs = _reference_table(layout)
    assert [(ref.name, ref.line) for ref in refs] == [("missing", 6)]


def test_missing_reference_doc_means_no_references(tmp_path: Path, write_corpus) -> None:
    layout = write_corpus(tmp_path, {"commands/a.md": "1. A\n"})
    assert load_reference_doc(layout) is None
    assert _reference_table(layout) == []


def test_cross_references_only_check_corpus_paths(tmp_path: Path, write_corpus) -> None:
    layout = write_corpus(
        tmp_path,
        {
            "rules/a.mdc": (
                "---\ndescription: a\n---\n"
                "- Follow `rules/b.mdc`.\n"
                "- Also `rules/gone.mdc#section`.\n"
                "- Update `README.md` and `docs/guide.md` in the project.\n"
                "- Full path `.cursor/templates/t.md`.\n"
                "```\n`rules/fenced.mdc`\n```\n"
            ),
            "rules/b.mdc": "B\n",
        },
    )
    dangling = check_cross_references(layout, discover(layout).documents)
    assert [(item.source, item.line, item.target) for item in dangling] == [
        ("rules/a.mdc", 5, "rules/gone.mdc"),
        ("rules/a.mdc", 7, ".cursor/templates/t.md"),
    ]


def test_reference_table_reads_names_from_the_command_column() -> None:
    text = (
        "| Rule | Scope |\n"
        "| --- | --- |\n"
        "| Next.js pages | Files under `/app` |\n"
        "\n"
        "| Purpose | Command | File |\n"
        "| --- | --- | --- |\n"
        "| Ship it | `/deploy` | `commands/deploy.md` |\n"
        "| Clean up | | Run `/tidy` later |\n"
    )
    refs = parse_reference_table(text)
    assert [(ref.name, ref.path, ref.line) for ref in refs] == [("deploy", "commands/deploy.md", 7)]


def test_command_path_must_name_the_command(tmp_path: Path, write_corpus) -> None:
    layout = write_corpus(
        tmp_path,
        {
            "README.md": (
                "| Command | File |\n"
                "| --- | --- |\n"
                "| `/app` | `rules/next.mdc` |\n"
                "| `/ship` | `commands/deploy.md` |\n"
                "| `/deploy` | `commands/deploy.md` |\n"
            ),
            "rules/next.mdc": "---\ndescription: next\n---\nBody\n",
            "commands/deploy.md": "1. Deploy\n",
        },
    )
    missing = check_command_references(layout, discover(layout).documents, _reference_table(layout))
    assert [(item.line, item.target) for item in missing] == [
        (3, "rules/next.mdc"),
        (4, "commands/deploy.md"),
    ]
    assert "not a command document named app" in missing[0].detail


def test_cross_references_scan_the_reference_doc(tmp_path: Path, write_corpus) -> None:
    layout = write_corpus(
        tmp_path,
        {
            "README.md": (
                "---\ntitle: Index\n---\n"
                "| Rule | Applies |\n"
                "| --- | --- |\n"
                "| `rules/a.mdc` | Always |\n"
                "| `rules/gone.mdc` | Never |\n"
            ),
            "rules/a.mdc": "---\ndescription: a\nalwaysApply: true\n---\nA\n",
        },
    )
    dangling = check_cross_references(
        layout,
        discover(layout).documents,
        reference=load_reference_doc(layout),
    )
    assert [(item.source, item.line, item.target) for item in dangling] == [
        ("README.md", 7, "rules/gone.mdc"),
    ]
