from __future__ import annotations

from pathlib import Path

from rulekit.layout import discover
from rulekit.placeholders import placeholder_inventory, scan_malformed, scan_placeholders


def test_scan_placeholders_reports_both_styles_in_order() -> None:
    text = (
        "# {{PROJECT_NAME}}\n"
        "\n"
        "Owner: {{ owner.email }} <!-- who to ask -->\n"
        "<!--\n"
        "  Multi-line\n"
        "  stand-in\n"
        "-->\n"
    )
    found = [(item.style, item.token, item.line, item.column) for item in scan_placeholders(text)]
    assert found == [
        ("curly", "PROJECT_NAME", 1, 3),
        ("curly", "owner.email", 3, 8),
        ("comment", "who to ask", 3, 26),
        ("comment", "Multi-line stand-in", 4, 1),
    ]


def test_scan_placeholders_includes_fenced_tokens() -> None:
    text = "```\n{{INSIDE}}\n```\n"
    assert [item.token for item in scan_placeholders(text)] == ["INSIDE"]


def test_scan_malformed_finds_each_problem() -> None:
    text = (
        "{{}}\n"
        "{{{RAW}}}\n"
        "{{bad name}}\n"
        "{{OPEN and more\n"
        "closing only }}\n"
        "<!-- -->\n"
        "{{GOOD}}\n"
    )
    problems = [(item.line, item.problem) for item in scan_malformed(text)]
    assert problems == [
        (1, "empty placeholder"),
        (2, "triple braces"),
        (3, "invalid placeholder name"),
        (4, "unclosed '{{'"),
        (5, "stray '}}'"),
        (6, "empty comment placeholder"),
    ]


def test_scan_malformed_reports_unclosed_comment() -> None:
    problems = scan_malformed("intro\n<!-- never closed\n{{NAME}}\n")
    assert [(item.line, item.column, item.problem) for item in problems] == [(2, 1, "unclosed '<!--'")]


def test_scan_malformed_skips_fenced_code() -> None:
    text = "```tsx\n<span style={{ fontWeight: 600 }}>{label}</span>\n```\n{{OK}}\n"
    assert scan_malformed(text) == []


def test_placeholder_inventory_counts_across_documents(tmp_path: Path, write_corpus) -> None:
    layout = write_corpus(
        tmp_path,
        {
            "templates/a.md": "# {{NAME}}\n{{NAME}} uses {{STACK}}\n<!-- owners -->\n",
            "templates/b.md": "{{NAME}}\n",
        },
    )
    inventory = placeholder_inventory(discover(layout).documents)
    assert [(entry.style, entry.token, entry.count, entry.documents) for entry in inventory] == [
        ("comment", "owners", 1, ("templates/a.md",)),
        ("curly", "NAME", 3, ("templates/a.md", "templates/b.md")),
        ("curly", "STACK", 1, ("templates/a.md",)),
    ]
