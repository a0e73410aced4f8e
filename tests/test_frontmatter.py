from __future__ import annotations

from pathlib import Path

import pytest

from rulekit.errors import FrontmatterError
from rulekit.frontmatter import split_frontmatter


def test_split_without_frontmatter_keeps_whole_text() -> None:
    block = split_frontmatter("# Title\n\nBody\n")
    assert block.present is False
    assert block.data == {}
    assert block.body == "# Title\n\nBody\n"
    assert block.body_line == 1


def test_split_parses_rule_metadata() -> None:
    text = "---\ndescription: Python rules\nalwaysApply: true\n---\n# Python\n"
    block = split_frontmatter(text)
    assert block.present is True
    assert block.data == {"description": "Python rules", "alwaysApply": True}
    assert block.body == "# Python\n"
    assert block.body_line == 5


def test_bare_star_globs_are_read_as_strings() -> None:
    text = "---\nglobs: *.ts,*.tsx\n---\nbody\n"
    assert split_frontmatter(text).data == {"globs": "*.ts,*.tsx"}


def test_bare_star_list_items_are_read_as_strings() -> None:
    text = "---\nglobs:\n  - *.py\n  - 'src/**'\n---\n"
    assert split_frontmatter(text).data == {"globs": ["*.py", "src/**"]}


def test_dates_stay_strings() -> None:
    text = "---\nreviewed: 2024-05-01\n---\n"
    assert split_frontmatter(text).data == {"reviewed": "2024-05-01"}


def test_empty_block_is_present_but_empty() -> None:
    block = split_frontmatter("---\n---\nbody")
    assert block.present is True
    assert block.data == {}
    assert block.body == "body"


def test_crlf_and_bom_are_normalized() -> None:
    block = split_frontmatter("\ufeff---\r\ndescription: x\r\n---\r\nbody\r\n")
    assert block.data == {"description": "x"}
    assert block.body == "body\n"


def test_unclosed_block_raises_with_path() -> None:
    with pytest.raises(FrontmatterError) as excinfo:
        split_frontmatter("---\ndescription: x\n# body\n", path=Path("rules/a.mdc"))
    assert excinfo.value.path == Path("rules/a.mdc")
    assert excinfo.value.line == 1
    assert "never closed" in str(excinfo.value)


def test_invalid_yaml_reports_file_line() -> None:
    text = "---\ndescription: ok\nglobs: [unclosed\n---\n"
    with pytest.raises(FrontmatterError) as excinfo:
        split_frontmatter(text)
    assert excinfo.value.line >= 3
    assert "invalid YAML" in excinfo.value.reason


def test_non_mapping_frontmatter_raises() -> None:
    with pytest.raises(FrontmatterError) as excinfo:
        split_frontmatter("---\n- one\n- two\n---\n")
    assert "mapping" in excinfo.value.reason


def test_flow_list_of_star_globs() -> None:
    block = split_frontmatter("---\nglobs: [*.ts, *.tsx, src/**]\n---\nBody\n")
    assert block.data["globs"] == ["*.ts", "*.tsx", "src/**"]


def test_block_scalars_are_not_rewritten() -> None:
    block = split_frontmatter("---\nnotes: |\n  keep: *as is\n\n  - *also\nglobs: *.py\n---\nBody\n")
    assert block.data["notes"] == "keep: *as is\n\n- *also\n"
    assert block.data["globs"] == "*.py"
