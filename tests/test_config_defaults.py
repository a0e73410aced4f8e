from __future__ import annotations

from pathlib import Path
import textwrap

from rulekit.config import RulekitConfig, load_config, merge_payload, resolve_config


def test_rulekit_toml_is_read(tmp_path: Path) -> None:
    (tmp_path / "rulekit.toml").write_text(
        textwrap.dedent(
            """
            assistant_dir = ".assistant"
            ignore = ["cross_reference_dangling", "rule_scope_conflict"]
            strict = true
            placeholder_kinds = "template, command"
            timeout = 5
            """
        ).strip()
        + "\n",
        encoding="utf-8",
    )
    config = resolve_config(root=tmp_path)
    assert config.assistant_dir == ".assistant"
    assert config.ignore == ("cross_reference_dangling", "rule_scope_conflict")
    assert config.strict is True
    assert config.placeholder_kinds == ("template", "command")
    assert config.timeout == 5
    assert config.reference_doc == "README.md"


def test_pyproject_tool_table_is_fallback(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        textwrap.dedent(
            """
            [project]
            name = "demo"

            [tool.rulekit]
            assistant_dir = ".claude"
            source_url = "https://example.com/docs.zip"
            """
        ).strip()
        + "\n",
        encoding="utf-8",
    )
    config = resolve_config(root=tmp_path)
    assert config.assistant_dir == ".claude"
    assert config.source_url == "https://example.com/docs.zip"


def test_dedicated_file_wins_over_pyproject(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text('[tool.rulekit]\nassistant_dir = ".claude"\n', encoding="utf-8")
    (tmp_path / "rulekit.toml").write_text('assistant_dir = ".cursor-team"\n', encoding="utf-8")
    assert load_config(root=tmp_path) == {"assistant_dir": ".cursor-team"}


def test_invalid_toml_falls_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / "rulekit.toml").write_text("assistant_dir = [unterminated\n", encoding="utf-8")
    assert resolve_config(root=tmp_path) == RulekitConfig()


def test_merge_payload_prefers_explicit_values() -> None:
    defaults = {"assistant_dir": ".cursor", "strict": False}
    merged = merge_payload({"assistant_dir": None, "strict": True}, defaults)
    assert merged == {"assistant_dir": ".cursor", "strict": True}


def test_overrides_apply_on_top_of_file(tmp_path: Path) -> None:
    (tmp_path / "rulekit.toml").write_text('assistant_dir = ".assistant"\ntimeout = 10\n', encoding="utf-8")
    config = resolve_config(root=tmp_path, overrides={"assistant_dir": ".other", "timeout": None})
    assert config.assistant_dir == ".other"
    assert config.timeout == 10


def test_bad_values_use_defaults() -> None:
    config = RulekitConfig.from_table({"timeout": -3, "assistant_dir": "  ", "source_url": ""})
    assert config.timeout == 30
    assert config.assistant_dir == ".cursor"
    assert config.source_url is None
