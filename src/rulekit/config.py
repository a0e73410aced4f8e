from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import logging
import tomllib

DEFAULT_CONFIG_NAME = "rulekit.toml"
PYPROJECT_NAME = "pyproject.toml"

DEFAULT_ASSISTANT_DIR = ".cursor"
DEFAULT_REFERENCE_DOC = "README.md"
DEFAULT_PLACEHOLDER_KINDS = ("template",)
DEFAULT_TIMEOUT_SECONDS = 30

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

logger = logging.getLogger(__name__)


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        logger.warning("cannot read %s; using defaults", path)
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        logger.warning("invalid TOML in %s (%s); using defaults", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    """Return the rulekit table for ``root``.

    An explicit ``config_path`` is read as a bare ``rulekit.toml``. Otherwise
    ``rulekit.toml`` wins over the ``[tool.rulekit]`` table of
    ``pyproject.toml``.
    """
    base = root if root is not None else Path.cwd()
    if config_path is not None:
        return _load_toml(config_path)
    dedicated = base / DEFAULT_CONFIG_NAME
    if dedicated.is_file():
        return _load_toml(dedicated)
    pyproject = _load_toml(base / PYPROJECT_NAME)
    tool = pyproject.get("tool", {})
    if not isinstance(tool, dict):
        return {}
    section = tool.get("rulekit", {})
    return section if isinstance(section, dict) else {}


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def _as_bool(value: TomlValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def _as_str(value: TomlValue, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _as_int(value: TomlValue, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip()) or default
    return default


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


@dataclass(frozen=True)
class RulekitConfig:
    assistant_dir: str = DEFAULT_ASSISTANT_DIR
    reference_doc: str = DEFAULT_REFERENCE_DOC
    ignore: tuple[str, ...] = ()
    strict: bool = False
    placeholder_kinds: tuple[str, ...] = DEFAULT_PLACEHOLDER_KINDS
    source_url: str | None = None
    source_subdir: str = ""
    timeout: int = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_table(cls, table: TomlTable) -> RulekitConfig:
        placeholder_kinds = _normalize_name_list(table.get("placeholder_kinds"))
        source_url = table.get("source_url")
        return cls(
            assistant_dir=_as_str(table.get("assistant_dir"), DEFAULT_ASSISTANT_DIR),
            reference_doc=_as_str(table.get("reference_doc"), DEFAULT_REFERENCE_DOC),
            ignore=tuple(_normalize_name_list(table.get("ignore"))),
            strict=_as_bool(table.get("strict")),
            placeholder_kinds=tuple(placeholder_kinds) or DEFAULT_PLACEHOLDER_KINDS,
            source_url=source_url.strip() if isinstance(source_url, str) and source_url.strip() else None,
            source_subdir=_as_str(table.get("source_subdir"), ""),
            timeout=_as_int(table.get("timeout"), DEFAULT_TIMEOUT_SECONDS),
        )


def resolve_config(
    root: Path | None = None,
    config_path: Path | None = None,
    overrides: TomlTable | None = None,
) -> RulekitConfig:
    defaults = load_config(root=root, config_path=config_path)
    merged = merge_payload(overrides or {}, defaults)
    return RulekitConfig.from_table(merged)
