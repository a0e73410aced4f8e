from __future__ import annotations

import sys
from pathlib import Path
import textwrap

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for entry in (ROOT, SRC):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from rulekit.config import RulekitConfig
from rulekit.layout import AssetLayout


@pytest.fixture
def write_corpus():
    def _write(root: Path, files: dict[str, str], *, assistant_dir: str = ".cursor") -> AssetLayout:
        base = root / assistant_dir
        base.mkdir(parents=True, exist_ok=True)
        for rel, text in files.items():
            path = base / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
        return AssetLayout.from_config(root, RulekitConfig(assistant_dir=assistant_dir))

    return _write
