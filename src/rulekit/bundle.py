from __future__ import annotations

from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Iterator

from rulekit.errors import SyncError
from rulekit.layout import MANIFEST_NAME

BUNDLED_PACKAGE = "rulekit"
BUNDLED_DIR = "assets"
_SKIPPED_NAMES = frozenset({MANIFEST_NAME, "__pycache__", "__init__.py"})


@dataclass(frozen=True)
class AssetSource:
    """A tree of corpus files laid out like an assistant dir."""

    description: str
    root: Traversable

    def iter_files(self) -> Iterator[tuple[str, bytes]]:
        entries: list[tuple[str, Traversable]] = []
        self._collect(self.root, "", entries)
        for rel, node in sorted(entries, key=lambda item: item[0]):
            yield rel, node.read_bytes()

    def _collect(self, node: Traversable, prefix: str, out: list[tuple[str, Traversable]]) -> None:
        for child in node.iterdir():
            name = child.name
            if name.startswith(".") or name in _SKIPPED_NAMES:
                continue
            rel = f"{prefix}{name}"
            if child.is_dir():
                self._collect(child, f"{rel}/", out)
            elif child.is_file():
                out.append((rel, child))


def bundled_source() -> AssetSource:
    root = resources.files(BUNDLED_PACKAGE).joinpath(BUNDLED_DIR)
    return AssetSource(description=f"bundled:{BUNDLED_PACKAGE}", root=root)


def directory_source(path: Path) -> AssetSource:
    if not path.is_dir():
        raise SyncError(f"asset source is not a directory: {path}")
    return AssetSource(description=str(path), root=path)
