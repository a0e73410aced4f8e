from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Literal
import logging

from rulekit.config import RulekitConfig
from rulekit.documents import Document, DocumentKind, load_document
from rulekit.errors import FrontmatterError, LayoutError

MANIFEST_NAME = ".rulekit-manifest.json"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetLayout:
    root: Path
    assistant_dir: str
    reference_doc: str

    @classmethod
    def from_config(cls, root: Path, config: RulekitConfig) -> AssetLayout:
        return cls(
            root=root,
            assistant_dir=config.assistant_dir,
            reference_doc=config.reference_doc,
        )

    @property
    def base(self) -> Path:
        return self.root / self.assistant_dir

    @property
    def manifest_path(self) -> Path:
        return self.base / MANIFEST_NAME

    def kind_dir(self, kind: DocumentKind) -> Path:
        return self.base / kind.dirname

    def relative(self, path: Path) -> str:
        return path.relative_to(self.base).as_posix()

    def require_base(self) -> Path:
        base = self.base
        if not base.exists():
            raise LayoutError(f"assistant directory not found: {base}")
        if not base.is_dir():
            raise LayoutError(f"assistant directory is not a directory: {base}")
        return base

    def iter_paths(self, kind: DocumentKind | None = None) -> Iterator[tuple[DocumentKind, Path]]:
        self.require_base()
        kinds = [kind] if kind is not None else list(DocumentKind)
        found: list[tuple[str, DocumentKind, Path]] = []
        for current in kinds:
            directory = self.kind_dir(current)
            if not directory.is_dir():
                logger.debug("no %s directory under %s", current.dirname, self.base)
                continue
            for path in directory.rglob("*"):
                if not path.is_file() or path.suffix not in current.suffixes:
                    continue
                rel_parts = path.relative_to(directory).parts
                if any(part.startswith(".") for part in rel_parts):
                    continue
                found.append((self.relative(path), current, path))
        for _, current, path in sorted(found, key=lambda item: item[0]):
            yield current, path


LoadProblem = Literal["frontmatter", "encoding", "unreadable"]


@dataclass(frozen=True)
class LoadFailure:
    rel: str
    kind: DocumentKind
    line: int
    message: str
    problem: LoadProblem = "frontmatter"


@dataclass
class Discovery:
    documents: list[Document] = field(default_factory=list)
    failures: list[LoadFailure] = field(default_factory=list)

    def of_kind(self, kind: DocumentKind) -> list[Document]:
        return [doc for doc in self.documents if doc.kind is kind]

    def by_rel(self) -> dict[str, Document]:
        return {doc.rel: doc for doc in self.documents}


def discover(layout: AssetLayout, kind: DocumentKind | None = None) -> Discovery:
    """Load every document under the assistant dir.

    Documents that cannot be read are recorded as failures instead of
    aborting discovery.
    """
    discovery = Discovery()
    for current, path in layout.iter_paths(kind):
        rel = layout.relative(path)
        try:
            doc = load_document(path, rel=rel, kind=current)
        except FrontmatterError as exc:
            discovery.failures.append(
                LoadFailure(rel=rel, kind=current, line=exc.line, message=exc.reason)
            )
            continue
        except UnicodeDecodeError as exc:
            discovery.failures.append(
                LoadFailure(
                    rel=rel,
                    kind=current,
                    line=1,
                    message=f"not valid UTF-8 ({exc.reason})",
                    problem="encoding",
                )
            )
            continue
        except OSError as exc:
            logger.warning("cannot read %s: %s", path, exc)
            discovery.failures.append(
                LoadFailure(
                    rel=rel,
                    kind=current,
                    line=1,
                    message=f"cannot read file ({exc.strerror or exc})",
                    problem="unreadable",
                )
            )
            continue
        logger.debug("discovered %s %s", current.value, rel)
        discovery.documents.append(doc)
    return discovery
