"""Documents of the assistant corpus and their metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rulekit.frontmatter import split_frontmatter


class DocumentKind(str, Enum):
    RULE = "rule"
    COMMAND = "command"
    TEMPLATE = "template"
    PLAN = "plan"

    @property
    def dirname(self) -> str:
        return f"{self.value}s"

    @property
    def suffixes(self) -> tuple[str, ...]:
        if self is DocumentKind.RULE:
            return (".md", ".mdc")
        return (".md",)

    @classmethod
    def parse(cls, value: str) -> DocumentKind:
        lowered = value.strip().lower()
        for kind in cls:
            if lowered in (kind.value, kind.dirname):
                return kind
        raise ValueError(f"unknown document kind: {value!r}")


class RuleMetadata(BaseModel):
    """Front matter keys the host reads from a rule document."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    description: Optional[str] = None
    globs: List[str] = Field(default_factory=list)
    always_apply: bool = Field(default=False, alias="alwaysApply")

    @field_validator("description", mode="before")
    @classmethod
    def _blank_description(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("globs", mode="before")
    @classmethod
    def _split_globs(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("always_apply", mode="before")
    @classmethod
    def _null_always_apply(cls, value: Any) -> Any:
        return False if value is None else value


@dataclass(frozen=True)
class Document:
    rel: str
    path: Path
    kind: DocumentKind
    text: str
    body: str
    body_line: int = 1
    has_frontmatter: bool = False
    frontmatter: Mapping[str, Any] = field(default_factory=dict)

    @property
    def command_name(self) -> str | None:
        if self.kind is not DocumentKind.COMMAND:
            return None
        return f"/{self.path.stem}"

    def rule_metadata(self) -> RuleMetadata:
        """Validate the front matter as rule metadata.

        Raises ``pydantic.ValidationError`` on wrong field types.
        """
        return RuleMetadata.model_validate(dict(self.frontmatter))

    def body_lines(self) -> list[tuple[int, str]]:
        return [
            (self.body_line + offset, line)
            for offset, line in enumerate(self.body.split("\n"))
        ]


def load_document(path: Path, *, rel: str, kind: DocumentKind) -> Document:
    """Read and split one document.

    Raises ``FrontmatterError`` for an unterminated or unparsable front
    matter block and ``UnicodeDecodeError`` for non UTF-8 text.
    """
    text = path.read_text(encoding="utf-8")
    block = split_frontmatter(text, path=path)
    return Document(
        rel=rel,
        path=path,
        kind=kind,
        text=text,
        body=block.body,
        body_line=block.body_line,
        has_frontmatter=block.present,
        frontmatter=dict(block.data),
    )
