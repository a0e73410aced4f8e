from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel

Severity = Literal["error", "warning"]


class FindingDTO(BaseModel):
    kind: str
    severity: Severity
    path: str
    line: int = 1
    message: str


class LintSummaryDTO(BaseModel):
    documents: int
    errors: int
    warnings: int
    by_kind: Dict[str, int] = {}


class LintReportDTO(BaseModel):
    root: str
    assistant_dir: str
    findings: List[FindingDTO]
    summary: LintSummaryDTO


class InventoryEntryDTO(BaseModel):
    token: str
    style: Literal["curly", "comment"]
    count: int
    documents: List[str]


class ManifestEntryDTO(BaseModel):
    sha256: str
    size: int


class ManifestDTO(BaseModel):
    version: int = 1
    source: Optional[str] = None
    installed_at: Optional[str] = None
    files: Dict[str, ManifestEntryDTO] = {}
