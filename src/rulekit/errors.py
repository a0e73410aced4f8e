"""Exceptions raised by rulekit library code."""

from __future__ import annotations

from pathlib import Path


class RulekitError(Exception):
    """Base class for operational failures surfaced by the CLI."""


class FrontmatterError(RulekitError):
    """Front matter block could not be split or parsed.

    Carries the offending path (when known) and the 1-based line the problem
    was detected on so lint can turn it into a finding.
    """

    def __init__(self, message: str, *, path: Path | None = None, line: int = 1):
        self.reason = message
        self.path = path
        self.line = line
        where = f"{path}:{line}: " if path is not None else ""
        super().__init__(f"{where}{message}")


class LayoutError(RulekitError):
    """Assistant directory is missing or not a directory."""


class SyncError(RulekitError):
    """Asset installation cannot proceed."""


class FetchError(RulekitError):
    """Remote asset archive could not be downloaded or unpacked."""
