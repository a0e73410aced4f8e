"""rulekit package root."""

from rulekit.errors import FetchError, FrontmatterError, LayoutError, RulekitError, SyncError

__all__ = [
    "__version__",
    "FetchError",
    "FrontmatterError",
    "LayoutError",
    "RulekitError",
    "SyncError",
]

__version__ = "0.1.0"
