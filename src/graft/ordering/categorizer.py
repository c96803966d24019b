"""
Path heuristics for assigning an architectural category to a file.

Used when no AI ordering is available. The rules are plain substring
checks evaluated in order, so the result is deterministic and cheap to
test; the first matching rule wins.
"""

from __future__ import annotations

from typing import Sequence, Tuple

from graft.diff.models import FileChange, FileStatus
from graft.provider.models import (
    CATEGORY_ADAPTER,
    CATEGORY_BUSINESS_LOGIC,
    CATEGORY_CONFIG,
    CATEGORY_DOCS,
    CATEGORY_ENTRY_POINT,
    CATEGORY_MODEL,
    CATEGORY_OTHER,
    CATEGORY_TEST,
)


_RULES: Sequence[Tuple[str, Tuple[str, ...]]] = (
    (CATEGORY_TEST, ("_test", "test_")),
    (CATEGORY_ENTRY_POINT, ("cmd/", "main.", "__main__")),
    (CATEGORY_BUSINESS_LOGIC, ("internal/", "pkg/")),
    (CATEGORY_ADAPTER, ("adapter", "repository", "client")),
    (CATEGORY_MODEL, ("model", "entity", "types")),
    (CATEGORY_CONFIG, ("config", ".json", ".yaml", ".toml")),
    (CATEGORY_DOCS, (".md", "doc/", "docs/")),
)


def categorize_file(path: str) -> str:
    """Return the category for ``path``.

    Examples
    --------
    >>> categorize_file("internal/auth/service_test.go")
    'test'
    >>> categorize_file("cmd/graft/main.go")
    'entry_point'
    >>> categorize_file("README.md")
    'docs'
    """
    for category, needles in _RULES:
        if any(needle in path for needle in needles):
            return category
    return CATEGORY_OTHER


def describe_status(change: FileChange) -> str:
    """Short human description of how a file changed."""
    if change.status == FileStatus.ADDED:
        return "New file"
    if change.status == FileStatus.DELETED:
        return "Deleted"
    if change.status == FileStatus.RENAMED:
        return f"Renamed from {change.old_path}" if change.old_path else "Renamed"
    return "Modified"
