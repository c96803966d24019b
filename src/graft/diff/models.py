"""
Data models for extracted diff information.

:class:`FileChange` and :class:`Commit` are produced by
:mod:`graft.diff.diff_extractor` from raw git output and collected into a
:class:`DiffResult` for one review invocation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class FileStatus(str, Enum):
    """Kind of change recorded for a file."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass
class FileChange:
    """A single changed file between the base and head references.

    Attributes
    ----------
    path : str
        Canonical (new) path relative to the repository root.
    status : FileStatus
        Change kind.
    old_path : str
        Original path for renames, empty otherwise.
    additions, deletions : int
        Line counts from ``git diff --numstat``.
    is_binary : bool
        True when git reported no line counts for a non-deleted file.
    """

    path: str
    status: FileStatus
    old_path: str = ""
    additions: int = 0
    deletions: int = 0
    is_binary: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "old_path": self.old_path,
            "status": self.status.value,
            "additions": self.additions,
            "deletions": self.deletions,
            "is_binary": self.is_binary,
        }


@dataclass(frozen=True)
class Commit:
    """Metadata for one commit between base and head."""

    hash: str
    short_hash: str
    author: str
    author_email: str
    date: Optional[datetime]
    subject: str
    body: str = ""

    @property
    def message(self) -> str:
        """Full commit message (subject, blank line, body)."""
        if not self.body:
            return self.subject
        return f"{self.subject}\n\n{self.body}"


@dataclass
class DiffStats:
    """Aggregate counts over all files of a diff."""

    files_changed: int = 0
    additions: int = 0
    deletions: int = 0


@dataclass
class DiffResult:
    """Everything extracted for one review: files, commits and totals."""

    base_ref: str
    head_ref: str = "HEAD"
    files: List[FileChange] = field(default_factory=list)
    commits: List[Commit] = field(default_factory=list)
    stats: DiffStats = field(default_factory=DiffStats)

    def paths(self) -> List[str]:
        return [f.path for f in self.files]

    def commit_hashes(self) -> List[str]:
        return [c.hash for c in self.commits]
