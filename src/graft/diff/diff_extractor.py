"""
Diff extraction utilities.

This module turns the raw text git prints for ``diff --numstat``,
``diff --name-status`` and ``log`` into :class:`FileChange` and
:class:`Commit` records. The git client only produces text; all parsing
lives here so it can be unit tested without a repository.

Parsing is deliberately forgiving: a malformed line is skipped and the
rest of the output is still used, since a partial review plan is more
useful than none.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from graft.diff.models import Commit, DiffResult, DiffStats, FileChange, FileStatus


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# Field separator for ``git log --pretty=format:``; see LOG_FORMAT.
COMMIT_DELIMITER = "|||COMMIT|||"

# hash, short hash, author, email, ISO date, subject, body
LOG_FORMAT = COMMIT_DELIMITER.join(["%H", "%h", "%an", "%ae", "%aI", "%s", "%b"]) + COMMIT_DELIMITER

_BRACE_RENAME = re.compile(r"^(.*)\{([^}]*) => ([^}]*)\}(.*)$")

NumstatMap = Dict[str, Tuple[int, int]]


def normalize_rename_path(path: str) -> str:
    """Return the canonical (new) path for a possibly rename-encoded path.

    Handles the two encodings git uses in ``--numstat`` output::

        dir/{old => new}/file.go  ->  dir/new/file.go
        old/path.go => new/path.go  ->  new/path.go

    Paths without a rename marker are returned unchanged.
    """
    match = _BRACE_RENAME.match(path)
    if match:
        prefix, _old, new, suffix = match.groups()
        # "{sub => }/f" moves a file up a directory; drop the doubled separator
        if not new and suffix.startswith("/") and (not prefix or prefix.endswith("/")):
            suffix = suffix[1:]
        return prefix + new + suffix
    if " => " in path:
        return path.split(" => ", 1)[1]
    return path


def _parse_count(value: str) -> int:
    # "-" is git's marker for binary files
    try:
        count = int(value.strip())
    except ValueError:
        return 0
    return count if count > 0 else 0


def parse_numstat(output: str) -> NumstatMap:
    """Parse ``git diff --numstat`` output.

    Each line has the form ``additions<TAB>deletions<TAB>path``.

    Returns
    -------
    Dict[str, Tuple[int, int]]
        Mapping from canonical path to ``(additions, deletions)``. Binary
        files (``-`` counts) map to ``(0, 0)``.
    """
    result: NumstatMap = {}
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        path = normalize_rename_path(parts[2].strip())
        if not path:
            continue
        result[path] = (_parse_count(parts[0]), _parse_count(parts[1]))
    return result


def _classify(parts: List[str]) -> Tuple[FileStatus, str, str]:
    """Map one name-status record to ``(status, path, old_path)``."""
    code = parts[0].strip()
    if code == "A":
        return FileStatus.ADDED, parts[1], ""
    if code == "M":
        return FileStatus.MODIFIED, parts[1], ""
    if code == "D":
        return FileStatus.DELETED, parts[1], ""
    if code.startswith("R"):
        if len(parts) >= 3:
            return FileStatus.RENAMED, parts[2], parts[1]
        return FileStatus.RENAMED, normalize_rename_path(parts[1].strip()), ""
    if code.startswith("C"):
        # A copy is reviewed as a new file; the source is irrelevant
        return FileStatus.ADDED, parts[2] if len(parts) >= 3 else parts[1], ""
    return FileStatus.MODIFIED, parts[1], ""


def parse_name_status(output: str, numstat: NumstatMap) -> Tuple[List[FileChange], DiffStats]:
    """Parse ``git diff --name-status`` output and join it with numstat counts.

    Parameters
    ----------
    output : str
        Lines of ``status<TAB>path`` or ``status<TAB>old<TAB>new``.
    numstat : Dict[str, Tuple[int, int]]
        Result of :func:`parse_numstat` for the same diff.

    Returns
    -------
    Tuple[List[FileChange], DiffStats]
        Files in the order git listed them, and totals over those files.
    """
    files: List[FileChange] = []
    stats = DiffStats()
    seen = set()

    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        parts = line.split("\t")
        if len(parts) < 2 or not parts[0].strip():
            continue

        status, path, old_path = _classify(parts)
        # Paths are in separate columns; " => " here belongs to a file name
        path = path.strip()
        if not path:
            continue
        if path in seen:
            logger.debug("Skipping duplicate name-status entry for %s", path)
            continue
        seen.add(path)

        change = FileChange(path=path, status=status, old_path=old_path.strip())
        counts = numstat.get(path)
        if counts is not None:
            change.additions, change.deletions = counts
            # A content-free rename also reports 0/0 and is not binary
            change.is_binary = (
                counts == (0, 0)
                and status not in (FileStatus.DELETED, FileStatus.RENAMED)
            )

        files.append(change)
        stats.files_changed += 1
        stats.additions += change.additions
        stats.deletions += change.deletions

    return files, stats


def _parse_date(value: str) -> Optional[datetime]:
    value = value.strip()
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return datetime.strptime(value, "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        logger.debug("Unparseable commit date: %r", value)
        return None


def parse_commits(output: str) -> List[Commit]:
    """Parse ``git log`` output produced with :data:`LOG_FORMAT`.

    Entries with fewer than six fields are skipped.
    """
    commits: List[Commit] = []
    for entry in output.split(COMMIT_DELIMITER + "\n"):
        entry = entry.strip()
        if not entry:
            continue
        if entry.endswith(COMMIT_DELIMITER):
            entry = entry[: -len(COMMIT_DELIMITER)]

        parts = entry.split(COMMIT_DELIMITER)
        if len(parts) < 6:
            logger.debug("Skipping malformed log entry: %r", entry[:80])
            continue

        commits.append(
            Commit(
                hash=parts[0].strip(),
                short_hash=parts[1].strip(),
                author=parts[2],
                author_email=parts[3],
                date=_parse_date(parts[4]),
                subject=parts[5],
                body=parts[6].strip() if len(parts) > 6 else "",
            )
        )
    return commits


def build_diff_result(
    base_ref: str,
    numstat_output: str,
    name_status_output: str,
    log_output: str,
    head_ref: str = "HEAD",
) -> DiffResult:
    """Assemble a :class:`DiffResult` from the three raw git outputs."""
    files, stats = parse_name_status(name_status_output, parse_numstat(numstat_output))
    return DiffResult(
        base_ref=base_ref,
        head_ref=head_ref,
        files=files,
        commits=parse_commits(log_output),
        stats=stats,
    )
