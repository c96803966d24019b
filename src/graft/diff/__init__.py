"""
Parsing of git diff summaries into typed change records.

See :mod:`graft.diff.diff_extractor` for the parsers and
:mod:`graft.diff.models` for the records they produce.
"""

from .diff_extractor import (  # noqa: F401
    build_diff_result,
    normalize_rename_path,
    parse_commits,
    parse_name_status,
    parse_numstat,
)
from .models import Commit, DiffResult, DiffStats, FileChange, FileStatus  # noqa: F401
