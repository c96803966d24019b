"""
Persistence of repository analysis in ``<repo>/.graft/analysis.json``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

from graft.analysis.analyzer import Analysis, RepoAnalyzer
from graft.cache.review_cache import CACHE_DIR


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


ANALYSIS_FILE = "analysis.json"


class AnalysisCache:
    """Load and store the analysis of one repository."""

    def __init__(self, repo_root: Union[str, Path]) -> None:
        self.repo_root = Path(repo_root)

    @property
    def path(self) -> Path:
        return self.repo_root / CACHE_DIR / ANALYSIS_FILE

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Optional[Analysis]:
        """Return the cached analysis; unreadable or malformed files are a miss."""
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
            return Analysis.from_dict(data)
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            logger.debug("Ignoring invalid analysis cache %s: %s", self.path, exc)
            return None

    def save(self, analysis: Analysis) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as fh:
            json.dump(analysis.to_dict(), fh, indent=2)
            fh.write("\n")

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


def get_or_analyze(repo_root: Union[str, Path], refresh: bool = False) -> Tuple[Analysis, bool]:
    """Return ``(analysis, is_new)``, analysing only when nothing usable is cached.

    A failure to write the cache is logged and otherwise ignored.
    """
    cache = AnalysisCache(repo_root)
    if not refresh:
        cached = cache.load()
        if cached is not None:
            return cached, False

    analysis = RepoAnalyzer(repo_root).analyze()
    try:
        cache.save(analysis)
    except OSError as exc:
        logger.warning("Failed to cache repository analysis: %s", exc)
    return analysis, True
