"""
On-disk cache of AI review output.

Each distinct (base ref, commit set) pair maps to one JSON file under
``<repo_root>/.graft/reviews/<key>.json``. The key is derived purely from
content (see :func:`generate_cache_key`), so the cache only ever changes
how fast a review starts, never what it shows. Files that cannot be read
or parsed are treated as if they were absent.
"""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from graft.diff.models import Commit
from graft.provider.models import OrderResponse, ReviewResponse, SchemaError, SummarizeResponse


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


CACHE_DIR = ".graft"
REVIEW_CACHE_DIR = "reviews"
KEY_LENGTH = 16


class CacheError(Exception):
    """Raised when the cache directory cannot be written or cleared."""

    pass


def generate_cache_key(base_ref: str, commits: Iterable[Union[Commit, str]]) -> str:
    """Return the cache key for a base ref and a set of commits.

    The commit hashes are sorted first, so the key does not depend on the
    order in which commits were listed.

    Parameters
    ----------
    base_ref : str
        Reference the review is computed against, e.g. ``"main"``.
    commits : iterable of Commit or str
        Commits (or bare hashes) between ``base_ref`` and ``HEAD``.

    Returns
    -------
    str
        First 16 hex characters of a SHA-256 digest.
    """
    hashes = sorted(c.hash if isinstance(c, Commit) else str(c) for c in commits)
    digest = hashlib.sha256()
    digest.update(base_ref.encode("utf-8"))
    digest.update(b"\x00")
    for h in hashes:
        digest.update(h.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()[:KEY_LENGTH]


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise SchemaError("'cached_at' must be an ISO-8601 string")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise SchemaError(f"invalid 'cached_at': {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class CachedReview:
    """Persisted AI output for one review."""

    cache_key: str
    base_ref: str
    commit_hashes: List[str] = field(default_factory=list)
    summary: Optional[SummarizeResponse] = None
    ordering: Optional[OrderResponse] = None
    review: Optional[ReviewResponse] = None
    cached_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "cache_key": self.cache_key,
            "base_ref": self.base_ref,
            "commit_hashes": list(self.commit_hashes),
        }
        if self.summary is not None:
            data["summary"] = self.summary.to_dict()
        if self.ordering is not None:
            data["ordering"] = self.ordering.to_dict()
        if self.review is not None:
            data["review"] = self.review.to_dict()
        data["cached_at"] = self.cached_at.astimezone(timezone.utc).isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "CachedReview":
        if not isinstance(data, dict):
            raise SchemaError("cached review must be an object")
        key = data.get("cache_key")
        if not isinstance(key, str) or not key:
            raise SchemaError("'cache_key' must be a non-empty string")
        hashes = data.get("commit_hashes") or []
        if not isinstance(hashes, list) or not all(isinstance(h, str) for h in hashes):
            raise SchemaError("'commit_hashes' must be a list of strings")
        base_ref = data.get("base_ref", "")
        if not isinstance(base_ref, str):
            raise SchemaError("'base_ref' must be a string")
        return cls(
            cache_key=key,
            base_ref=base_ref,
            commit_hashes=hashes,
            summary=SummarizeResponse.from_dict(data["summary"]) if data.get("summary") is not None else None,
            ordering=OrderResponse.from_dict(data["ordering"]) if data.get("ordering") is not None else None,
            review=ReviewResponse.from_dict(data["review"]) if data.get("review") is not None else None,
            cached_at=_parse_timestamp(data.get("cached_at")),
        )


class ReviewCache:
    """Load and store :class:`CachedReview` records for one repository."""

    def __init__(self, repo_root: Union[str, Path]) -> None:
        self.repo_root = Path(repo_root)

    @property
    def directory(self) -> Path:
        return self.repo_root / CACHE_DIR / REVIEW_CACHE_DIR

    def path_for(self, cache_key: str) -> Path:
        return self.directory / f"{cache_key}.json"

    def load(self, cache_key: str) -> Optional[CachedReview]:
        """Return the cached review for ``cache_key`` or ``None``.

        Missing, unreadable and malformed files all count as a miss.
        """
        return self._read(self.path_for(cache_key))

    def _read(self, path: Path) -> Optional[CachedReview]:
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, RecursionError) as exc:
            logger.debug("Ignoring unreadable cache file %s: %s", path, exc)
            return None
        try:
            return CachedReview.from_dict(data)
        except SchemaError as exc:
            logger.debug("Ignoring malformed cache file %s: %s", path, exc)
            return None

    def save(self, record: CachedReview) -> None:
        """Write ``record``, replacing any previous entry with the same key.

        Raises
        ------
        CacheError
            If the cache directory or file cannot be written.
        """
        path = self.path_for(record.cache_key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as fh:
                json.dump(record.to_dict(), fh, indent=2)
                fh.write("\n")
        except OSError as exc:
            raise CacheError(f"could not write review cache {path}: {exc}") from exc
        logger.debug("Saved review cache %s", path)

    def exists(self, cache_key: str) -> bool:
        return self.path_for(cache_key).is_file()

    def clear(self, cache_key: str) -> None:
        try:
            self.path_for(cache_key).unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise CacheError(f"could not remove cache entry {cache_key}: {exc}") from exc

    def clear_all(self) -> None:
        if not self.directory.exists():
            return
        try:
            shutil.rmtree(self.directory)
        except OSError as exc:
            raise CacheError(f"could not remove {self.directory}: {exc}") from exc

    def _entries(self) -> List[Tuple[Path, CachedReview]]:
        """Readable ``(file, record)`` pairs, oldest first."""
        if not self.directory.is_dir():
            return []
        entries = []
        for path in sorted(self.directory.glob("*.json")):
            if not path.is_file():
                continue
            record = self._read(path)
            if record is not None:
                entries.append((path, record))
        entries.sort(key=lambda e: e[1].cached_at)
        return entries

    def list(self) -> List[CachedReview]:
        """Return every readable cached review, oldest first."""
        return [record for _, record in self._entries()]

    def count(self) -> int:
        return len(self.list())

    def clear_stale(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        """Remove entries cached more than ``max_age`` ago.

        Returns
        -------
        int
            Number of entries removed.
        """
        cutoff = (now or datetime.now(timezone.utc)) - max_age
        cleared = 0
        # Delete by file name; a hand-edited file may carry a different cache_key
        for path, record in self._entries():
            if record.cached_at < cutoff:
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    raise CacheError(f"could not remove cache entry {path.stem}: {exc}") from exc
                cleared += 1
        if cleared:
            logger.info("Cleared %d stale review cache entr%s", cleared, "y" if cleared == 1 else "ies")
        return cleared
