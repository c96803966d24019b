"""
Git client used to collect the changes under review.

Only read-only commands are issued. Every command runs through
:meth:`GitClient._run`, so unit tests can patch a single method, and every
command accepts a :class:`~graft.cancellation.CancellationToken` whose
remaining time bounds the subprocess. Parsing of the output is left to
:mod:`graft.diff.diff_extractor`.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from graft.cancellation import CancellationToken, ReviewCancelled
from graft.diff.diff_extractor import LOG_FORMAT, build_diff_result
from graft.diff.models import DiffResult


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


MAX_SUGGESTIONS = 3


class GitError(Exception):
    """Raised when a Git command fails."""

    pass


class NotARepositoryError(GitError):
    """Raised when the working directory is not inside a Git repository."""

    pass


class RefNotFoundError(GitError):
    """Raised when the base reference does not resolve to a commit."""

    def __init__(self, ref: str, suggestions: Optional[List[str]] = None) -> None:
        self.ref = ref
        self.suggestions = list(suggestions or [])
        message = f"branch '{ref}' not found"
        if self.suggestions:
            message += f"; did you mean: {', '.join(self.suggestions)}"
        super().__init__(message)


def find_similar(target: str, candidates: List[str], limit: int = MAX_SUGGESTIONS) -> List[str]:
    """Return up to ``limit`` candidates that contain, or are contained in, ``target``.

    >>> find_similar("mian", ["main", "develop"])
    []
    >>> find_similar("feature", ["feature/login", "main", "feature/api"])
    ['feature/login', 'feature/api']
    """
    needle = target.lower()
    similar = [c for c in candidates if needle in c.lower() or c.lower() in needle]
    return similar[:limit]


class GitClient:
    """Client for reading diffs and history from a Git repository."""

    def __init__(self, repo_root: Union[str, Path]) -> None:
        self.repo_root = Path(repo_root)

    # ------------------------------------------------------------------
    # Static helpers
    # ------------------------------------------------------------------
    @staticmethod
    def find_repo_root(start: Union[str, Path]) -> Optional[Path]:
        """Find the root of the Git repository containing ``start``.

        Walk upwards until a ``.git`` entry (directory, or file for
        worktrees) is found or the filesystem root is reached.
        """
        current = Path(start).resolve()
        while True:
            if (current / ".git").exists():
                return current
            if current.parent == current:
                return None
            current = current.parent

    @classmethod
    def open(cls, start: Union[str, Path]) -> "GitClient":
        """Return a client for the repository containing ``start``.

        Raises
        ------
        NotARepositoryError
            If ``start`` is not inside a Git repository.
        """
        root = cls.find_repo_root(start)
        if root is None:
            raise NotARepositoryError(f"not a git repository: {start}")
        return cls(root)

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------
    def _run(
        self,
        args: List[str],
        check: bool = True,
        cancel: Optional[CancellationToken] = None,
    ) -> subprocess.CompletedProcess:
        """Run a Git command in the repository root.

        Raises
        ------
        GitError
            If the command exits with a non-zero status when ``check`` is True.
        ReviewCancelled
            If ``cancel`` fires before the command starts or while it runs.
        """
        timeout = None
        if cancel is not None:
            cancel.raise_if_cancelled()
            timeout = cancel.remaining()

        full_cmd = ["git"] + args
        logger.debug("Executing Git command: %s", " ".join(full_cmd))
        try:
            result = subprocess.run(
                full_cmd,
                cwd=self.repo_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            if cancel is not None and cancel.cancelled:
                raise ReviewCancelled(cancel.reason) from exc
            raise GitError(f"git {args[0]} timed out") from exc
        except FileNotFoundError as exc:
            raise GitError("git executable not found") from exc

        if check and result.returncode != 0:
            logger.error(
                "Git command failed: %s\nSTDOUT: %s\nSTDERR: %s",
                " ".join(full_cmd),
                result.stdout,
                result.stderr,
            )
            raise GitError(result.stderr.strip() or result.stdout.strip() or f"git {args[0]} failed")
        return result

    # ------------------------------------------------------------------
    # Repository and reference information
    # ------------------------------------------------------------------
    def get_root_dir(self, cancel: Optional[CancellationToken] = None) -> Path:
        result = self._run(["rev-parse", "--show-toplevel"], cancel=cancel)
        return Path(result.stdout.strip())

    def get_current_branch(self, cancel: Optional[CancellationToken] = None) -> str:
        """Get the name of the current branch (``HEAD`` when detached)."""
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"], cancel=cancel)
        return result.stdout.strip()

    def list_branches(self, cancel: Optional[CancellationToken] = None) -> List[str]:
        result = self._run(["branch", "--format=%(refname:short)"], check=False, cancel=cancel)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def validate_ref(self, ref: str, cancel: Optional[CancellationToken] = None) -> None:
        """Check that ``ref`` resolves to a commit.

        Raises
        ------
        RefNotFoundError
            If it does not; similar local branch names are attached as
            suggestions.
        """
        result = self._run(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], check=False, cancel=cancel)
        if result.returncode == 0:
            return
        suggestions = find_similar(ref, self.list_branches(cancel=cancel))
        raise RefNotFoundError(ref, suggestions)

    # ------------------------------------------------------------------
    # Diff and history text
    # ------------------------------------------------------------------
    def get_commits_text(self, base_ref: str, cancel: Optional[CancellationToken] = None) -> str:
        result = self._run(["log", f"{base_ref}..HEAD", f"--pretty=format:{LOG_FORMAT}"], cancel=cancel)
        return result.stdout

    def get_numstat(self, base_ref: str, cancel: Optional[CancellationToken] = None) -> str:
        return self._run(["diff", "--numstat", f"{base_ref}...HEAD"], cancel=cancel).stdout

    def get_name_status(self, base_ref: str, cancel: Optional[CancellationToken] = None) -> str:
        return self._run(["diff", "--name-status", f"{base_ref}...HEAD"], cancel=cancel).stdout

    def get_full_diff(self, base_ref: str, cancel: Optional[CancellationToken] = None) -> str:
        return self._run(["diff", f"{base_ref}...HEAD"], cancel=cancel).stdout

    def get_file_diff(
        self,
        base_ref: str,
        path: str,
        color: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        args = ["diff"]
        if color:
            args.append("--color=always")
        args += [f"{base_ref}...HEAD", "--", path]
        return self._run(args, cancel=cancel).stdout

    def get_diff(self, base_ref: str, cancel: Optional[CancellationToken] = None) -> DiffResult:
        """Collect files, line counts and commits between ``base_ref`` and HEAD."""
        log_text = self.get_commits_text(base_ref, cancel=cancel)
        numstat_text = self.get_numstat(base_ref, cancel=cancel)
        name_status_text = self.get_name_status(base_ref, cancel=cancel)
        result = build_diff_result(base_ref, numstat_text, name_status_text, log_text)
        logger.debug(
            "Diff against %s: %d files, %d commits",
            base_ref,
            len(result.files),
            len(result.commits),
        )
        return result
