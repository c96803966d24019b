"""
Terminal rendering of summaries, review order and per-file diffs.

File diffs are piped through `delta <https://github.com/dandavison/delta>`_
when it is installed; otherwise the plain (coloured) ``git diff`` output is
printed. Everything else is written with :func:`click.echo`.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Union

import click

from graft.cancellation import CancellationToken, ReviewCancelled
from graft.ordering.grouped import count_files_per_group
from graft.provider.models import (
    CATEGORY_ADAPTER,
    CATEGORY_BUSINESS_LOGIC,
    CATEGORY_CONFIG,
    CATEGORY_DOCS,
    CATEGORY_ENTRY_POINT,
    CATEGORY_MODEL,
    CATEGORY_TEST,
    OrderedFile,
    OrderResponse,
    ReviewResponse,
    SummarizeResponse,
)
from graft.vcs.git_client import GitClient, GitError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


DIVIDER_WIDTH = 60

CATEGORY_ICONS = {
    CATEGORY_ENTRY_POINT: "→",
    CATEGORY_BUSINESS_LOGIC: "◆",
    CATEGORY_ADAPTER: "◇",
    CATEGORY_MODEL: "●",
    CATEGORY_CONFIG: "⚙",
    CATEGORY_TEST: "✓",
    CATEGORY_DOCS: "📄",
}


def category_icon(category: str) -> str:
    return CATEGORY_ICONS.get(category, "○")


def find_delta(delta_path: Optional[str] = None) -> Optional[str]:
    """Return the delta executable to use, or ``None`` if it is unavailable."""
    if delta_path:
        return shutil.which(delta_path) or (delta_path if Path(delta_path).is_file() else None)
    return shutil.which("delta")


class Renderer:
    """Write review output to the terminal.

    Parameters
    ----------
    git : GitClient
        Used to fetch per-file diffs.
    base_ref : str
        Reference the diffs are taken against.
    delta : str, optional
        Path of the delta executable. ``None`` selects plain git output.
    """

    def __init__(self, git: GitClient, base_ref: str, delta: Optional[str] = None) -> None:
        self.git = git
        self.base_ref = base_ref
        self.delta = delta

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------
    @staticmethod
    def _header(text: str) -> None:
        click.echo(click.style(f"=== {text} ===", fg="cyan", bold=True))

    @staticmethod
    def _subheader(text: str) -> None:
        click.echo(click.style(f"{text}:", bold=True))

    @staticmethod
    def _divider() -> None:
        click.echo(click.style("─" * DIVIDER_WIDTH, fg="bright_black"))

    # ------------------------------------------------------------------
    # Summary, order, review
    # ------------------------------------------------------------------
    def render_summary(self, summary: SummarizeResponse) -> None:
        click.echo()
        self._header("Change Summary")
        click.echo()
        if summary.overview:
            click.echo(summary.overview)
            click.echo()
        if summary.key_changes:
            self._subheader("Key Changes")
            for change in summary.key_changes:
                click.echo(f"  {click.style('•', fg='green')} {change}")
            click.echo()
        if summary.concerns:
            self._subheader("Concerns")
            for concern in summary.concerns:
                click.echo(f"  {click.style('⚠', fg='yellow')} {concern}")
            click.echo()
        if summary.file_groups:
            self._subheader("File Groups")
            for group in summary.file_groups:
                click.echo(f"  {group.name}: {group.description}")
                for path in group.files:
                    click.echo(f"    - {path}")
            click.echo()

    def render_ordering(self, order: OrderResponse) -> None:
        self._header("Review Order")
        click.echo()
        if order.reasoning:
            click.echo(order.reasoning)
            click.echo()

        if order.groups:
            counts = count_files_per_group(order.files)
            self._subheader("Groups")
            for i, group in enumerate(order.groups, start=1):
                click.echo(f"  {i}. {group.name} ({counts.get(group.name, 0)} files)")
                if group.description:
                    click.echo(f"     {group.description}")
            click.echo()

        for i, f in enumerate(order.files, start=1):
            prefix = f"[{f.group}] " if f.group else ""
            click.echo(f"  {i:2d}. {prefix}{category_icon(f.category)} {f.path}")
            if f.description:
                click.echo(f"      {f.description}")
        click.echo()

    def render_review(self, review: ReviewResponse) -> None:
        click.echo()
        self._header("Detailed Review")
        click.echo()
        click.echo(review.content.rstrip())
        click.echo()

    # ------------------------------------------------------------------
    # Per-file output
    # ------------------------------------------------------------------
    def render_file_header(self, f: OrderedFile, position: int, total: int) -> None:
        click.echo()
        self._divider()
        icon = category_icon(f.category)
        if f.group:
            header = f"[{position}/{total}] {f.group} -> {icon} {f.path}"
        else:
            header = f"[{position}/{total}] {icon} {f.path}"
        click.echo(click.style(header, fg="yellow", bold=True))
        if f.description:
            click.echo(f"  {f.description}")
        self._divider()
        click.echo()

    def render_file_diff(self, path: str, cancel: CancellationToken) -> None:
        """Show the diff of ``path``.

        Raises
        ------
        GitError
            If git cannot produce the diff.
        ReviewCancelled
            If ``cancel`` fires while the diff is shown.
        """
        if self.delta is not None:
            try:
                self._pipe_through_delta(path, cancel)
                return
            except OSError as exc:
                logger.warning("delta failed (%s); falling back to plain diff", exc)
                self.delta = None
        click.echo(self.git.get_file_diff(self.base_ref, path, color=True, cancel=cancel), nl=False)

    def _pipe_through_delta(self, path: str, cancel: CancellationToken) -> None:
        cancel.raise_if_cancelled()
        git_cmd = ["git", "diff", "--color=always", f"{self.base_ref}...HEAD", "--", path]
        repo_root: Union[str, Path] = self.git.repo_root
        git_proc = subprocess.Popen(git_cmd, cwd=repo_root, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        try:
            delta_proc = subprocess.Popen([self.delta], stdin=git_proc.stdout)
        except OSError:
            git_proc.kill()
            git_proc.wait()
            raise
        # Let delta own the read end so git sees SIGPIPE if delta exits early
        git_proc.stdout.close()
        finished = False
        try:
            delta_proc.wait(timeout=cancel.remaining())
            _, stderr = git_proc.communicate(timeout=cancel.remaining())
            finished = True
        except subprocess.TimeoutExpired as exc:
            raise ReviewCancelled(cancel.reason) from exc
        finally:
            # Also reached on KeyboardInterrupt; never leave either child running
            if not finished:
                for proc in (delta_proc, git_proc):
                    proc.kill()
                    proc.wait()
        if git_proc.returncode != 0:
            raise GitError(stderr.decode("utf-8", "replace").strip() or f"git diff failed for {path}")
