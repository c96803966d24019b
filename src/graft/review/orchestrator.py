"""
Coordination of one review: cache, AI calls, user gate and file sequence.

The ordering request is slow and independent of the summary, so it is
started on a background thread before the summary is requested. The user
reads the summary while the ordering runs; after they confirm, the
orchestrator joins the background result and merges it with their group
selection into the final file list.

Only three conditions are fatal, and all of them are detected before the
orchestrator runs (not a repository, unknown base ref, no changes). AI
failures are reported as warnings and replaced by the static fallback;
cancellation surfaces as :class:`~graft.cancellation.ReviewCancelled`.
"""

from __future__ import annotations

import logging
import threading
from contextlib import nullcontext
from concurrent.futures import Future, wait
from dataclasses import dataclass, field
from typing import Callable, ContextManager, Iterator, List, Optional, Sequence, Tuple

from graft.cache.review_cache import CacheError, CachedReview, ReviewCache, generate_cache_key
from graft.cancellation import CancellationToken, ReviewCancelled
from graft.diff.models import DiffResult
from graft.ordering.grouped import build_file_list, build_grouped_file_list, count_files_per_group
from graft.provider.base import OrderRequest, Provider, ReviewRequest, SummarizeRequest
from graft.provider.models import OrderedFile, OrderGroup, OrderResponse, ReviewResponse, SummarizeResponse


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


DEFAULT_POLL_INTERVAL = 0.1


@dataclass
class ReviewOptions:
    """Switches for a single review run."""

    skip_summary: bool = False
    skip_ordering: bool = False
    tests_first: bool = False
    use_cache: bool = True
    # Ignore cached AI output, but still write the fresh result back
    refresh: bool = False
    deep_review: bool = False
    repo_context: str = ""
    poll_interval: float = DEFAULT_POLL_INTERVAL


@dataclass
class ReviewPlan:
    """Outcome of :meth:`ReviewOrchestrator.plan`."""

    diff: DiffResult
    cache_key: str = ""
    summary: Optional[SummarizeResponse] = None
    ordering: Optional[OrderResponse] = None
    review: Optional[ReviewResponse] = None
    files: List[OrderedFile] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    from_cache: bool = False
    declined: bool = False

    def iter_files(self) -> Iterator[Tuple[int, int, OrderedFile]]:
        """Yield ``(position, total, file)`` with 1-based positions."""
        total = len(self.files)
        for position, f in enumerate(self.files, start=1):
            yield position, total, f


class ReviewUI:
    """User interaction points of a review.

    The base class is non-interactive: it shows nothing, always continues
    and selects every group. Terminal front ends override the methods they
    need (see :class:`graft.render.prompts.TerminalReviewUI`).
    """

    def show_summary(self, summary: SummarizeResponse) -> None:
        return None

    def confirm_continue(self) -> bool:
        return True

    def show_ordering(self, ordering: OrderResponse) -> None:
        return None

    def select_groups(self, groups: Sequence[OrderGroup], file_counts: dict) -> Optional[List[OrderGroup]]:
        """Return the groups to review in review order; ``None`` selects all."""
        return None

    def show_review(self, review: ReviewResponse) -> None:
        return None

    def warn(self, message: str) -> None:
        return None

    def progress(self, message: str) -> ContextManager:
        """Context wrapped around a slow provider call."""
        return nullcontext()


def _completed(value) -> Future:
    future: Future = Future()
    future.set_result(value)
    return future


def run_in_background(fn: Callable, *args, name: str = "graft-worker") -> Future:
    """Run ``fn(*args)`` on a daemon thread and return its :class:`Future`.

    The thread is a daemon so an abandoned call cannot keep the process
    alive after the review ends.
    """
    future: Future = Future()

    def _worker() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = fn(*args)
        except BaseException as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)

    threading.Thread(target=_worker, name=name, daemon=True).start()
    return future


class ReviewOrchestrator:
    """Build a :class:`ReviewPlan` for a diff.

    Parameters
    ----------
    provider : Provider or None
        AI provider; ``None`` disables every AI call.
    ui : ReviewUI
        Receives the summary, ordering and warnings and answers the gates.
    cache : ReviewCache, optional
        Where AI output is reused from and stored to.
    options : ReviewOptions, optional
        Per-run switches.
    """

    def __init__(
        self,
        provider: Optional[Provider],
        ui: Optional[ReviewUI] = None,
        cache: Optional[ReviewCache] = None,
        options: Optional[ReviewOptions] = None,
    ) -> None:
        self.provider = provider
        self.ui = ui or ReviewUI()
        self.cache = cache
        self.options = options or ReviewOptions()

    def _warn(self, plan: ReviewPlan, message: str) -> None:
        logger.warning(message)
        plan.warnings.append(message)
        self.ui.warn(message)

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------
    def _order(self, diff: DiffResult, cancel: CancellationToken) -> OrderResponse:
        assert self.provider is not None
        logger.debug("Requesting file order from %s", self.provider.name)
        return self.provider.order_files(
            OrderRequest(
                files=diff.files,
                commits=diff.commits,
                repo_context=self.options.repo_context,
                tests_first=self.options.tests_first,
            ),
            cancel,
        )

    def _join(self, future: Future, cancel: CancellationToken):
        """Wait for ``future`` while watching ``cancel``."""
        while True:
            cancel.raise_if_cancelled()
            done, _ = wait([future], timeout=self.options.poll_interval)
            if done:
                return future.result()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------
    def _load_cached(self, key: str) -> Optional[CachedReview]:
        if self.cache is None or not self.options.use_cache:
            return None
        record = self.cache.load(key)
        if record is not None:
            logger.debug("Found cached review %s from %s", key, record.cached_at.isoformat())
        return record

    def _store(self, plan: ReviewPlan, existing: Optional[CachedReview]) -> None:
        if self.cache is None or not self.options.use_cache:
            return
        record = CachedReview(
            cache_key=plan.cache_key,
            base_ref=plan.diff.base_ref,
            commit_hashes=plan.diff.commit_hashes(),
            summary=plan.summary or (existing.summary if existing else None),
            ordering=plan.ordering or (existing.ordering if existing else None),
            review=plan.review or (existing.review if existing else None),
        )
        try:
            self.cache.save(record)
        except CacheError as exc:
            self._warn(plan, f"Failed to save review cache: {exc}")

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def plan(
        self,
        diff: DiffResult,
        cancel: CancellationToken,
        load_full_diff: Optional[Callable[[], str]] = None,
    ) -> ReviewPlan:
        """Run the review pipeline for ``diff``.

        Parameters
        ----------
        diff : DiffResult
            Extracted changes; must contain at least one file.
        cancel : CancellationToken
            Top-level token; every provider call and the join observe it.
        load_full_diff : callable, optional
            Returns the unified diff text for the summary and deep review.
            Only called when a provider actually needs it.

        Raises
        ------
        ReviewCancelled
            If ``cancel`` fires before the plan is complete.
        """
        cancel.raise_if_cancelled()
        opts = self.options
        plan = ReviewPlan(diff=diff, cache_key=generate_cache_key(diff.base_ref, diff.commits))

        existing = self._load_cached(plan.cache_key)
        reusable = None if opts.refresh else existing
        want_summary = self.provider is not None and not opts.skip_summary
        want_order = self.provider is not None and not opts.skip_ordering
        produced = False
        ordering_fresh = False

        full_diff_text: List[str] = []

        def full_diff() -> str:
            if not full_diff_text:
                full_diff_text.append(load_full_diff() if load_full_diff is not None else "")
            return full_diff_text[0]

        order_cancel = cancel.child()
        if want_order and reusable is not None and reusable.ordering is not None:
            logger.info("Using cached file ordering")
            plan.from_cache = True
            future = _completed(reusable.ordering)
        elif want_order:
            future = run_in_background(self._order, diff, order_cancel, name="graft-order")
            ordering_fresh = True
        else:
            future = _completed(None)

        try:
            if want_summary and reusable is not None and reusable.summary is not None:
                logger.info("Using cached summary")
                plan.from_cache = True
                plan.summary = reusable.summary
            elif want_summary:
                assert self.provider is not None
                try:
                    request = SummarizeRequest(files=diff.files, commits=diff.commits, full_diff=full_diff())
                    with self.ui.progress("Generating summary"):
                        plan.summary = self.provider.summarize_changes(request, cancel)
                    produced = True
                except ReviewCancelled:
                    raise
                except Exception as exc:
                    logger.debug("Summary failed", exc_info=True)
                    self._warn(plan, f"Failed to generate summary: {exc}")

            if plan.summary is not None:
                self.ui.show_summary(plan.summary)
                if not self.ui.confirm_continue():
                    order_cancel.cancel("review declined")
                    plan.declined = True
                    if produced:
                        self._store(plan, existing)
                    return plan

            try:
                if ordering_fresh and not future.done():
                    with self.ui.progress("Determining review order"):
                        plan.ordering = self._join(future, cancel)
                else:
                    plan.ordering = self._join(future, cancel)
                produced = produced or (ordering_fresh and plan.ordering is not None)
            except ReviewCancelled:
                raise
            except Exception as exc:
                logger.debug("Ordering failed", exc_info=True)
                self._warn(plan, f"Failed to determine order: {exc}; using default file order")
        finally:
            # Abandon the background call on every early exit
            if not future.done():
                order_cancel.cancel()

        if opts.deep_review and self.provider is not None:
            produced = self._deep_review(plan, reusable, cancel, full_diff) or produced

        if produced:
            self._store(plan, existing)

        plan.files = self._sequence(plan)
        return plan

    def _deep_review(
        self,
        plan: ReviewPlan,
        reusable: Optional[CachedReview],
        cancel: CancellationToken,
        full_diff: Callable[[], str],
    ) -> bool:
        """Attach a detailed review to ``plan``; return True if it is new."""
        fresh = False
        if reusable is not None and reusable.review is not None:
            logger.info("Using cached detailed review")
            plan.from_cache = True
            plan.review = reusable.review
        else:
            assert self.provider is not None
            try:
                request = ReviewRequest(files=plan.diff.files, commits=plan.diff.commits, full_diff=full_diff())
                with self.ui.progress("Generating detailed review"):
                    plan.review = self.provider.review_changes(request, cancel)
                fresh = True
            except ReviewCancelled:
                raise
            except Exception as exc:
                logger.debug("Detailed review failed", exc_info=True)
                self._warn(plan, f"Failed to generate detailed review: {exc}")
                return False
        self.ui.show_review(plan.review)
        return fresh

    def _sequence(self, plan: ReviewPlan) -> List[OrderedFile]:
        ordering = plan.ordering
        if ordering is None:
            return build_file_list(plan.diff.files, None)

        self.ui.show_ordering(ordering)
        if not ordering.groups:
            return build_file_list(plan.diff.files, ordering)

        groups = sorted(ordering.groups, key=lambda g: g.priority)
        try:
            selected = self.ui.select_groups(groups, count_files_per_group(ordering.files))
        except ReviewCancelled:
            raise
        except Exception as exc:
            self._warn(plan, f"Group selection failed: {exc}")
            return build_file_list(plan.diff.files, ordering)
        return build_grouped_file_list(ordering.files, selected or None, ordering.groups)
