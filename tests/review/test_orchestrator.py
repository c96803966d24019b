import threading
import time
import unittest
from contextlib import contextmanager
from pathlib import Path
from tempfile import TemporaryDirectory

from graft.cache.review_cache import CacheError, ReviewCache
from graft.cancellation import CancellationToken, ReviewCancelled
from graft.diff.models import Commit, DiffResult, DiffStats, FileChange, FileStatus
from graft.provider.base import ProviderError
from graft.provider.mock import MockProvider
from graft.provider.models import OrderedFile, OrderGroup, OrderResponse, SummarizeResponse
from graft.review.orchestrator import ReviewOptions, ReviewOrchestrator, ReviewUI, run_in_background


def make_diff() -> DiffResult:
    files = [
        FileChange("src/service.py", FileStatus.MODIFIED, additions=4, deletions=1),
        FileChange("README.md", FileStatus.MODIFIED, additions=1),
        FileChange("src/api.py", FileStatus.ADDED, additions=20),
    ]
    commits = [Commit(hash="c" * 40, short_hash="ccccccc", author="A", author_email="a@x", date=None, subject="work")]
    return DiffResult(base_ref="main", files=files, commits=commits, stats=DiffStats(3, 25, 1))


def wait_for_cancel(request, cancel):
    while not cancel.cancelled:
        time.sleep(0.01)
    raise ReviewCancelled(cancel.reason)


class RecordingUI(ReviewUI):
    def __init__(self, confirm=True, selection=None, on_confirm=None):
        self.confirm = confirm
        self.selection = selection
        self.on_confirm = on_confirm
        self.events = []
        self.warnings = []
        self.progress_messages = []

    def show_summary(self, summary):
        self.events.append("summary")

    def confirm_continue(self):
        self.events.append("confirm")
        if self.on_confirm is not None:
            self.on_confirm()
        return self.confirm

    def show_ordering(self, ordering):
        self.events.append("ordering")

    def select_groups(self, groups, file_counts):
        self.events.append("select")
        self.offered = (list(groups), dict(file_counts))
        return self.selection

    def show_review(self, review):
        self.events.append("review")

    def warn(self, message):
        self.warnings.append(message)

    @contextmanager
    def progress(self, message):
        self.progress_messages.append(message)
        yield


class FailingSaveCache(ReviewCache):
    def save(self, record):
        raise CacheError("disk full")


def paths(plan):
    return [f.path for f in plan.files]


class TestRunInBackground(unittest.TestCase):
    def test_result_and_exception(self) -> None:
        self.assertEqual(run_in_background(lambda x: x * 2, 21).result(timeout=5), 42)

        def boom():
            raise ValueError("nope")

        with self.assertRaises(ValueError):
            run_in_background(boom).result(timeout=5)


class TestReviewOrchestrator(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.cache = ReviewCache(Path(self._tmp.name))
        self.diff = make_diff()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_without_provider_uses_diff_order(self) -> None:
        ui = RecordingUI()
        plan = ReviewOrchestrator(None, ui, self.cache).plan(self.diff, CancellationToken())
        self.assertEqual(paths(plan), ["src/service.py", "README.md", "src/api.py"])
        self.assertEqual([f.priority for f in plan.files], [1, 2, 3])
        self.assertEqual(ui.events, [])
        self.assertEqual(plan.warnings, [])
        self.assertEqual(self.cache.count(), 0)

    def test_mock_provider_flow(self) -> None:
        provider = MockProvider()
        ui = RecordingUI()
        plan = ReviewOrchestrator(provider, ui, self.cache).plan(self.diff, CancellationToken(), lambda: "diff text")

        self.assertEqual(ui.events, ["summary", "confirm", "ordering"])
        self.assertEqual(plan.summary.overview, "Mock summary of changes")
        self.assertEqual(paths(plan), ["README.md", "src/api.py", "src/service.py"])
        self.assertEqual(provider.summarize_calls[0].full_diff, "diff text")
        self.assertFalse(plan.from_cache)
        self.assertFalse(plan.declined)
        self.assertTrue(self.cache.exists(plan.cache_key))

    def test_declining_stops_and_cancels_ordering(self) -> None:
        provider = MockProvider(order_func=wait_for_cancel)
        ui = RecordingUI(confirm=False)
        plan = ReviewOrchestrator(provider, ui, self.cache).plan(self.diff, CancellationToken())

        self.assertTrue(plan.declined)
        self.assertEqual(plan.files, [])
        self.assertNotIn("ordering", ui.events)
        # The summary was produced, so it is kept for next time
        cached = self.cache.load(plan.cache_key)
        self.assertIsNotNone(cached.summary)
        self.assertIsNone(cached.ordering)

    def test_ordering_starts_before_summarization(self) -> None:
        order_started = threading.Event()
        seen = {}

        def order(request, cancel):
            order_started.set()
            return OrderResponse(files=[OrderedFile("src/api.py", priority=1)])

        def summarize(request, cancel):
            seen["order_started"] = order_started.wait(timeout=5)
            seen["thread"] = threading.current_thread()
            return SummarizeResponse(overview="ok")

        provider = MockProvider(summarize_func=summarize, order_func=order)
        ui = RecordingUI()
        plan = ReviewOrchestrator(provider, ui, self.cache).plan(self.diff, CancellationToken())

        self.assertTrue(seen["order_started"])
        self.assertIs(seen["thread"], threading.current_thread())
        self.assertEqual(ui.progress_messages[0], "Generating summary")
        self.assertEqual(plan.summary.overview, "ok")
        self.assertEqual(paths(plan), ["src/api.py"])

    def test_ordering_failure_falls_back(self) -> None:
        def fail(request, cancel):
            raise ProviderError("model unavailable")

        ui = RecordingUI()
        plan = ReviewOrchestrator(MockProvider(order_func=fail), ui, self.cache).plan(self.diff, CancellationToken())

        self.assertEqual(paths(plan), ["src/service.py", "README.md", "src/api.py"])
        self.assertEqual(len(ui.warnings), 1)
        self.assertIn("Failed to determine order: model unavailable", ui.warnings[0])
        self.assertEqual(plan.warnings, ui.warnings)

    def test_summary_failure_is_a_warning(self) -> None:
        def fail(request, cancel):
            raise ProviderError("timeout")

        ui = RecordingUI()
        plan = ReviewOrchestrator(MockProvider(summarize_func=fail), ui, self.cache).plan(self.diff, CancellationToken())

        self.assertIsNone(plan.summary)
        self.assertEqual(ui.warnings, ["Failed to generate summary: timeout"])
        # No summary means no confirmation gate
        self.assertEqual(ui.events, ["ordering"])
        self.assertEqual(paths(plan), ["README.md", "src/api.py", "src/service.py"])

    def test_skip_switches(self) -> None:
        provider = MockProvider()
        options = ReviewOptions(skip_summary=True, skip_ordering=True)
        plan = ReviewOrchestrator(provider, RecordingUI(), self.cache, options).plan(self.diff, CancellationToken())
        self.assertEqual(provider.summarize_calls, [])
        self.assertEqual(provider.order_calls, [])
        self.assertEqual(paths(plan), ["src/service.py", "README.md", "src/api.py"])

    def test_order_request_carries_options(self) -> None:
        provider = MockProvider()
        options = ReviewOptions(skip_summary=True, tests_first=True, repo_context="- Type: backend\n")
        ReviewOrchestrator(provider, RecordingUI(), None, options).plan(self.diff, CancellationToken())
        request = provider.order_calls[0]
        self.assertTrue(request.tests_first)
        self.assertEqual(request.repo_context, "- Type: backend\n")

    def test_cached_output_is_reused(self) -> None:
        ReviewOrchestrator(MockProvider(), RecordingUI(), self.cache).plan(self.diff, CancellationToken())

        provider = MockProvider()
        plan = ReviewOrchestrator(provider, RecordingUI(), self.cache).plan(self.diff, CancellationToken())
        self.assertTrue(plan.from_cache)
        self.assertEqual(provider.summarize_calls, [])
        self.assertEqual(provider.order_calls, [])
        self.assertEqual(paths(plan), ["README.md", "src/api.py", "src/service.py"])

    def test_refresh_ignores_cache_but_stores(self) -> None:
        ReviewOrchestrator(MockProvider(), RecordingUI(), self.cache).plan(self.diff, CancellationToken())

        provider = MockProvider()
        options = ReviewOptions(refresh=True)
        plan = ReviewOrchestrator(provider, RecordingUI(), self.cache, options).plan(self.diff, CancellationToken())
        self.assertFalse(plan.from_cache)
        self.assertEqual(len(provider.summarize_calls), 1)
        self.assertEqual(len(provider.order_calls), 1)
        self.assertEqual(self.cache.count(), 1)

    def test_no_cache_option(self) -> None:
        options = ReviewOptions(use_cache=False)
        ReviewOrchestrator(MockProvider(), RecordingUI(), self.cache, options).plan(self.diff, CancellationToken())
        self.assertEqual(self.cache.count(), 0)

    def test_cache_write_failure_is_a_warning(self) -> None:
        ui = RecordingUI()
        cache = FailingSaveCache(Path(self._tmp.name))
        plan = ReviewOrchestrator(MockProvider(), ui, cache).plan(self.diff, CancellationToken())
        self.assertEqual(ui.warnings, ["Failed to save review cache: disk full"])
        self.assertEqual(len(plan.files), 3)

    def test_cancellation_while_waiting_for_order(self) -> None:
        cancel = CancellationToken()
        provider = MockProvider(order_func=wait_for_cancel)
        ui = RecordingUI(on_confirm=lambda: cancel.cancel("interrupted"))
        orchestrator = ReviewOrchestrator(provider, ui, self.cache, ReviewOptions(poll_interval=0.01))

        with self.assertRaises(ReviewCancelled):
            orchestrator.plan(self.diff, cancel)
        self.assertEqual(self.cache.count(), 0)

    def test_already_cancelled_token(self) -> None:
        cancel = CancellationToken()
        cancel.cancel()
        with self.assertRaises(ReviewCancelled):
            ReviewOrchestrator(MockProvider()).plan(self.diff, cancel)

    def test_group_selection(self) -> None:
        groups = [OrderGroup("API", priority=1), OrderGroup("Docs", priority=2)]

        def grouped(request, cancel):
            return OrderResponse(
                files=[
                    OrderedFile("src/api.py", priority=1, group="API"),
                    OrderedFile("src/service.py", priority=2, group="API"),
                    OrderedFile("README.md", priority=1, group="Docs"),
                ],
                groups=list(reversed(groups)),
            )

        ui = RecordingUI(selection=[groups[1]])
        plan = ReviewOrchestrator(MockProvider(order_func=grouped), ui, self.cache).plan(self.diff, CancellationToken())

        offered, counts = ui.offered
        self.assertEqual([g.name for g in offered], ["API", "Docs"])
        self.assertEqual(counts, {"API": 2, "Docs": 1})
        self.assertEqual(paths(plan), ["README.md"])

    def test_group_selection_none_means_all(self) -> None:
        def grouped(request, cancel):
            return OrderResponse(
                files=[OrderedFile("README.md", priority=1, group="Docs"), OrderedFile("src/api.py", priority=1, group="API")],
                groups=[OrderGroup("Docs", priority=2), OrderGroup("API", priority=1)],
            )

        plan = ReviewOrchestrator(MockProvider(order_func=grouped), RecordingUI()).plan(self.diff, CancellationToken())
        self.assertEqual(paths(plan), ["src/api.py", "README.md"])

    def test_deep_review(self) -> None:
        loads = []

        def load():
            loads.append(1)
            return "diff text"

        provider = MockProvider()
        ui = RecordingUI()
        options = ReviewOptions(deep_review=True)
        plan = ReviewOrchestrator(provider, ui, self.cache, options).plan(self.diff, CancellationToken(), load)

        self.assertEqual(plan.review.content, "Mock review of 3 files.")
        self.assertIn("review", ui.events)
        self.assertEqual(provider.review_calls[0].full_diff, "diff text")
        self.assertEqual(len(loads), 1)
        self.assertIsNotNone(self.cache.load(plan.cache_key).review)

    def test_iter_files_positions(self) -> None:
        plan = ReviewOrchestrator(None).plan(self.diff, CancellationToken())
        self.assertEqual([(p, t) for p, t, _ in plan.iter_files()], [(1, 3), (2, 3), (3, 3)])


if __name__ == "__main__":
    unittest.main()
