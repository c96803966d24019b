"""
Deterministic offline provider.

Useful for trying the review flow without a model server and as a test
double: behaviour can be replaced per call through ``summarize_func`` /
``order_func``, and every request is recorded.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from graft.cancellation import CancellationToken
from graft.ordering.categorizer import categorize_file, describe_status
from graft.provider.base import OrderRequest, Provider, ReviewRequest, SummarizeRequest
from graft.provider.models import FileGroup, OrderedFile, OrderResponse, ReviewResponse, SummarizeResponse


def _pluralize(n: int, word: str) -> str:
    return f"1 {word}" if n == 1 else f"{n} {word}s"


class MockProvider(Provider):
    """Provider returning canned, path-derived answers."""

    name = "mock"

    def __init__(
        self,
        summarize_func: Optional[Callable[[SummarizeRequest, CancellationToken], SummarizeResponse]] = None,
        order_func: Optional[Callable[[OrderRequest, CancellationToken], OrderResponse]] = None,
    ) -> None:
        self.summarize_func = summarize_func
        self.order_func = order_func
        self.summarize_calls: List[SummarizeRequest] = []
        self.order_calls: List[OrderRequest] = []
        self.review_calls: List[ReviewRequest] = []

    def summarize_changes(self, request: SummarizeRequest, cancel: CancellationToken) -> SummarizeResponse:
        self.summarize_calls.append(request)
        cancel.raise_if_cancelled()
        if self.summarize_func is not None:
            return self.summarize_func(request, cancel)
        paths = [f.path for f in request.files]
        return SummarizeResponse(
            overview="Mock summary of changes",
            key_changes=[f"Changed {_pluralize(len(paths), 'file')}", "Made various modifications"],
            file_groups=[FileGroup(name="All Changes", description="All modified files", files=paths)],
        )

    def order_files(self, request: OrderRequest, cancel: CancellationToken) -> OrderResponse:
        self.order_calls.append(request)
        cancel.raise_if_cancelled()
        if self.order_func is not None:
            return self.order_func(request, cancel)
        ordered = sorted(request.files, key=lambda f: f.path)
        files = [
            OrderedFile(
                path=f.path,
                category=categorize_file(f.path),
                priority=i,
                description=describe_status(f),
            )
            for i, f in enumerate(ordered, start=1)
        ]
        return OrderResponse(files=files, reasoning="Mock ordering: files sorted alphabetically")

    def review_changes(self, request: ReviewRequest, cancel: CancellationToken) -> ReviewResponse:
        self.review_calls.append(request)
        cancel.raise_if_cancelled()
        return ReviewResponse(content=f"Mock review of {_pluralize(len(request.files), 'file')}.")

    def reset(self) -> None:
        self.summarize_calls = []
        self.order_calls = []
        self.review_calls = []
