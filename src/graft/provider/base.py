"""
Provider contract for AI-assisted review.

A provider turns extracted diff information into a summary, a review
order and, optionally, a detailed review. Concrete providers live in
sibling modules (:mod:`graft.provider.ollama`,
:mod:`graft.provider.anthropic`, :mod:`graft.provider.mock`).

Every call receives a :class:`~graft.cancellation.CancellationToken` and
must raise :class:`~graft.cancellation.ReviewCancelled` once it fires.
Any other failure is reported as :class:`ProviderError`; replies that
arrive but cannot be parsed raise :class:`ProviderResponseError`, which
keeps the raw text for diagnostics.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import List, Optional

from graft.cancellation import CancellationToken
from graft.diff.models import Commit, FileChange
from graft.provider.models import ModelInfo, OrderResponse, ReviewResponse, SummarizeResponse


class ProviderError(Exception):
    """Raised when a provider is unreachable or returns an error."""

    pass


class ProviderResponseError(ProviderError):
    """Raised when a provider reply cannot be parsed into the expected shape."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


@dataclass
class SummarizeOptions:
    max_tokens: int = 2048
    temperature: float = 0.3
    # Optional narrowing of the analysis, e.g. "security"
    focus: str = ""


@dataclass
class SummarizeRequest:
    files: List[FileChange]
    commits: List[Commit] = field(default_factory=list)
    full_diff: str = ""
    options: SummarizeOptions = field(default_factory=SummarizeOptions)


@dataclass
class OrderRequest:
    files: List[FileChange]
    commits: List[Commit] = field(default_factory=list)
    repo_context: str = ""
    tests_first: bool = False


@dataclass
class ReviewRequest:
    files: List[FileChange]
    commits: List[Commit] = field(default_factory=list)
    full_diff: str = ""
    max_tokens: int = 8192


class ModelLister(abc.ABC):
    """Capability: enumerate the models a provider can use."""

    @abc.abstractmethod
    def list_models(self, cancel: CancellationToken) -> List[ModelInfo]:
        raise NotImplementedError


class Provider(abc.ABC):
    """Base class for AI providers."""

    #: Registry identifier, e.g. ``"ollama"``.
    name: str = ""

    @abc.abstractmethod
    def summarize_changes(self, request: SummarizeRequest, cancel: CancellationToken) -> SummarizeResponse:
        raise NotImplementedError

    @abc.abstractmethod
    def order_files(self, request: OrderRequest, cancel: CancellationToken) -> OrderResponse:
        raise NotImplementedError

    def review_changes(self, request: ReviewRequest, cancel: CancellationToken) -> ReviewResponse:
        raise ProviderError(f"provider '{self.name}' does not support detailed reviews")

    def model_lister(self) -> Optional[ModelLister]:
        """Return the model listing capability, or ``None`` if unsupported."""
        return None

    @property
    def model(self) -> str:
        return ""

    def set_model(self, model: str) -> None:
        raise ProviderError(f"provider '{self.name}' does not support model selection")

    def close(self) -> None:
        """Release resources held by the provider."""
        return None
