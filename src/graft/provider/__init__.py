"""
AI provider integration for graft.

This package defines the provider contract (:mod:`graft.provider.base`),
the response models (:mod:`graft.provider.models`) and the registry used
to pick a provider at startup (:mod:`graft.provider.registry`).
"""

from .base import (  # noqa: F401
    ModelLister,
    OrderRequest,
    Provider,
    ProviderError,
    ProviderResponseError,
    ReviewRequest,
    SummarizeOptions,
    SummarizeRequest,
)
from .models import (  # noqa: F401
    FileGroup,
    ModelInfo,
    OrderedFile,
    OrderGroup,
    OrderResponse,
    ReviewResponse,
    SummarizeResponse,
)
from .registry import ProviderRegistry, create_registry  # noqa: F401
