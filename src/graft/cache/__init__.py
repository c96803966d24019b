"""
Persistent cache of AI summaries and orderings.
"""

from .review_cache import (  # noqa: F401
    CACHE_DIR,
    REVIEW_CACHE_DIR,
    CacheError,
    CachedReview,
    ReviewCache,
    generate_cache_key,
)
