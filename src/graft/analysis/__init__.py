"""
Repository structure analysis used as context for AI ordering.
"""

from .analyzer import Analysis, DirectorySummary, ProjectType, RepoAnalyzer  # noqa: F401
from .cache import AnalysisCache, get_or_analyze  # noqa: F401
