"""
Review orchestration.
"""

from .orchestrator import ReviewOptions, ReviewOrchestrator, ReviewPlan, ReviewUI, run_in_background  # noqa: F401
