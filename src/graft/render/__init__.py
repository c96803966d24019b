"""
Terminal output and prompts.
"""

from .console import (  # noqa: F401
    ProgressIndicator,
    print_error,
    print_info,
    print_success,
    print_summary_box,
    print_warning,
)
from .prompts import TerminalReviewUI, confirm_analysis, is_interactive, select_model  # noqa: F401
from .renderer import Renderer, category_icon, find_delta  # noqa: F401
