"""
Review ordering: fallback categorisation and group-aware file sequencing.
"""

from .categorizer import categorize_file, describe_status  # noqa: F401
from .grouped import (  # noqa: F401
    build_file_list,
    build_grouped_file_list,
    count_files_per_group,
    fallback_ordering,
    resolve_group_selection,
)
