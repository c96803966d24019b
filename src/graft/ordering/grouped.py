"""
Turn an AI ordering plus the user's group choice into a review sequence.

The AI may organise files into feature groups. The user picks which
groups to review and in what order; everything here merges that choice
with the per-file priorities into one flat, deterministic list. When no
AI ordering exists the diff's own order is used with path-derived
categories.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from graft.diff.models import FileChange
from graft.ordering.categorizer import categorize_file, describe_status
from graft.provider.models import OrderedFile, OrderGroup, OrderResponse


def fallback_ordering(files: Sequence[FileChange]) -> List[OrderedFile]:
    """Keep the extraction order and number files from 1."""
    return [
        OrderedFile(
            path=f.path,
            category=categorize_file(f.path),
            priority=i + 1,
            description=describe_status(f),
        )
        for i, f in enumerate(files)
    ]


def build_file_list(files: Sequence[FileChange], order: Optional[OrderResponse]) -> List[OrderedFile]:
    """Return the AI-ordered files, or the fallback ordering when there are none."""
    if order is not None and order.files:
        return list(order.files)
    return fallback_ordering(files)


def _groups_by_priority(groups: Iterable[OrderGroup]) -> List[OrderGroup]:
    # sorted() is stable, so equal priorities keep the AI's listing order
    return sorted(groups, key=lambda g: g.priority)


def build_grouped_file_list(
    files: Sequence[OrderedFile],
    selected_groups: Optional[Sequence[OrderGroup]],
    declared_groups: Optional[Sequence[OrderGroup]] = None,
) -> List[OrderedFile]:
    """Filter and order files according to the selected groups.

    Parameters
    ----------
    files : sequence of OrderedFile
        Files from the AI ordering.
    selected_groups : sequence of OrderGroup or None
        Groups to review, in review order. ``None`` selects every declared
        group in priority order.
    declared_groups : sequence of OrderGroup, optional
        Groups the AI declared. When given, a file naming any other group
        is treated as ungrouped.

    Returns
    -------
    list of OrderedFile
        Files of the selected groups, grouped in selection order and by
        priority within a group, followed by all ungrouped files by
        priority. Files of unselected groups are dropped.
    """
    if selected_groups is None:
        selected_groups = _groups_by_priority(declared_groups or [])
    declared = {g.name for g in declared_groups} if declared_groups is not None else None

    rank: Dict[str, int] = {}
    for g in selected_groups:
        rank.setdefault(g.name, len(rank))

    grouped = []
    ungrouped = []
    for f in files:
        group = f.group
        if group is not None and declared is not None and group not in declared:
            group = None
        if group is None:
            ungrouped.append(f)
        elif group in rank:
            grouped.append((rank[group], f))

    grouped.sort(key=lambda item: (item[0], item[1].priority))
    ungrouped.sort(key=lambda f: f.priority)
    return [f for _, f in grouped] + ungrouped


def count_files_per_group(files: Iterable[OrderedFile]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for f in files:
        if f.group:
            counts[f.group] = counts.get(f.group, 0) + 1
    return counts


def resolve_group_selection(groups: Sequence[OrderGroup], answer: str) -> List[OrderGroup]:
    """Parse a selection such as ``"2,1"`` into groups.

    ``groups`` is the list as shown to the user (numbered from 1). Numbers
    may be separated by commas or whitespace; duplicates are ignored. An
    empty answer or ``"all"`` selects every group in the shown order.

    Raises
    ------
    ValueError
        If the answer contains something other than valid group numbers.
    """
    text = answer.strip().lower()
    if not text or text in ("a", "all"):
        return list(groups)

    chosen: List[OrderGroup] = []
    seen = set()
    for token in text.replace(",", " ").split():
        try:
            index = int(token)
        except ValueError:
            raise ValueError(f"not a group number: {token!r}") from None
        if index < 1 or index > len(groups):
            raise ValueError(f"group number out of range: {index} (1-{len(groups)})")
        if index not in seen:
            seen.add(index)
            chosen.append(groups[index - 1])
    return chosen
