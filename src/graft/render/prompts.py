"""
Interactive prompts for the review flow.

When stdin is not a terminal, or ``assume_yes`` is set, every prompt takes
its default answer instead of blocking: continue, review all groups,
allow analysis.
"""

from __future__ import annotations

import sys
from typing import Dict, List, Optional, Sequence

import click

from graft.ordering.grouped import resolve_group_selection
from graft.provider.models import ModelInfo, OrderGroup, OrderResponse, ReviewResponse, SummarizeResponse
from graft.render.console import ProgressIndicator, print_info, print_warning
from graft.render.renderer import Renderer
from graft.review.orchestrator import ReviewUI


def is_interactive() -> bool:
    return sys.stdin.isatty()


class TerminalReviewUI(ReviewUI):
    """:class:`ReviewUI` that renders to and prompts on the terminal."""

    def __init__(self, renderer: Renderer, assume_yes: bool = False, interactive: Optional[bool] = None) -> None:
        self.renderer = renderer
        self.assume_yes = assume_yes
        self.interactive = is_interactive() if interactive is None else interactive

    @property
    def _can_prompt(self) -> bool:
        return self.interactive and not self.assume_yes

    def show_summary(self, summary: SummarizeResponse) -> None:
        self.renderer.render_summary(summary)

    def confirm_continue(self) -> bool:
        if not self._can_prompt:
            return True
        return click.confirm("Continue reviewing diffs?", default=True)

    def show_ordering(self, ordering: OrderResponse) -> None:
        self.renderer.render_ordering(ordering)

    def select_groups(self, groups: Sequence[OrderGroup], file_counts: Dict[str, int]) -> Optional[List[OrderGroup]]:
        if not self._can_prompt:
            return None

        click.echo(click.style("Select groups to review", bold=True))
        for i, group in enumerate(groups, start=1):
            label = f"{group.name} - {group.description}" if group.description else group.name
            click.echo(f"  {i}. {label} ({file_counts.get(group.name, 0)} files)")

        def parse(answer: str) -> List[OrderGroup]:
            try:
                return resolve_group_selection(groups, answer)
            except ValueError as exc:
                raise click.BadParameter(str(exc)) from exc

        return click.prompt(
            "Groups in review order (e.g. 2,1; Enter for all)",
            default="",
            show_default=False,
            value_proc=parse,
        )

    def show_review(self, review: ReviewResponse) -> None:
        self.renderer.render_review(review)

    def warn(self, message: str) -> None:
        print_warning(message)

    def progress(self, message: str) -> ProgressIndicator:
        return ProgressIndicator(message, inline=self.interactive)


def confirm_analysis(assume_yes: bool = False) -> bool:
    """Ask once whether the repository layout may be scanned."""
    if assume_yes or not is_interactive():
        return True
    print_info("graft can analyze your repository structure to provide smarter file ordering.")
    print_info("This scans directory structure and config files (not code contents).")
    allowed = click.confirm("Allow repository analysis?", default=True)
    if not allowed:
        print_info("Skipping repository analysis.")
    return allowed


def select_model(models: Sequence[ModelInfo]) -> str:
    """Let the user pick a model by number and return its id."""
    if not models:
        raise click.ClickException("no models available")
    for i, model in enumerate(models, start=1):
        click.echo(f"  {i}. {model.display_name}")
    index = click.prompt("Select a model", type=click.IntRange(1, len(models)), default=1)
    return models[index - 1].id
