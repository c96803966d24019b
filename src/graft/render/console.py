"""
Small console helpers shared by the CLI and the renderer.

All output goes through :func:`click.echo` so it respects click's colour
stripping and is captured by :class:`click.testing.CliRunner`.
"""

from __future__ import annotations

import time
from typing import List

import click


class ProgressIndicator:
    """Status line shown while a slow step runs.

    ``inline`` keeps the status on one line and overwrites it with the
    result; otherwise a start line and a result line are printed.
    """

    def __init__(self, message: str, inline: bool = True):
        self.message = message
        self.inline = inline
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        if self.inline:
            click.echo(f"… {self.message}...", nl=False)
        else:
            click.echo(f"→ {self.message}...")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.time() - self.start_time
        mark = "✓" if exc_type is None else "✗"
        if self.inline:
            click.echo(f"\r{mark} {self.message} (took {elapsed:.1f}s)")
        else:
            click.echo(f"  {mark} Done ({elapsed:.1f}s)")
        return False


def print_info(message: str, indent: int = 0):
    prefix = "  " * indent
    click.echo(f"{prefix}ℹ {message}")


def print_success(message: str, indent: int = 0):
    prefix = "  " * indent
    click.echo(f"{prefix}✓ {message}")


def print_warning(message: str, indent: int = 0):
    prefix = "  " * indent
    click.echo(f"{prefix}⚠ {message}")


def print_error(message: str, indent: int = 0):
    """Print an error message to stderr."""
    prefix = "  " * indent
    click.echo(f"{prefix}✗ {message}", err=True)


def print_summary_box(title: str, items: List[str]):
    """Print a formatted summary box."""
    max_width = max(len(title), max(len(item) for item in items) if items else 0)
    box_width = min(max_width + 4, 60)

    click.echo(f"\n┌{'─' * box_width}┐")
    click.echo(f"│ {title.ljust(box_width - 2)}│")
    click.echo(f"├{'─' * box_width}┤")
    for item in items:
        click.echo(f"│ {item.ljust(box_width - 2)}│")
    click.echo(f"└{'─' * box_width}┘")
