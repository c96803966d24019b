"""
Top-level package for graft.

graft turns the changes between a base reference and ``HEAD`` into an
ordered, grouped review plan. The command line entry point lives in
``graft.cli``.
"""

__all__ = ["__version__", "__base_version__"]

# Major version - controlled manually
__base_version__ = "0"

try:
    from pathlib import Path

    from graft._version import find_source_checkout, generate_version

    # Only graft's own checkout is asked, never the repository under review
    _checkout = find_source_checkout(Path(__file__).resolve().parent)
    if _checkout is None:
        __version__ = f"{__base_version__}.0.dev0"
    else:
        __version__ = generate_version(__base_version__, _checkout)
except Exception:
    __version__ = f"{__base_version__}.0.dev0"
