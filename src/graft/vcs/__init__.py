"""
Version control integration.
"""

from .git_client import GitClient, GitError, NotARepositoryError, RefNotFoundError  # noqa: F401
