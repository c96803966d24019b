"""
Dynamic version generation for graft.

The version is composed of:
- Major version: set manually in ``graft/__init__.py``
- Minor version: highest ``v{major}.{minor}`` release tag
- Local part: short SHA of the checked out commit

Format: ``{major}.{minor}.dev0+g{sha}``, which is PEP 440 compliant.
"""

import re
import subprocess
from pathlib import Path
from typing import List, Optional

_TAG_PATTERN = re.compile(r"^v(\d+)\.(\d+)")


def _git(args: List[str], repo_path: Optional[Path]) -> str:
    cmd = ["git"]
    if repo_path:
        cmd += ["-C", str(repo_path)]
    result = subprocess.run(
        cmd + args,
        capture_output=True,
        text=True,
        check=True,
        timeout=5,
    )
    return result.stdout.strip()


def find_source_checkout(package_dir: Path) -> Optional[Path]:
    """Return the git checkout ``package_dir`` was imported from, if any.

    Expects the ``src/graft`` layout of this repository; an installed
    package (for example inside a virtualenv that lives in some other
    repository) yields ``None``.
    """
    root = package_dir.parent.parent
    if package_dir.parent.name != "src" or not (root / "pyproject.toml").is_file():
        return None
    if not (root / ".git").exists():
        return None
    return root


def get_git_commit_sha(repo_path: Optional[Path] = None) -> str:
    """Return the short SHA of ``HEAD`` or ``'unknown'`` outside a checkout."""
    try:
        return _git(["rev-parse", "--short=7", "HEAD"], repo_path)
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return "unknown"


def get_minor_version_from_tags(repo_path: Optional[Path] = None, major: str = "0") -> int:
    """Return the highest minor number among ``v{major}.{minor}`` tags.

    Tags for other major versions are ignored. Returns 0 when no tag
    matches or git is unavailable.
    """
    try:
        output = _git(["tag", "-l", "v*"], repo_path)
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return 0

    minors = []
    for tag in output.splitlines():
        match = _TAG_PATTERN.match(tag.strip())
        if match and match.group(1) == major:
            minors.append(int(match.group(2)))
    return max(minors) if minors else 0


def generate_version(base_version: str, repo_path: Optional[Path] = None) -> str:
    """Build the full version string for ``base_version``."""
    minor = get_minor_version_from_tags(repo_path, major=base_version)
    commit_sha = get_git_commit_sha(repo_path)
    if commit_sha == "unknown":
        return f"{base_version}.{minor}.dev0"
    return f"{base_version}.{minor}.dev0+g{commit_sha}"
