"""
Repository structure analysis.

Looks only at well-known project files and at directory names, never at
source contents, to describe the project (languages, frameworks, layout).
The description is passed to the ordering prompt so the AI can follow the
project's architecture when proposing a review order.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Union


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


class ProjectType(str, Enum):
    FRONTEND = "frontend"
    BACKEND = "backend"
    FULLSTACK = "fullstack"
    UNKNOWN = "unknown"


IGNORED_DIRS = frozenset(
    {
        "node_modules",
        "vendor",
        "dist",
        "build",
        "target",
        "__pycache__",
        "coverage",
        "venv",
        "site-packages",
    }
)

# npm package -> framework name, in detection order
JS_FRAMEWORKS = (
    ("react", "React"),
    ("vue", "Vue"),
    ("@angular/core", "Angular"),
    ("svelte", "Svelte"),
    ("next", "Next.js"),
    ("nuxt", "Nuxt"),
    ("express", "Express"),
    ("fastify", "Fastify"),
    ("@nestjs/core", "NestJS"),
)

FRONTEND_FRAMEWORKS = frozenset({"React", "Vue", "Angular", "Svelte", "Next.js", "Nuxt"})
BACKEND_FRAMEWORKS = frozenset({"Express", "Fastify", "NestJS"})
BACKEND_LANGUAGES = frozenset({"Go", "Rust", "Java", "Kotlin"})
FRONTEND_DIR_NAMES = frozenset({"components", "pages", "views", "hooks", "store", "stores"})
BACKEND_DIR_NAMES = frozenset({"cmd", "internal", "handlers", "controllers", "repository"})

DIRECTORY_DESCRIPTIONS = {
    "components": "UI components",
    "pages": "Route pages",
    "views": "View components",
    "routes": "Route definitions",
    "router": "Routing configuration",
    "store": "State management",
    "stores": "State stores",
    "hooks": "React hooks",
    "composables": "Vue composables",
    "context": "React context providers",
    "layouts": "Layout components",
    "assets": "Static assets",
    "styles": "Stylesheets",
    "utils": "Utility functions",
    "helpers": "Helper functions",
    "lib": "Library code",
    "cmd": "Application entry points",
    "internal": "Private application code",
    "pkg": "Public library code",
    "api": "API definitions",
    "handlers": "HTTP handlers",
    "controllers": "Request controllers",
    "services": "Business logic services",
    "service": "Business logic",
    "models": "Data models",
    "entities": "Domain entities",
    "repository": "Data access layer",
    "adapters": "External service adapters",
    "middleware": "HTTP middleware",
    "config": "Configuration",
    "types": "Type definitions",
    "tests": "Test files",
    "test": "Test files",
    "__tests__": "Test files",
    "docs": "Documentation",
    "scripts": "Build/utility scripts",
}


@dataclass
class DirectorySummary:
    """A directory holding at least one file, relative to the repository root."""

    path: str
    file_count: int
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"path": self.path, "file_count": self.file_count}
        if self.description:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DirectorySummary":
        return cls(
            path=str(data["path"]),
            file_count=int(data.get("file_count", 0)),
            description=str(data.get("description") or ""),
        )


@dataclass
class Analysis:
    """Detected project characteristics."""

    type: ProjectType = ProjectType.UNKNOWN
    languages: List[str] = field(default_factory=list)
    frameworks: List[str] = field(default_factory=list)
    directories: List[DirectorySummary] = field(default_factory=list)
    analyzed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "languages": list(self.languages),
            "frameworks": list(self.frameworks),
            "directories": [d.to_dict() for d in self.directories],
            "analyzed_at": self.analyzed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Analysis":
        """Rebuild an analysis from :meth:`to_dict` output.

        Raises
        ------
        ValueError, KeyError, TypeError
            If ``data`` does not have the expected shape.
        """
        if not isinstance(data, dict):
            raise TypeError("analysis must be an object")
        analyzed_at = datetime.fromisoformat(str(data["analyzed_at"]).replace("Z", "+00:00"))
        return cls(
            type=ProjectType(data.get("type", ProjectType.UNKNOWN.value)),
            languages=[str(x) for x in data.get("languages") or []],
            frameworks=[str(x) for x in data.get("frameworks") or []],
            directories=[DirectorySummary.from_dict(d) for d in data.get("directories") or []],
            analyzed_at=analyzed_at,
        )

    def format_context(self) -> str:
        """Render the analysis as a bullet list for the ordering prompt."""
        lines = [f"- Type: {self.type.value}"]
        if self.languages:
            lines.append(f"- Languages: {', '.join(self.languages)}")
        if self.frameworks:
            lines.append(f"- Frameworks: {', '.join(self.frameworks)}")
        if self.directories:
            lines.append("- Structure:")
            for d in self.directories:
                entry = f"  - {d.path}/ ({d.file_count} files)"
                if d.description:
                    entry += f" - {d.description}"
                lines.append(entry)
        return "\n".join(lines) + "\n"


def describe_directory(path: str) -> str:
    return DIRECTORY_DESCRIPTIONS.get(Path(path).name, "")


class RepoAnalyzer:
    """Scan a repository's project files and layout."""

    def __init__(self, repo_root: Union[str, Path]) -> None:
        self.repo_root = Path(repo_root)

    def _exists(self, name: str) -> bool:
        return (self.repo_root / name).is_file()

    def analyze(self) -> Analysis:
        analysis = Analysis()
        self._detect_languages(analysis)
        self._scan_directories(analysis)
        analysis.type = self._project_type(analysis)
        logger.debug(
            "Analyzed %s: type=%s languages=%s frameworks=%s",
            self.repo_root,
            analysis.type.value,
            analysis.languages,
            analysis.frameworks,
        )
        return analysis

    def _detect_languages(self, analysis: Analysis) -> None:
        if self._exists("go.mod"):
            analysis.languages.append("Go")

        if self._exists("package.json"):
            analysis.languages.append("JavaScript")
            analysis.frameworks.extend(self._js_frameworks(self.repo_root / "package.json"))

        if self._exists("tsconfig.json"):
            if "JavaScript" in analysis.languages:
                analysis.languages[analysis.languages.index("JavaScript")] = "TypeScript"
            else:
                analysis.languages.append("TypeScript")

        if self._exists("pyproject.toml") or self._exists("requirements.txt") or self._exists("setup.py"):
            analysis.languages.append("Python")

        if self._exists("Cargo.toml"):
            analysis.languages.append("Rust")

        if self._exists("pom.xml") or self._exists("build.gradle"):
            analysis.languages.append("Java")
        elif self._exists("build.gradle.kts"):
            analysis.languages.append("Kotlin")

    @staticmethod
    def _js_frameworks(package_json: Path) -> List[str]:
        try:
            with package_json.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.debug("Could not read %s: %s", package_json, exc)
            return []
        if not isinstance(data, dict):
            return []

        deps = set()
        for key in ("dependencies", "devDependencies"):
            section = data.get(key)
            if isinstance(section, dict):
                deps.update(section)
        found = [name for package, name in JS_FRAMEWORKS if package in deps]
        if "nest" in deps and "NestJS" not in found:
            found.append("NestJS")
        return found

    def _scan_directories(self, analysis: Analysis) -> None:
        counts: Dict[str, int] = {}
        for dirpath, dirnames, filenames in os.walk(self.repo_root):
            # Prune in place so os.walk does not descend
            dirnames[:] = [d for d in dirnames if not d.startswith(".") and d not in IGNORED_DIRS]
            rel = os.path.relpath(dirpath, self.repo_root)
            if rel == "." or not filenames:
                continue
            counts[Path(rel).as_posix()] = len(filenames)

        analysis.directories = [
            DirectorySummary(path=path, file_count=count, description=describe_directory(path))
            for path, count in sorted(counts.items())
        ]

    @staticmethod
    def _project_type(analysis: Analysis) -> ProjectType:
        frameworks = set(analysis.frameworks)
        names = {Path(d.path).name for d in analysis.directories}

        frontend = bool(frameworks & FRONTEND_FRAMEWORKS) or bool(names & FRONTEND_DIR_NAMES)
        backend = (
            bool(frameworks & BACKEND_FRAMEWORKS)
            or bool(names & BACKEND_DIR_NAMES)
            or bool(set(analysis.languages) & BACKEND_LANGUAGES)
        )
        if frontend and backend:
            return ProjectType.FULLSTACK
        if frontend:
            return ProjectType.FRONTEND
        if backend:
            return ProjectType.BACKEND
        return ProjectType.UNKNOWN
