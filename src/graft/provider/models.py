"""
Data models exchanged with AI providers.

Provider replies are free-form JSON. The ``from_dict`` constructors in
this module validate that JSON against the expected shape and raise
:class:`SchemaError` when it does not fit. The same ``to_dict`` /
``from_dict`` pairs are used to persist responses in the review cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# File categories (architectural role of a file)
CATEGORY_ENTRY_POINT = "entry_point"
CATEGORY_BUSINESS_LOGIC = "business_logic"
CATEGORY_ADAPTER = "adapter"
CATEGORY_MODEL = "model"
CATEGORY_CONFIG = "config"
CATEGORY_TEST = "test"
CATEGORY_DOCS = "docs"
CATEGORY_ROUTING = "routing"
CATEGORY_COMPONENT = "component"
CATEGORY_OTHER = "other"

CATEGORIES = (
    CATEGORY_ENTRY_POINT,
    CATEGORY_BUSINESS_LOGIC,
    CATEGORY_ADAPTER,
    CATEGORY_MODEL,
    CATEGORY_CONFIG,
    CATEGORY_TEST,
    CATEGORY_DOCS,
    CATEGORY_ROUTING,
    CATEGORY_COMPONENT,
    CATEGORY_OTHER,
)


class SchemaError(ValueError):
    """Raised when a payload does not match the expected response shape."""

    pass


def _require_dict(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise SchemaError(f"{what} must be an object, got {type(data).__name__}")
    return data


def _str(data: Dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise SchemaError(f"'{key}' must be a string")
    return value


def _int(data: Dict[str, Any], key: str, default: int = 0) -> int:
    value = data.get(key, default)
    if isinstance(value, bool):
        raise SchemaError(f"'{key}' must be an integer")
    if isinstance(value, int):
        return value
    # Models occasionally quote numbers or emit 2.0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError) as exc:
        raise SchemaError(f"'{key}' must be an integer") from exc


def _str_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise SchemaError(f"'{key}' must be a list of strings")
    return list(value)


def _obj_list(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise SchemaError(f"'{key}' must be a list")
    return value


@dataclass
class FileGroup:
    """A logical cluster of files proposed in a summary."""

    name: str
    description: str = ""
    files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "files": list(self.files)}

    @classmethod
    def from_dict(cls, data: Any) -> "FileGroup":
        data = _require_dict(data, "file group")
        return cls(
            name=_str(data, "name"),
            description=_str(data, "description"),
            files=_str_list(data, "files"),
        )


@dataclass
class SummarizeResponse:
    """AI-generated overview of a change set."""

    overview: str
    key_changes: List[str] = field(default_factory=list)
    concerns: List[str] = field(default_factory=list)
    file_groups: List[FileGroup] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overview": self.overview,
            "key_changes": list(self.key_changes),
            "concerns": list(self.concerns),
            "file_groups": [g.to_dict() for g in self.file_groups],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "SummarizeResponse":
        data = _require_dict(data, "summary")
        return cls(
            overview=_str(data, "overview"),
            key_changes=_str_list(data, "key_changes"),
            concerns=_str_list(data, "concerns"),
            file_groups=[FileGroup.from_dict(g) for g in _obj_list(data, "file_groups")],
        )


@dataclass
class OrderGroup:
    """A feature group of related files, reviewed as one unit."""

    name: str
    description: str = ""
    priority: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "priority": self.priority}

    @classmethod
    def from_dict(cls, data: Any) -> "OrderGroup":
        data = _require_dict(data, "group")
        name = _str(data, "name").strip()
        if not name:
            raise SchemaError("group 'name' must not be empty")
        return cls(name=name, description=_str(data, "description"), priority=_int(data, "priority"))


@dataclass
class OrderedFile:
    """A file with its review priority and architectural role.

    ``group`` names an :class:`OrderGroup` of the same response, or is
    ``None`` for ungrouped files.
    """

    path: str
    category: str = CATEGORY_OTHER
    priority: int = 0
    description: str = ""
    group: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "path": self.path,
            "category": self.category,
            "priority": self.priority,
            "description": self.description,
        }
        if self.group:
            data["group"] = self.group
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "OrderedFile":
        data = _require_dict(data, "file")
        path = _str(data, "path").strip()
        if not path:
            raise SchemaError("file 'path' must not be empty")
        group = _str(data, "group").strip() or None
        return cls(
            path=path,
            category=_str(data, "category", CATEGORY_OTHER) or CATEGORY_OTHER,
            priority=_int(data, "priority"),
            description=_str(data, "description"),
            group=group,
        )


@dataclass
class OrderResponse:
    """AI-proposed review order, optionally organised into feature groups."""

    files: List[OrderedFile] = field(default_factory=list)
    groups: List[OrderGroup] = field(default_factory=list)
    reasoning: str = ""

    def group_names(self) -> List[str]:
        return [g.name for g in self.groups]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "files": [f.to_dict() for f in self.files],
            "reasoning": self.reasoning,
        }
        if self.groups:
            data["groups"] = [g.to_dict() for g in self.groups]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "OrderResponse":
        """Validate an ordering payload.

        A missing ``groups`` key means "no grouping". File references to a
        group that is not declared are cleared, so such files are treated
        as ungrouped instead of rejecting the whole response.
        """
        data = _require_dict(data, "ordering")
        if not isinstance(data.get("files"), list):
            raise SchemaError("'files' must be a list")
        files = [OrderedFile.from_dict(f) for f in data["files"]]
        groups = [OrderGroup.from_dict(g) for g in _obj_list(data, "groups")]

        declared = {g.name for g in groups}
        for f in files:
            if f.group is not None and f.group not in declared:
                logger.debug("File %s references undeclared group %r; treating as ungrouped", f.path, f.group)
                f.group = None

        return cls(files=files, groups=groups, reasoning=_str(data, "reasoning"))


@dataclass
class ReviewResponse:
    """Markdown-formatted deep review of a change set."""

    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content}

    @classmethod
    def from_dict(cls, data: Any) -> "ReviewResponse":
        data = _require_dict(data, "review")
        return cls(content=_str(data, "content"))


@dataclass
class ModelInfo:
    """An AI model offered by a provider."""

    id: str
    name: str = ""
    description: str = ""

    @property
    def display_name(self) -> str:
        label = self.name or self.id
        if self.description:
            return f"{label} - {self.description}"
        return label
