"""Data structures shared by the change pipeline."""
import difflib
import time
from dataclasses import dataclass, field
from enum import Enum

class PatchToolError(Exception):
    """Base class for promptpatch errors."""

class ChangeAction(Enum):
    CREATE = "create"
    REWRITE = "rewrite"
    MODIFY = "modify"
    DELETE = "delete"

    @classmethod
    def from_wire(cls, value: str) -> "ChangeAction":
        """Look up an action by its wire name, case-insensitively."""
        return cls(value.strip().lower())

    @property
    def label(self) -> str:
        return self.name.capitalize()

class NodeKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"

class CheckState(Enum):
    CHECKED = "checked"
    INDETERMINATE = "indeterminate"
    UNCHECKED = "unchecked"

@dataclass(frozen=True)
class ChangeOperation:
    content: str
    search: str | None = None
    description: str = ""

    def to_dict(self) -> dict:
        return {"description": self.description, "search": self.search, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeOperation":
        return cls(
            content=data.get("content", ""),
            search=data.get("search"),
            description=data.get("description", ""),
        )

@dataclass(frozen=True)
class FileChange:
    path: str
    action: ChangeAction
    operations: tuple[ChangeOperation, ...] = ()

    @property
    def content(self) -> str:
        """Full content carried by a Create/Rewrite change."""
        return self.operations[0].content if self.operations else ""

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "action": self.action.value,
            "operations": [op.to_dict() for op in self.operations],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FileChange":
        return cls(
            path=data["path"],
            action=ChangeAction.from_wire(data["action"]),
            operations=tuple(ChangeOperation.from_dict(op) for op in data.get("operations", [])),
        )

@dataclass(frozen=True)
class ChangeResult:
    path: str
    action: ChangeAction
    success: bool
    message: str | None = None

    def to_dict(self) -> dict:
        return {"path": self.path, "action": self.action.value, "success": self.success, "message": self.message}

@dataclass(frozen=True)
class DiffPreview:
    path: str
    action: ChangeAction
    original: str
    modified: str
    has_changes: bool
    unmatched: tuple[str, ...] = ()
    # Set when applying this change would fail; `modified` then equals `original`
    error: str | None = None

    def unified_diff(self, context: int = 3) -> str:
        """Render the preview as a unified diff."""
        lines = difflib.unified_diff(
            self.original.splitlines(keepends=True),
            self.modified.splitlines(keepends=True),
            fromfile=f"a/{self.path}",
            tofile=f"b/{self.path}",
            n=context,
        )
        out = []
        for line in lines:
            out.append(line if line.endswith("\n") else line + "\n\\ No newline at end of file\n")
        return "".join(out)

@dataclass(frozen=True)
class UndoSnapshot:
    path: str
    prior_content: str | None
    timestamp: float = field(default_factory=time.time)

    @property
    def existed(self) -> bool:
        return self.prior_content is not None

    def to_dict(self) -> dict:
        return {"path": self.path, "prior_content": self.prior_content, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict) -> "UndoSnapshot":
        return cls(path=data["path"], prior_content=data.get("prior_content"), timestamp=data.get("timestamp", 0.0))

@dataclass
class UndoBatch:
    snapshots: list[UndoSnapshot] = field(default_factory=list)
    description: str = ""
    timestamp: float = field(default_factory=time.time)

    @property
    def paths(self) -> list[str]:
        return [s.path for s in self.snapshots]

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "timestamp": self.timestamp,
            "snapshots": [s.to_dict() for s in self.snapshots],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UndoBatch":
        return cls(
            snapshots=[UndoSnapshot.from_dict(s) for s in data.get("snapshots", [])],
            description=data.get("description", ""),
            timestamp=data.get("timestamp", 0.0),
        )

@dataclass(frozen=True)
class FileTreeNode:
    path: str
    name: str
    kind: NodeKind
    children: tuple["FileTreeNode", ...] = ()
    size: int | None = None

    @property
    def is_dir(self) -> bool:
        return self.kind is NodeKind.DIRECTORY

    @classmethod
    def file(cls, path: str, size: int | None = None) -> "FileTreeNode":
        return cls(path=path, name=path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1], kind=NodeKind.FILE, size=size)

    @classmethod
    def directory(cls, path: str, children=()) -> "FileTreeNode":
        return cls(
            path=path,
            name=path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1] or path,
            kind=NodeKind.DIRECTORY,
            children=tuple(children),
        )
