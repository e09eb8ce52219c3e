"""
Kanban board schema: projects, tasks and their enums.

Records are persisted and sent over the wire as camelCase dicts
(isDefault, projectId, ownerId). ownerId is only present when the
record belongs to a per-account scope.
"""
from enum import Enum
from dataclasses import dataclass
from typing import Optional, Dict, Any
import uuid


DEFAULT_PROJECT_NAME = "Default Project"
DEFAULT_COLOR = "#6366f1"

WELCOME_TASK_TITLE = "Welcome to Smart Kanban"
WELCOME_TASK_DESCRIPTION = "Drag this task to another column."


class TaskStatus(Enum):
    """Board columns, in display order."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    CHECKING = "checking"
    COMPLETED = "completed"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @classmethod
    def is_valid(cls, value: Any) -> bool:
        return value in {s.value for s in cls}


STATUS_LABELS = {
    TaskStatus.TODO: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.CHECKING: "Checking",
    TaskStatus.COMPLETED: "Completed",
}


class TaskPriority(Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def is_valid(cls, value: Any) -> bool:
        return value in {p.value for p in cls}


def new_id() -> str:
    """Opaque unique record id."""
    return str(uuid.uuid4())


@dataclass
class Project:
    """A named, colored grouping of tasks."""

    id: str
    name: str
    color: str = DEFAULT_COLOR
    is_default: bool = False
    owner_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "isDefault": self.is_default,
        }
        if self.owner_id is not None:
            data["ownerId"] = self.owner_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            color=data.get("color") or DEFAULT_COLOR,
            is_default=bool(data.get("isDefault", False)),
            owner_id=data.get("ownerId"),
        )


@dataclass
class Task:
    """A card on the board. Always attached to a project of the same scope."""

    id: str
    title: str
    project_id: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.NONE
    owner_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "projectId": self.project_id,
        }
        if self.owner_id is not None:
            data["ownerId"] = self.owner_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        # Stored records may predate a status/priority value; fall back
        # rather than refusing to load the board.
        try:
            status = TaskStatus(data.get("status", "todo"))
        except ValueError:
            status = TaskStatus.TODO
        try:
            priority = TaskPriority(data.get("priority", "none"))
        except ValueError:
            priority = TaskPriority.NONE

        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            project_id=data.get("projectId", ""),
            description=data.get("description") or "",
            status=status,
            priority=priority,
            owner_id=data.get("ownerId"),
        )
