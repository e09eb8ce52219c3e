"""
Kanban domain store.

CRUD over projects and tasks on top of a snapshot storage. Every
operation takes an optional owner_id: None is the single global scope,
any other value is one account's private scope. Records of other scopes
are invisible to an operation.

Every mutation reads the full snapshot, applies the change and writes
the full snapshot back.
"""
import json
import logging
from typing import List, Optional, Dict, Any

from .errors import ValidationError, NotFoundError, InvariantViolation, DanglingReference
from .schema import (
    Project,
    Task,
    TaskStatus,
    TaskPriority,
    DEFAULT_PROJECT_NAME,
    DEFAULT_COLOR,
    WELCOME_TASK_TITLE,
    WELCOME_TASK_DESCRIPTION,
    new_id,
)

logger = logging.getLogger(__name__)

PROJECT_PATCH_FIELDS = ("name", "color")
TASK_PATCH_FIELDS = ("title", "description", "status", "priority", "projectId")


def _in_scope(record: Dict[str, Any], owner_id: Optional[str]) -> bool:
    return record.get("ownerId") == owner_id


def _with_owner(record: Dict[str, Any], owner_id: Optional[str]) -> Dict[str, Any]:
    if owner_id is not None:
        record["ownerId"] = owner_id
    return record


def _fingerprint(data: Dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True)


def _require_text(value: Any, message: str) -> str:
    """Return value stripped, or raise if it is not a non-empty string."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message)
    return value.strip()


def _check_status(value: Any) -> str:
    if not TaskStatus.is_valid(value):
        raise ValidationError(f"Invalid status: {value}")
    return value


def _check_priority(value: Any) -> str:
    if not TaskPriority.is_valid(value):
        raise ValidationError(f"Invalid priority: {value}")
    return value


class KanbanStore:
    """Projects and tasks with the default-project invariant."""

    def __init__(self, storage):
        self.storage = storage

    # ──────────────────────────────────────────
    # Default project
    # ──────────────────────────────────────────

    def _normalize(self, data: Dict[str, Any], owner_id: Optional[str]) -> Dict[str, Any]:
        """
        Make the scope hold exactly one default project. Mutates data and
        returns the default project record.

        Empty scope: seed "Default Project" plus a welcome task.
        No default: promote the project named "Default Project"
        (case-insensitive), else the first stored project.
        Several defaults: keep the first, demote the rest.
        """
        projects = [p for p in data["projects"] if _in_scope(p, owner_id)]

        if not projects:
            project = _with_owner({
                "id": new_id(),
                "name": DEFAULT_PROJECT_NAME,
                "color": DEFAULT_COLOR,
                "isDefault": True,
            }, owner_id)
            data["projects"].append(project)
            data["tasks"].append(_with_owner({
                "id": new_id(),
                "title": WELCOME_TASK_TITLE,
                "description": WELCOME_TASK_DESCRIPTION,
                "status": TaskStatus.TODO.value,
                "priority": TaskPriority.MEDIUM.value,
                "projectId": project["id"],
            }, owner_id))
            logger.info(f"Seeded default project {project['id']} (owner={owner_id})")
            return project

        defaults = [p for p in projects if p.get("isDefault")]
        if not defaults:
            chosen = next(
                (p for p in projects
                 if str(p.get("name", "")).strip().lower() == DEFAULT_PROJECT_NAME.lower()),
                projects[0],
            )
            chosen["isDefault"] = True
            logger.info(f"Promoted project {chosen.get('id')} to default (owner={owner_id})")
            return chosen

        for extra in defaults[1:]:
            extra["isDefault"] = False
            logger.info(f"Demoted duplicate default project {extra.get('id')} (owner={owner_id})")
        return defaults[0]

    def ensure_default_project(self, owner_id: Optional[str] = None) -> Project:
        """Apply the default-project invariant to a scope, writing only on change."""
        data = self.storage.read_snapshot()
        before = _fingerprint(data)
        default = self._normalize(data, owner_id)
        if _fingerprint(data) != before:
            self.storage.write_snapshot(data)
        return Project.from_dict(default)

    # ──────────────────────────────────────────
    # Projects
    # ──────────────────────────────────────────

    def list_projects(self, owner_id: Optional[str] = None) -> List[Project]:
        """List the scope's projects, normalizing the default project first."""
        data = self.storage.read_snapshot()
        before = _fingerprint(data)
        self._normalize(data, owner_id)
        if _fingerprint(data) != before:
            self.storage.write_snapshot(data)
        return [Project.from_dict(p) for p in data["projects"] if _in_scope(p, owner_id)]

    def get_project(self, project_id: str, owner_id: Optional[str] = None) -> Project:
        data = self.storage.read_snapshot()
        return Project.from_dict(self._find_project(data, project_id, owner_id))

    def _find_project(self, data: Dict[str, Any], project_id: str,
                      owner_id: Optional[str]) -> Dict[str, Any]:
        for p in data["projects"]:
            if p.get("id") == project_id and _in_scope(p, owner_id):
                return p
        raise NotFoundError("Project not found")

    def _project_exists(self, data: Dict[str, Any], project_id: Any,
                        owner_id: Optional[str]) -> bool:
        return any(
            p.get("id") == project_id and _in_scope(p, owner_id)
            for p in data["projects"]
        )

    def create_project(self, name: Any, color: Any = None,
                       owner_id: Optional[str] = None) -> Project:
        name = _require_text(name, "Project name is required")
        if color is not None and not isinstance(color, str):
            raise ValidationError("Project color must be a string")

        data = self.storage.read_snapshot()
        # Empty scope gets its default project before the new one lands
        self._normalize(data, owner_id)
        project = _with_owner({
            "id": new_id(),
            "name": name,
            "color": color or DEFAULT_COLOR,
            "isDefault": False,
        }, owner_id)
        data["projects"].append(project)
        self.storage.write_snapshot(data)
        logger.info(f"Created project {project['id']} '{name}' (owner={owner_id})")
        return Project.from_dict(project)

    def update_project(self, project_id: str, patch: Dict[str, Any],
                       owner_id: Optional[str] = None) -> Project:
        """Merge name/color from patch. id, isDefault and ownerId never change."""
        if not isinstance(patch, dict):
            raise ValidationError("Project update must be an object")

        data = self.storage.read_snapshot()
        current = self._find_project(data, project_id, owner_id)

        updated = dict(current)
        for key in PROJECT_PATCH_FIELDS:
            if key in patch:
                updated[key] = patch[key]
        updated["name"] = _require_text(updated.get("name"), "Project name is required")
        if not isinstance(updated.get("color"), str):
            raise ValidationError("Project color must be a string")

        current.update(updated)
        self.storage.write_snapshot(data)
        return Project.from_dict(current)

    def delete_project(self, project_id: str, owner_id: Optional[str] = None) -> int:
        """
        Delete a non-default project and every task of the same scope that
        references it. Returns the number of tasks removed.
        """
        data = self.storage.read_snapshot()
        target = self._find_project(data, project_id, owner_id)
        if target.get("isDefault"):
            raise InvariantViolation("Default Project cannot be deleted")

        data["projects"] = [p for p in data["projects"] if p is not target]
        kept = [
            t for t in data["tasks"]
            if not (t.get("projectId") == project_id and _in_scope(t, owner_id))
        ]
        removed = len(data["tasks"]) - len(kept)
        data["tasks"] = kept
        self.storage.write_snapshot(data)
        logger.info(f"Deleted project {project_id} and {removed} task(s) (owner={owner_id})")
        return removed

    # ──────────────────────────────────────────
    # Tasks
    # ──────────────────────────────────────────

    def list_tasks(self, owner_id: Optional[str] = None) -> List[Task]:
        data = self.storage.read_snapshot()
        return [Task.from_dict(t) for t in data["tasks"] if _in_scope(t, owner_id)]

    def get_task(self, task_id: str, owner_id: Optional[str] = None) -> Task:
        data = self.storage.read_snapshot()
        return Task.from_dict(self._find_task(data, task_id, owner_id))

    def _find_task(self, data: Dict[str, Any], task_id: str,
                   owner_id: Optional[str]) -> Dict[str, Any]:
        for t in data["tasks"]:
            if t.get("id") == task_id and _in_scope(t, owner_id):
                return t
        raise NotFoundError("Task not found")

    def create_task(
        self,
        title: Any,
        project_id: Any,
        description: Any = "",
        status: Any = TaskStatus.TODO.value,
        priority: Any = TaskPriority.NONE.value,
        owner_id: Optional[str] = None,
    ) -> Task:
        title = _require_text(title, "Task title is required")
        if not project_id:
            raise ValidationError("projectId is required")
        if description is None:
            description = ""
        if not isinstance(description, str):
            raise ValidationError("Task description must be a string")
        status = _check_status(status)
        priority = _check_priority(priority)

        data = self.storage.read_snapshot()
        if not self._project_exists(data, project_id, owner_id):
            raise DanglingReference("projectId not found")

        task = _with_owner({
            "id": new_id(),
            "title": title,
            "description": description.strip(),
            "status": status,
            "priority": priority,
            "projectId": project_id,
        }, owner_id)
        data["tasks"].append(task)
        self.storage.write_snapshot(data)
        logger.info(f"Created task {task['id']} in project {project_id} (owner={owner_id})")
        return Task.from_dict(task)

    def update_task(self, task_id: str, patch: Dict[str, Any],
                    owner_id: Optional[str] = None) -> Task:
        """Merge patch into the task. id and ownerId never change."""
        if not isinstance(patch, dict):
            raise ValidationError("Task update must be an object")

        data = self.storage.read_snapshot()
        current = self._find_task(data, task_id, owner_id)

        updated = dict(current)
        for key in TASK_PATCH_FIELDS:
            if key in patch:
                updated[key] = patch[key]

        if "title" in patch:
            updated["title"] = _require_text(patch["title"], "Task title is required")
        if "description" in patch:
            if patch["description"] is None:
                updated["description"] = ""
            elif not isinstance(patch["description"], str):
                raise ValidationError("Task description must be a string")
            else:
                updated["description"] = patch["description"].strip()
        if "status" in patch:
            _check_status(patch["status"])
        if "priority" in patch:
            _check_priority(patch["priority"])
        if "projectId" in patch:
            if not patch["projectId"]:
                raise ValidationError("projectId is required")
            if not self._project_exists(data, patch["projectId"], owner_id):
                raise DanglingReference("projectId not found")

        current.update(updated)
        self.storage.write_snapshot(data)
        return Task.from_dict(current)

    def delete_task(self, task_id: str, owner_id: Optional[str] = None) -> None:
        data = self.storage.read_snapshot()
        target = self._find_task(data, task_id, owner_id)
        data["tasks"] = [t for t in data["tasks"] if t is not target]
        self.storage.write_snapshot(data)
        logger.info(f"Deleted task {task_id} (owner={owner_id})")
