"""
Board view-model: the client-side state behind the kanban UI.

Holds the projects and tasks last fetched from the API, partitions tasks
into the four status columns and applies user actions:

    drag and drop   — optimistic: the card moves at once, the status update
                      is sent afterwards. A failed update is logged and left
                      in place; the next poll brings back server truth.
    everything else — request, then apply the record the server returned.

A background poller refetches everything on a fixed interval. Poll
results never undo a drag whose update is still in flight.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from .errors import KanbanError
from .schema import TaskStatus

logger = logging.getLogger(__name__)

ALL_PROJECTS = "all"
POLL_INTERVAL = 5.0

STATUS_ORDER = [s.value for s in TaskStatus]


class BoardViewModel:
    """Projects/tasks state with optimistic drag-and-drop."""

    def __init__(self, client, poll_interval: float = POLL_INTERVAL):
        self.client = client
        self.poll_interval = poll_interval

        self.projects: List[Dict[str, Any]] = []
        self.tasks: List[Dict[str, Any]] = []
        self.loading = False
        self.error: Optional[str] = None
        self.selected_project_id = ALL_PROJECTS
        self.active_task_id: Optional[str] = None

        # task_id -> status of a drag whose update is still in flight
        self._pending_moves: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._poll_stop = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        self.subscribers: Dict[str, list] = {}  # event -> list of callbacks

        client.on_unauthorized = self._on_unauthorized

    # ──────────────────────────────────────────
    # Notifications
    # ──────────────────────────────────────────

    def subscribe(self, event: str, callback: Callable) -> None:
        """Register a callback for 'changed' or 'error'."""
        self.subscribers.setdefault(event, []).append(callback)

    def _emit(self, event: str, **kwargs) -> None:
        for callback in self.subscribers.get(event, []):
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error(f"Error in {event} callback: {e}")

    def _report(self, message: str) -> None:
        with self._lock:
            self.error = message
        self._emit("error", message=message)

    def dismiss_error(self) -> None:
        with self._lock:
            self.error = None
        self._emit("changed")

    def _on_unauthorized(self) -> None:
        with self._lock:
            self.projects = []
            self.tasks = []
            self._pending_moves.clear()
        self._emit("changed")

    # ──────────────────────────────────────────
    # Derived state
    # ──────────────────────────────────────────

    def default_project(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return next((p for p in self.projects if p.get("isDefault")), None)

    def find_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return next((t for t in self.tasks if t.get("id") == task_id), None)

    def filtered_tasks(self) -> List[Dict[str, Any]]:
        with self._lock:
            if self.selected_project_id == ALL_PROJECTS:
                return list(self.tasks)
            return [t for t in self.tasks if t.get("projectId") == self.selected_project_id]

    def tasks_by_status(self) -> Dict[str, List[Dict[str, Any]]]:
        """Every status column, in board order, with its visible tasks."""
        columns = {status: [] for status in STATUS_ORDER}
        for task in self.filtered_tasks():
            if task.get("status") in columns:
                columns[task["status"]].append(task)
        return columns

    def set_project_filter(self, project_id: str) -> None:
        with self._lock:
            self.selected_project_id = project_id or ALL_PROJECTS
            self._reconcile_filter()
        self._emit("changed")

    def _reconcile_filter(self) -> None:
        """Selected project vanished: fall back to the default project, else all."""
        if self.selected_project_id == ALL_PROJECTS:
            return
        if any(p.get("id") == self.selected_project_id for p in self.projects):
            return
        default = self.default_project()
        self.selected_project_id = default["id"] if default else ALL_PROJECTS

    # ──────────────────────────────────────────
    # Fetching
    # ──────────────────────────────────────────

    def refresh(self, silent: bool = False) -> bool:
        """
        Refetch projects and tasks. On failure the previous data stays on
        screen; a non-silent refresh also raises the error banner.
        """
        if not silent:
            with self._lock:
                self.loading = True
                self.error = None
        try:
            projects = self.client.list_projects()
            tasks = self.client.list_tasks()
        except KanbanError as e:
            if silent:
                logger.warning(f"Background refresh failed: {e}")
            else:
                self._report(str(e) or "Failed to load data")
            return False
        finally:
            if not silent:
                with self._lock:
                    self.loading = False

        with self._lock:
            for task in tasks:
                pending = self._pending_moves.get(task.get("id"))
                if pending is not None:
                    task["status"] = pending
            self.projects = projects
            self.tasks = tasks
            self._reconcile_filter()
        self._emit("changed")
        return True

    def _poll_loop(self) -> None:
        while not self._poll_stop.wait(self.poll_interval):
            try:
                self.refresh(silent=True)
            except Exception:
                logger.exception("Poll failed")

    def start_polling(self) -> None:
        if self._poll_thread and self._poll_thread.is_alive():
            return
        self._poll_stop.clear()
        self._poll_thread = threading.Thread(target=self._poll_loop, daemon=True)
        self._poll_thread.start()

    def stop_polling(self) -> None:
        self._poll_stop.set()
        if self._poll_thread:
            self._poll_thread.join(timeout=self.poll_interval + 1)
            self._poll_thread = None

    def mount(self) -> bool:
        """Initial load plus background polling."""
        ok = self.refresh()
        self.start_polling()
        return ok

    def on_visibility_change(self, visible: bool) -> None:
        if visible:
            self.refresh(silent=True)

    # ──────────────────────────────────────────
    # Drag and drop
    # ──────────────────────────────────────────

    def start_drag(self, task_id: str) -> None:
        with self._lock:
            self.active_task_id = task_id

    def cancel_drag(self) -> None:
        with self._lock:
            self.active_task_id = None

    def move_task(self, task_id: str, target: Optional[str]) -> bool:
        """
        Drop task_id on column target. Dropping outside a status column or
        onto the task's own column does nothing. Returns True when the
        server confirmed the new status.
        """
        try:
            if not TaskStatus.is_valid(target):
                return False
            with self._lock:
                current = self.find_task(task_id)
                if current is None or current.get("status") == target:
                    return False
                current["status"] = target
                self._pending_moves[task_id] = target
            self._emit("changed")

            try:
                updated = self.client.update_task(task_id, {"status": target})
            except KanbanError as e:
                # No rollback: the next poll reconciles with the server.
                logger.error(f"Moving task {task_id} to {target} failed: {e}")
                self._emit("error", message=str(e))
                return False
            finally:
                with self._lock:
                    if self._pending_moves.get(task_id) == target:
                        del self._pending_moves[task_id]

            self._replace_task(updated)
            return True
        finally:
            self.cancel_drag()

    # ──────────────────────────────────────────
    # Request-then-apply mutations
    # ──────────────────────────────────────────

    def _call(self, fn, *args):
        try:
            return fn(*args)
        except KanbanError as e:
            logger.error(f"{getattr(fn, '__name__', 'request')} failed: {e}")
            self._report(str(e))
            raise

    def _replace_task(self, updated: Optional[Dict[str, Any]]) -> None:
        if not updated:
            return
        with self._lock:
            self.tasks = [updated if t.get("id") == updated.get("id") else t for t in self.tasks]
        self._emit("changed")

    def create_project(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create and select the new project."""
        project = self._call(self.client.create_project, payload)
        if project:
            with self._lock:
                self.projects = self.projects + [project]
                self.selected_project_id = project["id"]
            self._emit("changed")
        return project

    def update_project(self, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        updated = self._call(self.client.update_project, project_id, payload)
        if updated:
            with self._lock:
                self.projects = [updated if p.get("id") == project_id else p for p in self.projects]
            self._emit("changed")
        return updated

    def save_projects(self, drafts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Push name/color edits for several projects."""
        return [
            self.update_project(d["id"], {"name": d.get("name"), "color": d.get("color")})
            for d in drafts
        ]

    def delete_project(self, project_id: str) -> None:
        self._call(self.client.delete_project, project_id)
        with self._lock:
            self.projects = [p for p in self.projects if p.get("id") != project_id]
            self.tasks = [t for t in self.tasks if t.get("projectId") != project_id]
            self._reconcile_filter()
        self._emit("changed")

    def create_task(self, payload: Dict[str, Any], column: str = TaskStatus.TODO.value) -> Dict[str, Any]:
        """
        Create a task in column. Without a projectId the task goes to the
        selected project, or the default project when showing all.
        """
        payload = dict(payload)
        payload.setdefault("status", column)
        if not payload.get("projectId"):
            with self._lock:
                if self.selected_project_id != ALL_PROJECTS:
                    payload["projectId"] = self.selected_project_id
                else:
                    default = self.default_project()
                    if default:
                        payload["projectId"] = default["id"]
        task = self._call(self.client.create_task, payload)
        if task:
            with self._lock:
                self.tasks = self.tasks + [task]
            self._emit("changed")
        return task

    def update_task(self, task_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        updated = self._call(self.client.update_task, task_id, payload)
        self._replace_task(updated)
        return updated

    def delete_task(self, task_id: str) -> None:
        self._call(self.client.delete_task, task_id)
        with self._lock:
            self.tasks = [t for t in self.tasks if t.get("id") != task_id]
        self._emit("changed")
