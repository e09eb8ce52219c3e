"""
Tests for BoardViewModel.

Covers:
    - column partitioning and project filtering
    - optimistic drag and drop (no-ops, success, failure without rollback)
    - polls never undoing an in-flight drag
    - refresh failures keeping previous data
    - request-then-apply mutations
    - background polling lifecycle
"""
import time

import pytest

from taskboard.board import BoardViewModel, ALL_PROJECTS, STATUS_ORDER
from taskboard.errors import KanbanError, NetworkError, ValidationError
from taskboard.storage import MemoryStorage, empty_data_snapshot
from taskboard.store import KanbanStore


class FakeClient:
    """In-process stand-in for ApiClient, backed by a real KanbanStore."""

    def __init__(self):
        self.store = KanbanStore(MemoryStorage(empty_data_snapshot()))
        self.on_unauthorized = None
        self.fail_with = None  # exception raised by the next call
        self.calls = []
        self.before_update = None  # hook run inside update_task

    def _check(self, name):
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    def list_projects(self):
        self._check("list_projects")
        return [p.to_dict() for p in self.store.list_projects()]

    def list_tasks(self):
        self._check("list_tasks")
        return [t.to_dict() for t in self.store.list_tasks()]

    def create_project(self, payload):
        self._check("create_project")
        return self.store.create_project(payload.get("name"), payload.get("color")).to_dict()

    def update_project(self, project_id, payload):
        self._check("update_project")
        return self.store.update_project(project_id, payload).to_dict()

    def delete_project(self, project_id):
        self._check("delete_project")
        self.store.delete_project(project_id)

    def create_task(self, payload):
        self._check("create_task")
        return self.store.create_task(
            payload.get("title"),
            payload.get("projectId"),
            description=payload.get("description", ""),
            status=payload.get("status", "todo"),
            priority=payload.get("priority", "none"),
        ).to_dict()

    def update_task(self, task_id, payload):
        if self.before_update:
            self.before_update()
        self._check("update_task")
        return self.store.update_task(task_id, payload).to_dict()

    def delete_task(self, task_id):
        self._check("delete_task")
        self.store.delete_task(task_id)


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def board(client):
    vm = BoardViewModel(client, poll_interval=0.01)
    assert vm.refresh()
    return vm


def record_events(board):
    events = []
    board.subscribe("changed", lambda **kw: events.append(("changed", kw)))
    board.subscribe("error", lambda **kw: events.append(("error", kw)))
    return events


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Derived state
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestColumns:

    def test_every_column_present(self, board):
        columns = board.tasks_by_status()
        assert list(columns) == STATUS_ORDER
        assert len(columns["todo"]) == 1
        assert columns["completed"] == []

    def test_filter_by_project(self, board, client):
        other = board.create_project({"name": "Other"})
        board.create_task({"title": "in other", "projectId": other["id"]})
        board.set_project_filter(other["id"])
        titles = [t["title"] for t in board.filtered_tasks()]
        assert titles == ["in other"]

        board.set_project_filter(ALL_PROJECTS)
        assert len(board.filtered_tasks()) == 2

    def test_unknown_filter_falls_back_to_default(self, board):
        board.set_project_filter("vanished")
        assert board.selected_project_id == board.default_project()["id"]

    def test_filter_falls_back_when_project_deleted_elsewhere(self, board, client):
        other = board.create_project({"name": "Other"})
        assert board.selected_project_id == other["id"]
        client.store.delete_project(other["id"])
        board.refresh()
        assert board.selected_project_id == board.default_project()["id"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Drag and drop
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestMoveTask:

    def _task(self, board):
        return board.tasks[0]

    def test_move_updates_status(self, board, client):
        task = self._task(board)
        board.start_drag(task["id"])
        assert board.move_task(task["id"], "completed") is True
        assert board.find_task(task["id"])["status"] == "completed"
        assert client.store.get_task(task["id"]).status.value == "completed"
        assert board.active_task_id is None

    def test_move_only_changes_status(self, board, client):
        task = dict(self._task(board))
        board.move_task(task["id"], "checking")
        assert board.find_task(task["id"]) == dict(task, status="checking")

    @pytest.mark.parametrize("target", [None, "", "archive"])
    def test_drop_outside_column_is_noop(self, board, client, target):
        task = self._task(board)
        board.start_drag(task["id"])
        assert board.move_task(task["id"], target) is False
        assert "update_task" not in client.calls
        assert board.active_task_id is None

    def test_drop_on_same_column_is_noop(self, board, client):
        task = self._task(board)
        assert board.move_task(task["id"], task["status"]) is False
        assert "update_task" not in client.calls

    def test_unknown_task_is_noop(self, board, client):
        assert board.move_task("ghost", "completed") is False
        assert "update_task" not in client.calls

    def test_failed_move_is_not_rolled_back(self, board, client):
        events = record_events(board)
        task = self._task(board)
        client.fail_with = NetworkError("offline")

        assert board.move_task(task["id"], "in-progress") is False
        assert board.find_task(task["id"])["status"] == "in-progress"
        assert ("error", {"message": "offline"}) in events
        assert board.error is None

        # The next poll brings back server truth.
        client.fail_with = None
        board.refresh(silent=True)
        assert board.find_task(task["id"])["status"] == "todo"

    def test_poll_during_flight_keeps_optimistic_status(self, board, client):
        task = self._task(board)
        seen = []

        def poll_mid_flight():
            board.refresh(silent=True)
            seen.append(board.find_task(task["id"])["status"])

        client.before_update = poll_mid_flight
        assert board.move_task(task["id"], "completed") is True
        assert seen == ["completed"]
        assert board._pending_moves == {}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Fetching
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestRefresh:

    def test_failure_keeps_data_and_sets_error(self, board, client):
        events = record_events(board)
        before = list(board.tasks)
        client.fail_with = NetworkError("Network error: refused")

        assert board.refresh() is False
        assert board.tasks == before
        assert board.error == "Network error: refused"
        assert board.loading is False
        assert ("error", {"message": "Network error: refused"}) in events

    def test_silent_failure_leaves_error_alone(self, board, client):
        client.fail_with = NetworkError("offline")
        assert board.refresh(silent=True) is False
        assert board.error is None
        assert len(board.tasks) == 1

    def test_success_clears_error(self, board):
        board.error = "old"
        assert board.refresh()
        assert board.error is None

    def test_visibility_regained_refetches(self, board, client):
        client.store.create_task("From elsewhere", board.default_project()["id"])
        board.on_visibility_change(True)
        assert any(t["title"] == "From elsewhere" for t in board.tasks)
        assert board.error is None

    def test_hidden_tab_does_not_refetch(self, board, client):
        calls = len(client.calls)
        board.on_visibility_change(False)
        assert len(client.calls) == calls

    def test_dismiss_error(self, board):
        board.error = "old"
        board.dismiss_error()
        assert board.error is None

    def test_unauthorized_clears_board(self, board, client):
        client.on_unauthorized()
        assert board.projects == []
        assert board.tasks == []

    def test_failing_subscriber_does_not_break_refresh(self, board):
        def boom(**kwargs):
            raise RuntimeError("subscriber bug")

        board.subscribe("changed", boom)
        assert board.refresh()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Request-then-apply
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestMutations:

    def test_create_project_selects_it(self, board):
        project = board.create_project({"name": "  Marketing ", "color": "#111111"})
        assert project["name"] == "Marketing"
        assert board.projects[-1] == project
        assert board.selected_project_id == project["id"]

    def test_failed_create_changes_nothing(self, board):
        before = list(board.projects)
        with pytest.raises(ValidationError):
            board.create_project({"name": ""})
        assert board.projects == before
        assert board.error == "Project name is required"

    def test_save_projects(self, board):
        a = board.create_project({"name": "A"})
        b = board.create_project({"name": "B"})
        saved = board.save_projects([
            {"id": a["id"], "name": "A2", "color": "#000000"},
            {"id": b["id"], "name": "B2", "color": "#ffffff"},
        ])
        assert [p["name"] for p in saved] == ["A2", "B2"]
        names = {p["id"]: p["name"] for p in board.projects}
        assert names[a["id"]] == "A2" and names[b["id"]] == "B2"

    def test_delete_project_removes_its_tasks(self, board):
        project = board.create_project({"name": "Tmp"})
        board.create_task({"title": "T1"})
        board.create_task({"title": "T2"})
        assert len(board.filtered_tasks()) == 2

        board.delete_project(project["id"])
        assert all(t["projectId"] != project["id"] for t in board.tasks)
        assert board.selected_project_id == board.default_project()["id"]

    def test_delete_default_project_reports_error(self, board):
        default = board.default_project()
        with pytest.raises(KanbanError):
            board.delete_project(default["id"])
        assert board.error == "Default Project cannot be deleted"
        assert board.default_project() == default

    def test_create_task_defaults_to_default_project(self, board):
        task = board.create_task({"title": "New"}, column="checking")
        assert task["projectId"] == board.default_project()["id"]
        assert task["status"] == "checking"
        assert board.find_task(task["id"]) == task

    def test_create_task_uses_selected_project(self, board):
        project = board.create_project({"name": "P"})
        task = board.create_task({"title": "New"})
        assert task["projectId"] == project["id"]

    def test_update_task_applies_server_record(self, board):
        task = board.tasks[0]
        updated = board.update_task(task["id"], {"title": "  Renamed  "})
        assert updated["title"] == "Renamed"
        assert board.find_task(task["id"])["title"] == "Renamed"

    def test_delete_task(self, board):
        task = board.tasks[0]
        board.delete_task(task["id"])
        assert board.find_task(task["id"]) is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Polling
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_polling_picks_up_remote_changes(board, client):
    project_id = board.default_project()["id"]
    board.start_polling()
    try:
        client.store.create_task("From elsewhere", project_id)
        deadline = time.monotonic() + 2.0
        while time.monotonic() < deadline:
            if any(t["title"] == "From elsewhere" for t in board.tasks):
                break
            time.sleep(0.01)
        assert any(t["title"] == "From elsewhere" for t in board.tasks)
    finally:
        board.stop_polling()
    assert board._poll_thread is None


def test_mount_loads_and_polls(client):
    vm = BoardViewModel(client, poll_interval=0.01)
    try:
        assert vm.mount() is True
        assert vm._poll_thread is not None and vm._poll_thread.is_alive()
        assert len(vm.projects) == 1
    finally:
        vm.stop_polling()
