from datetime import date, datetime, timezone

import pytest
from sqlmodel import Session, SQLModel, create_engine

from core.settings import TodoSyncSettings
from models import RemoteList, RemoteTask
from services.sync_engine import (
    COMMIT_ERROR,
    CREATE_LIST_ERROR,
    NOT_SIGNED_IN_ERROR,
    TodoSyncEngine,
)
from services.sync_mapping_store import MappingStoreError, SyncMappingStore
from services.tasks import TaskService
from services.todo_gateway import GatewayError


FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
SETTINGS = TodoSyncSettings(time_zone="Europe/Berlin")


class FakeCredentials:
    def __init__(self, token="token-1"):
        self.token = token

    def get_access_token(self):
        return self.token

    def is_signed_in(self):
        return self.token is not None


class FakeGateway:
    """In-memory stand-in for the Microsoft To Do gateway."""

    def __init__(self, lists=None, fail_create_titles=(), fail_update_titles=()):
        self.lists = [RemoteList("list-1", "Tasks", True)] if lists is None else lists
        self.remote = {}
        self.created_lists = []
        self.created = []
        self.updated = []
        self.fail_create_titles = set(fail_create_titles)
        self.fail_update_titles = set(fail_update_titles)
        self.fail_create_list = False
        self.calls = []
        self._next = 0

    def add_remote(self, remote_id, **payload):
        payload.setdefault("title", remote_id)
        self.remote[remote_id] = dict(payload)

    def list_lists(self):
        self.calls.append("list_lists")
        return list(self.lists)

    def create_list(self, name):
        self.calls.append("create_list")
        if self.fail_create_list:
            raise GatewayError("boom", 500)
        self.created_lists.append(name)
        return "list-new"

    def list_tasks(self, list_id, page_size=None):
        self.calls.append("list_tasks")
        return [RemoteTask.from_payload({"id": rid, **body}) for rid, body in self.remote.items()]

    def create_task(self, list_id, task):
        self.calls.append("create_task")
        if task["title"] in self.fail_create_titles:
            raise GatewayError("create failed", 503)
        self._next += 1
        remote_id = f"remote-{self._next}"
        self.remote[remote_id] = dict(task)
        self.created.append((list_id, remote_id))
        return remote_id

    def update_task(self, list_id, remote_id, task):
        self.calls.append("update_task")
        if task["title"] in self.fail_update_titles:
            raise GatewayError("update failed", 500)
        self.remote[remote_id] = dict(task)
        self.updated.append((list_id, remote_id))
        return True


class BrokenMappingStore(SyncMappingStore):
    def save_mapping(self, mapping, last_sync_time, list_mapping=None):
        raise MappingStoreError("disk full")


@pytest.fixture()
def session_factory():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)

    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def tasks(session_factory):
    return TaskService(session_factory)


@pytest.fixture()
def store(session_factory):
    return SyncMappingStore(session_factory)


def _engine(gateway, tasks, store, credentials=None):
    return TodoSyncEngine(
        credentials or FakeCredentials(),
        gateway,
        tasks,
        store,
        settings=SETTINGS,
        clock=lambda: FIXED_NOW,
    )


def test_not_signed_in_fails_without_side_effects(tasks, store):
    gateway = FakeGateway()
    tasks.create("Local")

    result = _engine(gateway, tasks, store, FakeCredentials(token=None)).run_sync()

    assert result.success is False
    assert result.errors == [NOT_SIGNED_IN_ERROR]
    assert gateway.calls == []
    assert store.get_mapping() == {}
    assert store.get_last_sync_time() is None


def test_prefers_default_list_over_first(tasks, store):
    gateway = FakeGateway(
        lists=[RemoteList("list-a", "Work"), RemoteList("list-b", "Tasks", is_default=True)]
    )
    tasks.create("Local")

    result = _engine(gateway, tasks, store).run_sync()

    assert result.success is True
    assert gateway.created == [("list-b", "remote-1")]
    assert store.get_list_mapping() == {"default": "list-b"}


def test_falls_back_to_first_list(tasks, store):
    gateway = FakeGateway(lists=[RemoteList("list-a", "Work"), RemoteList("list-b", "Home")])
    tasks.create("Local")

    _engine(gateway, tasks, store).run_sync()

    assert gateway.created == [("list-a", "remote-1")]


def test_creates_list_when_none_exist(tasks, store):
    gateway = FakeGateway(lists=[])

    result = _engine(gateway, tasks, store).run_sync()

    assert result.success is True
    assert gateway.created_lists == [SETTINGS.default_list_name]
    assert store.get_list_mapping() == {"default": "list-new"}


def test_list_creation_failure_is_fatal(tasks, store):
    gateway = FakeGateway(lists=[])
    gateway.fail_create_list = True
    tasks.create("Local")

    result = _engine(gateway, tasks, store).run_sync()

    assert result.success is False
    assert result.errors == [CREATE_LIST_ERROR]
    assert "list_tasks" not in gateway.calls
    assert "create_task" not in gateway.calls
    assert store.get_last_sync_time() is None


def test_new_remote_task_is_imported(tasks, store):
    gateway = FakeGateway()
    gateway.add_remote(
        "R1",
        title="Buy milk",
        body={"content": "2 litres", "contentType": "text"},
        importance="high",
        status="completed",
        dueDateTime={"dateTime": "2024-05-03T15:30:00.0000000", "timeZone": "UTC"},
    )

    result = _engine(gateway, tasks, store).run_sync()

    assert result.success is True
    assert (result.pulled, result.pushed, result.errors) == (1, 0, [])
    [local] = tasks.list_all()
    assert store.get_mapping() == {local.id: "R1"}
    assert local.title == "Buy milk"
    assert local.description == "2 litres"
    assert local.priority == "high"
    assert local.completed is True
    assert local.due_date == date(2024, 5, 3)
    assert local.due_time is None
    # freshly imported tasks are not echoed back
    assert gateway.updated == []


def test_new_local_task_is_exported(tasks, store):
    gateway = FakeGateway()
    local = tasks.create(
        "Write report",
        description="Q2 numbers",
        priority="medium",
        due_date=date(2024, 6, 1),
        due_time="09:15",
    )

    result = _engine(gateway, tasks, store).run_sync()

    assert (result.pulled, result.pushed) == (0, 1)
    assert store.get_mapping() == {local.id: "remote-1"}
    assert gateway.remote["remote-1"] == {
        "title": "Write report",
        "importance": "normal",
        "status": "notStarted",
        "body": {"content": "Q2 numbers", "contentType": "text"},
        "dueDateTime": {"dateTime": "2024-06-01T09:15:00", "timeZone": "Europe/Berlin"},
    }


def test_existing_task_pushes_local_state(tasks, store):
    gateway = FakeGateway()
    gateway.add_remote("R1", title="Old title", importance="low", status="notStarted")
    local = tasks.create("New title", priority="high")
    tasks.update(local.id, completed=True)
    store.save_mapping({local.id: "R1"}, FIXED_NOW)

    result = _engine(gateway, tasks, store).run_sync()

    assert (result.pulled, result.pushed, result.errors) == (0, 0, [])
    assert gateway.updated == [("list-1", "R1")]
    assert gateway.remote["R1"]["title"] == "New title"
    assert gateway.remote["R1"]["importance"] == "high"
    assert gateway.remote["R1"]["status"] == "completed"
    assert len(tasks.list_all()) == 1


def test_mapped_task_missing_remotely_is_left_alone(tasks, store):
    gateway = FakeGateway()
    local = tasks.create("Orphan")
    store.save_mapping({local.id: "R-gone"}, FIXED_NOW)

    result = _engine(gateway, tasks, store).run_sync()

    assert result.success is True
    assert (result.pulled, result.pushed) == (0, 0)
    assert gateway.created == []
    assert gateway.updated == []
    assert store.get_mapping() == {local.id: "R-gone"}


def test_partial_failure_is_isolated(tasks, store):
    gateway = FakeGateway(fail_create_titles={"second"})
    first = tasks.create("first")
    second = tasks.create("second")
    third = tasks.create("third")

    result = _engine(gateway, tasks, store).run_sync()

    assert result.success is True
    assert result.pushed == 2
    assert result.errors == ["Failed to push task: second"]
    mapping = store.get_mapping()
    assert set(mapping) == {first.id, third.id}
    assert second.id not in mapping


def test_update_failure_is_recorded_and_pass_continues(tasks, store):
    gateway = FakeGateway(fail_update_titles={"broken"})
    gateway.add_remote("R1", title="broken")
    broken = tasks.create("broken")
    store.save_mapping({broken.id: "R1"}, FIXED_NOW)
    fresh = tasks.create("fresh")

    result = _engine(gateway, tasks, store).run_sync()

    assert result.success is True
    assert result.errors == ["Failed to update task: broken"]
    assert result.pushed == 1
    assert fresh.id in store.get_mapping()


def test_rejected_update_is_recorded(tasks, store):
    class RejectingGateway(FakeGateway):
        def update_task(self, list_id, remote_id, task):
            self.calls.append("update_task")
            return False

    gateway = RejectingGateway()
    gateway.add_remote("R1", title="a")
    local = tasks.create("a")
    store.save_mapping({local.id: "R1"}, FIXED_NOW)

    result = _engine(gateway, tasks, store).run_sync()

    assert result.success is True
    assert result.errors == ["Failed to update task: a"]
    assert "update_task" in gateway.calls
    assert store.get_mapping() == {local.id: "R1"}


def test_local_create_failure_skips_item(tasks, store):
    class FailingTasks(TaskService):
        def create(self, title, **fields):
            if title == "bad":
                raise ValueError("invalid")
            return super().create(title, **fields)

    gateway = FakeGateway()
    gateway.add_remote("R1", title="bad")
    gateway.add_remote("R2", title="good")
    failing = FailingTasks(tasks._session_factory)

    result = _engine(gateway, failing, store).run_sync()

    assert result.success is True
    assert result.pulled == 1
    assert result.errors == ["Failed to import task: bad"]
    assert [t.title for t in failing.list_all()] == ["good"]
    assert "R1" not in store.get_mapping().values()


def test_pull_failure_is_fatal(tasks, store):
    class PullFailingGateway(FakeGateway):
        def list_tasks(self, list_id, page_size=None):
            raise GatewayError("timeout")

    gateway = PullFailingGateway()
    tasks.create("Local")

    result = _engine(gateway, tasks, store).run_sync()

    assert result.success is False
    assert result.errors == ["Failed to pull tasks: timeout"]
    assert "create_task" not in gateway.calls
    assert store.get_last_sync_time() is None


def test_second_pass_is_idempotent(tasks, store):
    gateway = FakeGateway()
    gateway.add_remote("R1", title="Remote one")
    tasks.create("Local one")
    engine = _engine(gateway, tasks, store)

    first = engine.run_sync()
    second = engine.run_sync()

    assert (first.pulled, first.pushed) == (1, 1)
    assert (second.pulled, second.pushed, second.errors) == (0, 0, [])
    assert len(tasks.list_all()) == 2
    assert len(gateway.remote) == 2


def test_mappings_stay_one_to_one_over_passes(tasks, store):
    gateway = FakeGateway()
    gateway.add_remote("R1", title="Remote")
    engine = _engine(gateway, tasks, store)

    for i in range(3):
        tasks.create(f"Local {i}")
        engine.run_sync()

    mapping = store.get_mapping()
    assert len(mapping) == len(tasks.list_all()) == 4
    assert len(set(mapping.values())) == len(mapping)


def test_commit_failure_reports_failed(tasks, session_factory):
    gateway = FakeGateway()
    tasks.create("Local")
    store = BrokenMappingStore(session_factory)

    result = _engine(gateway, tasks, store).run_sync()

    assert result.success is False
    assert result.pushed == 1
    assert result.errors == [COMMIT_ERROR]
    assert store.get_mapping() == {}


def test_status_after_sync_and_clear(tasks, store):
    gateway = FakeGateway()
    tasks.create("Local")
    engine = _engine(gateway, tasks, store)
    engine.run_sync()

    status = engine.get_sync_status()
    assert status.last_sync_time == FIXED_NOW
    assert status.mapped_task_count == 1
    assert status.mapped_list_count == 1

    cleared = engine.clear_sync_data()
    assert (cleared.task_count, cleared.list_count) == (1, 1)

    status = engine.get_sync_status()
    assert status.last_sync_time is None
    assert status.mapped_task_count == 0
    assert status.mapped_list_count == 0
    # local task data is untouched
    assert len(tasks.list_all()) == 1
