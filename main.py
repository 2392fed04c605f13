# ticker/main.py
import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.settings import APP_NAME, TODO_SYNC
from services.microsoft_auth import TokenCredentials
from services.sync_engine import TodoSyncEngine
from services.sync_mapping_store import SyncMappingStore
from services.tasks import TaskService
from services.todo_gateway import MicrosoftTodoGateway
from storage.db import init_db
from utils.datetime_utils import to_rfc3339_utc


def build_engine() -> TodoSyncEngine:
    credentials = TokenCredentials()
    return TodoSyncEngine(
        credentials,
        MicrosoftTodoGateway(credentials),
        TaskService(),
        SyncMappingStore(),
    )


def _cmd_sync(engine: TodoSyncEngine) -> int:
    if not TODO_SYNC.enabled:
        print("Microsoft To Do sync is disabled")
        return 1
    result = engine.run_sync()
    print(f"Pulled: {result.pulled}  Pushed: {result.pushed}")
    for error in result.errors:
        print(f"  ! {error}")
    print("Sync finished" if result.success else "Sync failed")
    return 0 if result.success else 1


def _cmd_status(engine: TodoSyncEngine) -> int:
    status = engine.get_sync_status()
    print(f"Last sync: {to_rfc3339_utc(status.last_sync_time) or 'never'}")
    print(f"Mapped tasks: {status.mapped_task_count}")
    print(f"Mapped lists: {status.mapped_list_count}")
    return 0


def _cmd_clear(engine: TodoSyncEngine) -> int:
    cleared = engine.clear_sync_data()
    print(f"Forgot {cleared.task_count} task and {cleared.list_count} list mappings")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog=APP_NAME.lower(),
        description="Synchronise local tasks with Microsoft To Do",
    )
    parser.add_argument("command", choices=("sync", "status", "clear"))
    args = parser.parse_args(argv)

    init_db()
    engine = build_engine()
    handlers = {"sync": _cmd_sync, "status": _cmd_status, "clear": _cmd_clear}
    return handlers[args.command](engine)


if __name__ == "__main__":
    sys.exit(main())
