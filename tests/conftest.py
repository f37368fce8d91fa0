"""Pytest configuration and shared fixtures."""

import sys
import asyncio
import inspect
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Ensure src directory is in Python path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from todo_sync.errors import RemoteNotFoundError, TransportError  # noqa: E402
from todo_sync.storage import LocalStore  # noqa: E402
from todo_sync.sync.local_service import LocalTodoService  # noqa: E402
from todo_sync.sync.session import AuthSession  # noqa: E402
from todo_sync.todo import Priority, TodoItem  # noqa: E402
from todo_sync.utils.datetime import now_utc, to_iso_string  # noqa: E402


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Execute async tests without external plugins."""
    testfunction = pyfuncitem.obj
    if inspect.iscoroutinefunction(testfunction):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            sig = inspect.signature(testfunction)
            call_kwargs = {name: pyfuncitem.funcargs[name] for name in sig.parameters}
            loop.run_until_complete(testfunction(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


class FakeTodoApi:
    """In-memory stand-in for ``TodoApiClient`` with failure injection."""

    def __init__(self):
        self.records: Dict[str, dict] = {}
        self.session = AuthSession(access_token="token", refresh_token="refresh")
        self.base_url = "http://fake"
        self.reachable = True
        self.fail_list = False
        self.fail_creates = False
        self.fail_updates: set = set()
        self.fail_all_updates = False
        self.fail_deletes: set = set()
        self.calls: List[str] = []

    def seed(self, title: str, server_id: Optional[str] = None,
             updated_at: Optional[datetime] = None, is_completed: bool = False,
             priority: str = "medium") -> str:
        server_id = server_id or str(uuid.uuid4())
        stamp = updated_at or now_utc()
        self.records[server_id] = {
            "id": server_id,
            "title": title,
            "is_completed": is_completed,
            "priority": priority,
            "due_date": None,
            "created_at": to_iso_string(stamp),
            "updated_at": to_iso_string(stamp),
        }
        return server_id

    async def list_todos(self) -> List[TodoItem]:
        self.calls.append("list")
        if self.fail_list:
            raise TransportError("server unavailable", status_code=503)
        return [TodoItem.from_wire(dict(r)) for r in self.records.values()]

    async def create_todo(self, title: str, priority: Priority = Priority.MEDIUM,
                          due_date=None) -> TodoItem:
        self.calls.append("create")
        if self.fail_creates:
            raise TransportError("create failed", status_code=500)
        server_id = self.seed(title, priority=priority.value)
        self.records[server_id]["due_date"] = to_iso_string(due_date)
        return TodoItem.from_wire(dict(self.records[server_id]))

    async def update_todo(self, item: TodoItem) -> TodoItem:
        self.calls.append("update")
        if self.fail_all_updates or item.server_id in self.fail_updates:
            raise TransportError("update failed", status_code=500)
        if item.server_id not in self.records:
            raise RemoteNotFoundError()
        record = self.records[item.server_id]
        record.update(
            title=item.title,
            is_completed=item.is_completed,
            priority=item.priority.value,
            due_date=to_iso_string(item.due_date),
            updated_at=to_iso_string(now_utc()),
        )
        return TodoItem.from_wire(dict(record))

    async def delete_todo(self, server_id: str) -> None:
        self.calls.append("delete")
        if server_id in self.fail_deletes:
            raise TransportError("delete failed", status_code=500)
        if server_id not in self.records:
            raise RemoteNotFoundError()
        del self.records[server_id]

    async def health(self) -> bool:
        return self.reachable

    async def close(self) -> None:
        pass


@pytest.fixture
def fake_api():
    return FakeTodoApi()


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "todos.json")


@pytest.fixture
def local_service(store):
    return LocalTodoService(store)
