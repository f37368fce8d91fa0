"""Offline/online mode switch in front of the local and remote backends."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import (
    AuthenticationError, ConnectivityError, ModeError, RemoteNotFoundError, TodoSyncError,
)
from ..todo import TodoItem, Priority
from ..utils.datetime import now_utc, to_iso_string
from .connectivity import ConnectivityChecker
from .engine import SyncEngine
from .local_service import LocalTodoService
from .models import ConflictStrategy, SyncReport
from .remote import TodoApiClient


logger = logging.getLogger(__name__)


class AppMode(Enum):
    """Where CRUD operations are sent."""
    OFFLINE = "offline"
    ONLINE = "online"

    @property
    def display_name(self) -> str:
        return {"offline": "Offline", "online": "Online"}[self.value]

    @property
    def description(self) -> str:
        if self is AppMode.OFFLINE:
            return "Changes are stored on this device and uploaded on the next sync"
        return "Changes go straight to the server and are mirrored locally"


@dataclass
class AppModeState:
    """Snapshot of the coordinator for display."""
    mode: AppMode = AppMode.OFFLINE
    unsynced_count: int = 0
    has_unsynced_changes: bool = False
    last_sync_at: Optional[datetime] = None
    is_syncing: bool = False
    sync_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "unsynced_count": self.unsynced_count,
            "has_unsynced_changes": self.has_unsynced_changes,
            "last_sync_at": to_iso_string(self.last_sync_at),
            "is_syncing": self.is_syncing,
            "sync_error": self.sync_error,
        }


class TodoBackend(ABC):
    """CRUD surface shared by the offline and online strategies."""

    def __init__(self, local: LocalTodoService):
        self.local = local

    @abstractmethod
    async def list(self) -> List[TodoItem]:
        pass

    @abstractmethod
    async def create(self, title: str, priority: Priority = Priority.MEDIUM,
                     due_date: Optional[datetime] = None) -> TodoItem:
        pass

    @abstractmethod
    async def update(self, item: TodoItem) -> TodoItem:
        pass

    @abstractmethod
    async def toggle(self, todo_id: str) -> TodoItem:
        pass

    @abstractmethod
    async def delete(self, todo_id: str) -> None:
        pass

    @abstractmethod
    async def clear_completed(self) -> int:
        pass


class OfflineBackend(TodoBackend):
    """Works purely against the local store."""

    async def list(self) -> List[TodoItem]:
        return await self.local.get_todos()

    async def create(self, title: str, priority: Priority = Priority.MEDIUM,
                     due_date: Optional[datetime] = None) -> TodoItem:
        return await self.local.create(title, priority, due_date)

    async def update(self, item: TodoItem) -> TodoItem:
        return await self.local.update(item)

    async def toggle(self, todo_id: str) -> TodoItem:
        return await self.local.toggle(todo_id)

    async def delete(self, todo_id: str) -> None:
        await self.local.delete(todo_id)

    async def clear_completed(self) -> int:
        return await self.local.clear_completed()


class OnlineBackend(TodoBackend):
    """Writes through the remote API and mirrors results into the local store.

    Remote failures propagate to the caller; nothing is queued.
    """

    def __init__(self, local: LocalTodoService, api: TodoApiClient):
        super().__init__(local)
        self.api = api

    async def list(self) -> List[TodoItem]:
        await self.local.mirror_remote(await self.api.list_todos())
        return await self.local.get_todos()

    async def create(self, title: str, priority: Priority = Priority.MEDIUM,
                     due_date: Optional[datetime] = None) -> TodoItem:
        remote = await self.api.create_todo(title, priority, due_date)
        stored = await self.local.mirror_remote([remote])
        return stored[0]

    async def update(self, item: TodoItem) -> TodoItem:
        if item.has_server_version:
            remote = await self.api.update_todo(item)
        else:
            remote = await self.api.create_todo(item.title, item.priority, item.due_date)
            # Attach the new server id so the mirror matches this record.
            item = item.with_changes(server_id=remote.server_id, is_synced=False)
            await self.local.merge([item])
            if item.is_completed:
                remote = await self.api.update_todo(item)
        stored = await self.local.mirror_remote([remote])
        return stored[0]

    async def toggle(self, todo_id: str) -> TodoItem:
        current = await self.local.get(todo_id)
        return await self.update(current.with_changes(is_completed=not current.is_completed))

    async def delete(self, todo_id: str) -> None:
        current = await self.local.get(todo_id)
        if current.has_server_version:
            try:
                await self.api.delete_todo(current.server_id)
            except RemoteNotFoundError:
                logger.debug(f"Todo {current.server_id} already gone remotely")
        await self.local.remove(todo_id)

    async def clear_completed(self) -> int:
        completed = [item for item in await self.local.get_todos() if item.is_completed]
        for item in completed:
            await self.delete(item.id)
        return len(completed)


class TodoCoordinator:
    """Dispatches CRUD to the active backend and gates sync on mode and connectivity."""

    def __init__(self, local: LocalTodoService, api: TodoApiClient,
                 connectivity: Optional[ConnectivityChecker] = None,
                 engine: Optional[SyncEngine] = None,
                 mode: AppMode = AppMode.OFFLINE,
                 strategy: ConflictStrategy = ConflictStrategy.MERGE_LATEST):
        """Initialize the coordinator.

        Args:
            local: Local todo service
            api: Remote todo client
            connectivity: Reachability probe, built from ``api`` if None
            engine: Sync engine, built from ``api`` and ``local`` if None
            mode: Starting mode, normally restored from config
            strategy: Default conflict strategy for sync passes
        """
        self.local = local
        self.api = api
        self.connectivity = connectivity or ConnectivityChecker(api)
        self.engine = engine or SyncEngine(api, local, strategy)
        self.offline_backend = OfflineBackend(local)
        self.online_backend = OnlineBackend(local, api)
        self.mode = mode
        self.last_sync_at: Optional[datetime] = None
        self.last_report: Optional[SyncReport] = None
        self.sync_error: Optional[str] = None
        self.logger = logging.getLogger(__name__)

    @property
    def backend(self) -> TodoBackend:
        if self.mode == AppMode.ONLINE:
            return self.online_backend
        return self.offline_backend

    @property
    def is_online(self) -> bool:
        return self.mode == AppMode.ONLINE

    @property
    def is_syncing(self) -> bool:
        return self.engine.is_running

    async def state(self) -> AppModeState:
        unsynced = await self.local.unsynced_count()
        return AppModeState(
            mode=self.mode,
            unsynced_count=unsynced,
            has_unsynced_changes=await self.local.has_unsynced_changes(),
            last_sync_at=self.last_sync_at,
            is_syncing=self.is_syncing,
            sync_error=self.sync_error,
        )

    # Mode transitions

    async def switch_to_online(self) -> Optional[SyncReport]:
        """Enter online mode.

        Runs a sync pass when local changes are pending.

        Returns:
            The report of the automatic sync, or None if none was needed

        Raises:
            ConnectivityError: If the API is unreachable; mode stays offline
            AuthenticationError: If no user is signed in; mode stays offline
        """
        if not await self.connectivity.is_connected():
            raise ConnectivityError("Cannot go online: server is unreachable")
        if not self.api.session.is_authenticated:
            raise AuthenticationError("Cannot go online: sign in first")

        self.mode = AppMode.ONLINE
        self.logger.info("Switched to online mode")

        if await self.local.has_unsynced_changes():
            self.logger.info("Pending local changes, syncing")
            return await self._run_sync(self.engine.sync)
        return None

    def switch_to_offline(self) -> None:
        self.mode = AppMode.OFFLINE
        self.logger.info("Switched to offline mode")

    # CRUD

    async def list_todos(self) -> List[TodoItem]:
        return sorted(await self.backend.list(), key=lambda item: item.sort_key())

    async def create_todo(self, title: str, priority: Priority = Priority.MEDIUM,
                          due_date: Optional[datetime] = None) -> TodoItem:
        return await self.backend.create(title, priority, due_date)

    async def update_todo(self, item: TodoItem) -> TodoItem:
        return await self.backend.update(item)

    async def toggle_todo(self, todo_id: str) -> TodoItem:
        return await self.backend.toggle(todo_id)

    async def delete_todo(self, todo_id: str) -> None:
        await self.backend.delete(todo_id)

    async def clear_completed(self) -> int:
        return await self.backend.clear_completed()

    async def get_todo(self, todo_id: str) -> TodoItem:
        return await self.local.get(todo_id)

    # Sync actions

    async def sync(self, strategy: Optional[ConflictStrategy] = None) -> SyncReport:
        await self._require_online()
        return await self._run_sync(self.engine.sync, strategy)

    async def full_download(self) -> SyncReport:
        await self._require_online()
        return await self._run_sync(self.engine.full_download)

    async def full_upload(self) -> SyncReport:
        await self._require_online()
        return await self._run_sync(self.engine.full_upload)

    async def _require_online(self) -> None:
        if not self.is_online:
            raise ModeError("Sync is only available in online mode")
        if not await self.connectivity.is_connected():
            raise ConnectivityError("Server is unreachable")

    async def _run_sync(self, action, *args) -> SyncReport:
        try:
            report = await action(*args)
        except TodoSyncError as e:
            self.sync_error = str(e)
            raise
        self.last_report = report
        if report.is_success:
            self.last_sync_at = report.synced_at or now_utc()
            self.sync_error = None
        else:
            self.sync_error = report.error_message
        return report
