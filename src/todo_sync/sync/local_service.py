"""CRUD over the local store with sync-metadata stamping."""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..errors import NotFoundError
from ..storage import LocalStore
from ..todo import TodoItem, Priority, new_todo


logger = logging.getLogger(__name__)


class LocalTodoService:
    """Reads and writes todos on this device.

    Every mutation is a single locked load/modify/save cycle against the
    ``LocalStore``; no state is cached between calls.
    """

    def __init__(self, store: LocalStore):
        self.store = store
        self.logger = logging.getLogger(__name__)

    # Queries

    async def get_all(self) -> List[TodoItem]:
        """All records, tombstones included."""
        return await self.store.load_all()

    async def get_todos(self) -> List[TodoItem]:
        """Records visible to the user."""
        return [item for item in await self.store.load_all() if not item.is_deleted]

    async def get_unsynced(self) -> List[TodoItem]:
        return [item for item in await self.store.load_all() if item.needs_sync]

    async def get(self, todo_id: str) -> TodoItem:
        for item in await self.store.load_all():
            if item.id == todo_id:
                return item
        raise NotFoundError(todo_id)

    async def unsynced_count(self) -> int:
        return len(await self.get_unsynced())

    async def has_unsynced_changes(self) -> bool:
        """True if any record, including a tombstone, still has to reach the server."""
        return any(item.has_pending_changes for item in await self.store.load_all())

    # Mutations

    async def create(self, title: str, priority: Priority = Priority.MEDIUM,
                     due_date: Optional[datetime] = None) -> TodoItem:
        """Create a local-only record.

        Args:
            title: Todo text, an empty string is accepted
            priority: Priority level
            due_date: Optional due date

        Returns:
            The new record with ``is_synced=False`` and no server id
        """
        item = new_todo(title, priority, due_date)
        async with self.store.lock:
            items = await self.store.load_all()
            items.append(item)
            await self.store.save_all(items)
        self.logger.debug(f"Created todo {item.id}")
        return item

    async def update(self, item: TodoItem) -> TodoItem:
        """Store new field values for an existing record.

        Raises:
            NotFoundError: If no record has ``item.id``
        """
        updated = item.mark_modified()
        await self._replace_one(item.id, lambda _current: updated)
        return updated

    async def toggle(self, todo_id: str) -> TodoItem:
        """Flip completion of a record.

        Raises:
            NotFoundError: If no record has ``todo_id``
        """
        return await self._replace_one(
            todo_id,
            lambda current: current.with_changes(is_completed=not current.is_completed).mark_modified(),
        )

    async def delete(self, todo_id: str) -> Optional[TodoItem]:
        """Delete a record.

        Local-only records are removed outright. Records known to the server
        become tombstones so the next sync can delete them remotely.

        Returns:
            The tombstone, or None if the record was removed outright

        Raises:
            NotFoundError: If no record has ``todo_id``
        """
        async with self.store.lock:
            items = await self.store.load_all()
            index = self._index_of(items, todo_id)
            current = items[index]
            if current.is_local:
                del items[index]
                result = None
            else:
                result = current.mark_deleted()
                items[index] = result
            await self.store.save_all(items)
        return result

    async def clear_completed(self) -> int:
        """Delete every completed record.

        Returns:
            Number of records removed or tombstoned
        """
        count = 0
        kept = []
        async with self.store.lock:
            for item in await self.store.load_all():
                if item.is_completed and not item.is_deleted:
                    count += 1
                    if item.is_local:
                        continue
                    item = item.mark_deleted()
                kept.append(item)
            await self.store.save_all(kept)
        self.logger.info(f"Cleared {count} completed todos")
        return count

    async def remove(self, todo_id: str) -> None:
        """Hard-remove a record regardless of its sync state.

        Raises:
            NotFoundError: If no record has ``todo_id``
        """
        async with self.store.lock:
            items = await self.store.load_all()
            del items[self._index_of(items, todo_id)]
            await self.store.save_all(items)

    async def purge(self, predicate: Callable[[TodoItem], bool]) -> int:
        """Hard-remove every record matching ``predicate``."""
        async with self.store.lock:
            items = await self.store.load_all()
            kept = [item for item in items if not predicate(item)]
            if len(kept) != len(items):
                await self.store.save_all(kept)
        return len(items) - len(kept)

    async def replace(self, items: Iterable[TodoItem]) -> None:
        """Replace the whole local list."""
        async with self.store.lock:
            await self.store.save_all(list(items))

    async def merge(self, items: Iterable[TodoItem]) -> None:
        """Upsert records by id, keeping existing order and appending new ones."""
        incoming: Dict[str, TodoItem] = {item.id: item for item in items}
        async with self.store.lock:
            merged = []
            for current in await self.store.load_all():
                merged.append(incoming.pop(current.id, current))
            merged.extend(incoming.values())
            await self.store.save_all(merged)

    async def commit(self, changes: Iterable[Tuple[Optional[TodoItem], TodoItem]]) -> int:
        """Apply sync results without clobbering concurrent edits.

        Args:
            changes: ``(expected, new)`` pairs. ``expected`` is the version the
                change was computed from, or None to insert ``new``.

        Returns:
            Number of changes skipped because the stored record moved on
        """
        skipped = 0
        async with self.store.lock:
            items = await self.store.load_all()
            positions = {item.id: i for i, item in enumerate(items)}
            for expected, new in changes:
                if expected is None:
                    items.append(new)
                    positions[new.id] = len(items) - 1
                    continue
                index = positions.get(expected.id)
                if index is None or items[index] != expected:
                    self.logger.debug(f"Todo {expected.id} changed during sync, keeping local version")
                    skipped += 1
                    continue
                items[index] = new
            await self.store.save_all(items)
        return skipped

    async def mirror_remote(self, remote_items: Iterable[TodoItem]) -> List[TodoItem]:
        """Write server records into the local list as synced copies.

        Matching is by server id; a matched record keeps its local id.

        Returns:
            The stored versions of ``remote_items``
        """
        stored = []
        async with self.store.lock:
            items = await self.store.load_all()
            by_server_id = {item.server_id: i for i, item in enumerate(items) if item.server_id}
            for remote in remote_items:
                index = by_server_id.get(remote.server_id)
                if index is None:
                    items.append(remote)
                    by_server_id[remote.server_id] = len(items) - 1
                    stored.append(remote)
                else:
                    items[index] = items[index].adopt_remote(remote)
                    stored.append(items[index])
            await self.store.save_all(items)
        return stored

    async def clear_all(self) -> None:
        async with self.store.lock:
            await self.store.clear()

    # Helpers

    async def _replace_one(self, todo_id: str,
                           change: Callable[[TodoItem], TodoItem]) -> TodoItem:
        async with self.store.lock:
            items = await self.store.load_all()
            index = self._index_of(items, todo_id)
            items[index] = change(items[index])
            await self.store.save_all(items)
        return items[index]

    @staticmethod
    def _index_of(items: List[TodoItem], todo_id: str) -> int:
        for index, item in enumerate(items):
            if item.id == todo_id:
                return index
        raise NotFoundError(todo_id)
