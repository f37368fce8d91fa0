"""JSON file storage for the local todo list."""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List

from .errors import StorageError
from .todo import TodoItem


logger = logging.getLogger(__name__)


class LocalStore:
    """File-backed store holding every local record, tombstones included.

    Writers take ``lock`` around each read-modify-write so a sync pass and a
    CRUD call can never interleave on the same list.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.lock = asyncio.Lock()
        self.logger = logging.getLogger(__name__)

    async def load_all(self) -> List[TodoItem]:
        """Load every stored record.

        Returns:
            Records in stored order; an empty list if the file does not exist

        Raises:
            StorageError: If the file cannot be read or is not a JSON list
        """
        return await asyncio.to_thread(self._read)

    async def save_all(self, items: List[TodoItem]) -> None:
        """Replace the stored list.

        Raises:
            StorageError: If the file cannot be written
        """
        ids = [item.id for item in items]
        if len(ids) != len(set(ids)):
            raise StorageError(f"Duplicate todo ids in write to {self.path}")
        await asyncio.to_thread(self._write, items)

    async def clear(self) -> None:
        """Remove the store file."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove {self.path}: {e}") from e

    def _read(self) -> List[TodoItem]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}") from e

        if not isinstance(raw, list):
            raise StorageError(f"Unexpected document in {self.path}: expected a list")

        items = []
        for entry in raw:
            try:
                items.append(TodoItem.from_dict(entry))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                self.logger.warning(f"Skipping malformed todo in {self.path}: {e}")
        return items

    def _write(self, items: List[TodoItem]) -> None:
        payload = [item.to_dict() for item in items]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".todos-", suffix=".tmp")
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write {self.path}: {e}") from e
        self.logger.debug(f"Saved {len(items)} todos to {self.path}")
