"""Todo record model with local sync metadata."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from .utils.datetime import now_utc, ensure_aware, to_iso_string, parse_iso


class Priority(Enum):
    """Task priority levels."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Display order, lower sorts first."""
        return {"high": 0, "medium": 1, "low": 2}[self.value]

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        """Lenient conversion used for stored and wire data."""
        if isinstance(value, Priority):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.MEDIUM


def new_todo_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class TodoItem:
    """A single todo record.

    ``id`` is the immutable local key. ``server_id`` is assigned by the remote
    API on first upload; ``None`` means the record exists only on this device.
    ``is_synced``, ``last_modified``, ``server_id`` and ``is_deleted`` are
    local sync metadata and never travel over the wire.
    """

    id: str
    title: str
    is_completed: bool = False
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    created_at: datetime = field(default_factory=now_utc)
    last_modified: Optional[datetime] = None
    is_synced: bool = False
    server_id: Optional[str] = None
    is_deleted: bool = False

    def __post_init__(self):
        """Normalize timestamps to UTC-aware values."""
        object.__setattr__(self, "created_at", ensure_aware(self.created_at))
        object.__setattr__(self, "due_date", ensure_aware(self.due_date))
        object.__setattr__(self, "last_modified", ensure_aware(self.last_modified))

    # Derived predicates

    @property
    def needs_sync(self) -> bool:
        return not self.is_synced and not self.is_deleted

    @property
    def has_pending_changes(self) -> bool:
        """True for edits and tombstones not yet reflected remotely."""
        return not self.is_synced

    @property
    def is_local(self) -> bool:
        return self.server_id is None

    @property
    def has_server_version(self) -> bool:
        return self.server_id is not None

    @property
    def modified_at(self) -> datetime:
        """Timestamp used to decide which version of a record is newer."""
        return self.last_modified or self.created_at

    def is_overdue(self) -> bool:
        """Check if the task is overdue."""
        if self.due_date and not self.is_completed:
            return now_utc() > self.due_date
        return False

    # Transitions

    def with_changes(self, **changes: Any) -> "TodoItem":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def mark_modified(self) -> "TodoItem":
        return replace(self, is_synced=False, last_modified=now_utc())

    def mark_deleted(self) -> "TodoItem":
        return replace(self, is_deleted=True, is_synced=False, last_modified=now_utc())

    def mark_synced(self, server_id: Optional[str] = None,
                    at: Optional[datetime] = None) -> "TodoItem":
        """Return a synced copy.

        Args:
            server_id: Server id to attach, keeps the current one if None
            at: Server-side modification time; keeps ``last_modified`` if None
        """
        return replace(
            self,
            is_synced=True,
            server_id=server_id if server_id is not None else self.server_id,
            last_modified=ensure_aware(at) if at is not None else self.last_modified,
        )

    def adopt_remote(self, remote: "TodoItem") -> "TodoItem":
        """Overwrite user-visible fields with a remote version, keeping the local id."""
        return replace(
            self,
            title=remote.title,
            is_completed=remote.is_completed,
            priority=remote.priority,
            due_date=remote.due_date,
            created_at=remote.created_at,
            last_modified=remote.modified_at,
            server_id=remote.server_id,
            is_synced=True,
            is_deleted=False,
        )

    def sort_key(self) -> Tuple[bool, int, float]:
        """Incomplete first, then priority, then newest."""
        return (self.is_completed, self.priority.rank, -self.created_at.timestamp())

    # Local storage format

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to a dictionary with timezone-aware ISO strings."""
        return {
            "id": self.id,
            "title": self.title,
            "is_completed": self.is_completed,
            "priority": self.priority.value,
            "due_date": to_iso_string(self.due_date),
            "created_at": to_iso_string(self.created_at),
            "last_modified": to_iso_string(self.last_modified),
            "is_synced": self.is_synced,
            "server_id": self.server_id,
            "is_deleted": self.is_deleted,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TodoItem":
        """Create a record from its local storage dictionary.

        Raises:
            KeyError: If ``id`` is missing
            ValueError: If ``created_at`` cannot be parsed
        """
        created_at = parse_iso(data.get("created_at"))
        if created_at is None:
            raise ValueError(f"Invalid created_at for todo {data.get('id')}")

        server_id = data.get("server_id")
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            is_completed=bool(data.get("is_completed", False)),
            priority=Priority.parse(data.get("priority", "medium")),
            due_date=parse_iso(data.get("due_date")),
            created_at=created_at,
            last_modified=parse_iso(data.get("last_modified")),
            is_synced=bool(data.get("is_synced", False)),
            server_id=str(server_id) if server_id is not None else None,
            is_deleted=bool(data.get("is_deleted", False)),
        )

    # Wire format

    def to_wire(self) -> Dict[str, Any]:
        """Serialize the user-visible fields for the REST API."""
        return {
            "id": self.server_id,
            "title": self.title,
            "is_completed": self.is_completed,
            "priority": self.priority.value,
            "created_at": to_iso_string(self.created_at),
            "due_date": to_iso_string(self.due_date),
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "TodoItem":
        """Build a synced record from a REST API payload.

        The server's ``updated_at`` becomes ``last_modified`` so the record
        carries the server clock, not the local one.
        """
        return cls(
            id=new_todo_id(),
            server_id=str(data["id"]),
            title=data.get("title", ""),
            is_completed=bool(data.get("is_completed", False)),
            priority=Priority.parse(data.get("priority", "medium")),
            due_date=parse_iso(data.get("due_date")),
            created_at=parse_iso(data.get("created_at")) or now_utc(),
            last_modified=parse_iso(data.get("updated_at")),
            is_synced=True,
            is_deleted=False,
        )


def new_todo(title: str, priority: Priority = Priority.MEDIUM,
             due_date: Optional[datetime] = None) -> TodoItem:
    """Create a fresh local-only record."""
    now = now_utc()
    return TodoItem(
        id=new_todo_id(),
        title=title,
        priority=priority,
        due_date=due_date,
        created_at=now,
        last_modified=now,
        is_synced=False,
        server_id=None,
    )


@dataclass(frozen=True)
class Active:
    """A live record."""
    item: TodoItem


@dataclass(frozen=True)
class Tombstoned:
    """A deleted record kept until its deletion reaches the server.

    ``pending_remote_delete`` is False once nothing remains to propagate,
    which is exactly when cleanup may purge it.
    """
    item: TodoItem
    pending_remote_delete: bool


TodoState = Union[Active, Tombstoned]


def classify(item: TodoItem) -> TodoState:
    """Map a stored record to its lifecycle state."""
    if not item.is_deleted:
        return Active(item)
    pending = item.has_server_version and not item.is_synced
    return Tombstoned(item, pending_remote_delete=pending)


def is_purgeable(item: TodoItem) -> bool:
    state = classify(item)
    return isinstance(state, Tombstoned) and not state.pending_remote_delete
