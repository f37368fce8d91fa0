"""Data structures describing sync passes and their outcome."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..todo import TodoItem
from ..utils.datetime import now_utc, to_iso_string


class ConflictStrategy(Enum):
    """Conflict resolution strategies."""
    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"
    MERGE_LATEST = "merge_latest"

    @classmethod
    def parse(cls, value: Any) -> "ConflictStrategy":
        if isinstance(value, ConflictStrategy):
            return value
        normalized = str(value).strip().lower().replace("-", "_")
        return cls(normalized)


class SyncResult(Enum):
    """Overall result of a sync pass."""
    SUCCESS = "success"
    CONFLICT = "conflict"
    ERROR = "error"
    NO_CHANGES = "no_changes"


@dataclass
class SyncConflict:
    """A record edited locally and remotely that no strategy resolved."""
    local: TodoItem
    remote: TodoItem
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "local": self.local.to_dict(),
            "remote": self.remote.to_wire(),
            "reason": self.reason,
        }


@dataclass
class SyncReport:
    """Counts and outcome of one sync pass.

    Counts stay accurate when some records fail, since successful steps are
    never rolled back.
    """

    result: SyncResult = SyncResult.SUCCESS
    local_changes_uploaded: int = 0
    server_changes_downloaded: int = 0
    conflicts_resolved: int = 0
    failed_uploads: int = 0
    unresolved_conflicts: List[SyncConflict] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    error_message: Optional[str] = None
    started_at: datetime = field(default_factory=now_utc)
    synced_at: Optional[datetime] = None

    @property
    def is_success(self) -> bool:
        return self.result in (SyncResult.SUCCESS, SyncResult.NO_CHANGES)

    @property
    def has_changes(self) -> bool:
        return bool(
            self.local_changes_uploaded
            or self.server_changes_downloaded
            or self.conflicts_resolved
            or self.failed_uploads
        )

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def complete(self, result: Optional[SyncResult] = None) -> "SyncReport":
        """Finish the pass, deriving the result from the counts unless given."""
        if result is None:
            if self.unresolved_conflicts:
                result = SyncResult.CONFLICT
            elif not self.has_changes:
                result = SyncResult.NO_CHANGES
            else:
                result = SyncResult.SUCCESS
        self.result = result
        self.synced_at = now_utc()
        return self

    def fail(self, message: str) -> "SyncReport":
        self.error_message = message
        return self.complete(SyncResult.ERROR)

    def summary(self) -> str:
        if self.result == SyncResult.ERROR:
            return f"Sync failed: {self.error_message}"
        if self.result == SyncResult.NO_CHANGES:
            return "Everything is up to date"
        parts = [
            f"{self.local_changes_uploaded} uploaded",
            f"{self.server_changes_downloaded} downloaded",
            f"{self.conflicts_resolved} conflicts resolved",
        ]
        if self.failed_uploads:
            parts.append(f"{self.failed_uploads} failed")
        if self.unresolved_conflicts:
            parts.append(f"{len(self.unresolved_conflicts)} unresolved")
        return ", ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.value,
            "local_changes_uploaded": self.local_changes_uploaded,
            "server_changes_downloaded": self.server_changes_downloaded,
            "conflicts_resolved": self.conflicts_resolved,
            "failed_uploads": self.failed_uploads,
            "unresolved_conflicts": [c.to_dict() for c in self.unresolved_conflicts],
            "errors": list(self.errors),
            "error_message": self.error_message,
            "started_at": to_iso_string(self.started_at),
            "synced_at": to_iso_string(self.synced_at),
        }
