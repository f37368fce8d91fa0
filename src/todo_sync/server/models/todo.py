"""Server-side todo model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ...utils.datetime import to_iso_string


@dataclass
class ServerTodo:
    """A todo owned by one user."""

    id: str
    user_id: str
    title: str
    priority: str
    created_at: datetime
    updated_at: datetime
    is_completed: bool = False
    due_date: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation; ``user_id`` stays on the server."""
        return {
            "id": self.id,
            "title": self.title,
            "is_completed": self.is_completed,
            "priority": self.priority,
            "due_date": to_iso_string(self.due_date),
            "created_at": to_iso_string(self.created_at),
            "updated_at": to_iso_string(self.updated_at),
        }
