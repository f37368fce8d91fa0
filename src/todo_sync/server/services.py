"""Todo business logic with ownership checks."""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .database import TodoDatabase, get_db
from .models import ServerTodo


logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class TodoNotFoundError(Exception):
    """Todo does not exist."""
    pass


class TodoPermissionError(Exception):
    """Todo belongs to another user."""
    pass


@dataclass
class Page:
    """One page of todos plus pagination metadata."""
    items: List[ServerTodo]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": self.total_pages,
            "has_next": self.page < self.total_pages,
            "has_prev": self.page > 1,
        }


class TodoService:
    """CRUD for a user's todos."""

    def __init__(self, db: Optional[TodoDatabase] = None):
        self.db = db or get_db()
        self.logger = logging.getLogger(__name__)

    def create(self, user_id: str, title: str, priority: str,
               due_date: Optional[datetime] = None) -> ServerTodo:
        todo = self.db.create_todo(user_id, title, priority, due_date)
        self.logger.info(f"Created todo {todo.id} for user {user_id}")
        return todo

    def get(self, user_id: str, todo_id: str) -> ServerTodo:
        """Get a todo owned by ``user_id``.

        Raises:
            TodoNotFoundError: If the todo does not exist
            TodoPermissionError: If another user owns it
        """
        todo = self.db.get_todo(todo_id)
        if todo is None:
            raise TodoNotFoundError(f"Todo {todo_id} not found")
        if todo.user_id != user_id:
            raise TodoPermissionError("You don't have permission to access this todo")
        return todo

    def list(self, user_id: str, page: int = 1, limit: int = DEFAULT_PAGE_SIZE,
             completed: Optional[bool] = None) -> Page:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        items, total = self.db.list_todos(user_id, (page - 1) * limit, limit, completed)
        return Page(items=items, page=page, limit=limit, total=total)

    def update(self, user_id: str, todo_id: str, fields: Dict[str, Any]) -> ServerTodo:
        """Apply a partial update; absent fields are left unchanged."""
        self.get(user_id, todo_id)
        todo = self.db.update_todo(todo_id, fields)
        self.logger.info(f"Updated todo {todo_id}")
        return todo

    def delete(self, user_id: str, todo_id: str) -> None:
        self.get(user_id, todo_id)
        self.db.delete_todo(todo_id)
        self.logger.info(f"Deleted todo {todo_id}")


def get_todo_service() -> TodoService:
    return TodoService()
