"""SQLite persistence for users and todos."""

import sqlite3
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .models import User, ServerTodo, AUTH_PROVIDER_EMAIL
from ..utils.datetime import now_utc, parse_iso, to_iso_string


logger = logging.getLogger(__name__)


class TodoDatabase:
    """SQLite database holding users and their todos."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database.

        Args:
            db_path: Path to SQLite database file, taken from settings if None
        """
        if db_path is None:
            from .settings import get_settings
            db_path = get_settings().database_path

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(__name__)
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_database(self):
        """Initialize database schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT,
                    name TEXT NOT NULL,
                    is_active BOOLEAN DEFAULT TRUE,
                    apple_id TEXT UNIQUE,
                    is_private_email BOOLEAN DEFAULT FALSE,
                    auth_provider TEXT NOT NULL DEFAULT 'email',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS todos (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    is_completed BOOLEAN DEFAULT FALSE,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    due_date TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    deleted_at TEXT,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_users_apple_id ON users(apple_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_todos_user_id ON todos(user_id)")
            conn.commit()
        self.logger.debug(f"Initialized database at {self.db_path}")

    # User Operations

    def create_user(self, email: str, name: str, password_hash: Optional[str] = None,
                    apple_id: Optional[str] = None, is_private_email: bool = False,
                    auth_provider: str = AUTH_PROVIDER_EMAIL) -> User:
        """Create a new user.

        Raises:
            ValueError: If the email or Apple id is already registered
        """
        now = now_utc()
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            name=name,
            password_hash=password_hash,
            apple_id=apple_id,
            is_private_email=is_private_email,
            auth_provider=auth_provider,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._connect() as conn:
                conn.execute("""
                    INSERT INTO users (id, email, password_hash, name, is_active, apple_id,
                                       is_private_email, auth_provider, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (user.id, user.email, user.password_hash, user.name, user.is_active,
                      user.apple_id, user.is_private_email, user.auth_provider,
                      now.isoformat(), now.isoformat()))
                conn.commit()
        except sqlite3.IntegrityError as e:
            if "email" in str(e):
                raise ValueError(f"Email '{email}' already exists")
            if "apple_id" in str(e):
                raise ValueError("Apple account already linked")
            raise

        self.logger.info(f"Created user {user.id} ({auth_provider})")
        return user

    def _get_user(self, column: str, value: Any) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(f"SELECT * FROM users WHERE {column} = ?", (value,)).fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self._get_user("id", user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._get_user("email", email)

    def get_user_by_apple_id(self, apple_id: str) -> Optional[User]:
        return self._get_user("apple_id", apple_id)

    def link_apple_id(self, user_id: str, apple_id: str) -> None:
        """Attach an Apple id to an existing account."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET apple_id = ?, updated_at = ? WHERE id = ?",
                (apple_id, now_utc().isoformat(), user_id),
            )
            conn.commit()

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            password_hash=row["password_hash"],
            is_active=bool(row["is_active"]),
            apple_id=row["apple_id"],
            is_private_email=bool(row["is_private_email"]),
            auth_provider=row["auth_provider"],
            created_at=parse_iso(row["created_at"]),
            updated_at=parse_iso(row["updated_at"]),
        )

    # Todo Operations

    def create_todo(self, user_id: str, title: str, priority: str,
                    due_date=None) -> ServerTodo:
        now = now_utc()
        todo = ServerTodo(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            priority=priority,
            due_date=due_date,
            created_at=now,
            updated_at=now,
        )
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO todos (id, user_id, title, is_completed, priority, due_date,
                                   created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (todo.id, user_id, title, False, priority, to_iso_string(due_date),
                  now.isoformat(), now.isoformat()))
            conn.commit()
        return todo

    def get_todo(self, todo_id: str) -> Optional[ServerTodo]:
        """Get a live todo by id regardless of owner."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM todos WHERE id = ? AND deleted_at IS NULL", (todo_id,)
            ).fetchone()
        return self._row_to_todo(row) if row else None

    def list_todos(self, user_id: str, offset: int, limit: int,
                   completed: Optional[bool] = None) -> Tuple[List[ServerTodo], int]:
        """Page through a user's live todos, newest first.

        Returns:
            Tuple of (todos on this page, total matching todos)
        """
        where = "user_id = ? AND deleted_at IS NULL"
        params: List[Any] = [user_id]
        if completed is not None:
            where += " AND is_completed = ?"
            params.append(completed)

        with self._connect() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM todos WHERE {where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM todos WHERE {where} ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
                params + [limit, offset],
            ).fetchall()
        return [self._row_to_todo(row) for row in rows], total

    def update_todo(self, todo_id: str, fields: Dict[str, Any]) -> Optional[ServerTodo]:
        """Apply column updates and bump ``updated_at``."""
        allowed = {"title", "is_completed", "priority", "due_date"}
        updates = {k: v for k, v in fields.items() if k in allowed}
        if "due_date" in updates:
            updates["due_date"] = to_iso_string(updates["due_date"])
        updates["updated_at"] = now_utc().isoformat()

        assignments = ", ".join(f"{column} = ?" for column in updates)
        with self._connect() as conn:
            conn.execute(
                f"UPDATE todos SET {assignments} WHERE id = ? AND deleted_at IS NULL",
                list(updates.values()) + [todo_id],
            )
            conn.commit()
        return self.get_todo(todo_id)

    def delete_todo(self, todo_id: str) -> bool:
        """Soft-delete a todo.

        Returns:
            True if a live todo was deleted
        """
        now = now_utc().isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE todos SET deleted_at = ?, updated_at = ? WHERE id = ? AND deleted_at IS NULL",
                (now, now, todo_id),
            )
            conn.commit()
        return cursor.rowcount > 0

    def _row_to_todo(self, row: sqlite3.Row) -> ServerTodo:
        return ServerTodo(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            is_completed=bool(row["is_completed"]),
            priority=row["priority"],
            due_date=parse_iso(row["due_date"]),
            created_at=parse_iso(row["created_at"]),
            updated_at=parse_iso(row["updated_at"]),
        )


# Global database instance
_db: Optional[TodoDatabase] = None


def get_db() -> TodoDatabase:
    """Get global database instance."""
    global _db

    if _db is None:
        _db = TodoDatabase()

    return _db


def reset_db():
    """Reset global database (for testing)."""
    global _db
    _db = None
