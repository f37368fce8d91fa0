"""todo-sync - local-first todo list with a REST backend and single-pass sync."""

__version__ = "0.1.0"

from .todo import TodoItem, Priority, Active, Tombstoned, classify

__all__ = ["TodoItem", "Priority", "Active", "Tombstoned", "classify", "__version__"]
