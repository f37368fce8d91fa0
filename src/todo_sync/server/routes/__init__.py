"""API routers."""

from .auth import router as auth_router
from .todos import router as todos_router

__all__ = ["auth_router", "todos_router"]
