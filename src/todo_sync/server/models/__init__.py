"""Data models for the REST backend."""

from .user import User, TokenPair, AUTH_PROVIDER_EMAIL, AUTH_PROVIDER_APPLE
from .todo import ServerTodo

__all__ = ["User", "TokenPair", "ServerTodo", "AUTH_PROVIDER_EMAIL", "AUTH_PROVIDER_APPLE"]
