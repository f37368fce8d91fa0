"""Exception hierarchy for the todo-sync client."""

from typing import Optional


class TodoSyncError(Exception):
    """Base exception for todo-sync operations."""
    pass


class NotFoundError(TodoSyncError):
    """An operation referenced a todo id absent from the local list."""

    def __init__(self, todo_id: str):
        super().__init__(f"Todo not found: {todo_id}")
        self.todo_id = todo_id


class StorageError(TodoSyncError):
    """Local store could not be read or written."""
    pass


class TransportError(TodoSyncError):
    """Network or server failure talking to the remote API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteNotFoundError(TransportError):
    """The remote API reported 404 for a record."""

    def __init__(self, message: str = "Todo not found on server"):
        super().__init__(message, status_code=404)


class AuthenticationError(TransportError):
    """Missing, expired or rejected credentials."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=401)


class FetchError(TodoSyncError):
    """The complete remote list could not be downloaded."""
    pass


class ConnectivityError(TodoSyncError):
    """The remote API is unreachable."""
    pass


class ModeError(TodoSyncError):
    """Operation is not available in the current app mode."""
    pass


class SyncInProgressError(TodoSyncError):
    """A sync pass is already running."""
    pass


class PartialWriteError(TransportError):
    """A record was created remotely but the follow-up update failed."""

    def __init__(self, server_id: str, cause: TransportError):
        super().__init__(f"Created as {server_id} but update failed: {cause}",
                         status_code=cause.status_code)
        self.server_id = server_id
