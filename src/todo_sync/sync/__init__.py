"""Local service, remote client and sync machinery."""

from .models import ConflictStrategy, SyncResult, SyncReport, SyncConflict
from .local_service import LocalTodoService
from .session import AuthSession
from .remote import ApiClient, TodoApiClient
from .auth_client import AuthClient
from .connectivity import ConnectivityChecker
from .engine import SyncEngine, ConflictResolver
from .coordinator import TodoCoordinator, AppMode, AppModeState, OfflineBackend, OnlineBackend

__all__ = [
    "ConflictStrategy",
    "SyncResult",
    "SyncReport",
    "SyncConflict",
    "LocalTodoService",
    "AuthSession",
    "ApiClient",
    "TodoApiClient",
    "AuthClient",
    "ConnectivityChecker",
    "SyncEngine",
    "ConflictResolver",
    "TodoCoordinator",
    "AppMode",
    "AppModeState",
    "OfflineBackend",
    "OnlineBackend",
]
