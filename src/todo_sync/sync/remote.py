"""HTTP client for the todo REST API."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from ..errors import AuthenticationError, RemoteNotFoundError, TransportError
from ..todo import TodoItem, Priority
from ..utils.datetime import to_iso_string
from .session import AuthSession


logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class ApiClient:
    """Base JSON client for the ``{success, message, data}`` envelope.

    Attaches the session's bearer token. A 401 triggers one refresh through
    ``/auth/token/refresh`` followed by a single retry.
    """

    def __init__(self, base_url: str, session: Optional[AuthSession] = None,
                 client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        """Initialize API client.

        Args:
            base_url: API root, e.g. ``http://localhost:8080/api/v1``
            session: Credentials, an anonymous session if None
            client: Preconfigured ``httpx.AsyncClient`` (tests pass a mock transport)
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.session = session or AuthSession()
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    def _headers(self, authenticated: bool) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if authenticated and self.session.access_token:
            headers["Authorization"] = f"Bearer {self.session.access_token}"
        return headers

    async def _send(self, method: str, path: str, json: Optional[Dict] = None,
                    params: Optional[Dict] = None, authenticated: bool = True) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            return await self.client.request(
                method, url, json=json, params=params, headers=self._headers(authenticated)
            )
        except httpx.TimeoutException:
            raise TransportError(f"{method} {path} timed out")
        except httpx.RequestError as e:
            raise TransportError(f"{method} {path} failed: {e}")

    async def request(self, method: str, path: str, json: Optional[Dict] = None,
                      params: Optional[Dict] = None, authenticated: bool = True,
                      expected: Optional[int] = None) -> Dict[str, Any]:
        """Make a request and unwrap the response envelope.

        Args:
            method: HTTP method
            path: Path relative to ``base_url``
            json: JSON body
            params: Query parameters
            authenticated: Attach the bearer token and allow a refresh on 401
            expected: Exact success status, any 2xx if None

        Returns:
            The decoded envelope

        Raises:
            AuthenticationError: On 401 after a failed refresh
            RemoteNotFoundError: On 404
            TransportError: On any other failure
        """
        if authenticated and not self.session.is_authenticated:
            raise AuthenticationError("Not signed in")

        response = await self._send(method, path, json=json, params=params,
                                    authenticated=authenticated)

        if response.status_code == 401 and authenticated and self.session.refresh_token:
            self.logger.debug("Access token rejected, refreshing")
            await self.refresh_tokens()
            response = await self._send(method, path, json=json, params=params)

        return self._unwrap(method, path, response, expected)

    def _unwrap(self, method: str, path: str, response: httpx.Response,
                expected: Optional[int]) -> Dict[str, Any]:
        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}
        message = body.get("message") or body.get("detail") or response.reason_phrase

        if response.status_code == 401:
            raise AuthenticationError(f"Unauthorized: {message}")
        if response.status_code == 403:
            raise TransportError(f"Forbidden: {message}", status_code=403)
        if response.status_code == 404:
            raise RemoteNotFoundError(f"Not found: {message}")
        if response.status_code >= 400:
            raise TransportError(
                f"{method} {path} failed with {response.status_code}: {message}",
                status_code=response.status_code,
            )
        if expected is not None and response.status_code != expected:
            raise TransportError(
                f"{method} {path} returned {response.status_code}, expected {expected}",
                status_code=response.status_code,
            )
        if body.get("success") is False:
            raise TransportError(message or f"{method} {path} was rejected",
                                 status_code=response.status_code)
        return body

    async def refresh_tokens(self) -> None:
        """Exchange the refresh token for a new pair.

        Raises:
            AuthenticationError: If the server rejects the refresh token;
                the stored session is cleared
        """
        response = await self._send(
            "POST", "/auth/token/refresh",
            json={"refresh_token": self.session.refresh_token},
            authenticated=False,
        )
        if response.status_code != 200:
            self.session.clear()
            raise AuthenticationError("Session expired, please sign in again")

        data = response.json().get("data") or {}
        self.session.update(data["access_token"], data.get("refresh_token"))
        self.logger.info("Refreshed access token")

    async def health(self) -> bool:
        """Probe the health endpoint.

        Returns:
            True if the API answered with a 2xx status
        """
        try:
            response = await self._send("GET", "/health", authenticated=False)
        except TransportError as e:
            self.logger.debug(f"Health check failed: {e}")
            return False
        return response.is_success


class TodoApiClient(ApiClient):
    """Remote todo operations used by the sync engine and online mode."""

    async def list_todos(self) -> List[TodoItem]:
        """Fetch every remote todo, walking all pages.

        Returns:
            Synced records carrying their server ids
        """
        todos: List[TodoItem] = []
        page = 1
        while True:
            body = await self.request("GET", "/todos", params={"page": page, "limit": PAGE_SIZE})
            todos.extend(TodoItem.from_wire(entry) for entry in body.get("data") or [])
            pagination = body.get("pagination") or {}
            if not pagination.get("has_next"):
                break
            page += 1
        self.logger.debug(f"Fetched {len(todos)} remote todos")
        return todos

    async def create_todo(self, title: str, priority: Priority = Priority.MEDIUM,
                          due_date: Optional[datetime] = None) -> TodoItem:
        payload = {
            "title": title,
            "priority": priority.value,
            "due_date": to_iso_string(due_date),
        }
        body = await self.request("POST", "/todos", json=payload, expected=201)
        return TodoItem.from_wire(body["data"])

    async def update_todo(self, item: TodoItem) -> TodoItem:
        """Push a record's user-visible fields to its server counterpart.

        Raises:
            ValueError: If the record has never been uploaded
        """
        if item.server_id is None:
            raise ValueError(f"Todo {item.id} has no server id")
        payload = {
            "title": item.title,
            "priority": item.priority.value,
            "is_completed": item.is_completed,
            "due_date": to_iso_string(item.due_date),
        }
        body = await self.request("PUT", f"/todos/{item.server_id}", json=payload)
        return TodoItem.from_wire(body["data"])

    async def delete_todo(self, server_id: str) -> None:
        await self.request("DELETE", f"/todos/{server_id}", expected=200)
