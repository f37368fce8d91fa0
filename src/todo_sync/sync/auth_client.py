"""Sign-in flows against the todo API."""

import logging
from typing import Any, Dict, Optional

from .remote import ApiClient


logger = logging.getLogger(__name__)


class AuthClient(ApiClient):
    """Obtains tokens and stores them in the shared ``AuthSession``."""

    def _store_tokens(self, body: Dict[str, Any]) -> Dict[str, Any]:
        data = body.get("data") or {}
        self.session.update(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            user=data.get("user") or {},
        )
        self.logger.info(f"Signed in as {self.session.user.get('email', 'unknown')}")
        return self.session.user

    async def register(self, email: str, password: str, name: str) -> Dict[str, Any]:
        """Create an email account and sign in.

        Returns:
            The user profile returned by the server
        """
        body = await self.request(
            "POST", "/auth/register",
            json={"email": email, "password": password, "name": name},
            authenticated=False, expected=201,
        )
        return self._store_tokens(body)

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        body = await self.request(
            "POST", "/auth/login",
            json={"email": email, "password": password},
            authenticated=False,
        )
        return self._store_tokens(body)

    async def apple_login_url(self) -> Dict[str, str]:
        """Ask the server for an Apple authorization URL.

        Returns:
            Dict with ``login_url`` and the CSRF ``state`` to echo back
        """
        body = await self.request("GET", "/auth/apple/login", authenticated=False)
        return body.get("data") or {}

    async def login_with_apple(self, code: str, state: str,
                               user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Finish Sign in with Apple using the authorization code."""
        payload: Dict[str, Any] = {"code": code, "state": state}
        if user:
            payload["user"] = user
        body = await self.request("POST", "/auth/apple/callback", json=payload,
                                  authenticated=False)
        return self._store_tokens(body)

    async def profile(self) -> Dict[str, Any]:
        body = await self.request("GET", "/auth/user/profile")
        return body.get("data") or {}

    def sign_out(self) -> None:
        self.session.clear()
