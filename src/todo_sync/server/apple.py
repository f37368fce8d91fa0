"""Sign in with Apple: authorize URL, client secret and code exchange."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
import jwt

from .settings import Settings
from ..utils.datetime import now_utc


logger = logging.getLogger(__name__)

APPLE_AUTHORIZE_URL = "https://appleid.apple.com/auth/authorize"
APPLE_TOKEN_URL = "https://appleid.apple.com/auth/token"
APPLE_AUDIENCE = "https://appleid.apple.com"


class AppleAuthError(Exception):
    """Apple rejected the authorization or is not configured."""
    pass


@dataclass
class AppleUserInfo:
    """Identity claims taken from Apple's ID token."""
    sub: str
    email: str = ""
    email_verified: bool = False
    is_private_email: bool = False


def _as_bool(value: Any) -> bool:
    # Apple sends these claims either as booleans or as "true"/"false".
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


class AppleSignIn:
    """Talks to Apple's OAuth endpoints on behalf of the backend."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.client = client
        self.logger = logging.getLogger(__name__)

    def login_url(self, state: str) -> str:
        params = {
            "client_id": self.settings.apple_client_id or "",
            "redirect_uri": self.settings.apple_redirect_url,
            "response_type": "code",
            "scope": "name email",
            "response_mode": "form_post",
            "state": state,
        }
        return f"{APPLE_AUTHORIZE_URL}?{urlencode(params)}"

    def client_secret(self) -> str:
        """Sign the short-lived ES256 client secret Apple expects.

        Raises:
            AppleAuthError: If Apple settings or the private key are missing
        """
        if not self.settings.apple_configured:
            raise AppleAuthError(
                "Apple OAuth is not configured: set APPLE_KEY_PATH, APPLE_TEAM_ID, "
                "APPLE_CLIENT_ID and APPLE_KEY_ID"
            )
        try:
            private_key = Path(self.settings.apple_key_path).read_text()
        except OSError as e:
            raise AppleAuthError(f"Failed to read Apple private key: {e}") from e

        now = now_utc()
        claims = {
            "iss": self.settings.apple_team_id,
            "iat": now,
            "exp": now + timedelta(hours=1),
            "aud": APPLE_AUDIENCE,
            "sub": self.settings.apple_client_id,
        }
        try:
            return jwt.encode(claims, private_key, algorithm="ES256",
                              headers={"kid": self.settings.apple_key_id})
        except (ValueError, jwt.PyJWTError) as e:
            raise AppleAuthError(f"Failed to sign Apple client secret: {e}") from e

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Trade an authorization code for Apple's token response."""
        data = {
            "client_id": self.settings.apple_client_id,
            "client_secret": self.client_secret(),
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.settings.apple_redirect_url,
        }
        client = self.client or httpx.AsyncClient(timeout=30.0)
        try:
            response = await client.post(APPLE_TOKEN_URL, data=data)
        except httpx.TimeoutException:
            raise AppleAuthError("Apple token exchange timed out")
        except httpx.RequestError as e:
            raise AppleAuthError(f"Failed to exchange code for token: {e}")
        finally:
            if self.client is None:
                await client.aclose()

        if response.status_code != 200:
            raise AppleAuthError(
                f"Apple token exchange failed with status {response.status_code}: {response.text}"
            )
        return response.json()

    @staticmethod
    def parse_id_token(id_token: str) -> AppleUserInfo:
        """Extract identity claims from Apple's ID token.

        The signature is not verified against Apple's published keys; the
        token arrives directly from Apple's token endpoint over TLS.
        """
        try:
            claims = jwt.decode(id_token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            raise AppleAuthError(f"Failed to parse ID token: {e}") from e

        sub = claims.get("sub")
        if not isinstance(sub, str) or not sub:
            raise AppleAuthError("Missing 'sub' claim in ID token")

        return AppleUserInfo(
            sub=sub,
            email=claims.get("email") or "",
            email_verified=_as_bool(claims.get("email_verified", False)),
            is_private_email=_as_bool(claims.get("is_private_email", False)),
        )

    async def validate_code(self, code: str) -> AppleUserInfo:
        token_response = await self.exchange_code(code)
        id_token = token_response.get("id_token")
        if not id_token:
            raise AppleAuthError("Apple token response has no id_token")
        info = self.parse_id_token(id_token)
        self.logger.info(f"Validated Apple authorization for {info.sub}")
        return info
