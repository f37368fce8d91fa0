"""User and token models for the REST backend."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ...utils.datetime import to_iso_string


AUTH_PROVIDER_EMAIL = "email"
AUTH_PROVIDER_APPLE = "apple"


@dataclass
class User:
    """Account signing in with email/password or Apple."""

    id: str
    email: str
    name: str
    created_at: datetime
    updated_at: datetime
    password_hash: Optional[str] = None
    is_active: bool = True
    apple_id: Optional[str] = None
    is_private_email: bool = False
    auth_provider: str = AUTH_PROVIDER_EMAIL

    def to_dict(self, include_sensitive: bool = False) -> Dict[str, Any]:
        """Convert user to dictionary.

        Args:
            include_sensitive: Include password hash in output

        Returns:
            Dictionary representation of user
        """
        data = {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "is_active": self.is_active,
            "is_private_email": self.is_private_email,
            "auth_provider": self.auth_provider,
            "created_at": to_iso_string(self.created_at),
            "updated_at": to_iso_string(self.updated_at),
        }

        if include_sensitive:
            data["password_hash"] = self.password_hash
            data["apple_id"] = self.apple_id

        return data


@dataclass
class TokenPair:
    """Access and refresh token pair."""

    access_token: str
    refresh_token: str
    access_expires_in: int  # seconds
    refresh_expires_in: int  # seconds
    token_type: str = "Bearer"
