"""Persisted API credentials for the client."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


logger = logging.getLogger(__name__)


@dataclass
class AuthSession:
    """Access/refresh token pair and the signed-in user's profile.

    Persisted as YAML next to the client config with owner-only permissions
    when a ``path`` is given; purely in-memory otherwise.
    """

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user: Dict[str, Any] = field(default_factory=dict)
    path: Optional[Path] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def update(self, access_token: str, refresh_token: Optional[str] = None,
               user: Optional[Dict[str, Any]] = None) -> None:
        """Store a fresh token pair and persist it."""
        self.access_token = access_token
        if refresh_token:
            self.refresh_token = refresh_token
        if user is not None:
            self.user = user
        self.save()

    def clear(self) -> None:
        """Forget all credentials."""
        self.access_token = None
        self.refresh_token = None
        self.user = {}
        if self.path and self.path.exists():
            self.path.unlink()
        logger.info("Cleared stored session")

    def save(self) -> None:
        if self.path is None:
            return
        data = {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "user": self.user,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(yaml.safe_dump(data, default_flow_style=False))
        os.chmod(self.path, 0o600)

    @classmethod
    def load(cls, path: Path) -> "AuthSession":
        """Load a session file, returning an empty session if absent or unreadable."""
        path = Path(path)
        if not path.exists():
            return cls(path=path)
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Ignoring unreadable session file {path}: {e}")
            return cls(path=path)
        return cls(
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            user=data.get("user") or {},
            path=path,
        )
