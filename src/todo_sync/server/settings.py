"""Server settings read from the environment."""

import os
import secrets
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


logger = logging.getLogger(__name__)


def _split(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass
class Settings:
    """Runtime configuration for the REST backend."""

    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 8080
    database_path: Path = Path("~/.todo-sync/server.db")
    jwt_secret: str = field(default_factory=lambda: secrets.token_urlsafe(64))
    log_level: str = "INFO"
    cors_allow_origins: List[str] = field(default_factory=lambda: [
        "http://localhost:3000",
        "http://localhost:8080",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8080",
    ])

    # Sign in with Apple
    apple_team_id: Optional[str] = None
    apple_client_id: Optional[str] = None
    apple_key_id: Optional[str] = None
    apple_key_path: Optional[str] = None
    apple_redirect_url: str = "http://localhost:8080/api/v1/auth/apple/callback"

    def __post_init__(self):
        self.database_path = Path(os.path.expanduser(str(self.database_path)))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def apple_configured(self) -> bool:
        return all([self.apple_team_id, self.apple_client_id, self.apple_key_id, self.apple_key_path])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        settings = cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "8080")),
            database_path=Path(os.getenv("DATABASE_PATH", "~/.todo-sync/server.db")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            apple_team_id=os.getenv("APPLE_TEAM_ID"),
            apple_client_id=os.getenv("APPLE_CLIENT_ID"),
            apple_key_id=os.getenv("APPLE_KEY_ID"),
            apple_key_path=os.getenv("APPLE_KEY_PATH"),
            apple_redirect_url=os.getenv(
                "APPLE_REDIRECT_URL", "http://localhost:8080/api/v1/auth/apple/callback"
            ),
        )
        jwt_secret = os.getenv("JWT_SECRET")
        if jwt_secret:
            settings.jwt_secret = jwt_secret
        elif settings.is_production:
            raise ValueError("JWT_SECRET must be set in production")
        else:
            logger.warning("JWT_SECRET not set, using a random secret; tokens will not survive restarts")

        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            settings.cors_allow_origins = _split(origins)
        return settings


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings instance."""
    global _settings

    if _settings is None:
        _settings = Settings.from_env()

    return _settings


def configure_settings(settings: Settings) -> Settings:
    """Install explicit settings (used by tests and the CLI)."""
    global _settings
    _settings = settings
    return settings


def reset_settings():
    """Reset global settings (for testing)."""
    global _settings
    _settings = None
