"""Configuration management for the todo-sync client."""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional
import yaml


logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "~/.todo-sync"
DEFAULT_API_URL = "http://localhost:8080/api/v1"


@dataclass
class ConfigModel:
    """Client configuration persisted as YAML in the data directory."""

    # Remote API
    api_base_url: str = DEFAULT_API_URL
    request_timeout: float = 30.0

    # Sync behaviour
    conflict_strategy: str = "merge_latest"  # local_wins, remote_wins, merge_latest
    mode: str = "offline"  # offline, online

    # File paths
    data_dir: str = DEFAULT_DATA_DIR

    log_level: str = "WARNING"

    def __post_init__(self):
        """Expand paths and make sure the data directory exists."""
        self.data_dir = os.path.expanduser(self.data_dir)
        self.api_base_url = self.api_base_url.rstrip("/")
        Path(self.data_dir).mkdir(parents=True, exist_ok=True)

    def to_yaml(self) -> str:
        """Serialize config to YAML."""
        data = {
            "api_base_url": self.api_base_url,
            "request_timeout": self.request_timeout,
            "conflict_strategy": self.conflict_strategy,
            "mode": self.mode,
            "data_dir": self.data_dir,
            "log_level": self.log_level,
        }
        return yaml.dump(data, default_flow_style=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "ConfigModel":
        """Deserialize config from YAML, ignoring unknown keys."""
        data = yaml.safe_load(yaml_str) or {}
        if not isinstance(data, dict):
            raise TypeError(f"Expected a mapping, got {type(data).__name__}")
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def get_config_path(self) -> Path:
        return Path(self.data_dir) / "config.yaml"

    def get_store_path(self) -> Path:
        return Path(self.data_dir) / "todos.json"

    def get_session_path(self) -> Path:
        return Path(self.data_dir) / "session.yaml"


def _apply_env_overrides(config: ConfigModel) -> ConfigModel:
    api_url = os.getenv("TODO_SYNC_API_URL")
    if api_url:
        config.api_base_url = api_url.rstrip("/")
    return config


def default_config_path() -> Path:
    data_dir = os.getenv("TODO_SYNC_DATA_DIR", DEFAULT_DATA_DIR)
    return Path(os.path.expanduser(data_dir)) / "config.yaml"


class Config:
    """Configuration manager for the client."""

    _instance: Optional[ConfigModel] = None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> ConfigModel:
        """Load configuration from file or create default."""
        if cls._instance is not None:
            return cls._instance

        if config_path is None:
            config_path = default_config_path()

        if config_path.exists():
            try:
                config = ConfigModel.from_yaml(config_path.read_text())
                logger.debug(f"Loaded configuration from {config_path}")
            except (OSError, yaml.YAMLError, TypeError) as e:
                logger.warning(f"Failed to load config from {config_path}: {e}; using defaults")
                config = ConfigModel(data_dir=str(config_path.parent))
        else:
            config = ConfigModel(data_dir=str(config_path.parent))
            cls.save(config, config_path)
            logger.info(f"Created default configuration at {config_path}")

        cls._instance = _apply_env_overrides(config)
        return cls._instance

    @classmethod
    def save(cls, config: ConfigModel, config_path: Optional[Path] = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = config.get_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            config_path.write_text(config.to_yaml())
            logger.debug(f"Configuration saved to {config_path}")
        except OSError as e:
            logger.error(f"Failed to save config to {config_path}: {e}")

    @classmethod
    def get(cls) -> ConfigModel:
        """Get the current configuration instance."""
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Forget the cached configuration (for testing)."""
        cls._instance = None


def get_config() -> ConfigModel:
    """Get the current configuration."""
    return Config.get()


def load_config(config_path: Optional[Path] = None) -> ConfigModel:
    """Load configuration from file."""
    return Config.load(config_path)


def save_config(config: ConfigModel, config_path: Optional[Path] = None) -> None:
    """Save configuration to file."""
    Config.save(config, config_path)
