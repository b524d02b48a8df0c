"""Configuration management for the discussion bridge."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, SecretStr, model_validator


class DiscordConfig(BaseModel):
    """Discord connection settings."""

    token: SecretStr = Field(..., description="Bot token")
    forum_channel_id: int = Field(..., description="Forum channel whose threads are mirrored")


class GitHubConfig(BaseModel):
    """GitHub repository and authentication settings.

    Either a personal access token or GitHub App credentials must be given.
    """

    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)
    discussion_category_id: str = Field(..., min_length=1)
    webhook_secret: SecretStr = Field(..., description="Shared secret for webhook signatures")

    token: Optional[SecretStr] = None
    app_id: Optional[str] = None
    private_key: Optional[SecretStr] = None
    installation_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_credentials(self) -> "GitHubConfig":
        if self.token is not None:
            return self
        if self.app_id and self.private_key and self.installation_id:
            return self
        raise ValueError(
            "GitHub credentials missing: set 'token' or 'app_id', 'private_key' and 'installation_id'"
        )

    @property
    def uses_app_auth(self) -> bool:
        return self.token is None


class SyncConfig(BaseModel):
    """Timing windows for the sync core. All values are tunable."""

    grace_period_seconds: float = Field(default=5.0, ge=0)
    thread_lock_staleness_seconds: float = Field(default=60.0, gt=0)
    message_seen_window_seconds: float = Field(default=30 * 60, gt=0)
    sent_downstream_window_seconds: float = Field(default=6 * 60 * 60, gt=0)
    discussion_processing_seconds: float = Field(default=10.0, gt=0)
    similar_thread_window_seconds: float = Field(default=5 * 60, gt=0)
    comment_seen_window_seconds: float = Field(default=60 * 60, gt=0)
    comment_seen_max_entries: int = Field(default=1000, ge=1)
    comment_seen_prune_count: int = Field(default=100, ge=1)


class ServerConfig(BaseModel):
    """Webhook server settings."""

    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=1, le=65535)


class StorageConfig(BaseModel):
    """Database settings."""

    database_path: str = Field(
        default="~/.discussion-bridge/bridge.db", description="Path to SQLite database file"
    )


class Config(BaseModel):
    """Root configuration model."""

    discord: DiscordConfig
    github: GitHubConfig
    sync: SyncConfig = SyncConfig()
    server: ServerConfig = ServerConfig()
    storage: StorageConfig = StorageConfig()


def expand_env_vars(obj):
    """Replace ``${VAR_NAME}`` string values with the environment variable's value."""
    if isinstance(obj, dict):
        return {k: expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [expand_env_vars(item) for item in obj]
    elif isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
        env_var = obj[2:-1]
        value = os.getenv(env_var)
        if value is None:
            raise ValueError(f"Environment variable '{env_var}' is not set")
        return value
    return obj


def load_config(config_path: str | Path = "config.yaml") -> Config:
    """Load and validate configuration from YAML file.

    Supports ${VAR_NAME} syntax for environment variable expansion.

    Args:
        config_path: Path to the configuration file.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValidationError: If config is invalid or a required value is missing.
        ValueError: If referenced environment variable is not set.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}\n"
            "Copy config.example.yaml to config.yaml and fill in your values."
        )

    with path.open() as f:
        raw_config = yaml.safe_load(f) or {}

    raw_config = expand_env_vars(raw_config)

    return Config(**raw_config)
