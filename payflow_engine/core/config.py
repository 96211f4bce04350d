"""
Application configuration.
"""

from enum import Enum
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CyclePolicy(str, Enum):
    """What the scheduler does with nodes trapped in a cycle."""

    SKIP = "skip"
    FAIL = "fail"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database Configuration
    database_url: str = "sqlite:///./payflow.db"
    database_echo: bool = False

    # Read cache for workflow content; invalidation is skipped when unset
    redis_url: Optional[str] = None
    workflow_cache_prefix: str = "workflow:"

    # Public base URL used to build webhook callback URLs
    app_url: str = "http://localhost:3000"

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8002

    # Logging
    log_level: str = "INFO"
    log_format: str = "simple"

    # Provider defaults, used when the user has no stored credential
    openai_api_key: Optional[str] = None
    resend_token: Optional[str] = None
    resend_email: Optional[str] = None
    telegram_bot_token: Optional[str] = None

    # Execution behaviour
    http_timeout: float = 30.0
    cycle_policy: CyclePolicy = CyclePolicy.SKIP
    max_concurrent_nodes: int = 1
    interpolation_preserve_types: bool = True
    live_node_updates: bool = True
    # Code nodes run user Python in-process; turn off where workflow authors are untrusted
    code_node_enabled: bool = True

    @field_validator("max_concurrent_nodes")
    @classmethod
    def validate_max_concurrent_nodes(cls, v):
        if v < 1:
            raise ValueError("max_concurrent_nodes must be at least 1")
        return v

    @field_validator("database_url")
    @classmethod
    def normalize_database_url(cls, v):
        # Hosted Postgres providers hand out postgres:// URLs, SQLAlchemy wants postgresql://
        if v.startswith("postgres://"):
            return "postgresql://" + v[len("postgres://"):]
        return v


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
