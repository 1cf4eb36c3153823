from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PROJECT_KEY = "SMS"


def _split_csv(raw: str) -> List[str]:
    return [v.strip() for v in raw.split(",") if v.strip()]


class Settings(BaseSettings):
    """
    PUBLIC_INTERFACE
    Server configuration loaded from environment variables using pydantic-settings.
    """

    # JIRA config
    JIRA_BASE_URL: str = Field(..., description="Base URL of the JIRA instance, e.g., https://yoursite.atlassian.net")
    JIRA_USERNAME: str = Field(..., description="JIRA account used for basic auth")
    JIRA_API_TOKEN: str = Field(..., description="JIRA API token")
    JIRA_PROJECT_KEY: str = Field(default=DEFAULT_PROJECT_KEY, description="Project used when a request names none")

    # JIRA client behavior
    JIRA_TIMEOUT_SECONDS: float = Field(default=15.0, description="HTTP client timeout for JIRA API calls (seconds)")
    JIRA_RETRY_MAX_ATTEMPTS: int = Field(default=3, description="Max retry attempts for transient JIRA errors (including 429/5xx)")
    JIRA_RETRY_BACKOFF_BASE: float = Field(default=0.5, description="Base backoff in seconds for exponential retry")

    # Server config
    LOG_LEVEL: str = Field(default="INFO", description="Logging level, e.g., DEBUG, INFO, WARNING")
    MCP_HOST: str = Field(default="0.0.0.0", description="Bind host for the HTTP transport")
    MCP_PORT: int = Field(default=3001, description="Bind port for the HTTP transport")
    MCP_API_KEYS: str = Field(default="", description="Comma-separated list of accepted API keys for the HTTP transport")
    MCP_CORS_ORIGINS: str = Field(default="*", description="Comma-separated list of allowed CORS origins")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("JIRA_BASE_URL")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("JIRA_BASE_URL must not be empty")
        if not value.startswith(("http://", "https://")):
            value = "https://" + value
        return value.rstrip("/")

    @field_validator("JIRA_USERNAME", "JIRA_API_TOKEN", "JIRA_PROJECT_KEY")
    @classmethod
    def _require_non_empty(cls, value: str, info) -> str:
        value = value.strip()
        if not value:
            raise ValueError(f"{info.field_name} must not be empty")
        return value

    @property
    def api_keys(self) -> List[str]:
        """Accepted API keys parsed from MCP_API_KEYS."""
        return _split_csv(self.MCP_API_KEYS)

    @property
    def cors_origins(self) -> List[str]:
        """Allowed CORS origins parsed from MCP_CORS_ORIGINS."""
        return _split_csv(self.MCP_CORS_ORIGINS) or ["*"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    PUBLIC_INTERFACE
    Returns a singleton settings instance loaded from environment variables.
    """
    return Settings()
