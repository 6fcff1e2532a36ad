"""
jules-mcp configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables (and a local .env file).
"""

import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jules_mcp.credentials import ConfigFileStore

DEFAULT_BASE_URL = "https://jules.googleapis.com"
API_VERSION_SUFFIX = "/v1alpha"
DEFAULT_POLL_INTERVAL_MS = 5000
DEFAULT_REQUEST_TIMEOUT_MS = 30_000


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for jules-mcp logs.

    - Uses $XDG_STATE_HOME/jules-mcp if XDG_STATE_HOME is set
    - Falls back to $HOME/.local/state/jules-mcp if not set
    - Returns relative path ./logs if HOME not available (dev/testing)

    Returns:
        str: Path to state/logs directory
    """
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    if xdg_state_home:
        return str(Path(xdg_state_home) / "jules-mcp" / "logs")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "state" / "jules-mcp" / "logs")

    return "./logs"


def normalize_base_url(raw: Optional[str]) -> str:
    """Strip trailing slashes and make sure the URL ends in the API version."""
    trimmed = (raw or DEFAULT_BASE_URL).rstrip("/")
    if trimmed.endswith(API_VERSION_SUFFIX):
        return trimmed
    return f"{trimmed}{API_VERSION_SUFFIX}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Jules API
    jules_api_key: str = ""
    jules_api_base_url: str = DEFAULT_BASE_URL
    jules_poll_interval: Optional[int] = None  # ms between polls
    jules_request_timeout_ms: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("jules_api_timeout", "jules_request_timeout_ms"),
    )
    jules_max_poll_duration: Optional[int] = None  # ms, overrides waiter budgets

    # Rate limit backoff
    jules_rate_limit_max_retry_ms: Optional[int] = None
    jules_rate_limit_base_delay_ms: Optional[int] = None
    jules_rate_limit_max_delay_ms: Optional[int] = None

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # Defaults to XDG state dir if empty
    log_format: str = "standard"  # standard or json
    log_file_enabled: bool = False
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5

    @field_validator("jules_poll_interval", "jules_max_poll_duration", mode="before")
    @classmethod
    def _lenient_ms(cls, value: Any) -> Optional[int]:
        """Unparseable or non-finite durations fall back to the defaults."""
        if value is None or value == "":
            return None
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(parsed):
            return None
        return int(parsed)

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())

    @property
    def api_base_url(self) -> str:
        return normalize_base_url(self.jules_api_base_url)

    @property
    def poll_interval_ms(self) -> int:
        return self.jules_poll_interval or DEFAULT_POLL_INTERVAL_MS

    @property
    def request_timeout_ms(self) -> int:
        return self.jules_request_timeout_ms or DEFAULT_REQUEST_TIMEOUT_MS


def resolve_api_key(
    settings: Optional[Settings] = None,
    store: Optional[ConfigFileStore] = None,
) -> Optional[str]:
    """
    Find the API key: environment first, then ~/.jules/config.json.

    Returns:
        The key, or None when neither source has one
    """
    settings = settings or Settings()
    if settings.jules_api_key:
        return settings.jules_api_key
    store = store or ConfigFileStore()
    return store.get_api_key()


@dataclass(frozen=True)
class ClientConfig:
    """Immutable configuration for JulesClient, built once at startup."""

    api_key: Optional[str]
    base_url: str = normalize_base_url(DEFAULT_BASE_URL)
    timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    rate_limit_max_retry_ms: Optional[int] = None
    rate_limit_base_delay_ms: Optional[int] = None
    rate_limit_max_delay_ms: Optional[int] = None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[ConfigFileStore] = None,
    ) -> "ClientConfig":
        """
        Build a client configuration from settings and the key file.

        Args:
            settings: Loaded settings (read from the environment if omitted)
            store: Key file store used when the env has no API key

        Returns:
            ClientConfig instance
        """
        settings = settings or Settings()
        return cls(
            api_key=resolve_api_key(settings, store),
            base_url=settings.api_base_url,
            timeout_ms=settings.request_timeout_ms,
            poll_interval_ms=settings.poll_interval_ms,
            rate_limit_max_retry_ms=settings.jules_rate_limit_max_retry_ms,
            rate_limit_base_delay_ms=settings.jules_rate_limit_base_delay_ms,
            rate_limit_max_delay_ms=settings.jules_rate_limit_max_delay_ms,
        )
