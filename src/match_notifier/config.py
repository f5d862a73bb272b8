"""Service configuration with environment variable loading."""

import functools
from enum import Enum
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetentionMode(str, Enum):
    """What happens to captured screenshots once a job finishes."""

    KEEP_ALL = "keep_all"
    KEEP_LATEST = "keep_latest"
    DELETE_AFTER_DISPATCH = "delete_after_dispatch"


class Settings(BaseSettings):
    """Match notifier settings.

    All settings can be overridden via environment variables with the
    MATCH_NOTIFIER_ prefix.
    Example: MATCH_NOTIFIER_WEBHOOK_URL, MATCH_NOTIFIER_LOG_LEVEL
    """

    model_config = SettingsConfigDict(
        env_prefix="MATCH_NOTIFIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Outbound webhook
    webhook_url: str | None = None
    webhook_timeout: float = 30.0

    # Data store / change stream
    supabase_url: str | None = None
    supabase_key: str | None = None
    watch_schema: str = "public"
    watch_table: str = "test"
    watch_event: str = "INSERT"
    channel_name: str = "schema-db-changes"

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = ["http://localhost:3001", "https://rabbitgang.vercel.app"]
    static_dir: Path = Path("public")
    max_upload_bytes: int = 8 * 1024 * 1024

    # Capture
    report_url: str = "http://localhost:8080/main"
    viewport_width: int = 850
    viewport_height: int = 900
    ready_selector: str = ".match_history"
    navigation_timeout: float = 60.0  # seconds
    ready_timeout: float = 10.0  # seconds
    image_timeout: float = 10.0  # seconds
    screenshot_dir: Path = Path("screenshots")

    # Retention
    retention_mode: RetentionMode = RetentionMode.KEEP_LATEST
    retention_count: int = 20

    # Captions
    caption_suffix: str = "최신 전적 업데이트!"
    direct_filename: str = "capture.png"

    # Report page
    report_game_id: int = 7710221890

    # Logging
    log_level: str = "INFO"

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: str | None) -> str | None:
        """Ensure the webhook is an http(s) URL; blank means unset."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("webhook_url must start with http:// or https://")
        return v

    @field_validator("navigation_timeout", "ready_timeout", "image_timeout", "webhook_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Ensure timeouts are positive."""
        if v <= 0:
            raise ValueError("timeouts must be greater than zero")
        return v

    @field_validator("viewport_width", "viewport_height")
    @classmethod
    def validate_viewport(cls, v: int) -> int:
        """Ensure viewport dimensions are usable."""
        if v < 1:
            raise ValueError("viewport dimensions must be at least 1 pixel")
        return v

    @field_validator("retention_count")
    @classmethod
    def validate_retention_count(cls, v: int) -> int:
        """Ensure keep_latest retains at least one file."""
        if v < 1:
            raise ValueError("retention_count must be at least 1")
        return v

    @field_validator("watch_event")
    @classmethod
    def validate_watch_event(cls, v: str) -> str:
        """Ensure the watched event type is one the change stream emits."""
        valid_events = {"INSERT", "UPDATE", "DELETE", "*"}
        if v.upper() not in valid_events:
            raise ValueError(f"watch_event must be one of {valid_events}")
        return v.upper()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @property
    def supabase_configured(self) -> bool:
        """Whether data store credentials are present."""
        return bool(self.supabase_url and self.supabase_key)


@functools.lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded once and cached for the lifetime of the process.
    Use this function for dependency injection in FastAPI.
    """
    return Settings()
