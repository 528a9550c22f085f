"""Trigger service configuration settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TriggerSettings(BaseSettings):
    """
    Configuration for wake-up triggers.

    Settings can be configured via environment variables with TRIGGER__ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="TRIGGER__",
        case_sensitive=False,
        extra="ignore",
    )

    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum wake-up requests in flight at once",
    )

    reset_cooldown_seconds: float = Field(
        default=600.0,
        ge=0,
        description="Minimum seconds between two quota-reset wake-ups of one model",
    )

    history_max_records: int = Field(
        default=40,
        ge=1,
        description="Trigger history entries kept",
    )

    history_max_days: int = Field(
        default=7,
        ge=1,
        description="Trigger history entries older than this are dropped",
    )

    default_models: list[str] = Field(
        default_factory=lambda: ["gemini-3-flash"],
        description="Models woken up when a trigger names none",
    )

    default_prompt: str = Field(
        default="hi",
        min_length=1,
        description="Prompt sent when a trigger has no custom prompt",
    )

    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for each wake-up request",
    )
