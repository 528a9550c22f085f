"""Cloud Code API client configuration settings."""

import platform
import sys

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from quota_cockpit._version import __version__


PRODUCTION_BASE_URL = "https://cloudcode-pa.googleapis.com"
SANDBOX_BASE_URL = "https://daily-cloudcode-pa.sandbox.googleapis.com"


def default_user_agent() -> str:
    """User agent in the form `antigravity/<version> <platform>/<arch>`."""
    return f"antigravity/{__version__} {sys.platform}/{platform.machine().lower()}"


class CloudCodeSettings(BaseSettings):
    """
    Configuration for the Cloud Code remote API client.

    Controls endpoints, retry budget and backoff. Settings can be configured
    via environment variables with CLOUDCODE__ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="CLOUDCODE__",
        case_sensitive=False,
        extra="ignore",
    )

    production_url: str = Field(
        default=PRODUCTION_BASE_URL,
        description="Primary Cloud Code base URL",
    )

    sandbox_url: str = Field(
        default=SANDBOX_BASE_URL,
        description="Fallback (sandbox) Cloud Code base URL",
    )

    override_url: str | None = Field(
        default=None,
        description="When set, every call goes to this base URL only",
    )

    user_agent: str = Field(
        default_factory=default_user_agent,
        description="User-Agent header sent on every call",
    )

    request_timeout: float = Field(
        default=30.0,
        gt=0,
        le=600.0,
        description="Default per-call timeout in seconds",
    )

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Retry rounds per logical call (each round tries every base URL)",
    )

    backoff_base: float = Field(
        default=0.5,
        ge=0,
        description="Delay in seconds before the second attempt",
    )

    backoff_cap: float = Field(
        default=4.0,
        ge=0,
        description="Upper bound for any backoff delay in seconds",
    )

    backoff_jitter: float = Field(
        default=0.1,
        ge=0,
        description="Maximum random jitter added to each delay in seconds",
    )

    onboard_attempts: int = Field(
        default=5,
        ge=1,
        description="Polls of the onboarding operation before giving up",
    )

    onboard_delay: float = Field(
        default=2.0,
        ge=0,
        description="Seconds between onboarding polls",
    )
