"""OAuth configuration settings for the identity provider."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/cloud-platform",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


class OAuthSettings(BaseSettings):
    """Identity-provider endpoints and client registration.

    Settings can be configured via environment variables with OAUTH__ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH__",
        case_sensitive=False,
        extra="ignore",
    )

    authorize_url: str = Field(
        default="https://accounts.google.com/o/oauth2/v2/auth",
        description="OAuth authorization endpoint",
    )

    token_url: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="OAuth token endpoint (code exchange and refresh)",
    )

    userinfo_url: str = Field(
        default="https://www.googleapis.com/oauth2/v2/userinfo",
        description="Endpoint used to resolve the account email",
    )

    client_id: str | None = Field(
        default=None,
        description="OAuth client ID registered for the IDE",
    )

    client_secret: str | None = Field(
        default=None,
        description="OAuth client secret registered for the IDE",
    )

    scopes: list[str] = Field(
        default_factory=lambda: DEFAULT_SCOPES.copy(),
        description="Scopes requested during login",
    )

    callback_port: int = Field(
        default=8085,
        ge=1024,
        le=65535,
        description="Local port for the login callback server",
    )

    callback_timeout: float = Field(
        default=300.0,
        ge=10.0,
        description="Seconds to wait for the browser login to complete",
    )

    request_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Timeout in seconds for token and userinfo requests",
    )

    refresh_margin_seconds: int = Field(
        default=60,
        ge=0,
        description="Refresh access tokens this many seconds before they expire",
    )

    @property
    def redirect_uri(self) -> str:
        """Redirect URI served by the local callback server."""
        return f"http://localhost:{self.callback_port}/oauth2callback"
