"""Credential and token status models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict


@dataclass
class Credential:
    """OAuth credential for one account, keyed by email."""

    email: str
    refresh_token: str
    access_token: str | None = None
    access_token_expiry: datetime | None = None
    project_id: str | None = None
    is_invalid: bool = False

    def has_fresh_access_token(self, margin_seconds: int = 60) -> bool:
        """Whether the access token is present and outlives the safety margin."""
        if not self.access_token or self.access_token_expiry is None:
            return False
        deadline = datetime.now(UTC) + timedelta(seconds=margin_seconds)
        return self.access_token_expiry > deadline

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "email": self.email,
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "accessTokenExpiry": (
                self.access_token_expiry.isoformat()
                if self.access_token_expiry
                else None
            ),
            "projectId": self.project_id,
            "isInvalid": self.is_invalid,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Credential":
        """Create from dictionary."""
        expiry = data.get("accessTokenExpiry")
        return cls(
            email=data["email"],
            refresh_token=data["refreshToken"],
            access_token=data.get("accessToken"),
            access_token_expiry=_parse_expiry(expiry) if expiry else None,
            project_id=data.get("projectId"),
            is_invalid=bool(data.get("isInvalid", False)),
        )


def _parse_expiry(value: Any) -> datetime:
    # Older state files stored epoch milliseconds
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class TokenState(StrEnum):
    OK = "ok"
    EXPIRED = "expired"
    INVALID_GRANT = "invalid_grant"
    REFRESH_FAILED = "refresh_failed"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class TokenStatus:
    """Result of obtaining a usable access token.

    `token` is set only for `TokenState.OK`; `error` carries the reason for
    `TokenState.REFRESH_FAILED`.
    """

    state: TokenState
    token: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, token: str) -> "TokenStatus":
        return cls(TokenState.OK, token=token)

    @classmethod
    def expired(cls) -> "TokenStatus":
        return cls(TokenState.EXPIRED)

    @classmethod
    def invalid_grant(cls) -> "TokenStatus":
        return cls(TokenState.INVALID_GRANT)

    @classmethod
    def refresh_failed(cls, reason: str) -> "TokenStatus":
        return cls(TokenState.REFRESH_FAILED, error=reason)

    @classmethod
    def unauthenticated(cls) -> "TokenStatus":
        return cls(TokenState.UNAUTHENTICATED)

    @property
    def is_ok(self) -> bool:
        return self.state is TokenState.OK

    def describe(self) -> str:
        """Short user-facing explanation of a non-ok status."""
        match self.state:
            case TokenState.OK:
                return "Authorized"
            case TokenState.EXPIRED:
                return "Access token expired and no refresh token is available"
            case TokenState.INVALID_GRANT:
                return "Authorization expired. Please sign in again."
            case TokenState.REFRESH_FAILED:
                return f"Token refresh failed: {self.error or 'unknown error'}"
            case TokenState.UNAUTHENTICATED:
                return "Not signed in"


@dataclass(frozen=True)
class AccountStatus:
    email: str
    is_invalid: bool


@dataclass(frozen=True)
class AuthorizationStatus:
    """Read-only authorization summary for the UI layer."""

    is_authorized: bool
    active_account: str | None
    accounts: list[AccountStatus] = field(default_factory=list)


@dataclass(frozen=True)
class LocalTokenInfo:
    """OAuth token fields recovered from the IDE's cached state."""

    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    expiry_seconds: int | None = None

    @property
    def expiry(self) -> datetime | None:
        if self.expiry_seconds is None:
            return None
        return datetime.fromtimestamp(self.expiry_seconds, tz=UTC)


class TokenResponse(BaseModel):
    """Token endpoint response for refresh and code-exchange grants."""

    model_config = ConfigDict(extra="ignore")

    access_token: str | None = None
    expires_in: int | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    scope: str | None = None
    id_token: str | None = None

    def expiry_from(self, now: datetime | None = None) -> datetime:
        """Absolute expiry, defaulting to one hour when the server omits it."""
        now = now or datetime.now(UTC)
        return now + timedelta(seconds=self.expires_in or 3600)


class UserInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str | None = None
    name: str | None = None
    id: str | None = None
