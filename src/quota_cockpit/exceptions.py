"""Consolidated exception hierarchy for quota-cockpit.

All exceptions use proper exception chaining with the `from` keyword.
Error types use StrEnum for type safety and autocompletion.
"""

from enum import StrEnum
from http import HTTPStatus
from typing import Any


class ErrorType(StrEnum):
    """Error type codes surfaced to the UI layer."""

    AUTHENTICATION = "authentication_error"
    REQUEST = "request_error"
    RATE_LIMIT = "rate_limit_error"
    TIMEOUT = "timeout_error"
    NOT_FOUND = "not_found_error"
    CONFLICT = "conflict_error"
    CORRUPT_STATE = "corrupt_state_error"
    INTERNAL = "internal_error"


# ============================================================================
# Base Exceptions
# ============================================================================


class CockpitError(Exception):
    """Base exception for all quota-cockpit errors.

    Carries an error type and structured details so callers can build a
    short user-facing message without inspecting the exception class.
    """

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType = ErrorType.INTERNAL,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.details = details or {}


# ============================================================================
# Cloud Code API Errors
# ============================================================================


class CloudCodeAuthError(CockpitError):
    """Authorization rejected by the remote service (401 or invalid_grant).

    Never retried. Callers are expected to prompt for re-authorization.
    """

    def __init__(
        self, message: str = "Authorization expired", status: int | None = None
    ) -> None:
        super().__init__(message, error_type=ErrorType.AUTHENTICATION)
        self.status = status


class CloudCodeRequestError(CockpitError):
    """Any other failed call: non-2xx status, parse failure, network, timeout."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        *,
        retryable: bool = False,
        timed_out: bool = False,
    ) -> None:
        if timed_out:
            error_type = ErrorType.TIMEOUT
        elif status == HTTPStatus.TOO_MANY_REQUESTS:
            error_type = ErrorType.RATE_LIMIT
        else:
            error_type = ErrorType.REQUEST
        super().__init__(message, error_type=error_type, details={"status": status})
        self.status = status
        self.retryable = retryable
        self.timed_out = timed_out


# ============================================================================
# Credentials & OAuth Errors
# ============================================================================


class CredentialsError(CockpitError):
    """Base credentials error."""

    def __init__(
        self, message: str, *, error_type: ErrorType = ErrorType.AUTHENTICATION
    ) -> None:
        super().__init__(message, error_type=error_type)


class AccountNotFoundError(CredentialsError):
    """No credential is stored for the requested account."""

    def __init__(self, email: str) -> None:
        super().__init__(
            f"Account '{email}' not found", error_type=ErrorType.NOT_FOUND
        )
        self.email = email


class AccountExistsError(CredentialsError):
    """Import refused because the account is already stored."""

    def __init__(self, email: str) -> None:
        super().__init__(
            f"Account '{email}' already exists", error_type=ErrorType.CONFLICT
        )
        self.email = email


class EmailResolutionError(CredentialsError):
    """The account email could not be determined for a new credential."""

    def __init__(self, message: str = "Unable to determine account email") -> None:
        super().__init__(message)


class OAuthError(CredentialsError):
    """Base OAuth error."""

    pass


class OAuthLoginError(OAuthError):
    """OAuth login failed."""

    pass


class OAuthCallbackError(OAuthError):
    """OAuth callback failed."""

    pass


class TokenExchangeError(OAuthError):
    """Token endpoint returned an error or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text

    @property
    def is_invalid_grant(self) -> bool:
        """Whether the identity provider rejected the refresh token itself."""
        text = (self.response_text or "").lower()
        return self.status_code == HTTPStatus.BAD_REQUEST and "invalid_grant" in text


# ============================================================================
# Local State Errors
# ============================================================================


class LocalStateError(CockpitError):
    """The IDE's persisted state could not be read or did not hold a token."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_type=ErrorType.CORRUPT_STATE)


class MalformedVarintError(LocalStateError):
    """Buffer ended before a varint's terminating byte."""

    def __init__(self, offset: int) -> None:
        super().__init__(f"Incomplete varint at offset {offset}")
        self.offset = offset


class UnknownWireTypeError(LocalStateError):
    """Field tag carries a wire type the decoder cannot skip."""

    def __init__(self, wire_type: int) -> None:
        super().__init__(f"Unknown wire type: {wire_type}")
        self.wire_type = wire_type


class StateStorageError(CockpitError):
    """The cockpit's own state file could not be read or written."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_type=ErrorType.CORRUPT_STATE)


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(CockpitError):
    """Raised when configuration loading or validation fails."""

    pass


_USER_MESSAGES: dict[ErrorType, str] = {
    ErrorType.AUTHENTICATION: "Authorization expired. Please sign in again.",
    ErrorType.RATE_LIMIT: "The service is rate limiting requests. Try again later.",
    ErrorType.TIMEOUT: "The service did not respond in time.",
    ErrorType.NOT_FOUND: "Account not found.",
    ErrorType.CONFLICT: "Account already exists.",
    ErrorType.CORRUPT_STATE: "Local sign-in data could not be read.",
}


def describe_error(error: BaseException) -> str:
    """Short human-readable message for an error, without internal detail."""
    if isinstance(error, CockpitError):
        if error.error_type is ErrorType.REQUEST:
            status = error.details.get("status")
            if status:
                return f"Request failed ({status})."
            return "Request failed. Check your network connection."
        return _USER_MESSAGES.get(error.error_type, error.message)
    return "Unexpected error."


__all__ = [
    # Enums
    "ErrorType",
    # Base
    "CockpitError",
    # Cloud Code
    "CloudCodeAuthError",
    "CloudCodeRequestError",
    # Credentials & OAuth
    "CredentialsError",
    "AccountNotFoundError",
    "AccountExistsError",
    "EmailResolutionError",
    "OAuthError",
    "OAuthLoginError",
    "OAuthCallbackError",
    "TokenExchangeError",
    # Local state
    "LocalStateError",
    "MalformedVarintError",
    "UnknownWireTypeError",
    "StateStorageError",
    # Configuration
    "ConfigurationError",
    # Helpers
    "describe_error",
]
