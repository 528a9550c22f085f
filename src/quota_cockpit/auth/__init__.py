"""Credentials, OAuth tokens and local sign-in import."""

from .credential_store import CredentialStore
from .models import (
    AccountStatus,
    AuthorizationStatus,
    Credential,
    LocalTokenInfo,
    TokenState,
    TokenStatus,
)
from .token_service import OAuthTokenService


__all__ = [
    "AccountStatus",
    "AuthorizationStatus",
    "Credential",
    "CredentialStore",
    "LocalTokenInfo",
    "OAuthTokenService",
    "TokenState",
    "TokenStatus",
]
