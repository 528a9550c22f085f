"""Durable account → credential map with a single active-account pointer.

Persistence is write-through: every mutation replaces the stored value and
is saved before the method returns.
"""

from typing import Any

from structlog import get_logger

from quota_cockpit.auth.models import AccountStatus, AuthorizationStatus, Credential
from quota_cockpit.exceptions import AccountNotFoundError
from quota_cockpit.storage.base import StateStorage


logger = get_logger(__name__)

CREDENTIALS_KEY = "oauthCredentials"
ACTIVE_ACCOUNT_KEY = "activeAccount"


class CredentialStore:
    """Stores OAuth credentials keyed by email.

    Keys are stored exactly as given. Use `find_account` for the
    case-insensitive lookup the UI needs.
    """

    def __init__(self, storage: StateStorage) -> None:
        self.storage = storage

    def _load_all(self) -> dict[str, dict[str, Any]]:
        data = self.storage.get(CREDENTIALS_KEY, {})
        if not isinstance(data, dict):
            logger.warning("credentials_slot_invalid", type=type(data).__name__)
            return {}
        return data

    def _save_all(self, data: dict[str, dict[str, Any]]) -> None:
        self.storage.set(CREDENTIALS_KEY, data)

    def save_credential(self, credential: Credential) -> None:
        """Insert or fully overwrite the credential for `credential.email`.

        The first saved credential becomes active when no account is active.
        """
        data = self._load_all()
        data[credential.email] = credential.to_dict()
        self._save_all(data)
        logger.debug("credential_saved", email=credential.email)

        if self.get_active_account() is None:
            self.storage.set(ACTIVE_ACCOUNT_KEY, credential.email)
            logger.info("active_account_set", email=credential.email)

    def get_credential(self, email: str | None = None) -> Credential | None:
        """Return the credential for `email`, or the active one when omitted."""
        if email is None:
            email = self.get_active_account()
            if email is None:
                return None

        raw = self._load_all().get(email)
        if raw is None:
            return None
        try:
            return Credential.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("credential_unreadable", email=email, error=str(e))
            return None

    def set_active_account(self, email: str) -> None:
        if email not in self._load_all():
            raise AccountNotFoundError(email)
        self.storage.set(ACTIVE_ACCOUNT_KEY, email)
        logger.info("active_account_set", email=email)

    def get_active_account(self) -> str | None:
        email = self.storage.get(ACTIVE_ACCOUNT_KEY)
        if not email or email not in self._load_all():
            return None
        return email

    def has_account(self, email: str) -> bool:
        return email in self._load_all()

    def find_account(self, email: str) -> str | None:
        """Return the stored key matching `email` case-insensitively."""
        wanted = email.strip().lower()
        for stored in self._load_all():
            if stored.lower() == wanted:
                return stored
        return None

    def get_all_credentials(self) -> dict[str, Credential]:
        credentials = {}
        for email, raw in self._load_all().items():
            try:
                credentials[email] = Credential.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("credential_unreadable", email=email, error=str(e))
        return credentials

    def _set_invalid(self, email: str, value: bool) -> bool:
        data = self._load_all()
        raw = data.get(email)
        if raw is None:
            return False
        raw["isInvalid"] = value
        self._save_all(data)
        return True

    def clear_account_invalid(self, email: str) -> None:
        """Reset the invalid flag after a successful re-authorization."""
        if self._set_invalid(email, False):
            logger.debug("account_invalid_cleared", email=email)

    def mark_account_invalid(self, email: str) -> None:
        """Flag the account after the identity provider rejected its token."""
        if self._set_invalid(email, True):
            logger.warning("account_marked_invalid", email=email)

    def delete_credential(self, email: str) -> bool:
        """Remove an account; clears the active pointer when it pointed here.

        Returns:
            True if the account existed
        """
        data = self._load_all()
        if email not in data:
            return False

        was_active = self.storage.get(ACTIVE_ACCOUNT_KEY) == email
        del data[email]
        self._save_all(data)
        if was_active:
            self.storage.delete(ACTIVE_ACCOUNT_KEY)
            logger.info("active_account_cleared", email=email)

        logger.info("credential_deleted", email=email)
        return True

    def has_valid_credential(self) -> bool:
        credential = self.get_credential()
        return (
            credential is not None
            and bool(credential.refresh_token)
            and not credential.is_invalid
        )

    def get_authorization_status(self) -> AuthorizationStatus:
        accounts = [
            AccountStatus(email=email, is_invalid=credential.is_invalid)
            for email, credential in self.get_all_credentials().items()
        ]
        return AuthorizationStatus(
            is_authorized=self.has_valid_credential(),
            active_account=self.get_active_account(),
            accounts=accounts,
        )

    def get_state(self, key: str, default: Any = None) -> Any:
        """Read a generic state slot from the same storage."""
        return self.storage.get(key, default)

    def save_state(self, key: str, value: Any) -> None:
        self.storage.set(key, value)

    def get_location(self) -> str:
        return self.storage.get_location()
