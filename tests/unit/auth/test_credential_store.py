"""Tests for the credential store and its active-account pointer."""

import pytest

from quota_cockpit.auth.credential_store import (
    ACTIVE_ACCOUNT_KEY,
    CREDENTIALS_KEY,
    CredentialStore,
)
from quota_cockpit.exceptions import AccountNotFoundError
from quota_cockpit.storage.json_file import JsonFileStateStorage
from quota_cockpit.storage.memory import MemoryStateStorage


@pytest.mark.unit
class TestActiveAccount:
    def test_first_credential_becomes_active(self, store, make_credential) -> None:
        store.save_credential(make_credential("a@example.com"))
        store.save_credential(make_credential("b@example.com"))

        assert store.get_active_account() == "a@example.com"
        assert store.get_credential().email == "a@example.com"

    def test_set_active_account(self, store, make_credential) -> None:
        store.save_credential(make_credential("a@example.com"))
        store.save_credential(make_credential("b@example.com"))

        store.set_active_account("b@example.com")

        assert store.get_active_account() == "b@example.com"

    def test_set_unknown_account_raises(self, store, make_credential) -> None:
        store.save_credential(make_credential("a@example.com"))

        with pytest.raises(AccountNotFoundError):
            store.set_active_account("missing@example.com")
        assert store.get_active_account() == "a@example.com"

    def test_dangling_pointer_reads_as_none(self, make_credential) -> None:
        storage = MemoryStateStorage({ACTIVE_ACCOUNT_KEY: "gone@example.com"})
        store = CredentialStore(storage)

        assert store.get_active_account() is None
        assert store.get_credential() is None

    def test_deleting_active_account_clears_pointer(
        self, store, make_credential
    ) -> None:
        store.save_credential(make_credential("a@example.com"))
        store.save_credential(make_credential("b@example.com"))

        assert store.delete_credential("a@example.com") is True
        assert store.get_active_account() is None
        assert store.has_account("b@example.com")

    def test_deleting_other_account_keeps_pointer(
        self, store, make_credential
    ) -> None:
        store.save_credential(make_credential("a@example.com"))
        store.save_credential(make_credential("b@example.com"))

        store.delete_credential("b@example.com")

        assert store.get_active_account() == "a@example.com"

    def test_delete_missing_account(self, store) -> None:
        assert store.delete_credential("nobody@example.com") is False


@pytest.mark.unit
class TestCredentials:
    def test_save_overwrites(self, store, make_credential) -> None:
        store.save_credential(make_credential(access_token="old"))
        store.save_credential(make_credential(access_token="new", project_id="p1"))

        credential = store.get_credential("user@example.com")
        assert credential.access_token == "new"
        assert credential.project_id == "p1"
        assert len(store.get_all_credentials()) == 1

    def test_find_account_is_case_insensitive(self, store, make_credential) -> None:
        store.save_credential(make_credential("User@Example.com"))

        assert store.find_account(" user@example.COM ") == "User@Example.com"
        assert store.find_account("other@example.com") is None
        assert not store.has_account("user@example.com")

    def test_invalid_flag(self, store, make_credential) -> None:
        store.save_credential(make_credential())

        store.mark_account_invalid("user@example.com")
        assert store.get_credential().is_invalid
        assert not store.has_valid_credential()

        store.clear_account_invalid("user@example.com")
        assert not store.get_credential().is_invalid
        assert store.has_valid_credential()

    def test_unreadable_entry_is_skipped(self, make_credential) -> None:
        storage = MemoryStateStorage({CREDENTIALS_KEY: {"bad@example.com": {}}})
        store = CredentialStore(storage)
        store.save_credential(make_credential())

        assert list(store.get_all_credentials()) == ["user@example.com"]
        assert store.get_credential("bad@example.com") is None

    def test_authorization_status(self, store, make_credential) -> None:
        store.save_credential(make_credential("a@example.com"))
        store.save_credential(make_credential("b@example.com"))
        store.mark_account_invalid("b@example.com")

        status = store.get_authorization_status()

        assert status.is_authorized
        assert status.active_account == "a@example.com"
        assert {(a.email, a.is_invalid) for a in status.accounts} == {
            ("a@example.com", False),
            ("b@example.com", True),
        }

    def test_unauthorized_when_empty(self, store) -> None:
        status = store.get_authorization_status()

        assert not status.is_authorized
        assert status.active_account is None
        assert status.accounts == []

    def test_persists_to_json_file(self, tmp_path, make_credential) -> None:
        path = tmp_path / "state.json"
        CredentialStore(JsonFileStateStorage(path)).save_credential(
            make_credential(project_id="projects/p")
        )

        reloaded = CredentialStore(JsonFileStateStorage(path))
        credential = reloaded.get_credential()
        assert credential.email == "user@example.com"
        assert credential.project_id == "projects/p"
        assert credential.access_token_expiry.tzinfo is not None

    def test_generic_state_slots(self, store) -> None:
        store.save_state("lastResetRemaining", {"m": 100})

        assert store.get_state("lastResetRemaining") == {"m": 100}
        assert store.get_state("missing", []) == []
