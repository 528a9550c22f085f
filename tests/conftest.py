"""Shared fixtures for quota-cockpit tests."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from quota_cockpit.auth.credential_store import CredentialStore
from quota_cockpit.auth.models import Credential
from quota_cockpit.config.settings import Settings, StorageSettings
from quota_cockpit.storage.memory import MemoryStateStorage


class FakeClock:
    """Manually advanced wall clock in epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated to a temporary state file."""
    return Settings(
        storage=StorageSettings(
            state_file=tmp_path / "state.json",
            ide_state_db=tmp_path / "state.vscdb",
        )
    )


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore(MemoryStateStorage())


@pytest.fixture
def make_credential() -> Callable[..., Credential]:
    def _make(
        email: str = "user@example.com",
        access_token: str | None = "ya29.valid",
        expires_in: timedelta = timedelta(hours=1),
        **kwargs,
    ) -> Credential:
        return Credential(
            email=email,
            refresh_token=kwargs.pop("refresh_token", "1//refresh"),
            access_token=access_token,
            access_token_expiry=datetime.now(UTC) + expires_in,
            **kwargs,
        )

    return _make
