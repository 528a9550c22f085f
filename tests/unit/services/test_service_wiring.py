"""Tests for service construction."""

import pytest

from quota_cockpit.services import build_services, open_services
from quota_cockpit.storage.memory import MemoryStateStorage


@pytest.mark.unit
def test_services_share_one_store(settings) -> None:
    services = build_services(settings)

    assert services.token_service.store is services.store
    assert services.trigger_service.store is services.store
    assert services.quota_service.store is services.store
    assert services.importer.store is services.store
    assert services.trigger_service.client is services.client
    assert services.store.get_location() == str(settings.storage.state_file)
    assert services.importer.db_path == settings.storage.ide_state_db


@pytest.mark.unit
def test_custom_storage(settings) -> None:
    services = build_services(settings, MemoryStateStorage())

    assert services.store.get_location() == "memory"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_open_services_shares_http_client(settings) -> None:
    async with open_services(settings) as services:
        assert services.client._shared_client is not None
        assert services.client._shared_client is services.token_service._shared_client
        assert not services.client._shared_client.is_closed

    assert services.client._shared_client.is_closed
