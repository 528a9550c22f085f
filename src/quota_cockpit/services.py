"""Service construction: one instance of each service, wired explicitly."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from quota_cockpit.auth.credential_store import CredentialStore
from quota_cockpit.auth.local_import import LocalCredentialImporter
from quota_cockpit.auth.token_service import OAuthTokenService
from quota_cockpit.cloudcode.client import CloudCodeClient, Sleep
from quota_cockpit.config.settings import Settings
from quota_cockpit.quota import QuotaService
from quota_cockpit.storage.base import StateStorage
from quota_cockpit.storage.json_file import JsonFileStateStorage
from quota_cockpit.trigger.service import TriggerService


@dataclass
class CockpitServices:
    settings: Settings
    store: CredentialStore
    token_service: OAuthTokenService
    client: CloudCodeClient
    trigger_service: TriggerService
    quota_service: QuotaService
    importer: LocalCredentialImporter


def build_services(
    settings: Settings,
    storage: StateStorage | None = None,
    http_client: httpx.AsyncClient | None = None,
    sleep: Sleep = asyncio.sleep,
) -> CockpitServices:
    """Wire every service around one storage backend and one HTTP client."""
    storage = storage or JsonFileStateStorage(settings.storage.state_file)
    store = CredentialStore(storage)
    token_service = OAuthTokenService(settings.oauth, store, http_client)
    client = CloudCodeClient(settings.cloudcode, http_client, sleep=sleep)
    return CockpitServices(
        settings=settings,
        store=store,
        token_service=token_service,
        client=client,
        trigger_service=TriggerService(settings.trigger, token_service, client, store),
        quota_service=QuotaService(token_service, client, store),
        importer=LocalCredentialImporter(
            token_service, store, settings.storage.ide_state_db
        ),
    )


@asynccontextmanager
async def open_services(
    settings: Settings, storage: StateStorage | None = None
) -> AsyncIterator[CockpitServices]:
    """Services sharing one pooled httpx client for the duration of the block."""
    async with httpx.AsyncClient(
        timeout=settings.cloudcode.request_timeout
    ) as http_client:
        yield build_services(settings, storage, http_client)
