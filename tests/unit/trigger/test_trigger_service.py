"""Tests for wake-up triggers and quota-reset detection."""

import asyncio
import re
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from quota_cockpit.auth.models import TokenStatus
from quota_cockpit.cloudcode.client import CloudCodeResponse, ProjectInfo
from quota_cockpit.cloudcode.schemas import AvailableModelsResponse
from quota_cockpit.config.trigger import TriggerSettings
from quota_cockpit.exceptions import (
    CloudCodeAuthError,
    CloudCodeRequestError,
    StateStorageError,
)
from quota_cockpit.quota import ModelQuota, QuotaSnapshot
from quota_cockpit.trigger.models import TriggerSource, TriggerType
from quota_cockpit.trigger.service import (
    RESET_REMAINING_KEY,
    RESET_TRIGGER_KEY,
    TriggerService,
    fallback_project_id,
    generate_request_id,
    generate_session_id,
)


def reply(text: str | None) -> CloudCodeResponse:
    data = {"response": {"candidates": [{"content": {"parts": [{"text": text}]}}]}}
    return CloudCodeResponse(data=data, text="{}", base_url="https://prod.test", status=200)


@pytest.fixture
def token_service() -> MagicMock:
    service = MagicMock()
    service.get_access_token_status = AsyncMock(return_value=TokenStatus.ok("tok"))
    return service


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.resolve_project_id = AsyncMock(return_value=ProjectInfo("proj-1", "free"))
    client.request_json = AsyncMock(return_value=reply("Hello!"))
    client.fetch_available_models = AsyncMock()
    return client


@pytest.fixture
def make_service(token_service, client, store, clock):
    def _make(**overrides) -> TriggerService:
        return TriggerService(
            TriggerSettings(**overrides), token_service, client, store, clock=clock
        )

    return _make


@pytest.fixture
def service(make_service) -> TriggerService:
    return make_service()


def snapshot_with(*quotas: tuple[str, float, str | None]) -> QuotaSnapshot:
    return QuotaSnapshot(
        timestamp=datetime.now(UTC),
        models=[
            ModelQuota(
                model_id=model_id,
                label=model_id,
                model_constant=f"MODEL_{model_id.upper()}",
                remaining_fraction=fraction,
                is_exhausted=fraction <= 0,
                reset_at=reset_at,
            )
            for model_id, fraction, reset_at in quotas
        ],
    )


@pytest.mark.unit
class TestIdentifiers:
    def test_formats(self) -> None:
        assert re.fullmatch(r"sess_\d+_[a-z0-9]{6}", generate_session_id())
        assert re.fullmatch(r"req_\d+_[a-z0-9]{6}", generate_request_id())
        assert re.fullmatch(
            r"projects/random-[a-z0-9]{8}/locations/global", fallback_project_id()
        )


@pytest.mark.unit
class TestResetDetection:
    def test_edge_scenario(self, service, clock) -> None:
        assert service.should_trigger_on_reset("M", "R1", 80, 100) is False

        assert service.should_trigger_on_reset("M", "R1", 100, 100) is True
        service.mark_reset_triggered("M", "R1")

        assert service.should_trigger_on_reset("M", "R1", 100, 100) is False

        clock.advance(60)
        assert service.should_trigger_on_reset("M", "R2", 100, 100) is False

        clock.advance(600)
        assert service.should_trigger_on_reset("M", "R2", 100, 100) is True

    def test_first_observation_when_full(self, service) -> None:
        assert service.should_trigger_on_reset("M", "R1", 100, 100) is True

    def test_staying_full_without_watermark(self, service) -> None:
        service.should_trigger_on_reset("M", "R1", 100, 100)

        # Full twice in a row, never triggered: no rising edge
        assert service.should_trigger_on_reset("M", "R2", 100, 100) is False

    def test_not_full_never_triggers(self, service) -> None:
        assert service.should_trigger_on_reset("M", "R1", 99.5, 100) is False

    def test_remaining_is_persisted(self, service, store) -> None:
        service.should_trigger_on_reset("M", "R1", 80, 100)

        assert store.get_state(RESET_REMAINING_KEY) == {"M": 80}

    def test_watermarks_survive_restart(self, service, make_service, store) -> None:
        service.should_trigger_on_reset("M", "R1", 100, 100)
        service.mark_reset_triggered("M", "R1")

        restarted = make_service()

        assert store.get_state(RESET_TRIGGER_KEY) == {"M": "R1"}
        assert restarted.should_trigger_on_reset("M", "R1", 100, 100) is False

    def test_rising_edge_survives_restart(self, service, make_service) -> None:
        service.should_trigger_on_reset("M", "R1", 40, 100)

        restarted = make_service()

        assert restarted.should_trigger_on_reset("M", "R1", 100, 100) is True


@pytest.mark.unit
@pytest.mark.asyncio
class TestCheckQuotaResets:
    async def test_triggers_reset_models_once(self, service, client) -> None:
        snapshot = snapshot_with(("flash", 1.0, "R1"), ("pro", 0.3, "R9"))

        records = await service.check_quota_resets(snapshot)

        assert len(records) == 1
        record = records[0]
        assert record.trigger_type is TriggerType.AUTO
        assert record.trigger_source is TriggerSource.QUOTA_RESET
        assert record.prompt == "[flash] hi"
        assert client.request_json.await_count == 1
        assert await service.check_quota_resets(snapshot) == []

    async def test_model_filter(self, service, client) -> None:
        snapshot = snapshot_with(("flash", 1.0, "R1"), ("pro", 1.0, "R1"))

        records = await service.check_quota_resets(snapshot, ["MODEL_PRO"])

        assert records[0].prompt == "[pro] hi"

    async def test_models_without_reset_time_are_ignored(self, service) -> None:
        assert await service.check_quota_resets(snapshot_with(("flash", 1.0, None))) == []


@pytest.mark.unit
@pytest.mark.asyncio
class TestTrigger:
    async def test_success_is_recorded(
        self, service, store, make_credential, client
    ) -> None:
        store.save_credential(make_credential(project_id="proj-9"))

        record = await service.trigger(["gemini-3-flash"], custom_prompt="wake")

        assert record.success
        assert record.trigger_type is TriggerType.MANUAL
        assert record.trigger_source is TriggerSource.MANUAL
        assert record.prompt == "[gemini-3-flash] wake"
        assert record.message.startswith("gemini-3-flash: Hello! (")
        assert service.get_last_trigger() == record
        client.resolve_project_id.assert_not_awaited()

        body = client.request_json.await_args.args[1]
        assert body["project"] == "proj-9"
        assert body["model"] == "gemini-3-flash"
        assert body["request"]["contents"] == [
            {"role": "user", "parts": [{"text": "wake"}]}
        ]

    async def test_defaults(self, service, client) -> None:
        record = await service.trigger()

        assert record.prompt == "[gemini-3-flash] hi"

    async def test_no_token(self, service, token_service, client) -> None:
        token_service.get_access_token_status.return_value = (
            TokenStatus.unauthenticated()
        )

        record = await service.trigger(["m"])

        assert not record.success
        assert record.message == (
            "No valid access token (unauthenticated). Please authorize first."
        )
        client.request_json.assert_not_awaited()
        assert service.get_recent_triggers() == [record]

    async def test_per_model_failures_are_isolated(self, service, client) -> None:
        async def respond(path, body, token, options):
            if body["model"] == "bad":
                raise CloudCodeRequestError("Cloud Code request failed (500)", 500)
            return reply("ok")

        client.request_json.side_effect = respond

        record = await service.trigger(["bad", "good"])

        lines = record.message.splitlines()
        assert record.success
        assert lines[0].startswith("good: ok")
        assert lines[1].startswith(
            "bad: ERROR API request failed (generateContent): Cloud Code request failed (500)"
        )

    async def test_all_models_failing(self, service, client) -> None:
        client.request_json.side_effect = CloudCodeAuthError()

        record = await service.trigger(["a", "b"])

        assert not record.success
        assert len(record.message.splitlines()) == 2

    async def test_reply_fallbacks(self, service, client) -> None:
        client.request_json.side_effect = [
            reply("  "),
            CloudCodeResponse(data="oops", text="oops", base_url="x", status=200),
        ]

        record = await service.trigger(["a"])
        assert "a: (no reply)" in record.message

        record = await service.trigger(["a"])
        assert "a: (non-JSON response)" in record.message

    async def test_project_is_resolved_and_cached(
        self, service, store, make_credential, client
    ) -> None:
        store.save_credential(make_credential())

        await service.trigger(["m"])

        assert store.get_credential().project_id == "proj-1"
        assert client.request_json.await_args.args[1]["project"] == "proj-1"

    async def test_project_fallback(self, service, client) -> None:
        client.resolve_project_id.side_effect = CloudCodeRequestError("down", 503)

        await service.trigger(["m"])

        project = client.request_json.await_args.args[1]["project"]
        assert re.fullmatch(r"projects/random-[a-z0-9]{8}/locations/global", project)

    async def test_project_cache_write_failure_still_records(
        self, service, store, make_credential, client
    ) -> None:
        store.save_credential(make_credential())

        with patch.object(
            store, "save_credential", side_effect=StateStorageError("disk full")
        ):
            record = await service.trigger(["m"])

        assert record.success
        assert client.request_json.await_args.args[1]["project"] == "proj-1"
        assert service.get_recent_triggers() == [record]

    async def test_unexpected_model_error_is_recorded(self, service, client) -> None:
        async def respond(path, body, token, options):
            if body["model"] == "broken":
                raise RuntimeError("boom")
            return reply("ok")

        client.request_json.side_effect = respond

        record = await service.trigger(["broken", "good"])

        lines = record.message.splitlines()
        assert record.success
        assert lines[0].startswith("good: ok")
        assert lines[1].startswith("broken: ERROR boom")
        assert service.get_recent_triggers() == [record]

    async def test_concurrency_is_bounded(self, make_service, client) -> None:
        in_flight = 0
        peak = 0

        async def respond(path, body, token, options):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return reply(body["model"])

        client.request_json.side_effect = respond
        service = make_service(max_concurrency=2)

        record = await service.trigger(["m1", "m2", "m3", "m4", "m5"])

        assert peak == 2
        assert len(record.message.splitlines()) == 5
        assert [line.split(":")[0] for line in record.message.splitlines()] == [
            "m1",
            "m2",
            "m3",
            "m4",
            "m5",
        ]

    async def test_timestamp_follows_clock(self, service, clock) -> None:
        clock.now = datetime(2030, 5, 1, 12, tzinfo=UTC).timestamp()

        record = await service.trigger(["m"])

        assert record.timestamp_datetime == datetime(2030, 5, 1, 12, tzinfo=UTC)

    async def test_clear_history(self, service) -> None:
        await service.trigger(["m"])

        service.clear_history()

        assert service.get_recent_triggers() == []
        assert service.get_last_trigger() is None


@pytest.mark.unit
@pytest.mark.asyncio
class TestAvailableModels:
    async def test_filter_keeps_filter_order(self, service, client) -> None:
        client.fetch_available_models.return_value = (
            AvailableModelsResponse.model_validate(
                {
                    "models": {
                        "flash": {"displayName": "Flash", "model": "MODEL_FLASH"},
                        "pro": {"displayName": "Pro", "model": "MODEL_PRO"},
                        "internal": {},
                    }
                }
            )
        )

        all_models = await service.fetch_available_models()
        filtered = await service.fetch_available_models(
            ["MODEL_PRO", "MODEL_MISSING", "MODEL_FLASH"]
        )

        assert [m.id for m in all_models] == ["flash", "pro", "internal"]
        assert all_models[2].display_name == "internal"
        assert [m.id for m in filtered] == ["pro", "flash"]

    async def test_failures_yield_empty_list(
        self, service, client, token_service
    ) -> None:
        client.fetch_available_models.side_effect = CloudCodeRequestError("x", 500)
        assert await service.fetch_available_models() == []

        token_service.get_access_token_status.return_value = TokenStatus.expired()
        assert await service.fetch_available_models() == []

