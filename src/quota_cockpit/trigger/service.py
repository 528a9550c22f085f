"""Trigger service: wake-up requests that start quota cycles.

Sends a short generation request per model with a bounded worker pool,
records every run in the history, and detects quota resets so a wake-up can
be issued once per reset cycle.
"""

import asyncio
import random
import string
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from structlog import get_logger

from quota_cockpit.auth.credential_store import CredentialStore
from quota_cockpit.auth.models import TokenState, TokenStatus
from quota_cockpit.auth.token_service import OAuthTokenService
from quota_cockpit.cloudcode.client import CloudCodeClient, RequestOptions
from quota_cockpit.cloudcode.constants import GENERATE_CONTENT_PATH
from quota_cockpit.cloudcode.schemas import GenerateContentResponse
from quota_cockpit.config.trigger import TriggerSettings
from quota_cockpit.exceptions import CockpitError
from quota_cockpit.quota import QuotaSnapshot
from quota_cockpit.trigger.history import TriggerHistory
from quota_cockpit.trigger.models import (
    ModelInfo,
    TriggerRecord,
    TriggerSource,
    TriggerType,
)


logger = get_logger(__name__)

RESET_TRIGGER_KEY = "lastResetTriggerTimestamps"
RESET_TRIGGER_AT_KEY = "lastResetTriggerAt"
RESET_REMAINING_KEY = "lastResetRemaining"

NO_REPLY = "(no reply)"
NON_JSON_REPLY = "(non-JSON response)"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _random_suffix(length: int) -> str:
    return "".join(random.choices(_ID_ALPHABET, k=length))


def generate_session_id() -> str:
    return f"sess_{int(time.time() * 1000)}_{_random_suffix(6)}"


def generate_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{_random_suffix(6)}"


def fallback_project_id() -> str:
    return f"projects/random-{_random_suffix(8)}/locations/global"


@dataclass(frozen=True)
class ModelResult:
    model: str
    ok: bool
    message: str
    duration_ms: int

    def summary_line(self) -> str:
        if self.ok:
            return f"{self.model}: {self.message} ({self.duration_ms}ms)"
        return f"{self.model}: ERROR {self.message} ({self.duration_ms}ms)"


class TriggerService:
    """Wake-up orchestration over the token service and Cloud Code client."""

    def __init__(
        self,
        settings: TriggerSettings,
        token_service: OAuthTokenService,
        client: CloudCodeClient,
        store: CredentialStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.token_service = token_service
        self.client = client
        self.store = store
        self._clock = clock
        self.history = TriggerHistory(
            store,
            max_records=settings.history_max_records,
            max_days=settings.history_max_days,
            clock=clock,
        )
        self._last_reset_triggered: dict[str, str] = self._load_map(RESET_TRIGGER_KEY)
        self._last_reset_trigger_at: dict[str, float] = {
            model: float(value)
            for model, value in self._load_map(RESET_TRIGGER_AT_KEY).items()
        }
        self._last_remaining: dict[str, float] = {
            model: float(value)
            for model, value in self._load_map(RESET_REMAINING_KEY).items()
        }

    def _load_map(self, key: str) -> dict[str, Any]:
        saved = self.store.get_state(key, {})
        return dict(saved) if isinstance(saved, dict) else {}

    # ------------------------------------------------------------------
    # Reset-edge detection
    # ------------------------------------------------------------------

    def _remember_remaining(self, model_id: str, remaining: float) -> None:
        self._last_remaining[model_id] = remaining
        self.store.save_state(RESET_REMAINING_KEY, self._last_remaining)

    def should_trigger_on_reset(
        self, model_id: str, reset_at: str, remaining: float, limit: float
    ) -> bool:
        """Whether a wake-up is due for a freshly reset (full) quota.

        True only when the model is full, no wake-up has been issued for this
        `reset_at`, the cooldown has elapsed, and either this is the first
        observation of the model, the previous observation was below the
        limit, or the reset moved past an earlier wake-up. Every call records
        `remaining` for the next comparison.
        """
        last_remaining = self._last_remaining.get(model_id)
        self._remember_remaining(model_id, remaining)

        if remaining < limit:
            logger.debug(
                "reset_check_not_full", model=model_id, remaining=remaining, limit=limit
            )
            return False

        last_triggered = self._last_reset_triggered.get(model_id)
        if reset_at == last_triggered:
            logger.debug("reset_check_already_triggered", model=model_id, reset_at=reset_at)
            return False

        last_trigger_at = self._last_reset_trigger_at.get(model_id)
        if (
            last_trigger_at is not None
            and self._clock() - last_trigger_at < self.settings.reset_cooldown_seconds
        ):
            logger.debug("reset_check_cooldown", model=model_id)
            return False

        first_observation = last_remaining is None
        rising_edge = last_remaining is not None and last_remaining < limit
        new_cycle = last_triggered is not None

        should_trigger = first_observation or rising_edge or new_cycle
        logger.debug(
            "reset_check_full",
            model=model_id,
            reset_at=reset_at,
            first_observation=first_observation,
            rising_edge=rising_edge,
            new_cycle=new_cycle,
            should_trigger=should_trigger,
        )
        return should_trigger

    def mark_reset_triggered(self, model_id: str, reset_at: str) -> None:
        self._last_reset_triggered[model_id] = reset_at
        self.store.save_state(RESET_TRIGGER_KEY, self._last_reset_triggered)
        self._last_reset_trigger_at[model_id] = self._clock()
        self.store.save_state(RESET_TRIGGER_AT_KEY, self._last_reset_trigger_at)
        logger.info("reset_trigger_marked", model=model_id, reset_at=reset_at)

    async def check_quota_resets(
        self, snapshot: QuotaSnapshot, models: list[str] | None = None
    ) -> list[TriggerRecord]:
        """Issue one quota-reset wake-up for every model whose quota just reset.

        Args:
            snapshot: Latest quota observation
            models: Restrict detection to these model ids or constants
        """
        due = []
        for quota in snapshot.models:
            if models and quota.model_id not in models and quota.model_constant not in models:
                continue
            if not quota.reset_at:
                continue
            if self.should_trigger_on_reset(
                quota.model_id, quota.reset_at, quota.remaining_percentage, 100
            ):
                due.append(quota)

        if not due:
            return []

        record = await self.trigger(
            [quota.model_id for quota in due],
            TriggerType.AUTO,
            trigger_source=TriggerSource.QUOTA_RESET,
        )
        for quota in due:
            self.mark_reset_triggered(quota.model_id, quota.reset_at or "")
        return [record]

    # ------------------------------------------------------------------
    # Triggering
    # ------------------------------------------------------------------

    async def _get_access_token_status(self) -> TokenStatus:
        status = await self.token_service.get_access_token_status()
        if status.state is TokenState.INVALID_GRANT:
            logger.warning("trigger_token_invalid_grant")
        elif status.state is TokenState.EXPIRED:
            logger.warning("trigger_token_expired")
        elif status.state is TokenState.REFRESH_FAILED:
            logger.warning("trigger_token_refresh_failed", error=status.error)
        return status

    def _options(self) -> RequestOptions:
        return RequestOptions(timeout=self.settings.request_timeout, log_label="trigger")

    async def _fetch_project_id(self, access_token: str) -> str:
        project_id = None
        try:
            info = await self.client.resolve_project_id(access_token, self._options())
            project_id = info.project_id
        except CockpitError as e:
            logger.warning("trigger_project_resolution_failed", error=e.message)

        if project_id:
            credential = self.store.get_credential()
            if credential is not None:
                credential.project_id = project_id
                try:
                    self.store.save_credential(credential)
                except CockpitError as e:
                    logger.warning("trigger_project_cache_failed", error=e.message)
            return project_id

        logger.warning("trigger_project_fallback")
        return fallback_project_id()

    async def _send_trigger_request(
        self, access_token: str, project_id: str, model: str, prompt: str
    ) -> str:
        body = {
            "project": project_id,
            "requestId": generate_request_id(),
            "model": model,
            "userAgent": "antigravity",
            "request": {
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "session_id": generate_session_id(),
            },
        }

        try:
            response = await self.client.request_json(
                GENERATE_CONTENT_PATH, body, access_token, self._options()
            )
        except CockpitError as e:
            raise CockpitError(
                f"API request failed (generateContent): {e.message}",
                error_type=e.error_type,
                details=e.details,
            ) from e

        logger.debug("trigger_response", model=model, preview=response.text[:2000])
        try:
            reply = GenerateContentResponse.model_validate(response.data).reply_text()
        except ValidationError:
            return NON_JSON_REPLY
        return reply.strip() if reply and reply.strip() else NO_REPLY

    async def _run_models(
        self, access_token: str, project_id: str, models: list[str], prompt: str
    ) -> list[ModelResult]:
        results: list[ModelResult | None] = [None] * len(models)
        next_index = 0

        async def worker() -> None:
            nonlocal next_index
            while next_index < len(models):
                index = next_index
                next_index += 1
                model = models[index]
                started = time.monotonic()
                try:
                    reply = await self._send_trigger_request(
                        access_token, project_id, model, prompt
                    )
                    ok, message = True, reply
                except CockpitError as e:
                    ok, message = False, e.message
                except Exception as e:  # noqa: BLE001 - failure is recorded per model
                    logger.error(
                        "trigger_model_unexpected_error",
                        model=model,
                        error=str(e),
                        exc_info=True,
                    )
                    ok, message = False, str(e) or type(e).__name__
                results[index] = ModelResult(
                    model=model,
                    ok=ok,
                    message=message,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )

        worker_count = min(self.settings.max_concurrency, len(models))
        await asyncio.gather(*(worker() for _ in range(worker_count)))
        return [result for result in results if result is not None]

    async def trigger(
        self,
        models: list[str] | None = None,
        trigger_type: TriggerType = TriggerType.MANUAL,
        custom_prompt: str | None = None,
        trigger_source: TriggerSource | None = None,
    ) -> TriggerRecord:
        """Send one wake-up request per model and record the run.

        Never raises: a missing token produces a failed record, and each
        model's failure is captured in the record's message.
        """
        started = time.monotonic()
        trigger_models = list(models) if models else list(self.settings.default_models)
        prompt_text = custom_prompt or self.settings.default_prompt
        source = trigger_source or (
            TriggerSource.MANUAL if trigger_type is TriggerType.MANUAL else None
        )
        prompt_label = f"[{', '.join(trigger_models)}] {prompt_text}"

        logger.info(
            "trigger_started",
            trigger_type=str(trigger_type),
            models=trigger_models,
            prompt=prompt_text,
        )

        def finish(success: bool, message: str) -> TriggerRecord:
            record = TriggerRecord(
                timestamp=datetime.fromtimestamp(self._clock(), tz=UTC).isoformat(),
                success=success,
                prompt=prompt_label,
                message=message,
                duration_ms=int((time.monotonic() - started) * 1000),
                trigger_type=trigger_type,
                trigger_source=source,
            )
            self.history.add(record)
            return record

        status = await self._get_access_token_status()
        if not status.is_ok or not status.token:
            message = f"No valid access token ({status.state}). Please authorize first."
            logger.error(
                "trigger_failed",
                stage="get_access_token",
                source=str(source or trigger_type),
                error=message,
            )
            return finish(False, message)

        credential = self.store.get_credential()
        project_id = (
            credential.project_id if credential and credential.project_id else None
        ) or await self._fetch_project_id(status.token)

        results = await self._run_models(
            status.token, project_id, trigger_models, prompt_text
        )
        successes = [result for result in results if result.ok]
        failures = [result for result in results if not result.ok]
        summary = "\n".join(result.summary_line() for result in successes + failures)

        record = finish(bool(successes), summary)
        if successes and not failures:
            logger.info("trigger_succeeded", duration_ms=record.duration_ms)
        elif successes:
            logger.warning(
                "trigger_partially_failed",
                succeeded=len(successes),
                failed=len(failures),
                duration_ms=record.duration_ms,
            )
        else:
            logger.error(
                "trigger_failed",
                stage="send_trigger_request",
                failed=len(failures),
                duration_ms=record.duration_ms,
            )
        return record

    async def fetch_available_models(
        self, filter_by_constants: list[str] | None = None
    ) -> list[ModelInfo]:
        """Models known to the service, optionally filtered in filter order."""
        status = await self._get_access_token_status()
        if not status.is_ok or not status.token:
            logger.debug("available_models_skipped", state=str(status.state))
            return []

        try:
            response = await self.client.fetch_available_models(
                status.token, None, self._options()
            )
        except CockpitError as e:
            logger.warning("available_models_failed", error=e.message)
            return []

        all_models = [
            ModelInfo(
                id=model_id,
                display_name=info.display_name or model_id,
                model_constant=info.model or "",
            )
            for model_id, info in response.models.items()
        ]

        if not filter_by_constants:
            return all_models

        by_constant = {
            model.model_constant: model for model in all_models if model.model_constant
        }
        return [
            by_constant[constant]
            for constant in filter_by_constants
            if constant in by_constant
        ]

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_recent_triggers(self) -> list[TriggerRecord]:
        return self.history.recent()

    def get_last_trigger(self) -> TriggerRecord | None:
        return self.history.last()

    def clear_history(self) -> None:
        self.history.clear()
