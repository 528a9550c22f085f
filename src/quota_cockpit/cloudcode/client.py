"""Cloud Code client with ordered base-URL fallback and bounded retries.

Every logical call runs up to `max_attempts` rounds. A round tries each base
URL in order; a single HTTP call yields a `RequestOutcome`:

- SUCCESS ends the call,
- FATAL (authorization failure, 403 and other non-retryable 4xx) is raised
  immediately with no fallback and no further rounds,
- RETRYABLE moves on to the next base URL.

A round whose base URLs all failed retryably raises the last error; tenacity
then schedules the next round after `backoff_delay(attempt)`.
"""

import asyncio
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from http import HTTPStatus
from typing import Any, TypeVar

import httpx
import orjson
from pydantic import BaseModel, ValidationError
from structlog import get_logger
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from quota_cockpit.cloudcode.constants import (
    CLOUDCODE_METADATA,
    FETCH_AVAILABLE_MODELS_PATH,
    INVALID_GRANT_MARKER,
    LEGACY_TIER_ID,
    LOAD_CODE_ASSIST_PATH,
    ONBOARD_USER_PATH,
)
from quota_cockpit.cloudcode.schemas import (
    AvailableModelsResponse,
    LoadCodeAssistResponse,
    OnboardUserResponse,
    Tier,
    extract_project_id,
)
from quota_cockpit.config.cloudcode import CloudCodeSettings
from quota_cockpit.exceptions import CloudCodeAuthError, CloudCodeRequestError


logger = get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RouteOptions:
    """Selects the base URLs tried for a call."""

    sandbox_first: bool = False
    override_url: str | None = None


@dataclass(frozen=True)
class RequestOptions:
    """Per-call options; unset values fall back to the client settings."""

    timeout: float | None = None
    max_attempts: int | None = None
    log_label: str | None = None
    route: RouteOptions = field(default_factory=RouteOptions)


@dataclass(frozen=True)
class CloudCodeResponse:
    data: Any
    text: str
    base_url: str
    status: int


@dataclass(frozen=True)
class ProjectInfo:
    project_id: str | None = None
    tier_id: str | None = None


class OutcomeKind(StrEnum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class RequestOutcome:
    """Result of one HTTP call against one base URL."""

    kind: OutcomeKind
    response: CloudCodeResponse | None = None
    error: CloudCodeAuthError | CloudCodeRequestError | None = None

    @classmethod
    def success(cls, response: CloudCodeResponse) -> "RequestOutcome":
        return cls(OutcomeKind.SUCCESS, response=response)

    @classmethod
    def failure(
        cls, error: CloudCodeAuthError | CloudCodeRequestError
    ) -> "RequestOutcome":
        retryable = isinstance(error, CloudCodeRequestError) and error.retryable
        return cls(
            OutcomeKind.RETRYABLE if retryable else OutcomeKind.FATAL, error=error
        )


def backoff_delay(
    attempt: int,
    base: float = 0.5,
    cap: float = 4.0,
    jitter: float = 0.1,
    rand: Callable[[float, float], float] = random.uniform,
) -> float:
    """Delay in seconds before `attempt` (1-based); the first attempt is immediate."""
    if attempt <= 1:
        return 0.0
    return min(base * 2 ** (attempt - 2) + rand(0, jitter), cap)


def pick_onboard_tier(tiers: list[Tier]) -> str | None:
    """Default-flagged tier, else the first tier with an id, else LEGACY."""
    for tier in tiers:
        if tier.is_default and tier.id:
            return tier.id
    for tier in tiers:
        if tier.id:
            return tier.id
    if tiers:
        return LEGACY_TIER_ID
    return None


def _classify_status(status: int, text: str) -> RequestOutcome | None:
    """Failure outcome for a response status/body, or None when it succeeded."""
    if status == HTTPStatus.UNAUTHORIZED or INVALID_GRANT_MARKER in text.lower():
        return RequestOutcome.failure(CloudCodeAuthError("Authorization expired", status))
    if status == HTTPStatus.FORBIDDEN:
        return RequestOutcome.failure(
            CloudCodeRequestError("Cloud Code access forbidden", status)
        )
    if not 200 <= status < 300:
        retryable = status == HTTPStatus.TOO_MANY_REQUESTS or status >= 500
        return RequestOutcome.failure(
            CloudCodeRequestError(
                f"Cloud Code request failed ({status})", status, retryable=retryable
            )
        )
    return None


def _timeout_outcome() -> RequestOutcome:
    return RequestOutcome.failure(
        CloudCodeRequestError(
            "Cloud Code request timeout", 0, retryable=True, timed_out=True
        )
    )


def _network_outcome(error: Exception) -> RequestOutcome:
    return RequestOutcome.failure(
        CloudCodeRequestError(f"Cloud Code network error: {error}", 0, retryable=True)
    )


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, CloudCodeRequestError) and error.retryable


class _SseCollector:
    """Accumulates `data:` payloads from a newline-delimited event stream."""

    def __init__(self) -> None:
        self.payloads: list[str] = []
        self.last_data: Any = None

    @property
    def got_event(self) -> bool:
        return bool(self.payloads)

    def feed_line(self, line: str) -> None:
        trimmed = line.strip()
        if not trimmed.startswith("data:"):
            return
        payload = trimmed[len("data:") :].strip()
        if payload == "[DONE]":
            return
        self.payloads.append(payload)
        try:
            self.last_data = orjson.loads(payload)
        except orjson.JSONDecodeError:
            pass  # kept in the raw text only

    def response(self, base_url: str, status: int) -> CloudCodeResponse:
        return CloudCodeResponse(
            data=self.last_data,
            text="\n".join(self.payloads),
            base_url=base_url,
            status=status,
        )


class CloudCodeClient:
    """Authenticated client for the Cloud Code internal API.

    Supports connection pooling by reusing a shared httpx.AsyncClient. The
    sleep function is injectable so retry delays can be skipped in tests.
    """

    def __init__(
        self,
        settings: CloudCodeSettings,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._shared_client = http_client
        self._sleep = sleep

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._shared_client is not None:
            yield self._shared_client
            return
        async with httpx.AsyncClient(timeout=self.settings.request_timeout) as client:
            yield client

    def base_urls(self, route: RouteOptions | None = None) -> list[str]:
        route = route or RouteOptions()
        override = route.override_url or self.settings.override_url
        if override:
            return [override.rstrip("/")]
        urls = [self.settings.production_url, self.settings.sandbox_url]
        if route.sandbox_first:
            urls.reverse()
        return [url.rstrip("/") for url in urls]

    def _headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "User-Agent": self.settings.user_agent,
            "Content-Type": "application/json",
            "Accept-Encoding": "gzip",
        }

    def _backoff(self, retry_state: RetryCallState) -> float:
        # attempt_number is the round that just failed
        return backoff_delay(
            retry_state.attempt_number + 1,
            base=self.settings.backoff_base,
            cap=self.settings.backoff_cap,
            jitter=self.settings.backoff_jitter,
        )

    # ------------------------------------------------------------------
    # Retry / fallback driver
    # ------------------------------------------------------------------

    async def _run_round(
        self,
        send: Callable[[str], Awaitable[RequestOutcome]],
        base_urls: list[str],
        path: str,
        label: str,
    ) -> CloudCodeResponse:
        last_error: CloudCodeRequestError | None = None
        for index, base_url in enumerate(base_urls):
            outcome = await send(base_url)
            if outcome.response is not None:
                return outcome.response

            error = outcome.error
            if outcome.kind is OutcomeKind.FATAL or not isinstance(
                error, CloudCodeRequestError
            ):
                raise error or CloudCodeRequestError("Cloud Code request failed")

            last_error = error
            if index < len(base_urls) - 1:
                logger.warning(
                    "cloudcode_fallback",
                    label=label,
                    url=f"{base_url}{path}",
                    error=last_error.message,
                )

        raise last_error or CloudCodeRequestError("Cloud Code request failed")

    async def _execute(
        self,
        send: Callable[[str], Awaitable[RequestOutcome]],
        path: str,
        options: RequestOptions | None,
    ) -> CloudCodeResponse:
        options = options or RequestOptions()
        max_attempts = options.max_attempts or self.settings.max_attempts
        label = options.log_label or "cloudcode"
        base_urls = self.base_urls(options.route)

        def log_retry(retry_state: RetryCallState) -> None:
            logger.info(
                "cloudcode_retry_scheduled",
                label=label,
                path=path,
                next_attempt=retry_state.attempt_number + 1,
                max_attempts=max_attempts,
                wait_seconds=retry_state.next_action.sleep
                if retry_state.next_action
                else 0,
                error=str(retry_state.outcome.exception())
                if retry_state.outcome
                else None,
            )

        response: CloudCodeResponse | None = None
        async for attempt in AsyncRetrying(
            sleep=self._sleep,
            wait=self._backoff,
            stop=stop_after_attempt(max_attempts),
            retry=retry_if_exception(_is_retryable),
            before_sleep=log_retry,
            reraise=True,
        ):
            with attempt:
                response = await self._run_round(send, base_urls, path, label)

        if response is None:
            raise CloudCodeRequestError("Cloud Code request failed")
        return response

    # ------------------------------------------------------------------
    # Single calls
    # ------------------------------------------------------------------

    async def _send_json(
        self,
        method: str,
        base_url: str,
        path: str,
        body: dict[str, Any] | None,
        access_token: str,
        timeout: float,
        label: str,
    ) -> RequestOutcome:
        url = f"{base_url}{path}"
        logger.debug("cloudcode_request", label=label, method=method, url=url)
        try:
            async with self._client() as client, asyncio.timeout(timeout):
                response = await client.request(
                    method,
                    url,
                    headers=self._headers(access_token),
                    content=orjson.dumps(body) if body is not None else None,
                    timeout=timeout,
                )
        except (TimeoutError, httpx.TimeoutException):
            return _timeout_outcome()
        except httpx.InvalidURL as e:
            return RequestOutcome.failure(
                CloudCodeRequestError(f"Invalid Cloud Code URL: {e}", 0)
            )
        except httpx.HTTPError as e:
            return _network_outcome(e)

        text = response.text
        failure = _classify_status(response.status_code, text)
        if failure is not None:
            return failure

        if not text.strip():
            data: Any = {}
        else:
            try:
                data = orjson.loads(text)
            except orjson.JSONDecodeError:
                return RequestOutcome.failure(
                    CloudCodeRequestError(
                        "Cloud Code response parse failed",
                        response.status_code,
                        retryable=True,
                    )
                )

        return RequestOutcome.success(
            CloudCodeResponse(
                data=data, text=text, base_url=base_url, status=response.status_code
            )
        )

    async def _send_stream(
        self,
        base_url: str,
        path: str,
        body: dict[str, Any],
        access_token: str,
        timeout: float,
        label: str,
    ) -> RequestOutcome:
        url = f"{base_url}{path}"
        logger.debug("cloudcode_stream_request", label=label, url=url)
        collector = _SseCollector()
        status = 0
        try:
            async with self._client() as client, asyncio.timeout(timeout):
                async with client.stream(
                    "POST",
                    url,
                    headers=self._headers(access_token),
                    content=orjson.dumps(body),
                    timeout=timeout,
                ) as response:
                    status = response.status_code
                    if not 200 <= status < 300:
                        await response.aread()
                        failure = _classify_status(status, response.text)
                        if failure is not None:
                            return failure
                    async for line in response.aiter_lines():
                        collector.feed_line(line)
        except (TimeoutError, httpx.TimeoutException):
            if collector.got_event:
                logger.info(
                    "cloudcode_stream_partial",
                    label=label,
                    events=len(collector.payloads),
                )
                return RequestOutcome.success(collector.response(base_url, status))
            return _timeout_outcome()
        except httpx.InvalidURL as e:
            return RequestOutcome.failure(
                CloudCodeRequestError(f"Invalid Cloud Code URL: {e}", 0)
            )
        except httpx.HTTPError as e:
            if status:
                return RequestOutcome.failure(
                    CloudCodeRequestError(
                        f"Cloud Code stream read error: {e}", status, retryable=True
                    )
                )
            return _network_outcome(e)

        if not collector.got_event:
            return RequestOutcome.failure(
                CloudCodeRequestError(
                    "Cloud Code stream received no data", status, retryable=True
                )
            )
        return RequestOutcome.success(collector.response(base_url, status))

    # ------------------------------------------------------------------
    # Generic requests
    # ------------------------------------------------------------------

    def _timeout(self, options: RequestOptions | None) -> float:
        if options and options.timeout:
            return options.timeout
        return self.settings.request_timeout

    def _label(self, options: RequestOptions | None) -> str:
        return (options.log_label if options else None) or "cloudcode"

    async def request_json(
        self,
        path: str,
        body: dict[str, Any],
        access_token: str,
        options: RequestOptions | None = None,
    ) -> CloudCodeResponse:
        """POST a JSON body and parse the JSON reply.

        Raises:
            CloudCodeAuthError: On 401 or an invalid_grant body
            CloudCodeRequestError: On any other failure once retries are spent
        """
        timeout, label = self._timeout(options), self._label(options)

        async def send(base_url: str) -> RequestOutcome:
            return await self._send_json(
                "POST", base_url, path, body, access_token, timeout, label
            )

        return await self._execute(send, path, options)

    async def request_get_json(
        self,
        path: str,
        access_token: str,
        options: RequestOptions | None = None,
    ) -> CloudCodeResponse:
        timeout, label = self._timeout(options), self._label(options)

        async def send(base_url: str) -> RequestOutcome:
            return await self._send_json(
                "GET", base_url, path, None, access_token, timeout, label
            )

        return await self._execute(send, path, options)

    async def request_stream(
        self,
        path: str,
        body: dict[str, Any],
        access_token: str,
        options: RequestOptions | None = None,
    ) -> CloudCodeResponse:
        """POST and consume a server-sent-event reply.

        Returns the last parsed event. A stream cut short by a timeout after
        at least one event is returned as a partial success.
        """
        timeout, label = self._timeout(options), self._label(options)

        async def send(base_url: str) -> RequestOutcome:
            return await self._send_stream(
                base_url, path, body, access_token, timeout, label
            )

        return await self._execute(send, path, options)

    # ------------------------------------------------------------------
    # Project and model discovery
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(schema: type[SchemaT], response: CloudCodeResponse) -> SchemaT:
        try:
            return schema.model_validate(response.data)
        except ValidationError as e:
            raise CloudCodeRequestError(
                f"Unexpected Cloud Code response shape for {schema.__name__}",
                response.status,
            ) from e

    async def _load_code_assist(
        self, access_token: str, options: RequestOptions | None
    ) -> LoadCodeAssistResponse:
        response = await self.request_json(
            LOAD_CODE_ASSIST_PATH, {"metadata": CLOUDCODE_METADATA}, access_token, options
        )
        return self._validate(LoadCodeAssistResponse, response)

    async def load_project_info(
        self, access_token: str, options: RequestOptions | None = None
    ) -> ProjectInfo:
        data = await self._load_code_assist(access_token, options)
        return ProjectInfo(
            project_id=extract_project_id(data.cloudaicompanion_project),
            tier_id=data.tier_id,
        )

    async def resolve_project_id(
        self, access_token: str, options: RequestOptions | None = None
    ) -> ProjectInfo:
        """Project info, onboarding the account when it has no project yet."""
        data = await self._load_code_assist(access_token, options)
        project_id = extract_project_id(data.cloudaicompanion_project)
        tier_id = data.tier_id
        if project_id:
            return ProjectInfo(project_id=project_id, tier_id=tier_id)

        onboard_tier = pick_onboard_tier(data.allowed_tiers) or tier_id
        if not onboard_tier:
            return ProjectInfo(project_id=None, tier_id=tier_id)

        logger.info("cloudcode_onboarding", tier_id=onboard_tier)
        onboarded = await self._try_onboard_user(access_token, onboard_tier, options)
        return ProjectInfo(project_id=onboarded, tier_id=onboard_tier)

    async def _try_onboard_user(
        self, access_token: str, tier_id: str, options: RequestOptions | None
    ) -> str | None:
        payload = {"tierId": tier_id, "metadata": CLOUDCODE_METADATA}
        attempts = self.settings.onboard_attempts
        for attempt in range(1, attempts + 1):
            response = await self.request_json(
                ONBOARD_USER_PATH, payload, access_token, options
            )
            operation = self._validate(OnboardUserResponse, response)
            if operation.done:
                if operation.response is None:
                    return None
                return extract_project_id(operation.response.cloudaicompanion_project)

            logger.debug("cloudcode_onboarding_pending", attempt=attempt)
            if attempt < attempts:
                await self._sleep(self.settings.onboard_delay)

        logger.warning("cloudcode_onboarding_incomplete", attempts=attempts)
        return None

    async def fetch_available_models(
        self,
        access_token: str,
        project_id: str | None = None,
        options: RequestOptions | None = None,
    ) -> AvailableModelsResponse:
        payload = {"project": project_id} if project_id else {}
        response = await self.request_json(
            FETCH_AVAILABLE_MODELS_PATH, payload, access_token, options
        )
        return self._validate(AvailableModelsResponse, response)
