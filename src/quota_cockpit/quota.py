"""Per-model quota snapshot built from the available-models listing."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from structlog import get_logger

from quota_cockpit.auth.credential_store import CredentialStore
from quota_cockpit.auth.token_service import OAuthTokenService
from quota_cockpit.cloudcode.client import CloudCodeClient, RequestOptions
from quota_cockpit.cloudcode.schemas import AvailableModelsResponse
from quota_cockpit.exceptions import CockpitError, describe_error


logger = get_logger(__name__)


@dataclass(frozen=True)
class ModelQuota:
    model_id: str
    label: str
    model_constant: str
    remaining_fraction: float
    is_exhausted: bool
    reset_time: datetime | None = None
    # Raw server string, used as the reset watermark
    reset_at: str | None = None
    time_until_reset: timedelta | None = None

    @property
    def remaining_percentage(self) -> float:
        return round(self.remaining_fraction * 100, 2)


@dataclass(frozen=True)
class QuotaSnapshot:
    timestamp: datetime
    models: list[ModelQuota] = field(default_factory=list)
    is_connected: bool = True
    error_message: str | None = None


def _parse_reset_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("quota_reset_time_unparseable", value=value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def build_quota_snapshot(
    response: AvailableModelsResponse, now: datetime | None = None
) -> QuotaSnapshot:
    """Convert the listing into a snapshot of models that report quota.

    The server omits `remainingFraction` once a model is exhausted, so a
    missing fraction counts as zero.
    """
    now = now or datetime.now(UTC)
    models = []
    for model_id, info in response.models.items():
        if info.quota_info is None:
            continue
        fraction = max(0.0, min(1.0, info.quota_info.remaining_fraction or 0.0))
        reset_time = _parse_reset_time(info.quota_info.reset_time)
        models.append(
            ModelQuota(
                model_id=model_id,
                label=info.display_name or model_id,
                model_constant=info.model or "",
                remaining_fraction=fraction,
                is_exhausted=fraction <= 0,
                reset_time=reset_time,
                reset_at=info.quota_info.reset_time,
                time_until_reset=max(reset_time - now, timedelta(0))
                if reset_time
                else None,
            )
        )

    models.sort(key=lambda quota: quota.label.lower())
    return QuotaSnapshot(timestamp=now, models=models, is_connected=True)


class QuotaService:
    """Fetches quota snapshots for the active account."""

    def __init__(
        self,
        token_service: OAuthTokenService,
        client: CloudCodeClient,
        store: CredentialStore,
    ) -> None:
        self.token_service = token_service
        self.client = client
        self.store = store

    async def fetch_snapshot(self) -> QuotaSnapshot:
        """Never raises; failures become a disconnected snapshot."""
        now = datetime.now(UTC)
        status = await self.token_service.get_access_token_status()
        if not status.is_ok or not status.token:
            return QuotaSnapshot(
                timestamp=now, is_connected=False, error_message=status.describe()
            )

        credential = self.store.get_credential()
        project_id = credential.project_id if credential else None
        try:
            response = await self.client.fetch_available_models(
                status.token, project_id, RequestOptions(log_label="quota")
            )
        except CockpitError as e:
            logger.warning("quota_fetch_failed", error=e.message)
            return QuotaSnapshot(
                timestamp=now, is_connected=False, error_message=describe_error(e)
            )

        snapshot = build_quota_snapshot(response, now)
        logger.debug("quota_snapshot_built", models=len(snapshot.models))
        return snapshot
