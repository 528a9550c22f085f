"""Retention-bounded trigger history."""

import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from structlog import get_logger

from quota_cockpit.auth.credential_store import CredentialStore
from quota_cockpit.trigger.models import TriggerRecord


logger = get_logger(__name__)

HISTORY_KEY = "triggerHistory"


def cleanup_records(
    records: list[TriggerRecord],
    now: datetime,
    max_records: int = 40,
    max_days: int = 7,
) -> list[TriggerRecord]:
    """Newest first, nothing older than `max_days`, at most `max_records`."""
    max_age = timedelta(days=max_days)
    kept = []
    for record in records:
        try:
            recorded_at = record.timestamp_datetime
        except ValueError:
            logger.debug("trigger_record_dropped", timestamp=record.timestamp)
            continue
        if now - recorded_at < max_age:
            kept.append((recorded_at, record))

    kept.sort(key=lambda item: item[0], reverse=True)
    return [record for _, record in kept[:max_records]]


class TriggerHistory:
    """Trigger records persisted under `triggerHistory`.

    Retention is enforced on load and on every write.
    """

    def __init__(
        self,
        store: CredentialStore,
        max_records: int = 40,
        max_days: int = 7,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.max_records = max_records
        self.max_days = max_days
        self._clock = clock
        self._records: list[TriggerRecord] = []
        self._load()

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=UTC)

    def _load(self) -> None:
        saved: Any = self.store.get_state(HISTORY_KEY, [])
        records = []
        for raw in saved if isinstance(saved, list) else []:
            try:
                records.append(TriggerRecord.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("trigger_record_unreadable", error=str(e))
        self._records = self._cleanup(records)
        logger.debug("trigger_history_loaded", count=len(self._records))

    def _cleanup(self, records: list[TriggerRecord]) -> list[TriggerRecord]:
        return cleanup_records(records, self._now(), self.max_records, self.max_days)

    def _save(self) -> None:
        self.store.save_state(
            HISTORY_KEY, [record.to_dict() for record in self._records]
        )

    def add(self, record: TriggerRecord) -> None:
        self._records = self._cleanup([record, *self._records])
        self._save()

    def recent(self) -> list[TriggerRecord]:
        return list(self._records)

    def last(self) -> TriggerRecord | None:
        return self._records[0] if self._records else None

    def clear(self) -> None:
        self._records = []
        self._save()
        logger.info("trigger_history_cleared")
