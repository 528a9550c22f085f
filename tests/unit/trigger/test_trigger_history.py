"""Tests for trigger history retention and persistence."""

from datetime import UTC, datetime, timedelta

import pytest

from quota_cockpit.trigger.history import HISTORY_KEY, TriggerHistory, cleanup_records
from quota_cockpit.trigger.models import TriggerRecord, TriggerSource, TriggerType


NOW = datetime(2030, 1, 15, 12, 0, tzinfo=UTC)


def record_at(when: datetime, message: str = "ok") -> TriggerRecord:
    return TriggerRecord(
        timestamp=when.isoformat(),
        success=True,
        prompt="[m] hi",
        message=message,
        duration_ms=120,
        trigger_type=TriggerType.MANUAL,
        trigger_source=TriggerSource.MANUAL,
    )


@pytest.mark.unit
class TestCleanupRecords:
    def test_retention_over_ten_days(self) -> None:
        step = timedelta(days=10) / 45
        records = [record_at(NOW - step * i, f"r{i}") for i in range(45)]
        shuffled = records[1::2] + records[::2]

        kept = cleanup_records(shuffled, NOW)

        assert len(kept) <= 40
        assert all(NOW - r.timestamp_datetime < timedelta(days=7) for r in kept)
        stamps = [r.timestamp_datetime for r in kept]
        assert stamps == sorted(stamps, reverse=True)
        assert kept[0].message == "r0"

    def test_record_limit(self) -> None:
        records = [record_at(NOW - timedelta(minutes=i)) for i in range(50)]

        kept = cleanup_records(records, NOW, max_records=40)

        assert len(kept) == 40
        assert kept[-1].timestamp_datetime == NOW - timedelta(minutes=39)

    def test_unparseable_timestamp_is_dropped(self) -> None:
        broken = TriggerRecord(
            timestamp="yesterday",
            success=False,
            prompt="",
            message="",
            duration_ms=0,
            trigger_type=TriggerType.AUTO,
        )

        assert cleanup_records([broken, record_at(NOW)], NOW) == [record_at(NOW)]


@pytest.mark.unit
class TestTriggerHistory:
    def test_add_persists_newest_first(self, store) -> None:
        history = TriggerHistory(store, clock=NOW.timestamp)
        history.add(record_at(NOW - timedelta(hours=1), "older"))
        history.add(record_at(NOW, "newer"))

        assert [r.message for r in history.recent()] == ["newer", "older"]
        assert history.last().message == "newer"
        assert [raw["message"] for raw in store.get_state(HISTORY_KEY)] == [
            "newer",
            "older",
        ]

    def test_load_applies_retention(self, store) -> None:
        store.save_state(
            HISTORY_KEY,
            [
                record_at(NOW - timedelta(days=8), "stale").to_dict(),
                record_at(NOW - timedelta(days=1), "fresh").to_dict(),
                {"unexpected": True},
            ],
        )

        history = TriggerHistory(store, clock=NOW.timestamp)

        assert [r.message for r in history.recent()] == ["fresh"]

    def test_record_serialization(self) -> None:
        record = record_at(NOW)

        data = record.to_dict()

        assert data["duration"] == 120
        assert data["triggerType"] == "manual"
        assert data["triggerSource"] == "manual"
        assert TriggerRecord.from_dict(data) == record

    def test_clear(self, store) -> None:
        history = TriggerHistory(store, clock=NOW.timestamp)
        history.add(record_at(NOW))

        history.clear()

        assert history.recent() == []
        assert history.last() is None
        assert store.get_state(HISTORY_KEY) == []
