"""Trigger history records and model descriptors."""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class TriggerType(StrEnum):
    MANUAL = "manual"
    AUTO = "auto"


class TriggerSource(StrEnum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    CRONTAB = "crontab"
    QUOTA_RESET = "quota_reset"


@dataclass(frozen=True)
class TriggerRecord:
    """One wake-up run, successful if at least one model replied."""

    timestamp: str
    success: bool
    prompt: str
    message: str
    duration_ms: int
    trigger_type: TriggerType
    trigger_source: TriggerSource | None = None

    @property
    def timestamp_datetime(self) -> datetime:
        parsed = datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp,
            "success": self.success,
            "prompt": self.prompt,
            "message": self.message,
            "duration": self.duration_ms,
            "triggerType": str(self.trigger_type),
            "triggerSource": str(self.trigger_source) if self.trigger_source else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TriggerRecord":
        """Create from dictionary."""
        source = data.get("triggerSource")
        return cls(
            timestamp=data["timestamp"],
            success=bool(data["success"]),
            prompt=data.get("prompt", ""),
            message=data.get("message", ""),
            duration_ms=int(data.get("duration", 0)),
            trigger_type=TriggerType(data.get("triggerType", TriggerType.MANUAL)),
            trigger_source=TriggerSource(source) if source else None,
        )


@dataclass(frozen=True)
class ModelInfo:
    id: str
    display_name: str
    model_constant: str
