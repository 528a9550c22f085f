"""Wake-up triggers and their history."""

from .history import TriggerHistory, cleanup_records
from .models import ModelInfo, TriggerRecord, TriggerSource, TriggerType
from .service import TriggerService


__all__ = [
    "ModelInfo",
    "TriggerHistory",
    "TriggerRecord",
    "TriggerService",
    "TriggerSource",
    "TriggerType",
    "cleanup_records",
]
