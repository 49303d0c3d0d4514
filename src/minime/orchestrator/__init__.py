"""Job scheduler package."""

from .events import Event, EventBus, EventType
from .models import JobDefinition, JobStats, JobStatusSnapshot, TriggerResult
from .scheduler import JobScheduler

__all__ = [
    "Event",
    "EventBus",
    "EventType",
    "JobDefinition",
    "JobScheduler",
    "JobStats",
    "JobStatusSnapshot",
    "TriggerResult",
]
