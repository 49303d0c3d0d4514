"""Domain models for the job scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional


JobHandler = Callable[[Any], Awaitable[None]]


@dataclass(slots=True)
class JobStats:
    """Run counters. Durations are milliseconds."""

    runs: int = 0
    failures: int = 0
    total_duration: float = 0.0
    last_duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runs": self.runs,
            "failures": self.failures,
            "total_duration": self.total_duration,
            "last_duration": self.last_duration,
        }


@dataclass(slots=True)
class JobState:
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    running: bool = False


@dataclass(slots=True)
class JobDefinition:
    """A named unit of recurring work.

    Attributes:
        id: Unique job id
        name: Display name
        description: What the job does
        interval: Seconds between scheduled runs
        handler: ``async def handler(services) -> None``
        enabled: Whether timers fire for this job
    """

    id: str
    name: str
    description: str
    interval: float
    handler: JobHandler
    enabled: bool = True
    state: JobState = field(default_factory=JobState)
    stats: JobStats = field(default_factory=JobStats)

    def snapshot(self) -> "JobStatusSnapshot":
        return JobStatusSnapshot(
            id=self.id,
            name=self.name,
            description=self.description,
            enabled=self.enabled,
            running=self.state.running,
            last_run=self.state.last_run,
            next_run=self.state.next_run,
            interval=self.interval,
            stats=JobStats(
                runs=self.stats.runs,
                failures=self.stats.failures,
                total_duration=self.stats.total_duration,
                last_duration=self.stats.last_duration,
            ),
        )


@dataclass(frozen=True)
class JobStatusSnapshot:
    """Read-only copy of a job's state for status queries."""

    id: str
    name: str
    description: str
    enabled: bool
    running: bool
    last_run: Optional[datetime]
    next_run: Optional[datetime]
    interval: float
    stats: JobStats

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "running": self.running,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "interval": self.interval,
            "stats": self.stats.to_dict(),
        }


@dataclass(frozen=True)
class TriggerResult:
    job_id: str
    success: bool
    error: Optional[str] = None
