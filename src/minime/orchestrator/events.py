"""In-process event notifications for the scheduler and pipeline.

Components receive an ``EventBus`` at construction and emit lifecycle events
through it. Listeners are plain callables; a coroutine function is scheduled
on the running loop. A failing listener is logged and never affects the
emitter.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    SCHEDULER_STARTED = "scheduler_started"
    SCHEDULER_STOPPED = "scheduler_stopped"
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    INSIGHT_GENERATED = "insight_generated"
    INSIGHT_MERGED = "insight_merged"
    MEMORY_FAILED = "memory_failed"


@dataclass
class Event:
    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)


Listener = Callable[[Event], Any]


class EventBus:
    """Callback list keyed by optional event-type filters."""

    def __init__(self) -> None:
        self._listeners: List[Tuple[Listener, Optional[FrozenSet[EventType]]]] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(
        self,
        listener: Listener,
        event_types: Optional[List[EventType]] = None,
    ) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        entry = (listener, frozenset(event_types) if event_types else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event_type: EventType, **payload: Any) -> Event:
        event = Event(type=event_type, payload=payload)
        for listener, types in list(self._listeners):
            if types is not None and event_type not in types:
                continue
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    self._schedule(result, event)
            except Exception:
                logger.exception(
                    "Event listener failed",
                    extra={"event_type": event_type.value},
                )
        return event

    def _schedule(self, awaitable, event: Event) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "Async event listener failed",
                    exc_info=t.exception(),
                    extra={"event_type": event.type.value},
                )

        task.add_done_callback(_done)

    def __len__(self) -> int:
        return len(self._listeners)
