"""Lifecycle events recorded during a pipeline run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Kinds of lifecycle events a pipeline emits."""

    ANALYSIS_START = "analysis_start"
    PHASE_CHANGE = "phase_change"
    ANALYSIS_TYPE_START = "analysis_type_start"
    PROGRESS = "progress"
    ANALYSIS_TYPE_COMPLETE = "analysis_type_complete"
    ANALYSIS_COMPLETE = "analysis_complete"
    CIRCUIT_BREAKER_OPEN = "circuit_breaker_open"
    ERROR = "error"


@dataclass(frozen=True)
class PipelineEvent:
    """One recorded event."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


Subscriber = Callable[[PipelineEvent], None]


class EventLog:
    """Ordered record of events plus optional push subscribers.

    Usage:
        events = EventLog()
        events.subscribe(lambda e: print(e.type, e.data))
        events.emit(EventType.PROGRESS, percent=50)
    """

    def __init__(self) -> None:
        self.events: list[PipelineEvent] = []
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def emit(self, event_type: EventType, **data: Any) -> PipelineEvent:
        event = PipelineEvent(type=event_type, data=data)
        self.events.append(event)
        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception:
                # A broken observer must not fail the run
                logger.exception("Event subscriber failed for %s", event_type)
        return event

    def of_type(self, event_type: EventType) -> list[PipelineEvent]:
        return [e for e in self.events if e.type == event_type]

    def to_list(self) -> list[dict[str, Any]]:
        return [
            {"type": e.type.value, "timestamp": e.timestamp.isoformat(), "data": e.data}
            for e in self.events
        ]

    def __iter__(self) -> Iterator[PipelineEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)
