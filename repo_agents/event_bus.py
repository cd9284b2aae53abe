"""
repo-agents Event Bus

Synchronous fan-out of pipeline events to subscribers (the JSONL audit
log, tests). Subscribers run in the emitting thread and may not block
the pipeline: a subscriber that raises is logged and skipped.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable

from loguru import logger
from pydantic import BaseModel, Field


class EventType(str, Enum):
    STAGE_STARTED = "stage_started"
    STAGE_COMPLETE = "stage_complete"
    STAGE_FAILED = "stage_failed"
    CAPABILITY_APPLIED = "capability_applied"
    AUDIT_COMPLETE = "audit_complete"


class PipelineEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: EventType
    stage: str
    payload: dict[str, Any] = Field(default_factory=dict)


Subscriber = Callable[[PipelineEvent], None]


class EventBus:

    def __init__(self):
        # (callback, event types it wants; None for all)
        self._subscribers: list[tuple[Subscriber, frozenset[EventType] | None]] = []

    def subscribe(self, callback: Subscriber, event_types: Iterable[EventType] | None = None) -> None:
        """Register `callback` for every event, or only for `event_types`."""
        wanted = frozenset(EventType(t) for t in event_types) if event_types is not None else None
        self._subscribers.append((callback, wanted))

    def emit(self, event_type: EventType, stage: str, payload: dict[str, Any] | None = None) -> PipelineEvent:
        event = PipelineEvent(event_type=EventType(event_type), stage=stage, payload=payload or {})
        for callback, wanted in self._subscribers:
            if wanted is not None and event.event_type not in wanted:
                continue
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"[EVENTS] subscriber failed on {event.event_type.value}: {e}")
        return event
