"""Grouping of events into batches for efficient processing."""

from __future__ import annotations

import json
import math
import time
import uuid
from collections import deque
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Iterable

from eventgraph.journal import GraphEvent

# Rough fixed in-memory cost of one event, added to its encoded size.
_EVENT_BASE_SIZE = 80
_HISTORY_LENGTH = 10


def _event_size(event: GraphEvent) -> int:
    try:
        encoded = json.dumps(event.to_dict(), separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError):
        return _EVENT_BASE_SIZE
    return _EVENT_BASE_SIZE + len(encoded)


class EventBatch:
    """A batch of events ready for processing."""

    def __init__(self, events: Iterable[GraphEvent]) -> None:
        self.events: list[GraphEvent] = list(events)
        self.batch_id: uuid.UUID = uuid.uuid4()
        self.created_at: float = time.monotonic()
        self.size_bytes: int = sum(_event_size(event) for event in self.events)

    def __repr__(self) -> str:
        return f"EventBatch(batch_id={self.batch_id}, events={len(self.events)}, size_bytes={self.size_bytes})"

    def events_for_aggregate(self, aggregate_id: uuid.UUID) -> list[GraphEvent]:
        """Events in this batch belonging to ``aggregate_id``."""
        return [event for event in self.events if event.aggregate_id == aggregate_id]

    def events_for_correlation(self, correlation_id: uuid.UUID) -> list[GraphEvent]:
        """Events in this batch carrying ``correlation_id``."""
        return [event for event in self.events if event.correlation_id == correlation_id]

    def split_by_aggregate(self) -> list[EventBatch]:
        """One new batch per aggregate, keeping each aggregate's event order."""
        groups: dict[uuid.UUID, list[GraphEvent]] = {}
        for event in self.events:
            groups.setdefault(event.aggregate_id, []).append(event)
        return [EventBatch(events) for events in groups.values()]


@dataclass
class BatchConfig:
    """Limits that decide when a batch is flushed."""

    max_events: int = 1000
    max_bytes: int = 1024 * 1024
    max_wait: float = 0.1  # seconds
    preserve_aggregate_order: bool = True


class EventBatcher:
    """Accumulates events and emits a batch once a limit is reached."""

    def __init__(self, config: BatchConfig | None = None) -> None:
        self.config = config if config is not None else BatchConfig()
        self._pending: deque[GraphEvent] = deque()
        self._pending_size = 0
        self._batch_started: float | None = None

    def add_event(self, event: GraphEvent) -> EventBatch | None:
        """Queue ``event``; return a flushed batch if a limit was reached."""
        if self._batch_started is None:
            self._batch_started = time.monotonic()
        self._pending.append(event)
        self._pending_size += _event_size(event)
        return self.flush() if self.should_flush() else None

    def should_flush(self) -> bool:
        """Whether the count, size or time limit has been reached."""
        if len(self._pending) >= self.config.max_events:
            return True
        if self._pending_size >= self.config.max_bytes:
            return True
        if self._batch_started is not None:
            return time.monotonic() - self._batch_started >= self.config.max_wait
        return False

    def flush(self) -> EventBatch:
        """Emit all pending events as a batch and reset the batcher."""
        events = list(self._pending)
        self._pending.clear()
        self._pending_size = 0
        self._batch_started = None
        batch = EventBatch(events)
        if self.config.preserve_aggregate_order:
            batch.events.sort(key=lambda e: (e.aggregate_id, e.event_id))
        return batch

    def pending_count(self) -> int:
        """Number of events waiting to be flushed."""
        return len(self._pending)

    def pending_size(self) -> int:
        """Approximate size in bytes of the waiting events."""
        return self._pending_size


class AdaptiveBatcher:
    """A batcher whose limits follow recent processing throughput."""

    def __init__(self, config: BatchConfig | None = None) -> None:
        base = config if config is not None else BatchConfig()
        self.base_config = replace(base)
        self.config = replace(base)
        self._history: deque[float] = deque(maxlen=_HISTORY_LENGTH)
        self._batcher = EventBatcher(replace(base))

    def add_event(self, event: GraphEvent) -> EventBatch | None:
        """Queue ``event``; return a flushed batch if a limit was reached."""
        return self._batcher.add_event(event)

    def record_performance(self, batch_size: int, processing_time: float | timedelta) -> None:
        """Record how long a batch took (seconds) and adjust the limits."""
        seconds = (
            processing_time.total_seconds() if isinstance(processing_time, timedelta) else float(processing_time)
        )
        if seconds == 0:
            events_per_second = math.inf if batch_size else math.nan
        else:
            events_per_second = batch_size / seconds
        self._history.append(events_per_second)
        self._adjust_batch_size()

    def _adjust_batch_size(self) -> None:
        if len(self._history) < 3:
            return
        overall = sum(self._history) / len(self._history)
        recent = sum(list(self._history)[-3:]) / 3.0

        if recent > overall * 1.1:
            self.config.max_events = int(min(self.config.max_events * 1.2, 10_000.0))
            self.config.max_bytes = int(min(self.config.max_bytes * 1.2, 10_000_000.0))
        elif recent < overall * 0.9:
            self.config.max_events = int(max(self.config.max_events * 0.8, 10.0))
            self.config.max_bytes = int(max(self.config.max_bytes * 0.8, 1024.0))

        # A fresh batcher picks up the new limits; pending events are discarded.
        self._batcher = EventBatcher(replace(self.config))

    def flush(self) -> EventBatch | None:
        """Emit pending events as a batch, or None if nothing is pending."""
        if self._batcher.pending_count() > 0:
            return self._batcher.flush()
        return None