"""Replay strategies, projection snapshots and event indexing."""

from __future__ import annotations

import bisect
import pickle
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence, Tuple, TypeVar, Union

from eventgraph.journal import GraphEvent, SerializationError

P = TypeVar("P")
SequencedEvent = Tuple[GraphEvent, int]
Builder = Callable[[list], Any]

_FULL_REPLAY_LIMIT = 1000
_RECENT_EVENTS = 1000


@dataclass(frozen=True)
class FullReplay:
    """Replay every event from the beginning."""


@dataclass(frozen=True)
class FromSnapshot:
    """Replay events after the given snapshot sequence number."""

    sequence: int


@dataclass(frozen=True)
class RecentReplay:
    """Replay only the most recent ``max_events`` events."""

    max_events: int


@dataclass(frozen=True)
class TimeWindowReplay:
    """Replay events within a time window; events carry no timestamps, so all are kept."""

    seconds: int


ReplayStrategy = Union[FullReplay, FromSnapshot, RecentReplay, TimeWindowReplay]


@dataclass
class ProjectionSnapshot:
    """Serialized projection state at a sequence number."""

    sequence: int
    aggregate_id: uuid.UUID
    state: bytes
    timestamp: float


@dataclass
class ReplayConfig:
    """Snapshot and replay settings."""

    snapshot_interval: int = 100
    max_snapshots: int = 5
    parallel_replay: bool = True


@dataclass(frozen=True)
class SnapshotStats:
    """Snapshot statistics for monitoring."""

    aggregate_count: int
    total_snapshots: int
    total_size_bytes: int
    avg_snapshot_size: int


class ReplayOptimizer:
    """Keeps projection snapshots and chooses how to replay events."""

    def __init__(self, config: ReplayConfig | None = None) -> None:
        self.config = config if config is not None else ReplayConfig()
        self._snapshots: dict[uuid.UUID, list[ProjectionSnapshot]] = {}
        self._lock = threading.RLock()

    def _latest(self, aggregate_id: uuid.UUID) -> ProjectionSnapshot | None:
        snapshots = self._snapshots.get(aggregate_id)
        return snapshots[-1] if snapshots else None

    def determine_strategy(
        self, aggregate_id: uuid.UUID, current_sequence: int, total_events: int
    ) -> ReplayStrategy:
        """Pick a replay strategy for an aggregate."""
        with self._lock:
            latest = self._latest(aggregate_id)
        if latest is not None:
            if current_sequence - latest.sequence < self.config.snapshot_interval * 2:
                return FromSnapshot(sequence=latest.sequence)
        if total_events < _FULL_REPLAY_LIMIT:
            return FullReplay()
        return RecentReplay(max_events=_RECENT_EVENTS)

    def select_events(
        self, events: Sequence[SequencedEvent], strategy: ReplayStrategy
    ) -> list[SequencedEvent]:
        """Return the events ``strategy`` asks to replay."""
        events = list(events)
        if isinstance(strategy, FromSnapshot):
            return [item for item in events if item[1] > strategy.sequence]
        if isinstance(strategy, RecentReplay):
            skip = max(len(events) - strategy.max_events, 0)
            return events[skip:]
        if isinstance(strategy, (FullReplay, TimeWindowReplay)):
            return events
        raise TypeError(f"unknown replay strategy: {strategy!r}")

    def replay_events(
        self,
        events: Sequence[SequencedEvent],
        strategy: ReplayStrategy,
        build: Callable[[list[SequencedEvent]], P],
    ) -> P:
        """Build a projection with ``build`` from the events the strategy selects."""
        return build(self.select_events(events, strategy))

    def create_snapshot(self, projection: Any, sequence: int) -> None:
        """Store a snapshot of ``projection``, which must have an ``aggregate_id``."""
        aggregate_id = projection.aggregate_id
        try:
            state = pickle.dumps(projection)
        except (pickle.PicklingError, TypeError, AttributeError) as exc:
            raise SerializationError(str(exc)) from exc
        snapshot = ProjectionSnapshot(sequence, aggregate_id, state, time.time())
        with self._lock:
            snapshots = self._snapshots.setdefault(aggregate_id, [])
            snapshots.append(snapshot)
            excess = len(snapshots) - self.config.max_snapshots
            if excess > 0:
                del snapshots[:excess]

    def should_snapshot(self, current_sequence: int, aggregate_id: uuid.UUID) -> bool:
        """Whether a snapshot is due at ``current_sequence``."""
        interval = self.config.snapshot_interval
        if current_sequence % interval != 0:
            return False
        with self._lock:
            latest = self._latest(aggregate_id)
        if latest is not None:
            return current_sequence > latest.sequence + interval // 2
        return True

    def snapshot_stats(self) -> SnapshotStats:
        """Counts and sizes of the stored snapshots."""
        with self._lock:
            all_snapshots = [s for group in self._snapshots.values() for s in group]
            aggregate_count = len(self._snapshots)
        total = len(all_snapshots)
        size = sum(len(s.state) for s in all_snapshots)
        return SnapshotStats(
            aggregate_count=aggregate_count,
            total_snapshots=total,
            total_size_bytes=size,
            avg_snapshot_size=size // total if total else 0,
        )


class ParallelReplayer:
    """Builds projections for several aggregates on a thread pool."""

    def __init__(self, thread_count: int = 4) -> None:
        self.thread_count = max(thread_count, 1)

    def replay_multiple(
        self,
        events_by_aggregate: Mapping[uuid.UUID, Sequence[SequencedEvent]],
        build: Callable[[list[SequencedEvent]], P],
    ) -> dict[uuid.UUID, P]:
        """Return the projection built for each aggregate."""
        items = list(events_by_aggregate.items())
        with ThreadPoolExecutor(max_workers=self.thread_count) as pool:
            results = pool.map(lambda item: build(list(item[1])), items)
            return {aggregate_id: result for (aggregate_id, _), result in zip(items, results)}


class EventIndex:
    """Positions of events by aggregate and sequence, correlation and causation."""

    def __init__(
        self,
        by_aggregate: dict[tuple[uuid.UUID, int], int],
        by_correlation: dict[uuid.UUID, list[int]],
        by_causation: dict[uuid.UUID, list[int]],
    ) -> None:
        self._by_aggregate = by_aggregate
        self._keys = sorted(by_aggregate)
        self._by_correlation = by_correlation
        self._by_causation = by_causation

    @classmethod
    def build(cls, events: Sequence[SequencedEvent]) -> EventIndex:
        """Index ``(event, sequence)`` pairs by their positions."""
        by_aggregate: dict[tuple[uuid.UUID, int], int] = {}
        by_correlation: dict[uuid.UUID, list[int]] = {}
        by_causation: dict[uuid.UUID, list[int]] = {}
        for position, (event, sequence) in enumerate(events):
            by_aggregate[(event.aggregate_id, sequence)] = position
            by_correlation.setdefault(event.correlation_id, []).append(position)
            if event.causation_id is not None:
                by_causation.setdefault(event.causation_id, []).append(position)
        return cls(by_aggregate, by_correlation, by_causation)

    def events_after(self, aggregate_id: uuid.UUID, after_sequence: int) -> list[int]:
        """Positions of the aggregate's events after ``after_sequence``, by sequence."""
        start = bisect.bisect_left(self._keys, (aggregate_id, after_sequence + 1))
        positions = []
        for key in self._keys[start:]:
            if key[0] != aggregate_id:
                break
            positions.append(self._by_aggregate[key])
        return positions

    def events_for_correlation(self, correlation_id: uuid.UUID) -> list[int] | None:
        """Positions of events with ``correlation_id``, or None if there are none."""
        positions = self._by_correlation.get(correlation_id)
        return list(positions) if positions is not None else None