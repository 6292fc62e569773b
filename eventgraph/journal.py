"""Persistence of graph events and commands as JSON documents.

Only events (and commands) are persisted; projections are rebuilt from them.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

JOURNAL_VERSION = "1.0.0"


class SerializationError(Exception):
    """Raised when events, commands or journals cannot be encoded or decoded."""


def _parse_uuid(data: Mapping[str, Any], key: str, *, optional: bool = False) -> uuid.UUID | None:
    if key not in data:
        if optional:
            return None
        raise SerializationError(f"missing field `{key}`")
    value = data[key]
    if value is None and optional:
        return None
    if not isinstance(value, str):
        raise SerializationError(f"invalid type for `{key}`: expected a UUID string")
    try:
        return uuid.UUID(value)
    except ValueError as exc:
        raise SerializationError(f"invalid UUID for `{key}`: {value!r}") from exc


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


@dataclass(frozen=True)
class GraphEvent:
    """An immutable event recorded against a graph aggregate.

    The payload is a JSON-compatible value, typically an externally tagged
    mapping such as ``{"Ipld": {"CidAdded": {...}}}``.
    """

    event_id: uuid.UUID
    aggregate_id: uuid.UUID
    correlation_id: uuid.UUID
    causation_id: uuid.UUID | None
    payload: Any

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-compatible representation of the event."""
        return {
            "event_id": str(self.event_id),
            "aggregate_id": str(self.aggregate_id),
            "correlation_id": str(self.correlation_id),
            "causation_id": None if self.causation_id is None else str(self.causation_id),
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: Any) -> GraphEvent:
        """Build an event from its JSON-compatible representation."""
        if not isinstance(data, Mapping):
            raise SerializationError("invalid type: expected an event object")
        event_id = _parse_uuid(data, "event_id")
        aggregate_id = _parse_uuid(data, "aggregate_id")
        correlation_id = _parse_uuid(data, "correlation_id")
        causation_id = _parse_uuid(data, "causation_id", optional=True)
        if "payload" not in data:
            raise SerializationError("missing field `payload`")
        payload = data["payload"]
        if not isinstance(payload, (Mapping, str)):
            raise SerializationError("invalid type for `payload`: expected an object")
        return cls(event_id, aggregate_id, correlation_id, causation_id, payload)


def serialize_events(events: Iterable[GraphEvent]) -> str:
    """Serialize events to pretty-printed JSON."""
    try:
        return _dump([event.to_dict() for event in events])
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to serialize events: {exc}") from exc


def deserialize_events(text: str) -> list[GraphEvent]:
    """Deserialize events from JSON."""
    try:
        data = json.loads(text)
        if not isinstance(data, list):
            raise SerializationError("invalid type: expected a sequence of events")
        return [GraphEvent.from_dict(item) for item in data]
    except (ValueError, SerializationError) as exc:
        raise SerializationError(f"Failed to deserialize events: {exc}") from exc


def save_events_to_file(events: Iterable[GraphEvent], path: str | Path) -> None:
    """Write events as JSON to ``path``."""
    text = serialize_events(events)
    try:
        Path(path).write_text(text, encoding="utf-8")
    except OSError as exc:
        raise SerializationError(f"Failed to write file: {exc}") from exc


def load_events_from_file(path: str | Path) -> list[GraphEvent]:
    """Read events previously written with :func:`save_events_to_file`."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SerializationError(f"Failed to read file: {exc}") from exc
    return deserialize_events(text)


def serialize_command(command: Mapping[str, Any]) -> str:
    """Serialize a command object to pretty-printed JSON."""
    try:
        if not isinstance(command, Mapping):
            raise TypeError("a command must be a mapping")
        return _dump(dict(command))
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to serialize command: {exc}") from exc


def deserialize_command(text: str) -> dict[str, Any]:
    """Deserialize a command object from JSON."""
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise SerializationError(f"Failed to deserialize command: {exc}") from exc
    if not isinstance(data, dict):
        raise SerializationError("Failed to deserialize command: expected an object")
    return data


def _format_time(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_time(value: Any, key: str) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise SerializationError(f"invalid type for `{key}`: expected a timestamp string")
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise SerializationError(f"invalid timestamp for `{key}`: {value!r}") from exc


@dataclass
class EventStorageMetadata:
    """Summary information stored alongside a set of events."""

    version: str
    event_count: int
    first_event_time: datetime | None = None
    last_event_time: datetime | None = None
    aggregate_ids: list[uuid.UUID] = field(default_factory=list)

    @classmethod
    def from_events(cls, events: Sequence[GraphEvent]) -> EventStorageMetadata:
        """Describe ``events``; aggregate IDs are unique, in first-seen order."""
        aggregate_ids = list(dict.fromkeys(event.aggregate_id for event in events))
        return cls(
            version=JOURNAL_VERSION,
            event_count=len(events),
            aggregate_ids=aggregate_ids,
        )


def _metadata_to_dict(metadata: EventStorageMetadata) -> dict[str, Any]:
    return {
        "version": metadata.version,
        "event_count": metadata.event_count,
        "first_event_time": _format_time(metadata.first_event_time),
        "last_event_time": _format_time(metadata.last_event_time),
        "aggregate_ids": [str(agg) for agg in metadata.aggregate_ids],
    }


def _metadata_from_dict(data: Any) -> EventStorageMetadata:
    if not isinstance(data, Mapping):
        raise SerializationError("invalid type: expected a metadata object")
    for key in ("version", "event_count", "aggregate_ids"):
        if key not in data:
            raise SerializationError(f"missing field `{key}`")
    version = data["version"]
    if not isinstance(version, str):
        raise SerializationError("invalid type for `version`: expected a string")
    count = data["event_count"]
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise SerializationError("invalid value for `event_count`")
    raw_ids = data["aggregate_ids"]
    if not isinstance(raw_ids, list):
        raise SerializationError("invalid type for `aggregate_ids`: expected a sequence")
    aggregate_ids = [_parse_uuid({"aggregate_ids": item}, "aggregate_ids") for item in raw_ids]
    return EventStorageMetadata(
        version=version,
        event_count=count,
        first_event_time=_parse_time(data.get("first_event_time"), "first_event_time"),
        last_event_time=_parse_time(data.get("last_event_time"), "last_event_time"),
        aggregate_ids=aggregate_ids,
    )


@dataclass
class EventJournal:
    """An ordered list of events together with its metadata."""

    metadata: EventStorageMetadata
    events: list[GraphEvent]

    @classmethod
    def from_events(cls, events: Iterable[GraphEvent]) -> EventJournal:
        """Create a journal whose metadata describes ``events``."""
        events = list(events)
        return cls(EventStorageMetadata.from_events(events), events)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-compatible representation of the journal."""
        return {
            "metadata": _metadata_to_dict(self.metadata),
            "events": [event.to_dict() for event in self.events],
        }

    @classmethod
    def from_dict(cls, data: Any) -> EventJournal:
        """Build a journal from its JSON-compatible representation."""
        if not isinstance(data, Mapping):
            raise SerializationError("invalid type: expected a journal object")
        if "metadata" not in data:
            raise SerializationError("missing field `metadata`")
        if "events" not in data:
            raise SerializationError("missing field `events`")
        raw_events = data["events"]
        if not isinstance(raw_events, list):
            raise SerializationError("invalid type for `events`: expected a sequence")
        return cls(
            _metadata_from_dict(data["metadata"]),
            [GraphEvent.from_dict(item) for item in raw_events],
        )

    def save_to_file(self, path: str | Path) -> None:
        """Write the journal as JSON to ``path``."""
        try:
            text = _dump(self.to_dict())
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Failed to serialize journal: {exc}") from exc
        try:
            Path(path).write_text(text, encoding="utf-8")
        except OSError as exc:
            raise SerializationError(f"Failed to write file: {exc}") from exc

    @classmethod
    def load_from_file(cls, path: str | Path) -> EventJournal:
        """Read a journal previously written with :meth:`save_to_file`."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SerializationError(f"Failed to read file: {exc}") from exc
        try:
            return cls.from_dict(json.loads(text))
        except (ValueError, SerializationError) as exc:
            raise SerializationError(f"Failed to deserialize journal: {exc}") from exc