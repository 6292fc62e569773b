"""Compression of event streams with zstd for storage and transmission."""

from __future__ import annotations

import json
import struct
from typing import IO, Any, Iterable, Iterator, Sequence

import zstandard

from eventgraph.journal import GraphEvent, SerializationError

DEFAULT_LEVEL = 3
MIN_LEVEL = 1
MAX_LEVEL = 22

_LENGTH_PREFIX = struct.Struct("<I")
_CHUNK = 64 * 1024


def _encode(value: Any) -> bytes:
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError(str(exc)) from exc


def _encode_events(events: Iterable[GraphEvent]) -> bytes:
    return _encode([event.to_dict() for event in events])


def _decode_events(raw: bytes) -> list[GraphEvent]:
    try:
        data = json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        raise SerializationError(str(exc)) from exc
    if not isinstance(data, list):
        raise SerializationError("invalid type: expected a sequence of events")
    return [GraphEvent.from_dict(item) for item in data]


def _decode_event(raw: bytes) -> GraphEvent:
    try:
        data = json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        raise SerializationError(str(exc)) from exc
    return GraphEvent.from_dict(data)


def _read_exactly(stream: Any, size: int) -> bytes:
    """Read up to ``size`` bytes, stopping early only at end of stream."""
    parts: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


def _decompress_stream(reader: IO[bytes]) -> bytes:
    try:
        with zstandard.ZstdDecompressor().stream_reader(reader, closefd=False) as decoder:
            parts = []
            while True:
                chunk = decoder.read(_CHUNK)
                if not chunk:
                    break
                parts.append(chunk)
    except (zstandard.ZstdError, OSError, ValueError) as exc:
        raise SerializationError(str(exc)) from exc
    return b"".join(parts)


def _compressor(level: int) -> zstandard.ZstdCompressor:
    try:
        return zstandard.ZstdCompressor(level=level)
    except (zstandard.ZstdError, ValueError) as exc:
        raise SerializationError(str(exc)) from exc


class CompressedEventStream:
    """A compressed block of events."""

    def __init__(self, data: bytes, event_count: int, compression_ratio: float) -> None:
        self.data = bytes(data)
        self._event_count = event_count
        self._compression_ratio = compression_ratio

    def __repr__(self) -> str:
        return (
            f"CompressedEventStream(events={self._event_count}, "
            f"compressed_size={len(self.data)}, ratio={self._compression_ratio:.3f})"
        )

    def decompress(self) -> list[GraphEvent]:
        """Restore the events."""
        import io

        return _decode_events(_decompress_stream(io.BytesIO(self.data)))

    def compression_ratio(self) -> float:
        """Compressed size divided by original size."""
        return self._compression_ratio

    def compressed_size(self) -> int:
        """Size of the compressed data in bytes."""
        return len(self.data)

    def event_count(self) -> int:
        """Number of events in the stream."""
        return self._event_count


class EventCompressor:
    """Compresses batches of events at a fixed level (1 to 22)."""

    def __init__(self, compression_level: int = DEFAULT_LEVEL) -> None:
        self.compression_level = max(MIN_LEVEL, min(MAX_LEVEL, compression_level))

    def __repr__(self) -> str:
        return f"EventCompressor(compression_level={self.compression_level})"

    def compress(self, events: Sequence[GraphEvent]) -> CompressedEventStream:
        """Compress ``events`` into a :class:`CompressedEventStream`."""
        events = list(events)
        serialized = _encode_events(events)
        try:
            compressed = _compressor(self.compression_level).compress(serialized)
        except zstandard.ZstdError as exc:
            raise SerializationError(str(exc)) from exc
        return CompressedEventStream(compressed, len(events), len(compressed) / len(serialized))

    def compress_to(self, events: Iterable[GraphEvent], writer: IO[bytes]) -> None:
        """Compress ``events`` and write the result to a binary ``writer``."""
        serialized = _encode_events(events)
        try:
            with _compressor(self.compression_level).stream_writer(writer, closefd=False) as encoder:
                encoder.write(serialized)
        except (zstandard.ZstdError, OSError, ValueError) as exc:
            raise SerializationError(str(exc)) from exc

    @staticmethod
    def decompress_from(reader: IO[bytes]) -> list[GraphEvent]:
        """Read events written by :meth:`compress_to` from a binary ``reader``."""
        return _decode_events(_decompress_stream(reader))


class StreamingCompressor:
    """Writes events one at a time as length-prefixed frames in a zstd stream."""

    def __init__(self, writer: IO[bytes], compression_level: int = DEFAULT_LEVEL) -> None:
        try:
            self._encoder = _compressor(compression_level).stream_writer(writer, closefd=False)
        except (zstandard.ZstdError, ValueError) as exc:
            raise SerializationError(str(exc)) from exc
        self.event_count = 0

    def __repr__(self) -> str:
        return f"StreamingCompressor(event_count={self.event_count})"

    def __enter__(self) -> StreamingCompressor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        if not self._encoder.closed:
            self.finish()

    def add_event(self, event: GraphEvent) -> None:
        """Append one event to the stream."""
        serialized = _encode(event.to_dict())
        try:
            self._encoder.write(_LENGTH_PREFIX.pack(len(serialized)))
            self._encoder.write(serialized)
        except (zstandard.ZstdError, OSError, ValueError) as exc:
            raise SerializationError(str(exc)) from exc
        self.event_count += 1

    def finish(self) -> int:
        """End the stream and return how many events were written."""
        try:
            self._encoder.close()
        except (zstandard.ZstdError, OSError, ValueError) as exc:
            raise SerializationError(str(exc)) from exc
        return self.event_count


class StreamingDecompressor:
    """Reads events written by :class:`StreamingCompressor`."""

    def __init__(self, reader: IO[bytes]) -> None:
        self._reader = reader
        self._decoder: Any = None
        self._finished = False

    def __repr__(self) -> str:
        return "StreamingDecompressor()"

    def __iter__(self) -> Iterator[GraphEvent]:
        while (event := self.next_event()) is not None:
            yield event

    def _read(self, size: int) -> bytes:
        if self._decoder is None:
            self._decoder = zstandard.ZstdDecompressor().stream_reader(self._reader, closefd=False)
        try:
            return _read_exactly(self._decoder, size)
        except (zstandard.ZstdError, OSError, ValueError) as exc:
            raise SerializationError(str(exc)) from exc

    def next_event(self) -> GraphEvent | None:
        """Return the next event, or None at the end of the stream."""
        if self._finished:
            return None
        prefix = self._read(_LENGTH_PREFIX.size)
        if len(prefix) < _LENGTH_PREFIX.size:
            self._finished = True
            return None
        (length,) = _LENGTH_PREFIX.unpack(prefix)
        body = self._read(length)
        if len(body) < length:
            raise SerializationError("unexpected end of stream inside an event")
        return _decode_event(body)

    def collect_all(self) -> list[GraphEvent]:
        """Return all remaining events."""
        return list(self)