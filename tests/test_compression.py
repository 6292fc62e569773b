import io
import uuid

import pytest

from eventgraph.compression import (
    CompressedEventStream,
    EventCompressor,
    StreamingCompressor,
    StreamingDecompressor,
)
from eventgraph.journal import GraphEvent, SerializationError


def make_events(count):
    aggregate_id = uuid.uuid4()
    return [
        GraphEvent(
            event_id=uuid.uuid4(),
            aggregate_id=aggregate_id,
            correlation_id=uuid.uuid4(),
            causation_id=None,
            payload={
                "Ipld": {
                    "CidLinkAdded": {
                        "cid": f"Qm{i}",
                        "link_name": "test_link",
                        "target_cid": f"QmTarget{i}",
                    }
                }
            },
        )
        for i in range(count)
    ]


def test_compression_roundtrip():
    events = make_events(100)
    compressor = EventCompressor()
    compressed = compressor.compress(events)
    assert compressed.compression_ratio() < 1.0
    assert compressed.event_count() == 100
    restored = compressed.decompress()
    assert len(restored) == len(events)
    assert [e.event_id for e in restored] == [e.event_id for e in events]
    assert restored == events


def test_compressed_size_matches_data():
    compressed = EventCompressor().compress(make_events(10))
    assert compressed.compressed_size() == len(compressed.data)


def test_compression_level_clamped():
    assert EventCompressor(100).compression_level == 22
    assert EventCompressor(0).compression_level == 1
    assert EventCompressor().compression_level == 3


def test_compress_to_and_decompress_from():
    events = make_events(20)
    buffer = io.BytesIO()
    EventCompressor(5).compress_to(events, buffer)
    buffer.seek(0)
    assert EventCompressor.decompress_from(buffer) == events


def test_decompress_garbage_raises():
    with pytest.raises(SerializationError):
        CompressedEventStream(b"definitely not zstd", 1, 1.0).decompress()


def test_streaming_compression():
    events = make_events(50)
    buffer = io.BytesIO()
    compressor = StreamingCompressor(buffer, 3)
    for event in events:
        compressor.add_event(event)
    assert compressor.finish() == 50
    decompressor = StreamingDecompressor(io.BytesIO(buffer.getvalue()))
    restored = decompressor.collect_all()
    assert len(restored) == len(events)
    assert restored == events


def test_streaming_next_event_until_end():
    events = make_events(3)
    buffer = io.BytesIO()
    with StreamingCompressor(buffer) as compressor:
        for event in events:
            compressor.add_event(event)
    decompressor = StreamingDecompressor(io.BytesIO(buffer.getvalue()))
    assert decompressor.next_event() == events[0]
    assert decompressor.next_event() == events[1]
    assert decompressor.next_event() == events[2]
    assert decompressor.next_event() is None


def test_streaming_empty_stream():
    buffer = io.BytesIO()
    assert StreamingCompressor(buffer).finish() == 0
    assert StreamingDecompressor(io.BytesIO(buffer.getvalue())).collect_all() == []