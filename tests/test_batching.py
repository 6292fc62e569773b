import uuid
from datetime import timedelta

from eventgraph.batching import AdaptiveBatcher, BatchConfig, EventBatch, EventBatcher
from eventgraph.journal import GraphEvent


def make_event(aggregate_id, event_id=None, correlation_id=None):
    return GraphEvent(
        event_id=event_id or uuid.uuid4(),
        aggregate_id=aggregate_id,
        correlation_id=correlation_id or uuid.uuid4(),
        causation_id=None,
        payload={"Ipld": {"CidAdded": {"cid": "QmTest", "codec": "dag-cbor", "size": 100, "data": {}}}},
    )


def test_basic_batching():
    batcher = EventBatcher(BatchConfig(max_events=5))
    aggregate_id = uuid.uuid4()
    for _ in range(4):
        assert batcher.add_event(make_event(aggregate_id)) is None
    batch = batcher.add_event(make_event(aggregate_id))
    assert batch is not None
    assert len(batch.events) == 5
    assert batcher.pending_count() == 0
    assert batcher.pending_size() == 0


def test_batch_splitting():
    agg1, agg2 = uuid.uuid4(), uuid.uuid4()
    batch = EventBatch([make_event(agg1), make_event(agg2), make_event(agg1), make_event(agg2)])
    split = batch.split_by_aggregate()
    assert len(split) == 2
    assert all(len(part.events) == 2 for part in split)
    assert {part.events[0].aggregate_id for part in split} == {agg1, agg2}


def test_split_keeps_order_within_aggregate():
    agg = uuid.uuid4()
    first, second = make_event(agg), make_event(agg)
    split = EventBatch([first, make_event(uuid.uuid4()), second]).split_by_aggregate()
    assert split[0].events == [first, second]


def test_events_for_aggregate_and_correlation():
    agg = uuid.uuid4()
    corr = uuid.uuid4()
    a = make_event(agg, correlation_id=corr)
    b = make_event(uuid.uuid4(), correlation_id=corr)
    c = make_event(agg)
    batch = EventBatch([a, b, c])
    assert batch.events_for_aggregate(agg) == [a, c]
    assert batch.events_for_correlation(corr) == [a, b]
    assert batch.events_for_aggregate(uuid.uuid4()) == []


def test_flush_sorts_by_aggregate_then_event():
    batcher = EventBatcher(BatchConfig(max_events=100, max_wait=60.0))
    e1 = make_event(uuid.UUID(int=2), uuid.UUID(int=5))
    e2 = make_event(uuid.UUID(int=1), uuid.UUID(int=9))
    e3 = make_event(uuid.UUID(int=1), uuid.UUID(int=3))
    for event in (e1, e2, e3):
        assert batcher.add_event(event) is None
    assert batcher.flush().events == [e3, e2, e1]


def test_flush_keeps_arrival_order_when_not_preserving():
    batcher = EventBatcher(BatchConfig(max_events=100, max_wait=60.0, preserve_aggregate_order=False))
    e1 = make_event(uuid.UUID(int=2))
    e2 = make_event(uuid.UUID(int=1))
    batcher.add_event(e1)
    batcher.add_event(e2)
    assert batcher.flush().events == [e1, e2]


def test_pending_size_matches_batch_size():
    batcher = EventBatcher(BatchConfig(max_events=100, max_wait=60.0))
    for _ in range(3):
        batcher.add_event(make_event(uuid.uuid4()))
    assert batcher.pending_count() == 3
    size = batcher.pending_size()
    assert size > 0
    assert batcher.flush().size_bytes == size


def test_byte_limit_triggers_flush():
    batcher = EventBatcher(BatchConfig(max_events=100, max_bytes=1, max_wait=60.0))
    batch = batcher.add_event(make_event(uuid.uuid4()))
    assert batch is not None
    assert len(batch.events) == 1


def test_zero_wait_triggers_flush():
    batcher = EventBatcher(BatchConfig(max_events=100, max_wait=0.0))
    batch = batcher.add_event(make_event(uuid.uuid4()))
    assert batch is not None
    assert batcher.should_flush() is False


def test_default_config():
    config = BatchConfig()
    assert config.max_events == 1000
    assert config.max_bytes == 1024 * 1024
    assert config.max_wait == 0.1
    assert config.preserve_aggregate_order is True


def test_adaptive_increases_on_better_performance():
    adaptive = AdaptiveBatcher(BatchConfig(max_events=100))
    for _ in range(3):
        adaptive.record_performance(100, 1.0)
    assert adaptive.config.max_events == 100
    adaptive.record_performance(1000, 1.0)
    assert adaptive.config.max_events == 120
    assert adaptive.config.max_bytes == 1258291
    assert adaptive.base_config.max_events == 100


def test_adaptive_decreases_on_worse_performance():
    adaptive = AdaptiveBatcher(BatchConfig(max_events=100))
    for _ in range(3):
        adaptive.record_performance(1000, timedelta(seconds=1))
    adaptive.record_performance(10, timedelta(seconds=1))
    assert adaptive.config.max_events == 80
    assert adaptive.config.max_bytes == 838860


def test_adaptive_limits_are_clamped():
    low = AdaptiveBatcher(BatchConfig(max_events=10, max_bytes=1024))
    for _ in range(3):
        low.record_performance(1000, 1.0)
    low.record_performance(10, 1.0)
    assert low.config.max_events == 10
    assert low.config.max_bytes == 1024

    high = AdaptiveBatcher(BatchConfig(max_events=9000, max_bytes=9_000_000))
    for _ in range(3):
        high.record_performance(100, 1.0)
    high.record_performance(1000, 1.0)
    assert high.config.max_events == 10_000
    assert high.config.max_bytes == 10_000_000


def test_adaptive_zero_time_does_not_change_limits():
    adaptive = AdaptiveBatcher(BatchConfig(max_events=50))
    for _ in range(4):
        adaptive.record_performance(5, 0.0)
    assert adaptive.config.max_events == 50


def test_adaptive_add_and_flush():
    adaptive = AdaptiveBatcher(BatchConfig(max_events=2, max_wait=60.0))
    assert adaptive.flush() is None
    assert adaptive.add_event(make_event(uuid.uuid4())) is None
    batch = adaptive.add_event(make_event(uuid.uuid4()))
    assert batch is not None and len(batch.events) == 2
    adaptive.add_event(make_event(uuid.uuid4()))
    flushed = adaptive.flush()
    assert flushed is not None and len(flushed.events) == 1
    assert adaptive.flush() is None