# eventgraph

Tools for the event streams behind event-sourced graphs. Only events are
stored. Projections are never stored. They are rebuilt from events whenever
they are needed.

## Installation

```
pip install eventgraph
```

With the test dependencies:

```
pip install "eventgraph[test]"
```

## Modules

### `eventgraph.journal`

- `GraphEvent` is a frozen dataclass. Its fields are `event_id`,
  `aggregate_id`, `correlation_id`, `causation_id` (may be `None`) and
  `payload`.
  - The payload is a JSON-compatible value. It is usually a tagged mapping
    such as `{"Ipld": {"CidAdded": {...}}}`.
  - `to_dict()` and `GraphEvent.from_dict()` convert the event to and from plain data.
- `serialize_events(events)` turns events into pretty-printed JSON.
  `deserialize_events(text)` turns that JSON back into events.
- `save_events_to_file(events, path)` and `load_events_from_file(path)` do the
  same through a file.
- `serialize_command(command)` and `deserialize_command(text)` do the same for
  commands. A command is a plain mapping.
- `EventStorageMetadata` describes a set of events:
  - `version` is `"1.0.0"`.
  - `event_count`.
  - `aggregate_ids`, which are unique and listed in the order they first appear.
  - `first_event_time` and `last_event_time`, which are optional.
- `EventJournal` is events plus their metadata.
  - Build one with `EventJournal.from_events(events)`.
  - `to_dict()` / `from_dict()` convert it to and from plain data.
  - `save_to_file(path)` and `EventJournal.load_from_file(path)` store it on disk.

Every encoding or decoding failure, including file I/O errors, raises
`SerializationError`.

### `eventgraph.batching`

- `BatchConfig` sets the flush limits:
  - `max_events`: 1000 by default.
  - `max_bytes`: 1 MiB by default.
  - `max_wait`: 0.1 seconds by default.
  - `preserve_aggregate_order`: on by default. When it is on, a flushed
    batch is sorted by aggregate ID and then by event ID.
- `EventBatcher.add_event(event)` queues an event. It returns an `EventBatch`
  as soon as any limit is reached, and `None` otherwise.
  - `flush()` emits whatever is pending.
  - `pending_count()` and `pending_size()` report what is waiting.
- `EventBatch` has the following:
  - `events`, `batch_id` and `size_bytes` (an approximate size).
  - `events_for_aggregate()` and `events_for_correlation()`.
  - `split_by_aggregate()`.
- `AdaptiveBatcher` changes its limits based on the throughput you report to
  it.
  - Report throughput with `record_performance(batch_size, processing_time)`.
    `processing_time` is in seconds, or a `timedelta`.
  - Once at least three measurements have been recorded, the limits adjust:
    - If the last three measurements are more than 10% above the average,
      the limits grow by 20%, up to 10,000 events and 10,000,000 bytes.
    - If they are more than 10% below it, the limits shrink by 20%, down to
      10 events and 1024 bytes.
  - Every adjustment replaces the internal batcher. Events still pending at
    that moment are dropped, so call `flush()` before recording performance.

### `eventgraph.compression`

Events are encoded as JSON and compressed with zstd. The compression level
is clamped to 1–22 and defaults to 3.

- `EventCompressor.compress(events)` returns a `CompressedEventStream`. That
  object provides:
  - `decompress()`.
  - `compression_ratio()`, which is the compressed size divided by the
    original size.
  - `compressed_size()`.
  - `event_count()`.
- `EventCompressor.compress_to(events, writer)` writes a compressed frame to a
  binary file object. `EventCompressor.decompress_from(reader)` reads it back.
- `StreamingCompressor(writer, level)` writes events one at a time.
  - Each event is stored with a 4-byte little-endian length prefix.
  - `add_event(event)` appends one event.
  - `finish()` ends the stream and returns the number of events written.
  - It can be used as a context manager, which finishes the stream on exit.
- `StreamingDecompressor(reader)` reads such a stream back in one of three ways:
  - Call `next_event()` repeatedly. It returns `None` at the end.
  - Iterate over the decompressor.
  - Call `collect_all()`.

### `eventgraph.replay`

Replay works on `(event, sequence)` pairs.

- `ReplayOptimizer` chooses a strategy with
  `determine_strategy(aggregate_id, current_sequence, total_events)`. It
  returns the first of these that applies:
  1. `FromSnapshot`, if the latest snapshot is fewer than
     `2 * snapshot_interval` events behind the current sequence.
  2. `FullReplay`, if there are fewer than 1000 events.
  3. `RecentReplay(max_events=1000)` otherwise.
- `TimeWindowReplay` is also available. Events carry no timestamps, so it
  keeps every event.
- `select_events(events, strategy)` returns the events a strategy selects.
- `replay_events(events, strategy, build)` passes the selected events to your
  `build` callable and returns its result.
- Snapshots:
  - `create_snapshot(projection, sequence)` pickles any object that has an
    `aggregate_id`.
  - At most `max_snapshots` snapshots are kept per aggregate. The oldest is
    dropped first.
  - `should_snapshot(sequence, aggregate_id)` says whether a snapshot is due.
  - `snapshot_stats()` returns a `SnapshotStats`.
- `ReplayConfig` holds these settings:
  - `snapshot_interval`: 100 by default.
  - `max_snapshots`: 5 by default.
  - `parallel_replay`.
- `ParallelReplayer(thread_count).replay_multiple(events_by_aggregate, build)`
  builds one result per aggregate on a thread pool.
- `EventIndex.build(events)` indexes positions in the list.
  - `events_after(aggregate_id, sequence)` returns the positions of that
    aggregate's later events, ordered by sequence.
  - `events_for_correlation(correlation_id)` returns a list of positions, or
    `None`.

### `eventgraph.indexing`

- `Node` and `Edge` are protocols. A node needs an `id`. An edge needs an
  `id`, a `source` and a `target`.
- `NodeIndex` supports `insert`, `remove`, `get` and `get_by_type`. Every
  node is filed under the type `"default"`.
- `EdgeIndex` supports `insert`, `get`, `edges_from` and `edges_to`.
- `GraphCache` is a thread-safe cache.
  - `get_shortest_path(source, target, compute)` calls `compute` only on a
    miss.
  - `cached_path()` looks up an entry without computing anything.
  - `invalidate()` clears the cache and increments `generation`.
- `NodePool(capacity, factory)` keeps up to `capacity` released objects.
  - `acquire()` returns a released object if there is one.
  - Otherwise it returns `factory()`.

### `eventgraph.parallel`

- `parallel_bfs(start_nodes, get_neighbors)` returns every reachable node
  once, level by level. The neighbours of each level are fetched on a thread
  pool.
- `parallel_degrees(nodes, get_degree)` returns a dict that maps each node to
  its degree.

### `eventgraph.monitoring`

- `PerfCounter(name)` times operations.
  - `measure(op)` runs `op`, records how long it took and returns its result.
  - `average_time()` returns the mean in seconds. It is `0.0` before anything
    is measured.
  - `count` and `total_time` are also available.

## Example

```python
import uuid
from eventgraph.journal import GraphEvent, EventJournal
from eventgraph.batching import BatchConfig, EventBatcher
from eventgraph.compression import EventCompressor

aggregate = uuid.uuid4()
events = [
    GraphEvent(
        event_id=uuid.uuid4(),
        aggregate_id=aggregate,
        correlation_id=uuid.uuid4(),
        causation_id=None,
        payload={"Generic": {"event_type": "Example", "data": {"index": i}}},
    )
    for i in range(5)
]

journal = EventJournal.from_events(events)
journal.save_to_file("events.json")
restored = EventJournal.load_from_file("events.json")
assert restored.metadata.event_count == 5

batcher = EventBatcher(BatchConfig(max_events=5, max_wait=60.0))
batch = None
for event in events:
    batch = batcher.add_event(event) or batch
assert batch is not None and len(batch.events) == 5

stream = EventCompressor().compress(events)
assert len(stream.decompress()) == 5
```

## What the package does not do

- It does not define graph projections and does not interpret event payloads.
  Replay functions take a `build` callable that you supply.
- It has no event store, message broker or network client. Persistence is
  limited to JSON files and compressed byte streams.
- It provides no command-line program.

## Running the tests

```
pytest
```