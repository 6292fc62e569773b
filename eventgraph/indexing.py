"""Indexes, caches and pools that speed up graph lookups."""

from __future__ import annotations

import threading
from typing import Callable, Generic, Protocol, TypeVar, runtime_checkable

DEFAULT_NODE_TYPE = "default"


@runtime_checkable
class Node(Protocol):
    """Anything with a string identifier can be indexed as a node."""

    @property
    def id(self) -> str: ...


@runtime_checkable
class Edge(Protocol):
    """An identified connection from a source node to a target node."""

    @property
    def id(self) -> str: ...

    @property
    def source(self) -> str: ...

    @property
    def target(self) -> str: ...


N = TypeVar("N", bound=Node)
E = TypeVar("E", bound=Edge)
T = TypeVar("T")


class NodeIndex(Generic[N]):
    """Lookup of nodes by identifier and by type."""

    def __init__(self) -> None:
        self._by_id: dict[str, N] = {}
        self._by_type: dict[str, list[N]] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._by_id

    def insert(self, node: N) -> None:
        """Add ``node``; every node is currently filed under the default type."""
        self._by_id[node.id] = node
        self._by_type.setdefault(DEFAULT_NODE_TYPE, []).append(node)

    def remove(self, node_id: str) -> N | None:
        """Remove and return the node with ``node_id``, or None if absent."""
        node = self._by_id.pop(node_id, None)
        if node is None:
            return None
        for node_type, nodes in self._by_type.items():
            self._by_type[node_type] = [n for n in nodes if n.id != node_id]
        return node

    def get(self, node_id: str) -> N | None:
        """The node with ``node_id``, or None."""
        return self._by_id.get(node_id)

    def get_by_type(self, node_type: str) -> list[N] | None:
        """All nodes of ``node_type``, or None if the type was never indexed."""
        return self._by_type.get(node_type)


class EdgeIndex(Generic[E]):
    """Lookup of edges by identifier, source and target."""

    def __init__(self) -> None:
        self._by_id: dict[str, E] = {}
        self._by_source: dict[str, list[E]] = {}
        self._by_target: dict[str, list[E]] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, edge_id: str) -> E | None:
        """The edge with ``edge_id``, or None."""
        return self._by_id.get(edge_id)

    def insert(self, edge: E) -> None:
        """Add ``edge`` to all indexes."""
        self._by_id[edge.id] = edge
        self._by_source.setdefault(edge.source, []).append(edge)
        self._by_target.setdefault(edge.target, []).append(edge)

    def edges_from(self, source: str) -> list[E] | None:
        """Edges leaving ``source``, or None if there are none indexed."""
        return self._by_source.get(source)

    def edges_to(self, target: str) -> list[E] | None:
        """Edges entering ``target``, or None if there are none indexed."""
        return self._by_target.get(target)


class GraphCache:
    """Thread-safe cache of expensive graph computations."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._shortest_paths: dict[tuple[str, str], list[str]] = {}
        self._degrees: dict[str, int] = {}
        self._components: list[list[str]] | None = None
        self._generation = 0

    @property
    def generation(self) -> int:
        """Incremented each time the cache is invalidated."""
        with self._lock:
            return self._generation

    def invalidate(self) -> None:
        """Drop every cached result."""
        with self._lock:
            self._generation += 1
            self._shortest_paths.clear()
            self._degrees.clear()
            self._components = None

    def get_shortest_path(
        self, source: str, target: str, compute: Callable[[], list[str]]
    ) -> list[str]:
        """Return the cached path, computing and storing it on a miss.

        Exceptions from ``compute`` propagate and nothing is cached.
        """
        key = (source, target)
        with self._lock:
            cached = self._shortest_paths.get(key)
        if cached is not None:
            return list(cached)
        path = list(compute())
        with self._lock:
            self._shortest_paths[key] = path
        return list(path)

    def cached_path(self, source: str, target: str) -> list[str] | None:
        """The cached path between ``source`` and ``target``, or None."""
        with self._lock:
            path = self._shortest_paths.get((source, target))
        return None if path is None else list(path)


class NodePool(Generic[T]):
    """Keeps up to ``capacity`` released objects for reuse."""

    def __init__(self, capacity: int, factory: Callable[[], T]) -> None:
        self.capacity = capacity
        self._factory = factory
        self._pool: list[T] = []

    def __len__(self) -> int:
        return len(self._pool)

    def acquire(self) -> T:
        """Take the most recently released object, or make a new one."""
        if self._pool:
            return self._pool.pop()
        return self._factory()

    def release(self, node: T) -> None:
        """Return ``node`` to the pool unless it is full."""
        if len(self._pool) < self.capacity:
            self._pool.append(node)