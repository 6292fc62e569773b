"""Graph operations that spread work across threads."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable


def parallel_bfs(
    start_nodes: Iterable[str], get_neighbors: Callable[[str], Iterable[str]]
) -> list[str]:
    """Breadth-first traversal; neighbours of each level are fetched in parallel.

    Returns every reachable node once, level by level.
    """
    visited: set[str] = set()
    result: list[str] = []
    level = list(start_nodes)
    with ThreadPoolExecutor() as pool:
        while level:
            fresh = []
            for node in level:
                if node not in visited:
                    visited.add(node)
                    fresh.append(node)
            result.extend(fresh)
            level = [
                neighbour
                for neighbours in pool.map(lambda n: list(get_neighbors(n)), fresh)
                for neighbour in neighbours
            ]
    return result


def parallel_degrees(
    nodes: Iterable[str], get_degree: Callable[[str], int]
) -> dict[str, int]:
    """Degree of every node, computed in parallel."""
    node_list = list(nodes)
    with ThreadPoolExecutor() as pool:
        return dict(zip(node_list, pool.map(get_degree, node_list)))