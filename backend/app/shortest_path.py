from __future__ import annotations

import heapq
from collections.abc import Callable
from dataclasses import dataclass
from itertools import count

from .weighting import MIN_EDGE_WEIGHT

Adjacency = dict[int, tuple[tuple[int, float], ...]]


@dataclass(frozen=True)
class PathResult:
    nodes: tuple[int, ...]
    cost: float


class PathNotFoundError(ValueError):
    pass


def weighted_adjacency(
    neighbours: dict[int, dict[int, object]],
    weight_fn: Callable[[int, int], float],
) -> Adjacency:
    """Freeze a neighbour map into (next, cost) tuples in insertion order."""
    return {
        node: tuple((nxt, weight_fn(node, nxt)) for nxt in nbrs)
        for node, nbrs in neighbours.items()
    }


def dijkstra_shortest_path(
    *,
    adjacency: Adjacency,
    start: int,
    goal: int,
    explored_counter: list[int] | None = None,
) -> PathResult:
    """Single-source shortest path with deterministic tie-breaking.

    Equal-cost heap entries pop in push order, so identical inputs always
    give the identical path. Raises PathNotFoundError when goal is
    unreachable or start == goal.
    """
    if start not in adjacency or goal not in adjacency:
        raise PathNotFoundError("start/goal not in graph")
    if start == goal:
        raise PathNotFoundError("start and goal resolve to the same node")

    seq = count()
    heap: list[tuple[float, int, int]] = [(0.0, next(seq), start)]
    best_cost: dict[int, float] = {start: 0.0}
    previous: dict[int, int] = {}
    settled: set[int] = set()

    while heap:
        cost, _, node = heapq.heappop(heap)
        if node in settled:
            continue
        settled.add(node)
        if explored_counter is not None:
            explored_counter[0] += 1
        if node == goal:
            path = [goal]
            while path[-1] != start:
                path.append(previous[path[-1]])
            path.reverse()
            return PathResult(nodes=tuple(path), cost=cost)
        for nxt, edge_cost in adjacency.get(node, ()):
            if nxt in settled:
                continue
            new_cost = cost + max(MIN_EDGE_WEIGHT, float(edge_cost))
            prev_best = best_cost.get(nxt)
            if prev_best is not None and new_cost >= prev_best:
                continue
            best_cost[nxt] = new_cost
            previous[nxt] = node
            heapq.heappush(heap, (new_cost, next(seq), nxt))
    raise PathNotFoundError("no path")


def normalize_no_path_reason(message: str) -> str:
    lowered = str(message or "").strip().lower()
    if "same node" in lowered:
        return "degenerate_endpoints"
    if "not in graph" in lowered:
        return "endpoint_unresolved"
    return "disconnected_graph"
