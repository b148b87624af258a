from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .logging_utils import log_event
from .settings import settings

EARTH_RADIUS_M = 6_371_000.0
COORD_KEY_DECIMALS = 5

EdgeKey = tuple[int, int]


def _haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, a))))


def haversine_m(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Great-circle distance in metres between two (lat, lng) points."""
    return _haversine_m(a[0], a[1], b[0], b[1])


def coord_key(lat: float, lng: float) -> str:
    # 5 decimals ~ 1.1 m; points closer than that collapse into one node.
    return f"{lat:.{COORD_KEY_DECIMALS}f}_{lng:.{COORD_KEY_DECIMALS}f}"


def edge_key(a: int, b: int) -> EdgeKey:
    return (a, b) if a <= b else (b, a)


@dataclass(frozen=True)
class Node:
    id: int
    lat: float
    lng: float

    @property
    def coordinate(self) -> tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class Edge:
    from_node: int
    to_node: int
    distance_m: float
    travel_time_s: float
    midpoint: tuple[float, float]

    @property
    def key(self) -> EdgeKey:
        return edge_key(self.from_node, self.to_node)

    @property
    def travel_time_min(self) -> float:
        return self.travel_time_s / 60.0


@dataclass
class RouteGraph:
    """Undirected graph; each edge is stored once per direction in the adjacency."""

    speed_mps: float = 13.89
    nodes: dict[int, Node] = field(default_factory=dict)
    adjacency: dict[int, dict[int, Edge]] = field(default_factory=dict)
    _ids_by_key: dict[str, int] = field(default_factory=dict, repr=False)

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return sum(len(neighbours) for neighbours in self.adjacency.values()) // 2

    def is_empty(self) -> bool:
        return not self.nodes

    def add_node(self, lat: float, lng: float) -> int:
        key = coord_key(lat, lng)
        existing = self._ids_by_key.get(key)
        if existing is not None:
            return existing
        node_id = len(self.nodes)
        self._ids_by_key[key] = node_id
        self.nodes[node_id] = Node(id=node_id, lat=float(lat), lng=float(lng))
        self.adjacency[node_id] = {}
        return node_id

    def add_edge(self, a: int, b: int, *, distance_m: float | None = None) -> Edge | None:
        """Connect two nodes in both directions.

        Distance defaults to the haversine distance between the nodes. Self
        loops and zero-length edges are dropped (returns None).
        """
        if a == b:
            return None
        na = self.nodes[a]
        nb = self.nodes[b]
        d_m = haversine_m(na.coordinate, nb.coordinate) if distance_m is None else float(distance_m)
        if d_m <= 0.0 or not math.isfinite(d_m):
            return None
        midpoint = ((na.lat + nb.lat) / 2.0, (na.lng + nb.lng) / 2.0)
        t_s = d_m / self.speed_mps
        forward = Edge(from_node=a, to_node=b, distance_m=d_m, travel_time_s=t_s, midpoint=midpoint)
        self.adjacency[a][b] = forward
        self.adjacency[b][a] = Edge(from_node=b, to_node=a, distance_m=d_m, travel_time_s=t_s, midpoint=midpoint)
        return forward

    def edge(self, a: int, b: int) -> Edge | None:
        return self.adjacency.get(a, {}).get(b)

    def undirected_edges(self) -> list[Edge]:
        out: list[Edge] = []
        for node_id in sorted(self.adjacency):
            for nxt, e in self.adjacency[node_id].items():
                if node_id < nxt:
                    out.append(e)
        return out

    def nearest_node(self, lat: float, lng: float) -> int | None:
        best_id: int | None = None
        best_d = math.inf
        # nodes iterate in id order, so ties resolve to the lowest id
        for node_id, node in self.nodes.items():
            d = haversine_m((lat, lng), node.coordinate)
            if d < best_d:
                best_d = d
                best_id = node_id
        return best_id

    def path_coordinates(self, node_path: Sequence[int]) -> list[tuple[float, float]]:
        return [self.nodes[node_id].coordinate for node_id in node_path]

    def stats(self) -> dict[str, int]:
        return {"node_count": self.node_count, "edge_count": self.edge_count}


def build_route_graph(
    routes: Iterable[Sequence[tuple[float, float]]],
    *,
    speed_mps: float | None = None,
) -> RouteGraph:
    """Merge baseline polylines into one deduplicated node/edge graph.

    Each route is an ordered sequence of (lat, lng). Consecutive points become
    bidirectional edges; identical consecutive points are skipped.
    """
    graph = RouteGraph(speed_mps=float(speed_mps or settings.assumed_speed_mps))
    route_count = 0
    for route in routes:
        route_count += 1
        prev_id: int | None = None
        for lat, lng in route:
            node_id = graph.add_node(float(lat), float(lng))
            if prev_id is not None and prev_id != node_id:
                graph.add_edge(prev_id, node_id)
            prev_id = node_id

    log_event(
        "route_graph_built",
        route_count=route_count,
        node_count=graph.node_count,
        edge_count=graph.edge_count,
    )
    return graph
