"""Hop-count routing over the discovered link graph, with a versioned cache."""

from __future__ import annotations

import heapq
import itertools
import logging
import math
import random
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from ofsim.mib import LLDPMib, LLDPMibGraph

logger = logging.getLogger(__name__)

Vertices = Mapping[str, Sequence[LLDPMib]]
PathFinder = Callable[[Vertices, str, str], "list[PathSegment]"]


@dataclass(frozen=True)
class PathSegment:
    """One hop: leave switch ``chassis_id`` through ``outport``."""

    chassis_id: str
    outport: int


def _backtrack(prev: dict[str, PathSegment], src_id: str, dst_id: str) -> list[PathSegment]:
    path: list[PathSegment] = []
    node = dst_id
    while node in prev:
        segment = prev[node]
        path.append(segment)
        node = segment.chassis_id
    if node != src_id:
        return []
    path.reverse()
    return path


def shortest_path(vertices: Vertices, src_id: str, dst_id: str) -> list[PathSegment]:
    """Minimum-hop path from ``src_id`` to ``dst_id``; empty if there is none."""
    if src_id not in vertices or dst_id not in vertices:
        return []

    dist = {vertex: math.inf for vertex in vertices}
    dist[src_id] = 0
    prev: dict[str, PathSegment] = {}
    visited: set[str] = set()
    order = itertools.count()
    heap = [(0, next(order), src_id)]

    while heap:
        _, _, u = heapq.heappop(heap)
        if u in visited:
            continue
        alt = dist[u] + 1
        for edge in vertices[u]:
            v = edge.dst_id
            if v in visited or v not in dist:
                continue
            if alt < dist[v]:
                dist[v] = alt
                prev[v] = PathSegment(u, edge.src_port)
                heapq.heappush(heap, (alt, next(order), v))
        visited.add(u)

    return _backtrack(prev, src_id, dst_id)


def balanced_path(
    vertices: Vertices, src_id: str, dst_id: str, rng: random.Random
) -> list[PathSegment]:
    """Minimum-hop path that picks at random among equally short alternatives.

    When expanding a vertex finds neighbours already reached at the same
    distance, one of them (or none) is chosen uniformly and routed through
    that vertex instead.
    """
    if src_id not in vertices or dst_id not in vertices:
        return []

    dist = {vertex: math.inf for vertex in vertices}
    dist[src_id] = 0
    prev: dict[str, PathSegment] = {}
    order = itertools.count()
    heap = [(0, next(order), src_id)]

    while heap:
        _, _, u = heapq.heappop(heap)
        if dist[u] == math.inf:
            continue
        alt = dist[u] + 1
        ties: list[tuple[str, PathSegment]] = []
        for edge in vertices[u]:
            v = edge.dst_id
            if v not in dist:
                continue
            segment = PathSegment(u, edge.src_port)
            if alt < dist[v]:
                ties.clear()
                dist[v] = alt
                prev[v] = segment
                heapq.heappush(heap, (alt, next(order), v))
            elif alt == dist[v]:
                ties.append((v, segment))

        if ties:
            pick = rng.randrange(len(ties) + 1)
            if pick < len(ties):
                v, segment = ties[pick]
                prev[v] = segment
                heapq.heappush(heap, (alt, next(order), v))

    return _backtrack(prev, src_id, dst_id)


@dataclass
class RouteCache:
    """Routes keyed by (source, destination), valid for one graph version."""

    version: int = -1
    version_hit: int = 0
    version_miss: int = 0
    cache_hit: int = 0
    cache_miss: int = 0
    routes: dict[tuple[str, str], list[PathSegment]] = field(default_factory=dict)

    def lookup(
        self, graph: LLDPMibGraph, src_id: str, dst_id: str, compute: PathFinder
    ) -> list[PathSegment]:
        """Return a route, computing it with ``compute`` when not cached.

        Expired links are purged from ``graph`` first; a changed graph
        version empties the cache.
        """
        graph.remove_expired_entries()
        vertices = graph.vertices
        logger.debug(
            "Finding route in %d vertices and %d edges",
            graph.num_vertices,
            graph.num_edges,
        )
        logger.debug(
            "Version hit: %d version miss: %d cache hit: %d cache miss: %d",
            self.version_hit,
            self.version_miss,
            self.cache_hit,
            self.cache_miss,
        )

        key = (src_id, dst_id)
        if graph.version == self.version:
            self.version_hit += 1
            cached = self.routes.get(key)
            if cached is not None:
                self.cache_hit += 1
                return list(cached)
            self.cache_miss += 1
        else:
            self.version_miss += 1
            self.routes.clear()
            self.version = graph.version

        if src_id not in vertices or dst_id not in vertices:
            return []

        route = compute(vertices, src_id, dst_id)
        if route or src_id == dst_id:
            self.routes[key] = list(route)
        return list(route)