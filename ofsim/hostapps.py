"""Host-side traffic: random ping targets, TCP flow generator and sink."""

from __future__ import annotations

import logging
import math
import random
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from os import PathLike
from typing import Any

from ofsim.service import EventScheduler

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024
_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

GAMMA_SHAPE = 0.4754
GAMMA_SCALE = 13.7300
"""Shape and scale of the gamma-distributed gap between new connections."""


def _atoi(text: str) -> int:
    found = _INT_PREFIX.match(text)
    return int(found.group(1)) if found else 0


def _atof(text: str) -> float:
    found = _FLOAT_PREFIX.match(text)
    return float(found.group(1)) if found else 0.0


def load_group_config(
    path: str | PathLike[str], own_path: str
) -> tuple[str, dict[str, list[str]]]:
    """Read ``node;group`` lines; return this node's group and the other nodes by group.

    A line whose node name occurs in ``own_path`` sets the local group
    instead of being listed. A missing file yields an empty configuration.
    """
    local_id = ""
    groups: dict[str, list[str]] = {}
    try:
        with open(path, encoding="utf-8") as stream:
            lines = stream.read().splitlines()
    except FileNotFoundError:
        logger.warning("File not found: %s", path)
        return local_id, groups

    for number, line in enumerate(lines, start=1):
        tokens = [token for token in line.split(";") if token]
        if not tokens:
            continue
        if len(tokens) < 2:
            raise ValueError(f"line {number} of {path} has no group: {line!r}")
        node, group = tokens[0], tokens[1]
        if node in own_path:
            local_id = group
        else:
            groups.setdefault(group, []).append(node)
    return local_id, groups


class LocalityTargetPicker:
    """Picks ping targets, inside the local group with probability ``locality_relation``.

    Groups are expected to be named ``"0"`` to ``"n-1"``; a global target is
    taken from a random group other than the local one.
    """

    def __init__(
        self,
        local_id: str,
        groups: Mapping[str, Sequence[str]],
        locality_relation: float,
        rng: random.Random | None = None,
    ) -> None:
        self.local_id = local_id
        self.groups = {key: list(nodes) for key, nodes in groups.items()}
        self.locality_relation = locality_relation
        self.rng = rng if rng is not None else random.Random()

    def pick(self) -> str:
        """Return the name of the next ping target."""
        if self.rng.random() <= self.locality_relation:
            nodes = self.groups.get(self.local_id)
            if not nodes:
                raise LookupError(f"local group {self.local_id!r} has no other nodes")
            return nodes[self.rng.randrange(len(nodes))]

        count = len(self.groups)
        local = _atoi(self.local_id)
        if count == 0 or (count == 1 and local == 0):
            raise LookupError("no group other than the local one")
        group = self.rng.randrange(count)
        while group == local:
            group = self.rng.randrange(count)
        nodes = self.groups.get(str(group))
        if not nodes:
            raise LookupError(f"group {group} has no nodes")
        return nodes[self.rng.randrange(len(nodes))]


def pick_random_destination(nodes: Sequence[str], own: str, rng: random.Random) -> str:
    """A node chosen uniformly from ``nodes``, never ``own``."""
    if not nodes:
        raise LookupError("No potential destination nodes found")
    if all(node == own for node in nodes):
        raise LookupError("no destination other than the node itself")
    choice = nodes[rng.randrange(len(nodes))]
    while choice == own:
        choice = nodes[rng.randrange(len(nodes))]
    return choice


def count_lines(path: str | PathLike[str]) -> int:
    """Number of newline characters in the file."""
    total = 0
    with open(path, "rb") as stream:
        while chunk := stream.read(_CHUNK_SIZE):
            total += chunk.count(b"\n")
    return total


def flow_size_at(path: str | PathLike[str], line: int) -> int:
    """Flow size in bytes read from line ``line`` (1-based) of the file.

    Line 0 gives 0; past the end the last line is used. The leading number
    of the line is truncated to an integer, and text without one gives 0.
    """
    if line < 0:
        raise ValueError("line number must not be negative")
    text = ""
    with open(path, encoding="utf-8") as stream:
        for _, text in zip(range(line), stream):
            pass
    return int(_atof(text))


@dataclass
class FlowStats:
    """Times and size of one generated TCP flow."""

    started: float
    transmitted_bytes: int
    established: float | None = None
    finished: float | None = None


class TrafficGenerator:
    """Opens TCP flows to random hosts at gamma-distributed intervals.

    Connections come from ``connection_factory`` and need ``connect(address,
    port)``, ``send(byte_length)`` and ``close()``. Flow sizes are drawn from
    random lines of ``flow_sizes_path``. ``resolve`` maps a node name to an
    address, or None when it has none.
    """

    def __init__(
        self,
        scheduler: EventScheduler,
        destinations: Iterable[str],
        own: str,
        flow_sizes_path: str | PathLike[str],
        connection_factory: Callable[[], Any],
        connect_port: int,
        *,
        rng: random.Random | None = None,
        resolve: Callable[[str], Any] | None = None,
        start_sending: float = 0.0,
    ) -> None:
        self.scheduler = scheduler
        self.destinations = list(destinations)
        self.own = own
        self.flow_sizes_path = flow_sizes_path
        self.connection_factory = connection_factory
        self.connect_port = connect_port
        self.rng = rng if rng is not None else random.Random()
        self.resolve = resolve if resolve is not None else (lambda name: name)
        self.start_sending = start_sending
        self.line_numbers = count_lines(flow_sizes_path)
        self.statistics: dict[Any, FlowStats] = {}
        self.completed: list[FlowStats] = []

    def start(self) -> None:
        """Schedule the first connection at ``start_sending``."""
        self.scheduler.schedule(self.start_sending - self.scheduler.now, self._on_timer)

    def _on_timer(self) -> None:
        self.start_connection(self.connection_factory())
        gap = self.rng.gammavariate(GAMMA_SHAPE, GAMMA_SCALE)
        self.scheduler.schedule(gap, self._on_timer)

    def _pick_destination(self) -> Any:
        if not any(
            node != self.own and self.resolve(node) is not None for node in self.destinations
        ):
            raise LookupError("no reachable destination")
        while True:
            node = pick_random_destination(self.destinations, self.own, self.rng)
            address = self.resolve(node)
            if address is not None:
                return address

    def start_connection(self, connection: Any) -> FlowStats:
        """Connect to a random host and send one flow of random size over it."""
        address = self._pick_destination()
        connection.connect(address, self.connect_port)
        line = math.floor(self.rng.uniform(0, self.line_numbers))
        size = flow_size_at(self.flow_sizes_path, line)
        connection.send(size)
        stats = FlowStats(started=self.scheduler.now, transmitted_bytes=size)
        self.statistics[connection] = stats
        return stats

    def _stats_for(self, connection: Any) -> FlowStats:
        try:
            return self.statistics[connection]
        except KeyError:
            raise KeyError("connection was not started by this generator") from None

    def established(self, connection: Any) -> None:
        logger.debug("TrafficGenerator: connection established")
        self._stats_for(connection).established = self.scheduler.now

    def peer_closed(self, connection: Any) -> FlowStats:
        """Record the finished flow and close our side too."""
        logger.debug("TrafficGenerator: peer closed, closing too")
        stats = self._stats_for(connection)
        stats.finished = self.scheduler.now
        self.completed.append(stats)
        connection.close()
        return stats

    def closed(self, connection: Any) -> None:
        logger.debug("TrafficGenerator: socket closed")
        self.statistics.pop(connection, None)


class TrafficSink:
    """Accepts flows and closes each connection once its data has arrived."""

    def __init__(self, local_address: str = "", local_port: int = 0) -> None:
        self.local_address = local_address
        self.local_port = local_port
        self.flows_received = 0

    def data_arrived(self, connection: Any, payload: Any) -> None:
        logger.debug("TrafficSink: all data arrived, closing")
        self.flows_received += 1
        connection.close()