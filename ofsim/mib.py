"""Link-layer discovery table: links learned from LLDP frames and host traffic."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

HOST_PORT = -1
"""Port number used for the far end of a link that leads to an end host."""


@dataclass
class LLDPMib:
    """One directed link from ``(src_id, src_port)`` to ``(dst_id, dst_port)``."""

    src_port: int
    dst_port: int
    src_id: str
    dst_id: str
    expires_at: float

    def matches(self, other: LLDPMib) -> bool:
        """True if ``other`` describes the same link, in either direction."""
        same = (
            other.dst_id == self.dst_id
            and other.src_id == self.src_id
            and other.dst_port == self.dst_port
            and other.src_port == self.src_port
        )
        reversed_ = (
            other.dst_id == self.src_id
            and other.src_id == self.dst_id
            and other.dst_port == self.src_port
            and other.src_port == self.dst_port
        )
        return same or reversed_


def _format_time(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


class LLDPMibGraph:
    """Undirected link graph whose edges expire unless refreshed.

    ``clock`` is a callable returning the current time. Every change to the
    set of vertices or edges bumps :attr:`version`.
    """

    def __init__(self, clock: Callable[[], float]) -> None:
        self._clock = clock
        self._vertices: dict[str, list[LLDPMib]] = {}
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def num_vertices(self) -> int:
        return len(self._vertices)

    @property
    def num_edges(self) -> int:
        return sum(len(edges) for edges in self._vertices.values())

    @property
    def vertices(self) -> dict[str, list[LLDPMib]]:
        """A copy of the adjacency lists, keyed by vertex id in sorted order."""
        return {key: list(self._vertices[key]) for key in sorted(self._vertices)}

    def add_entry(
        self, src: str, src_port: int, dst: str, dst_port: int, timeout: float
    ) -> bool:
        """Record the link in both directions; return False if it was rejected.

        A host entry (``src_port`` of -1) is rejected when ``dst_port`` on
        ``dst`` already carries a link to another switch.
        """
        if src_port == HOST_PORT:
            for mib in self._vertices.get(dst, ()):
                if mib.src_port == dst_port and mib.dst_port != HOST_PORT:
                    return False

        expires_at = self._clock() + timeout
        self._add_directed(src, src_port, dst, dst_port, expires_at)
        self._add_directed(dst, dst_port, src, src_port, expires_at)
        return True

    def _add_directed(
        self, src: str, src_port: int, dst: str, dst_port: int, expires_at: float
    ) -> None:
        mib = LLDPMib(src_port, dst_port, src, dst, expires_at)
        edges = self._vertices.get(src)
        if edges is None:
            self._vertices[src] = [mib]
            self._version += 1
            return
        for existing in edges:
            if existing.matches(mib):
                existing.expires_at = expires_at
                return
        edges.append(mib)
        self._version += 1

    def remove_expired_entries(self) -> None:
        """Drop edges that expired before now, and vertices left without edges."""
        now = self._clock()
        for key in list(self._vertices):
            edges = self._vertices[key]
            kept = [mib for mib in edges if not mib.expires_at < now]
            self._version += len(edges) - len(kept)
            if kept:
                self._vertices[key] = kept
            else:
                del self._vertices[key]
                self._version += 1

    def string_graph(self) -> str:
        """One line per directed edge, in vertex order."""
        lines = []
        for key in sorted(self._vertices):
            for mib in self._vertices[key]:
                lines.append(
                    f" ({mib.src_id},{mib.src_port}) ->({mib.dst_id},{mib.dst_port})"
                    f" Expires at:{_format_time(mib.expires_at)}\n"
                )
        return "".join(lines)