"""Discrete-event clock and a single-server queue with a fixed service time."""

from __future__ import annotations

import heapq
import itertools
import math
from collections import deque
from collections.abc import Callable
from typing import Any


class EventScheduler:
    """Runs callbacks in time order; ties run in the order they were scheduled."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = float(start)
        self._events: list[tuple[float, int, Callable[[], Any]]] = []
        self._order = itertools.count()

    def __len__(self) -> int:
        return len(self._events)

    def schedule(self, delay: float, callback: Callable[[], Any]) -> float:
        """Run ``callback`` ``delay`` time units from now; return when it fires."""
        if delay < 0:
            raise ValueError("cannot schedule an event in the past")
        at = self.now + delay
        heapq.heappush(self._events, (at, next(self._order), callback))
        return at

    def run(self, until: float | None = None) -> int:
        """Run events due no later than ``until`` (all if None); return how many ran."""
        if until is not None and until < self.now:
            raise ValueError("cannot run backwards in time")
        count = 0
        while self._events and (until is None or self._events[0][0] <= until):
            at, _, callback = heapq.heappop(self._events)
            self.now = at
            callback()
            count += 1
        if until is not None:
            self.now = float(until)
        return count


class ServiceQueue:
    """Serves submitted messages one at a time, each taking ``service_time``.

    Served messages go to :meth:`process`, which hands them to ``handler``
    when one is given. Waiting times, queue sizes, arrivals per second and
    time-weighted queue sizes per second are recorded along the way.
    """

    def __init__(
        self,
        scheduler: EventScheduler,
        service_time: float = 0.0,
        handler: Callable[[Any], Any] | None = None,
    ) -> None:
        if service_time < 0:
            raise ValueError("service time must not be negative")
        self.scheduler = scheduler
        self.service_time = service_time
        self._handler = handler
        self.busy = False
        self._queue: deque[tuple[Any, float]] = deque()
        self.waiting_times: list[float] = []
        self.queue_sizes: list[int] = []
        self.packets_per_second: dict[int, int] = {}
        self.avg_queue_size: dict[int, float] = {}
        self._last_queue_size = 0
        self._last_change_time = 0.0

    def __len__(self) -> int:
        return len(self._queue)

    def submit(self, message: Any) -> None:
        """Accept ``message``; serve it now or queue it behind the busy server."""
        item = (message, self.scheduler.now)
        if self.busy:
            self._queue.append(item)
        else:
            self.busy = True
            self._start(item)
        self.queue_sizes.append(len(self._queue))
        second = math.floor(self.scheduler.now)
        self.packets_per_second[second] = self.packets_per_second.get(second, 0) + 1
        self._track_queue_size(len(self._queue))

    def process(self, message: Any) -> None:
        """Handle a message whose service time has elapsed."""
        if self._handler is not None:
            self._handler(message)

    def statistics(self) -> dict[str, float]:
        """Scalars recorded at the end of a run, keyed by statistic and second."""
        scalars: dict[str, float] = {}
        for second in sorted(self.packets_per_second):
            scalars[f"packetsPerSecondAt-{second}"] = self.packets_per_second[second]
        for second in sorted(self.avg_queue_size):
            scalars[f"avgQueueSizeAt-{second}"] = self.avg_queue_size[second]
        return scalars

    def _start(self, item: tuple[Any, float]) -> None:
        self.scheduler.schedule(self.service_time, lambda: self._serve(item))

    def _serve(self, item: tuple[Any, float]) -> None:
        message, arrival = item
        self.waiting_times.append(self.scheduler.now - arrival - self.service_time)
        self.process(message)
        if self._queue:
            self._start(self._queue.popleft())
        else:
            self.busy = False
        self._track_queue_size(len(self._queue))

    def _track_queue_size(self, size: int) -> None:
        if size == self._last_queue_size:
            return
        now = self.scheduler.now
        second = math.floor(now)
        weighted = self._last_queue_size * (now - self._last_change_time)
        self.avg_queue_size[second] = self.avg_queue_size.get(second, 0.0) + weighted
        self._last_change_time = now
        self._last_queue_size = size