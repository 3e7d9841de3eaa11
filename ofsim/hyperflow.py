"""Controller state sharing: a central synchronizer and the agent on each controller."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ofsim.controller import ControllerApp, Signal, SwitchInfo
from ofsim.service import EventScheduler, ServiceQueue

logger = logging.getLogger(__name__)


@dataclass
class ControlChannelEntry:
    """A controller's latest report: the switches it holds and when it reported."""

    controller_id: str
    switches: list[SwitchInfo] = field(default_factory=list)
    time: float = 0.0


@dataclass
class DataChannelEntry:
    """A state change published by ``src_controller``; an empty ``trg_switch`` means all."""

    src_controller: str
    trg_switch: str = ""
    event_id: int = 0
    payload: Any = None


@dataclass
class ReportIn:
    controller_id: str
    switches: list[SwitchInfo] = field(default_factory=list)
    connection_id: int = 0


@dataclass
class SyncRequest:
    last_sync_counter: int = 0
    connection_id: int = 0


@dataclass
class SyncReply:
    control_channel: list[ControlChannelEntry] = field(default_factory=list)
    data_channel: list[DataChannelEntry] = field(default_factory=list)


@dataclass
class ChangeNotification:
    entry: DataChannelEntry
    connection_id: int = 0


class HyperFlowSynchronizer:
    """Collects controller reports and changes, and answers sync requests.

    Incoming messages are served one at a time through a :class:`ServiceQueue`.
    Replies go out on the connection registered with :meth:`accept` under the
    request's ``connection_id``.
    """

    def __init__(
        self,
        scheduler: EventScheduler,
        alive_interval: float,
        service_time: float = 0.0,
    ) -> None:
        self.scheduler = scheduler
        self.alive_interval = alive_interval
        self.queue = ServiceQueue(scheduler, service_time, handler=self._process)
        self.connections: dict[int, Any] = {}
        self.control_channel: deque[ControlChannelEntry] = deque()
        self.data_channel: deque[DataChannelEntry] = deque()
        self.data_channel_size = 0

    def accept(self, connection_id: int, socket: Any) -> None:
        """Register the connection replies for ``connection_id`` are sent on."""
        if connection_id in self.connections:
            raise ValueError(f"connection {connection_id} is already open")
        self.connections[connection_id] = socket

    def submit(self, message: Any) -> None:
        """Queue an incoming message for service."""
        self.queue.submit(message)

    def _process(self, message: Any) -> None:
        if isinstance(message, ReportIn):
            self.handle_report_in(message)
        elif isinstance(message, SyncRequest):
            self.handle_sync_request(message)
        elif isinstance(message, ChangeNotification):
            self.handle_change_notification(message)
        else:
            raise TypeError(f"unexpected message {type(message).__name__}")

    def handle_report_in(self, report: ReportIn) -> None:
        """Record the reporting controller as alive now, newest first."""
        self.control_channel.appendleft(
            ControlChannelEntry(
                controller_id=report.controller_id,
                switches=list(report.switches),
                time=self.scheduler.now,
            )
        )

    def handle_change_notification(self, change: ChangeNotification) -> None:
        """Publish a change on the data channel, newest first."""
        self.data_channel.appendleft(change.entry)
        self.data_channel_size += 1

    def handle_sync_request(self, request: SyncRequest) -> SyncReply:
        """Send the live control channel and the changes the requester has not seen."""
        socket = self.connections.get(request.connection_id)
        if socket is None:
            raise LookupError(f"no connection {request.connection_id} for sync request")

        last_valid = self.scheduler.now - self.alive_interval
        self.control_channel = deque(
            entry for entry in self.control_channel if entry.time >= last_valid
        )

        missing = self.data_channel_size - request.last_sync_counter
        if missing < 0:
            changes = list(self.data_channel)
        else:
            changes = list(self.data_channel)[:missing]

        reply = SyncReply(control_channel=list(self.control_channel), data_channel=changes)
        socket.send(reply)
        return reply


class HyperFlowAgent(ControllerApp):
    """Keeps one controller in step with the others through the synchronizer.

    ``socket`` is the connection to the synchronizer; messages coming back on
    it are handed to :meth:`submit`. Changes made by other controllers are
    re-emitted on the controller as :attr:`Signal.HYPERFLOW_REFIRE`.
    """

    def __init__(
        self,
        scheduler: EventScheduler,
        socket: Any,
        connection_id: int = 0,
        service_time: float = 0.0,
        check_sync_every: float = 1.0,
        check_alive_every: float = 5.0,
        report_in_every: float = 2.0,
    ) -> None:
        super().__init__()
        self.scheduler = scheduler
        self.socket = socket
        self.connection_id = connection_id
        self.check_sync_every = check_sync_every
        self.check_alive_every = check_alive_every
        self.report_in_every = report_in_every
        self.queue = ServiceQueue(scheduler, service_time, handler=self._process)
        self.waiting_for_sync_response = False
        self.last_sync_counter = 0
        self.control_channel: list[ControlChannelEntry] = []
        self.data_channel: deque[DataChannelEntry] = deque()
        self.known_controllers: list[str] = []
        self.failed_controllers: list[str] = []

    def submit(self, message: Any) -> None:
        """Queue a message that arrived from the synchronizer."""
        self.queue.submit(message)

    def _process(self, message: Any) -> None:
        if isinstance(message, SyncReply):
            self.handle_sync_reply(message)

    def on_established(self) -> None:
        """Start the periodic report-in, sync and liveness checks."""
        self._every(self.report_in_every, self.report_in)
        self._every(self.check_sync_every, self.sync_request)
        self._every(self.check_alive_every, self.check_alive)

    def _every(self, interval: float, action: Callable[[], Any]) -> None:
        def fire() -> None:
            self.scheduler.schedule(interval, fire)
            action()

        self.scheduler.schedule(interval, fire)

    def report_in(self) -> ReportIn:
        """Tell the synchronizer this controller is alive and which switches it holds."""
        controller = self._attached()
        report = ReportIn(
            controller_id=controller.full_path,
            switches=list(reversed(controller.switches)),
            connection_id=self.connection_id,
        )
        self.socket.send(report)
        return report

    def sync_request(self) -> SyncRequest | None:
        """Ask for changes, unless an earlier request is still unanswered."""
        if self.waiting_for_sync_response:
            return None
        self.waiting_for_sync_response = True
        request = SyncRequest(
            last_sync_counter=self.last_sync_counter, connection_id=self.connection_id
        )
        self.socket.send(request)
        return request

    def handle_sync_reply(self, reply: SyncReply) -> None:
        """Adopt the control channel and replay changes from other controllers."""
        controller = self._attached()
        self.waiting_for_sync_response = False
        self.control_channel = list(reply.control_channel)

        for entry in self.control_channel:
            if entry.controller_id not in self.known_controllers:
                self.known_controllers.insert(0, entry.controller_id)
            if entry.controller_id in self.failed_controllers:
                self._handle_recover(entry.controller_id)

        for entry in reversed(reply.data_channel):
            self.data_channel.appendleft(entry)
            self.last_sync_counter += 1
            if entry.src_controller != controller.full_path:
                controller.emit(Signal.HYPERFLOW_REFIRE, entry)

    def check_alive(self) -> list[str]:
        """Mark known controllers missing from the control channel as failed."""
        alive = {entry.controller_id for entry in self.control_channel}
        missing = [cid for cid in self.known_controllers if cid not in alive]
        for controller_id in missing:
            self._handle_failure(controller_id)
        return missing

    def _handle_failure(self, controller_id: str) -> None:
        if controller_id not in self.failed_controllers:
            logger.info("controller %s stopped reporting in", controller_id)
            self.failed_controllers.append(controller_id)

    def _handle_recover(self, controller_id: str) -> None:
        logger.info("controller %s reported in again", controller_id)
        self.failed_controllers.remove(controller_id)

    def synchronize_data_channel_entry(self, entry: DataChannelEntry) -> ChangeNotification:
        """Publish a local change to the other controllers."""
        logger.debug("HyperFlowAgent: sent change")
        change = ChangeNotification(entry=entry, connection_id=self.connection_id)
        self.socket.send(change)
        return change