import pytest

from ofsim.controller import Controller, Signal, SwitchInfo
from ofsim.hyperflow import (
    ChangeNotification,
    ControlChannelEntry,
    DataChannelEntry,
    HyperFlowAgent,
    HyperFlowSynchronizer,
    ReportIn,
    SyncReply,
    SyncRequest,
)
from ofsim.service import EventScheduler


class Outbox:
    def __init__(self):
        self.sent = []

    def send(self, message):
        self.sent.append(message)


class Forward:
    def __init__(self, target):
        self.target = target

    def send(self, message):
        self.target.submit(message)


class Recorder:
    def __init__(self):
        self.received = []

    def receive(self, signal, obj):
        self.received.append((signal, obj))


def make_agent(path="ctrl-a", switches=None):
    scheduler = EventScheduler()
    controller = Controller(path, switches)
    socket = Outbox()
    agent = HyperFlowAgent(scheduler, socket, connection_id=1)
    controller.subscribe(agent)
    recorder = Recorder()
    controller.subscribe(recorder)
    controller.boot()
    return agent, controller, socket, recorder


def test_report_in_recorded_in_sync_reply():
    scheduler = EventScheduler()
    sync = HyperFlowSynchronizer(scheduler, alive_interval=10)
    out = Outbox()
    sync.accept(7, out)
    sync.handle_report_in(ReportIn("ctrl-a", [], connection_id=7))
    reply = sync.handle_sync_request(SyncRequest(0, connection_id=7))
    assert out.sent == [reply]
    assert [e.controller_id for e in reply.control_channel] == ["ctrl-a"]
    assert reply.control_channel[0].time == scheduler.now


def test_stale_control_entries_dropped():
    scheduler = EventScheduler()
    sync = HyperFlowSynchronizer(scheduler, alive_interval=5)
    sync.accept(1, Outbox())
    sync.handle_report_in(ReportIn("old"))
    scheduler.run(until=8)
    sync.handle_report_in(ReportIn("new"))
    reply = sync.handle_sync_request(SyncRequest(0, connection_id=1))
    assert [e.controller_id for e in reply.control_channel] == ["new"]
    assert [e.controller_id for e in sync.control_channel] == ["new"]


def test_sync_reply_carries_only_unseen_changes_newest_first():
    sync = HyperFlowSynchronizer(EventScheduler(), alive_interval=5)
    sync.accept(1, Outbox())
    entries = [DataChannelEntry(src_controller=name) for name in ("a", "b", "c")]
    for entry in entries:
        sync.handle_change_notification(ChangeNotification(entry))
    assert sync.data_channel_size == len(entries)
    reply = sync.handle_sync_request(SyncRequest(1, connection_id=1))
    assert reply.data_channel == [entries[2], entries[1]]


def test_sync_reply_with_counter_ahead_returns_everything():
    sync = HyperFlowSynchronizer(EventScheduler(), alive_interval=5)
    sync.accept(1, Outbox())
    entries = [DataChannelEntry(src_controller=name) for name in ("a", "b")]
    for entry in entries:
        sync.handle_change_notification(ChangeNotification(entry))
    reply = sync.handle_sync_request(SyncRequest(5, connection_id=1))
    assert reply.data_channel == list(reversed(entries))


def test_sync_request_on_unknown_connection():
    sync = HyperFlowSynchronizer(EventScheduler(), alive_interval=5)
    with pytest.raises(LookupError):
        sync.handle_sync_request(SyncRequest(0, connection_id=3))


def test_accept_twice_rejected():
    sync = HyperFlowSynchronizer(EventScheduler(), alive_interval=5)
    sync.accept(1, Outbox())
    with pytest.raises(ValueError):
        sync.accept(1, Outbox())


def test_unexpected_message_type():
    scheduler = EventScheduler()
    sync = HyperFlowSynchronizer(scheduler, alive_interval=5)
    sync.submit("junk")
    with pytest.raises(TypeError):
        scheduler.run()


def test_report_in_lists_switches_in_reverse_order():
    switches = [SwitchInfo(1, "s1"), SwitchInfo(2, "s2")]
    agent, _, socket, _ = make_agent(switches=switches)
    report = agent.report_in()
    assert socket.sent == [report]
    assert report.controller_id == "ctrl-a"
    assert report.switches == [switches[1], switches[0]]


def test_sync_request_sent_once_while_waiting():
    agent, _, socket, _ = make_agent()
    first = agent.sync_request()
    second = agent.sync_request()
    assert second is None
    assert socket.sent == [first]
    agent.handle_sync_reply(SyncReply())
    assert agent.sync_request() is not None
    assert len(socket.sent) == 2


def test_handle_sync_reply_refires_foreign_changes_only():
    agent, _, _, recorder = make_agent()
    own = DataChannelEntry(src_controller="ctrl-a", payload="mine")
    foreign = DataChannelEntry(src_controller="ctrl-b", payload="theirs")
    reply = SyncReply(
        control_channel=[ControlChannelEntry("ctrl-b")],
        data_channel=[foreign, own],
    )
    agent.handle_sync_reply(reply)
    assert agent.last_sync_counter == 2
    assert list(agent.data_channel) == [foreign, own]
    assert agent.known_controllers == ["ctrl-b"]
    refired = [obj for sig, obj in recorder.received if sig is Signal.HYPERFLOW_REFIRE]
    assert refired == [foreign]


def test_check_alive_marks_failure_and_reply_recovers():
    agent, _, _, _ = make_agent()
    agent.handle_sync_reply(SyncReply(control_channel=[ControlChannelEntry("ctrl-b")]))
    assert agent.check_alive() == []
    agent.handle_sync_reply(SyncReply())
    assert agent.check_alive() == ["ctrl-b"]
    assert agent.failed_controllers == ["ctrl-b"]
    agent.handle_sync_reply(SyncReply(control_channel=[ControlChannelEntry("ctrl-b")]))
    assert agent.failed_controllers == []


def test_agent_requires_controller():
    agent = HyperFlowAgent(EventScheduler(), Outbox())
    with pytest.raises(RuntimeError):
        agent.report_in()


def test_end_to_end_change_reaches_other_controller():
    scheduler = EventScheduler()
    sync = HyperFlowSynchronizer(scheduler, alive_interval=10)

    agents = []
    recorders = []
    for connection_id, path in ((1, "ctrl-a"), (2, "ctrl-b")):
        controller = Controller(path)
        agent = HyperFlowAgent(scheduler, Forward(sync), connection_id=connection_id)
        controller.subscribe(agent)
        recorder = Recorder()
        controller.subscribe(recorder)
        controller.boot()
        sync.accept(connection_id, Forward(agent))
        agent.on_established()
        agents.append(agent)
        recorders.append(recorder)

    entry = DataChannelEntry(src_controller="ctrl-a", payload="arp")
    agents[0].synchronize_data_channel_entry(entry)
    scheduler.run(until=6)

    refired_b = [obj for sig, obj in recorders[1].received if sig is Signal.HYPERFLOW_REFIRE]
    refired_a = [obj for sig, obj in recorders[0].received if sig is Signal.HYPERFLOW_REFIRE]
    assert refired_b == [entry]
    assert refired_a == []
    assert agents[1].last_sync_counter == 1
    assert set(agents[1].known_controllers) == {"ctrl-a", "ctrl-b"}
    assert agents[1].failed_controllers == []