import random

import pytest

from ofsim.hostapps import (
    FlowStats,
    LocalityTargetPicker,
    TrafficGenerator,
    TrafficSink,
    count_lines,
    flow_size_at,
    load_group_config,
    pick_random_destination,
)
from ofsim.service import EventScheduler


class FakeConnection:
    def __init__(self):
        self.connected = []
        self.sent = []
        self.closed = False

    def connect(self, address, port):
        self.connected.append((address, port))

    def send(self, size):
        self.sent.append(size)

    def close(self):
        self.closed = True


@pytest.fixture
def group_file(tmp_path):
    path = tmp_path / "groups.txt"
    path.write_text("net.h0;0\nnet.h1;0\nnet.h2;1\nnet.h3;1\n", encoding="utf-8")
    return path


@pytest.fixture
def sizes_file(tmp_path):
    path = tmp_path / "sizes.txt"
    path.write_text("100\n200\n300\n", encoding="utf-8")
    return path


def test_load_group_config_separates_own_node(group_file):
    local_id, groups = load_group_config(group_file, "Network.net.h0.pingApp")
    assert local_id == "0"
    assert groups == {"0": ["net.h1"], "1": ["net.h2", "net.h3"]}


def test_load_group_config_missing_file(tmp_path):
    assert load_group_config(tmp_path / "none.txt", "x") == ("", {})


def test_load_group_config_rejects_line_without_group(tmp_path):
    path = tmp_path / "bad.txt"
    path.write_text("net.h0\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_group_config(path, "other")


def test_picker_local_target(group_file):
    local_id, groups = load_group_config(group_file, "net.h0")
    picker = LocalityTargetPicker(local_id, groups, 1.0, random.Random(1))
    assert {picker.pick() for _ in range(20)} == {"net.h1"}


def test_picker_global_target_avoids_local_group(group_file):
    local_id, groups = load_group_config(group_file, "net.h0")
    picker = LocalityTargetPicker(local_id, groups, -1.0, random.Random(2))
    picks = {picker.pick() for _ in range(50)}
    assert picks <= set(groups["1"])
    assert picks


def test_picker_without_other_group_raises():
    picker = LocalityTargetPicker("0", {"0": ["a"]}, -1.0, random.Random(0))
    with pytest.raises(LookupError):
        picker.pick()


def test_picker_empty_local_group_raises():
    picker = LocalityTargetPicker("5", {"0": ["a"]}, 1.0, random.Random(0))
    with pytest.raises(LookupError):
        picker.pick()


def test_pick_random_destination_never_own():
    rng = random.Random(3)
    nodes = ["a", "b", "c"]
    picks = {pick_random_destination(nodes, "a", rng) for _ in range(50)}
    assert picks == {"b", "c"}


def test_pick_random_destination_errors():
    rng = random.Random(0)
    with pytest.raises(LookupError):
        pick_random_destination([], "a", rng)
    with pytest.raises(LookupError):
        pick_random_destination(["a", "a"], "a", rng)


def test_count_lines(tmp_path, sizes_file):
    assert count_lines(sizes_file) == 3
    no_trailing = tmp_path / "n.txt"
    no_trailing.write_text("a\nb\nc", encoding="utf-8")
    assert count_lines(no_trailing) == 2


def test_flow_size_at(tmp_path, sizes_file):
    assert flow_size_at(sizes_file, 0) == 0
    assert flow_size_at(sizes_file, 2) == 200
    assert flow_size_at(sizes_file, 10) == 300
    path = tmp_path / "f.txt"
    path.write_text("1500.7\nabc\n", encoding="utf-8")
    assert flow_size_at(path, 1) == 1500
    assert flow_size_at(path, 2) == 0
    with pytest.raises(ValueError):
        flow_size_at(path, -1)


def test_generator_start_connection(sizes_file):
    scheduler = EventScheduler()
    generator = TrafficGenerator(
        scheduler, ["h1", "h2", "h3"], "h1", sizes_file, FakeConnection, 80,
        rng=random.Random(4),
    )
    assert generator.line_numbers == 3
    connection = FakeConnection()
    stats = generator.start_connection(connection)
    address, port = connection.connected[0]
    assert address in {"h2", "h3"}
    assert port == 80
    assert connection.sent == [stats.transmitted_bytes]
    assert stats.transmitted_bytes in {0, 100, 200}
    assert generator.statistics[connection] is stats


def test_generator_skips_unresolvable(sizes_file):
    generator = TrafficGenerator(
        EventScheduler(), ["h1", "h2", "h3"], "h1", sizes_file, FakeConnection, 80,
        rng=random.Random(5), resolve=lambda name: None if name == "h2" else name + ".addr",
    )
    for _ in range(10):
        connection = FakeConnection()
        generator.start_connection(connection)
        assert connection.connected[0][0] == "h3.addr"


def test_generator_no_reachable_destination(sizes_file):
    generator = TrafficGenerator(
        EventScheduler(), ["h1", "h2"], "h1", sizes_file, FakeConnection, 80,
        resolve=lambda name: None,
    )
    with pytest.raises(LookupError):
        generator.start_connection(FakeConnection())


def test_generator_flow_lifecycle(sizes_file):
    scheduler = EventScheduler()
    generator = TrafficGenerator(
        scheduler, ["h1", "h2"], "h1", sizes_file, FakeConnection, 80,
        rng=random.Random(6),
    )
    connection = FakeConnection()
    generator.start_connection(connection)
    scheduler.run(until=2.0)
    generator.established(connection)
    scheduler.run(until=5.0)
    stats = generator.peer_closed(connection)
    assert connection.closed
    assert (stats.started, stats.established, stats.finished) == (0.0, 2.0, 5.0)
    assert generator.completed == [stats]
    generator.closed(connection)
    assert connection not in generator.statistics
    with pytest.raises(KeyError):
        generator.established(connection)


def test_generator_schedules_connections(sizes_file):
    scheduler = EventScheduler()
    made = []

    def factory():
        made.append(FakeConnection())
        return made[-1]

    generator = TrafficGenerator(
        scheduler, ["h1", "h2"], "h1", sizes_file, factory, 80,
        rng=random.Random(7), start_sending=1.0,
    )
    generator.start()
    scheduler.run(until=0.5)
    assert made == []
    scheduler.run(until=1.0)
    assert len(made) == 1
    assert generator.statistics[made[0]].started == 1.0
    assert len(scheduler) == 1


def test_flow_stats_defaults():
    stats = FlowStats(started=1.0, transmitted_bytes=10)
    assert stats.established is None and stats.finished is None


def test_sink_closes_on_data():
    sink = TrafficSink("", 1000)
    connection = FakeConnection()
    sink.data_arrived(connection, 500)
    assert connection.closed
    assert sink.flows_received == 1