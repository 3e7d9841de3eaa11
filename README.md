# ofsim

Building blocks for simulating OpenFlow networks: controller applications,
LLDP topology discovery and routing, HyperFlow-style controller
synchronisation, and host traffic models. Only the standard library is used.

## What is inside

- `ofsim.mib`: `LLDPMib` links and the `LLDPMibGraph` topology graph.
  Each link is stored in both directions with an expiry time taken from the
  graph's clock; `remove_expired_entries()` drops links that have expired and
  vertices left without links. The `version` counter goes up whenever a
  vertex or link is added or removed. `string_graph()` lists every link.
- `ofsim.routing`: `shortest_path` (Dijkstra with hop counts),
  `balanced_path` (random choice among equally short hops), the
  `PathSegment` records both return, and a `RouteCache` that purges expired
  links, and empties itself whenever the graph version changes.
- `ofsim.messages`: OpenFlow and Ethernet message models (`PacketIn`,
  `PacketOut`, `FlowMod`, `FeaturesReply`, `Match`, `EthernetFrame`,
  `ArpPacket`, `LldpPacket`), the `EtherType`, `ArpOp` and `FlowModCommand`
  enums, and the frame builders `arp_reply_frame` and `lldp_frame`.
- `ofsim.controller`: the `Controller`, `SwitchInfo`, the `Signal` enum and
  the `ControllerApp` base class. The base class floods, drops and releases
  packets, sends flow mods, extracts `HeaderFields` from a packet-in, and
  counts what it sent; `finish()` returns those counters.
- `ofsim.apps`: `Hub`, `LearningSwitch` and `ARPResponder`.
- `ofsim.lldp_apps`: `LLDPAgent` (sends LLDP frames on every port and
  builds the link graph), `LLDPForwarding` (minimum-hop routing with flow
  mods along the route) and `LLDPBalancedMinHop` (spreads flows over equally
  short routes).
- `ofsim.service`: an `EventScheduler` and a `ServiceQueue` that serves
  messages one at a time with a fixed service time and records waiting
  times, queue sizes and per-second statistics.
- `ofsim.hyperflow`: `HyperFlowSynchronizer` and `HyperFlowAgent`, which
  share events between controllers through a control channel
  (`ControlChannelEntry`) and a data channel (`DataChannelEntry`), using the
  `ReportIn`, `SyncRequest`, `SyncReply` and `ChangeNotification` messages.
- `ofsim.hf_apps`: `HFARPResponder` and `HFLLDPAgent`, which publish what
  they learn as `ArpEntry` and `LinkEntry` changes and adopt those of other
  controllers.
- `ofsim.hostapps`: choosing ping targets (`load_group_config`,
  `LocalityTargetPicker`, `pick_random_destination`), reading flow sizes
  (`count_lines`, `flow_size_at`), and the `TrafficGenerator` (with its
  `FlowStats`) and `TrafficSink` models.

## Examples

Routing over a discovered topology:

```python
from ofsim.mib import LLDPMibGraph
from ofsim.routing import shortest_path

now = 0.0
graph = LLDPMibGraph(clock=lambda: now)
graph.add_entry("s1", 1, "s2", 1, 10.0)
graph.add_entry("s2", 2, "s3", 1, 10.0)

for segment in shortest_path(graph.vertices, "s1", "s3"):
    print(segment.chassis_id, segment.outport)
```

This prints each hop as a switch identifier and the port to leave it by.

A hub app attached to a controller:

```python
from ofsim.apps import Hub
from ofsim.controller import Controller, Signal, SwitchInfo
from ofsim.messages import EthernetFrame, PacketIn

switch = SwitchInfo(connection_id=1, mac_address="02:00:00:00:00:01", num_ports=4)
controller = Controller(switches=[switch])
hub = Hub()
controller.subscribe(hub)
controller.boot()

frame = EthernetFrame(
    src="02:00:00:00:00:0a", dest="02:00:00:00:00:0b", ether_type=0x0800, arrival_port=2
)
controller.emit(Signal.PACKET_IN, PacketIn(frame=frame, connection_id=1))
print(switch.socket.sent)  # one PacketOut whose action floods the frame
```

## What the package does not do

There is no switch model, no network topology builder and no wire format:
messages are Python objects, and a "socket" is any object with a `send`
method (a `SwitchInfo` records what is sent to it by default). Time advances
only through `EventScheduler`; nothing opens real network connections, and
the package has no command-line program.

## Running the tests

```
pip install -e .[test]
pytest
```