"""Controller, switch records and the base class shared by controller apps."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ofsim.messages import (
    OFP_NO_BUFFER,
    OFPP_ANY,
    OFPP_FLOOD,
    UNSPECIFIED_IP,
    UNSPECIFIED_MAC,
    ArpPacket,
    EtherType,
    FlowMod,
    Match,
    PacketIn,
    PacketOut,
)

logger = logging.getLogger(__name__)


class Signal(Enum):
    PACKET_IN = "PacketIn"
    PACKET_OUT = "PacketOut"
    PACKET_FEATURE_REQUEST = "PacketFeatureRequest"
    PACKET_FEATURE_REPLY = "PacketFeatureReply"
    BOOTED = "Booted"
    HYPERFLOW_REFIRE = "HyperFlowReFire"


class _Outbox:
    """Connection stand-in that keeps every message sent through it."""

    def __init__(self) -> None:
        self.sent: list[Any] = []

    def send(self, message: Any) -> None:
        self.sent.append(message)


@dataclass(eq=False)
class SwitchInfo:
    """A switch connected to the controller; ``socket`` has a ``send`` method."""

    connection_id: int
    mac_address: str = ""
    num_ports: int = 0
    socket: Any = field(default_factory=_Outbox)


class Controller:
    """Holds connected switches and dispatches signals to subscribed apps."""

    def __init__(self, full_path: str = "controller", switches=None) -> None:
        self.full_path = full_path
        self.switches: list[SwitchInfo] = list(switches or [])
        self.apps: list[Any] = []
        self._listeners: list[Any] = []

    def subscribe(self, listener: Any) -> None:
        self._listeners.append(listener)

    def emit(self, signal: Signal, obj: Any) -> None:
        for listener in list(self._listeners):
            listener.receive(signal, obj)

    def boot(self) -> None:
        self.emit(Signal.BOOTED, self)

    def register_app(self, app: Any) -> None:
        if app not in self.apps:
            self.apps.append(app)

    def find_switch_info_for(self, message: Any) -> SwitchInfo | None:
        connection_id = getattr(message, "connection_id", None)
        return next(
            (info for info in self.switches if info.connection_id == connection_id), None
        )

    def find_socket_for(self, message: Any) -> Any:
        info = self.find_switch_info_for(message)
        return info.socket if info is not None else None

    def find_socket_for_chassis_id(self, chassis_id: str) -> Any:
        for info in self.switches:
            if info.mac_address == chassis_id:
                return info.socket
        return None

    def send_packet_out(self, packet_out: PacketOut, socket: Any) -> None:
        if socket is None:
            raise LookupError("no connection to send the packet-out on")
        socket.send(packet_out)


@dataclass
class HeaderFields:
    """Fields of a packet-in, taken from its frame or from its match."""

    buffer_id: int
    switch_info: SwitchInfo | None
    inport: int = 0
    src_mac: str = UNSPECIFIED_MAC
    dst_mac: str = UNSPECIFIED_MAC
    eth_type: int = 0
    arp_src: str = UNSPECIFIED_IP
    arp_dst: str = UNSPECIFIED_IP
    arp_op: int = 0


def create_flow_mod(command, match, outport, idle_timeout=1, hard_timeout=0) -> FlowMod:
    """A flow-mod that outputs matching packets on ``outport``."""
    return FlowMod(
        command=command,
        match=match,
        actions=[outport],
        idle_timeout=idle_timeout,
        hard_timeout=hard_timeout,
    )


def packet_out_from_packet_in(packet_in: PacketIn, outport: int) -> PacketOut:
    """A packet-out releasing the packet of ``packet_in`` on ``outport``."""
    packet_out = PacketOut(buffer_id=packet_in.buffer_id, actions=[outport])
    if packet_in.buffer_id == OFP_NO_BUFFER:
        if packet_in.frame is None:
            raise ValueError("unbuffered packet-in carries no frame")
        frame = copy.deepcopy(packet_in.frame)
        packet_out.encapsulate(frame)
        packet_out.in_port = frame.arrival_port
    else:
        packet_out.in_port = packet_in.match.in_port
    return packet_out


class ControllerApp:
    """Base controller app: attaches on boot and counts what it sends."""

    def __init__(self) -> None:
        self.controller: Controller | None = None
        self.packets_flooded = 0
        self.packets_dropped = 0
        self.num_packet_out = 0
        self.num_flow_mod = 0

    def receive(self, signal: Signal, obj: Any) -> None:
        if signal is Signal.BOOTED and isinstance(obj, Controller):
            logger.debug("%s booted", type(self).__name__)
            self.controller = obj
            obj.register_app(self)

    def _attached(self) -> Controller:
        if self.controller is None:
            raise RuntimeError("app is not attached to a controller")
        return self.controller

    def flood_packet(self, packet_in: PacketIn) -> None:
        controller = self._attached()
        self.packets_flooded += 1
        socket = controller.find_socket_for(packet_in)
        controller.send_packet_out(packet_out_from_packet_in(packet_in, OFPP_FLOOD), socket)

    def drop_packet(self, packet_in: PacketIn) -> None:
        controller = self._attached()
        self.packets_dropped += 1
        socket = controller.find_socket_for(packet_in)
        controller.send_packet_out(packet_out_from_packet_in(packet_in, OFPP_ANY), socket)

    def send_packet(self, packet_in: PacketIn, outport: int) -> None:
        controller = self._attached()
        self.num_packet_out += 1
        socket = controller.find_socket_for(packet_in)
        if socket is None:
            raise LookupError("no connection for packet-in")
        socket.send(packet_out_from_packet_in(packet_in, outport))

    def send_flow_mod(
        self, command, match, outport, socket, idle_timeout=1, hard_timeout=0
    ) -> None:
        if socket is None:
            raise LookupError("no connection to send the flow-mod on")
        self.num_flow_mod += 1
        socket.send(create_flow_mod(command, match, outport, idle_timeout, hard_timeout))

    def extract_header_fields(self, packet_in: PacketIn) -> HeaderFields:
        controller = self._attached()
        fields = HeaderFields(
            buffer_id=packet_in.buffer_id,
            switch_info=controller.find_switch_info_for(packet_in),
        )
        if packet_in.buffer_id == OFP_NO_BUFFER:
            frame = packet_in.frame
            if frame is None:
                raise ValueError("unbuffered packet-in carries no frame")
            fields.inport = frame.arrival_port
            fields.src_mac = frame.src
            fields.dst_mac = frame.dest
            fields.eth_type = frame.ether_type
            if frame.ether_type == EtherType.ARP:
                arp = frame.payload
                if not isinstance(arp, ArpPacket):
                    raise TypeError("ARP frame does not carry an ARP packet")
                fields.arp_src = arp.src_ip
                fields.arp_dst = arp.dest_ip
                fields.arp_op = arp.opcode
        else:
            match: Match = packet_in.match
            fields.inport = match.in_port
            fields.src_mac = match.eth_src
            fields.dst_mac = match.eth_dst
            fields.eth_type = match.eth_type
            fields.arp_src = match.arp_spa
            fields.arp_dst = match.arp_tpa
            fields.arp_op = match.arp_op
        return fields

    def finish(self) -> dict[str, float]:
        """Scalars recorded at the end of a run."""
        return {
            "numPacketOut": self.num_packet_out,
            "numFlowMod": self.num_flow_mod,
            "packetsDropped": self.packets_dropped,
            "packetsFlooded": self.packets_flooded,
        }