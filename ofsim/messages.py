"""OpenFlow and Ethernet messages exchanged between switches and controller apps."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

OFP_VERSION = 0x04
OFPT_FEATURES_REPLY = 6
OFPT_PACKET_IN = 10
OFPT_PACKET_OUT = 13
OFPT_FLOW_MOD = 14

OFP_NO_BUFFER = 0xFFFFFFFF
OFPP_CONTROLLER = 0xFFFFFFFD
OFPP_FLOOD = 0xFFFFFFFB
OFPP_ANY = 0xFFFFFFFF

OFPFW_IN_PORT = 1 << 0
OFPFW_DL_VLAN = 1 << 1
OFPFW_DL_SRC = 1 << 2
OFPFW_DL_DST = 1 << 3
OFPFW_DL_TYPE = 1 << 4

ETHER_MAC_FRAME_BYTES = 18
MIN_ETHERNET_FRAME_BYTES = 64
PREAMBLE_BYTES = 7
SFD_BYTES = 1
ARP_PACKET_BYTES = 28
PACKET_OUT_BYTES = 24
FLOW_MOD_BYTES = 56

UNSPECIFIED_MAC = "00:00:00:00:00:00"
UNSPECIFIED_IP = "0.0.0.0"
LLDP_DESTINATION = "AA:80:C2:00:00:0E"
"""Made-up unicast destination; a multicast one would be dropped by the hosts."""


class EtherType(IntEnum):
    IPV4 = 0x0800
    ARP = 0x0806
    LLDP = 0x88CC


class ArpOp(IntEnum):
    REQUEST = 1
    REPLY = 2


class FlowModCommand(IntEnum):
    ADD = 0
    MODIFY = 1
    MODIFY_STRICT = 2
    DELETE = 3
    DELETE_STRICT = 4


@dataclass
class ArpPacket:
    opcode: int
    src_mac: str = UNSPECIFIED_MAC
    src_ip: str = UNSPECIFIED_IP
    dest_mac: str = UNSPECIFIED_MAC
    dest_ip: str = UNSPECIFIED_IP
    byte_length: int = ARP_PACKET_BYTES
    name: str = ""


@dataclass
class LldpPacket:
    chassis_id: str
    port_id: int
    byte_length: int = 0
    name: str = "LLDP"


@dataclass
class EthernetFrame:
    """An Ethernet II frame; ``arrival_port`` is the switch port it came in on."""

    src: str = UNSPECIFIED_MAC
    dest: str = UNSPECIFIED_MAC
    ether_type: int = 0
    byte_length: int = ETHER_MAC_FRAME_BYTES
    payload: ArpPacket | LldpPacket | None = None
    arrival_port: int | None = None
    name: str = ""

    def encapsulate(self, payload: ArpPacket | LldpPacket) -> None:
        """Carry ``payload``, growing the frame by its length."""
        if self.payload is not None:
            raise ValueError("frame already carries a payload")
        self.payload = payload
        self.byte_length += payload.byte_length


@dataclass
class Match:
    in_port: int = 0
    eth_src: str = UNSPECIFIED_MAC
    eth_dst: str = UNSPECIFIED_MAC
    eth_type: int = 0
    arp_spa: str = UNSPECIFIED_IP
    arp_tpa: str = UNSPECIFIED_IP
    arp_op: int = 0
    wildcards: int = 0


@dataclass
class PacketIn:
    """A packet handed to the controller; without a buffer it carries the frame."""

    buffer_id: int = OFP_NO_BUFFER
    match: Match = field(default_factory=Match)
    frame: EthernetFrame | None = None
    connection_id: int = 0
    version: int = OFP_VERSION
    type: int = OFPT_PACKET_IN


@dataclass
class PacketOut:
    buffer_id: int = OFP_NO_BUFFER
    in_port: int = -1
    actions: list[int] = field(default_factory=list)
    frame: EthernetFrame | None = None
    byte_length: int = PACKET_OUT_BYTES
    version: int = OFP_VERSION
    type: int = OFPT_PACKET_OUT

    def encapsulate(self, frame: EthernetFrame) -> None:
        if self.frame is not None:
            raise ValueError("packet-out already carries a frame")
        self.frame = frame
        self.byte_length += frame.byte_length


@dataclass
class FlowMod:
    command: int
    match: Match
    actions: list[int] = field(default_factory=list)
    idle_timeout: int = 1
    hard_timeout: int = 0
    byte_length: int = FLOW_MOD_BYTES
    version: int = OFP_VERSION
    type: int = OFPT_FLOW_MOD


@dataclass
class FeaturesReply:
    connection_id: int = 0
    datapath_id: str = ""
    num_ports: int = 0
    version: int = OFP_VERSION
    type: int = OFPT_FEATURES_REPLY


def _padded_frame(
    name: str, src: str, dest: str, ether_type: int, payload: ArpPacket | LldpPacket
) -> EthernetFrame:
    frame = EthernetFrame(src=src, dest=dest, ether_type=int(ether_type), name=name)
    frame.encapsulate(payload)
    frame.byte_length = max(frame.byte_length, MIN_ETHERNET_FRAME_BYTES)
    frame.byte_length += PREAMBLE_BYTES + SFD_BYTES
    return frame


def arp_reply_frame(src_ip: str, dst_ip: str, src_mac: str, dst_mac: str) -> EthernetFrame:
    """An Ethernet frame carrying an ARP reply, padded to minimum length."""
    reply = ArpPacket(
        opcode=ArpOp.REPLY,
        src_mac=src_mac,
        src_ip=src_ip,
        dest_mac=dst_mac,
        dest_ip=dst_ip,
        name="arpReply",
    )
    return _padded_frame(reply.name, src_mac, dst_mac, EtherType.ARP, reply)


def lldp_frame(chassis_id: str, port_id: int) -> EthernetFrame:
    """An Ethernet frame announcing ``port_id`` of switch ``chassis_id``."""
    packet = LldpPacket(chassis_id=chassis_id, port_id=port_id)
    return _padded_frame(packet.name, chassis_id, LLDP_DESTINATION, EtherType.LLDP, packet)