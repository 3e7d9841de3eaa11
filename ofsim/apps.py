"""Basic controller apps: hub, learning switch and ARP responder."""

from __future__ import annotations

import logging
from typing import Any

from ofsim.controller import ControllerApp, Signal, SwitchInfo
from ofsim.messages import (
    OFP_NO_BUFFER,
    OFPFW_DL_SRC,
    OFPFW_DL_TYPE,
    OFPFW_IN_PORT,
    ArpOp,
    EtherType,
    FlowModCommand,
    Match,
    PacketIn,
    PacketOut,
    arp_reply_frame,
)

logger = logging.getLogger(__name__)


class Hub(ControllerApp):
    """Floods every packet it is handed."""

    def receive(self, signal: Signal, obj: Any) -> None:
        super().receive(signal, obj)
        if signal is Signal.PACKET_IN and isinstance(obj, PacketIn):
            logger.debug("Hub: packet-in")
            self.flood_packet(obj)


class LearningSwitch(ControllerApp):
    """Learns host ports per switch and installs flows towards known hosts."""

    def __init__(self, idle_timeout: int = 1, hard_timeout: int = 0) -> None:
        super().__init__()
        self.idle_timeout = idle_timeout
        self.hard_timeout = hard_timeout
        self.lookup_table: dict[SwitchInfo | None, dict[str, int]] = {}

    def receive(self, signal: Signal, obj: Any) -> None:
        super().receive(signal, obj)
        if signal is Signal.PACKET_IN and isinstance(obj, PacketIn):
            logger.debug("LearningSwitch: packet-in")
            self.do_switching(obj)

    def do_switching(self, packet_in: PacketIn) -> None:
        fields = self.extract_header_fields(packet_in)
        table = self.lookup_table.setdefault(fields.switch_info, {})
        table.setdefault(fields.src_mac, fields.inport)

        outport = table.get(fields.dst_mac)
        if outport is None:
            self.flood_packet(packet_in)
            return

        match = Match(
            in_port=fields.inport,
            eth_src=fields.src_mac,
            eth_dst=fields.dst_mac,
            eth_type=fields.eth_type,
            wildcards=OFPFW_IN_PORT | OFPFW_DL_SRC | OFPFW_DL_TYPE,
        )
        socket = self._attached().find_socket_for(packet_in)
        self.send_flow_mod(
            FlowModCommand.ADD, match, outport, socket, self.idle_timeout, self.hard_timeout
        )
        self.send_packet(packet_in, outport)


class ARPResponder(ControllerApp):
    """Answers ARP requests for addresses it has already seen."""

    def __init__(self) -> None:
        super().__init__()
        self.mac_to_ip: dict[str, str] = {}
        self.ip_to_mac: dict[str, str] = {}
        self.answered_arp = 0
        self.flooded_arp = 0

    def add_entry(self, src_ip: str, src_mac: str) -> bool:
        """Record the address pair unless the MAC is known; True if added."""
        if src_mac in self.mac_to_ip:
            return False
        self.mac_to_ip[src_mac] = src_ip
        self.ip_to_mac[src_ip] = src_mac
        return True

    def receive(self, signal: Signal, obj: Any) -> None:
        super().receive(signal, obj)
        if signal is Signal.PACKET_IN and isinstance(obj, PacketIn):
            logger.debug("ARPResponder: packet-in")
            self.handle_packet_in(obj)

    def handle_packet_in(self, packet_in: PacketIn) -> None:
        fields = self.extract_header_fields(packet_in)
        if fields.eth_type != EtherType.ARP:
            return

        self._learn(fields)

        if fields.arp_op != ArpOp.REQUEST:
            return

        known_mac = self.ip_to_mac.get(fields.arp_dst)
        if known_mac is None:
            self.flooded_arp += 1
            self.flood_packet(packet_in)
            return

        self.drop_packet(packet_in)
        packet_out = PacketOut(buffer_id=OFP_NO_BUFFER, in_port=-1, actions=[fields.inport])
        packet_out.encapsulate(
            arp_reply_frame(fields.arp_dst, fields.arp_src, known_mac, fields.src_mac)
        )
        self.answered_arp += 1
        socket = fields.switch_info.socket if fields.switch_info is not None else None
        self._attached().send_packet_out(packet_out, socket)

    def _learn(self, fields) -> bool:
        return self.add_entry(fields.arp_src, fields.src_mac)

    def finish(self) -> dict[str, float]:
        scalars = super().finish()
        scalars["arpFlooded"] = self.flooded_arp
        scalars["arpAnswered"] = self.answered_arp
        return scalars