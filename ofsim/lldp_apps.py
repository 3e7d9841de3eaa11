"""Topology discovery over LLDP and the apps that route along the discovered links."""

from __future__ import annotations

import logging
import random
from typing import Any

from ofsim.controller import ControllerApp, HeaderFields, Signal, SwitchInfo
from ofsim.mib import HOST_PORT, LLDPMibGraph
from ofsim.messages import (
    OFP_NO_BUFFER,
    OFPFW_DL_DST,
    OFPFW_DL_SRC,
    OFPFW_DL_TYPE,
    OFPFW_IN_PORT,
    OFPP_CONTROLLER,
    ArpOp,
    EtherType,
    FeaturesReply,
    FlowModCommand,
    LldpPacket,
    Match,
    PacketIn,
    PacketOut,
    lldp_frame,
)
from ofsim.routing import PathSegment, RouteCache, balanced_path, shortest_path
from ofsim.service import EventScheduler

logger = logging.getLogger(__name__)


def _switch_of(fields: HeaderFields) -> SwitchInfo:
    if fields.switch_info is None:
        raise LookupError("packet-in does not come from a known switch")
    return fields.switch_info


class LLDPAgent(ControllerApp):
    """Sends LLDP frames out of every switch port and builds the link graph."""

    def __init__(
        self,
        scheduler: EventScheduler,
        poll_interval: float = 15.0,
        timeout: float = 30.0,
        print_mib_graph: bool = False,
        idle_timeout: int = 1,
        hard_timeout: int = 0,
    ) -> None:
        super().__init__()
        self.scheduler = scheduler
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.print_mib_graph = print_mib_graph
        self.idle_timeout = idle_timeout
        self.hard_timeout = hard_timeout
        self.mib_graph = LLDPMibGraph(lambda: self.scheduler.now)

    def receive(self, signal: Signal, obj: Any) -> None:
        super().receive(signal, obj)
        if signal is Signal.PACKET_IN and isinstance(obj, PacketIn):
            logger.debug("LLDPAgent: packet-in")
            self.handle_packet_in(obj)
        elif signal is Signal.BOOTED:
            self.scheduler.schedule(self.poll_interval, self._poll)
        elif signal is Signal.PACKET_FEATURE_REPLY and isinstance(obj, FeaturesReply):
            self.trigger_flow_mod(self._attached().find_switch_info_for(obj))

    def _poll(self) -> None:
        self.send_lldp()
        self.scheduler.schedule(self.poll_interval, self._poll)

    def send_lldp(self) -> None:
        """Send one LLDP frame out of each port of every fully connected switch."""
        controller = self._attached()
        for info in controller.switches:
            if not info.mac_address:
                continue
            for port in range(info.num_ports):
                packet_out = PacketOut(buffer_id=OFP_NO_BUFFER, in_port=-1, actions=[port])
                packet_out.encapsulate(lldp_frame(info.mac_address, port))
                controller.send_packet_out(packet_out, info.socket)

    def handle_packet_in(self, packet_in: PacketIn) -> None:
        fields = self.extract_header_fields(packet_in)
        switch = _switch_of(fields)
        if fields.eth_type == EtherType.LLDP:
            if packet_in.frame is None:
                # Only the header arrived: the switch lacks the LLDP flow.
                self.trigger_flow_mod(switch)
                return
            lldp = self._lldp_payload(packet_in)
            self.mib_graph.add_entry(
                lldp.chassis_id, lldp.port_id, switch.mac_address, fields.inport, self.timeout
            )
            self._log_graph()
        elif self.mib_graph.add_entry(
            fields.src_mac, HOST_PORT, switch.mac_address, fields.inport, self.timeout
        ):
            self._log_graph()

    @staticmethod
    def _lldp_payload(packet_in: PacketIn) -> LldpPacket:
        payload = packet_in.frame.payload if packet_in.frame is not None else None
        if not isinstance(payload, LldpPacket):
            raise TypeError("LLDP frame does not carry an LLDP packet")
        return payload

    def _log_graph(self) -> None:
        if self.print_mib_graph:
            logger.debug("%s", self.mib_graph.string_graph())

    def trigger_flow_mod(self, switch_info: SwitchInfo | None) -> None:
        """Install a flow sending every LLDP frame on ``switch_info`` to the controller."""
        if switch_info is None:
            raise LookupError("unknown switch")
        match = Match(
            eth_type=EtherType.LLDP,
            wildcards=OFPFW_IN_PORT | OFPFW_DL_SRC | OFPFW_DL_DST,
        )
        self.send_flow_mod(
            FlowModCommand.ADD,
            match,
            OFPP_CONTROLLER,
            switch_info.socket,
            self.idle_timeout,
            self.hard_timeout,
        )


class LLDPForwarding(ControllerApp):
    """Routes packets along minimum-hop paths in the LLDP agent's link graph."""

    def __init__(
        self,
        drop_if_no_route_found: bool = False,
        ignore_arp_requests: bool = False,
        print_mib_graph: bool = False,
        idle_timeout: int = 1,
        hard_timeout: int = 0,
    ) -> None:
        super().__init__()
        self.drop_if_no_route_found = drop_if_no_route_found
        self.ignore_arp_requests = ignore_arp_requests
        self.print_mib_graph = print_mib_graph
        self.idle_timeout = idle_timeout
        self.hard_timeout = hard_timeout
        self.lldp_agent: LLDPAgent | None = None
        self.route_cache = RouteCache()

    def receive(self, signal: Signal, obj: Any) -> None:
        super().receive(signal, obj)
        if self.lldp_agent is None and self.controller is not None:
            self.lldp_agent = next(
                (app for app in self.controller.apps if isinstance(app, LLDPAgent)), None
            )
        if signal is Signal.PACKET_IN and isinstance(obj, PacketIn):
            logger.debug("%s: packet-in", type(self).__name__)
            self.handle_packet_in(obj)

    def _graph(self) -> LLDPMibGraph:
        if self.lldp_agent is None:
            raise RuntimeError("no LLDP agent to take the link graph from")
        graph = self.lldp_agent.mib_graph
        if self.print_mib_graph:
            logger.debug("%s", graph.string_graph())
        return graph

    def compute_path(self, src_id: str, dst_id: str) -> list[PathSegment]:
        """Minimum-hop route from switch ``src_id`` to ``dst_id``; empty if none."""
        return self.route_cache.lookup(self._graph(), src_id, dst_id, shortest_path)

    def _route_match(self, fields: HeaderFields) -> Match:
        return Match(
            eth_dst=fields.dst_mac,
            wildcards=OFPFW_IN_PORT | OFPFW_DL_SRC | OFPFW_DL_TYPE,
        )

    def handle_packet_in(self, packet_in: PacketIn) -> None:
        fields = self.extract_header_fields(packet_in)
        if fields.eth_type == EtherType.LLDP:
            return
        if (
            self.ignore_arp_requests
            and fields.eth_type == EtherType.ARP
            and packet_in.match.arp_op == ArpOp.REQUEST
        ):
            return

        route = self.compute_path(_switch_of(fields).mac_address, fields.dst_mac)
        if not route:
            if self.drop_if_no_route_found and fields.eth_type != EtherType.ARP:
                self.drop_packet(packet_in)
            else:
                self.flood_packet(packet_in)
            return

        controller = self._attached()
        first, *rest = route
        self.send_packet(packet_in, first.outport)
        self.send_flow_mod(
            FlowModCommand.ADD,
            self._route_match(fields),
            first.outport,
            controller.find_socket_for(packet_in),
            self.idle_timeout,
            self.hard_timeout,
        )
        for segment in rest:
            socket = controller.find_socket_for_chassis_id(segment.chassis_id)
            if socket is not None:
                self.send_flow_mod(
                    FlowModCommand.ADD,
                    self._route_match(fields),
                    segment.outport,
                    socket,
                    self.idle_timeout,
                    self.hard_timeout,
                )
        logger.debug("Route: %s", " -> ".join(segment.chassis_id for segment in route))


class LLDPBalancedMinHop(LLDPForwarding):
    """Like :class:`LLDPForwarding`, but spreads flows over equally short paths."""

    def __init__(
        self,
        drop_if_no_route_found: bool = False,
        ignore_arp_requests: bool = False,
        print_mib_graph: bool = False,
        idle_timeout: int = 1,
        hard_timeout: int = 0,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(
            drop_if_no_route_found,
            ignore_arp_requests,
            print_mib_graph,
            idle_timeout,
            hard_timeout,
        )
        self.rng = rng if rng is not None else random.Random()

    def compute_path(self, src_id: str, dst_id: str) -> list[PathSegment]:
        """Minimum-hop route, chosen at random among equally short ones."""
        return self.route_cache.lookup(
            self._graph(),
            src_id,
            dst_id,
            lambda vertices, src, dst: balanced_path(vertices, src, dst, self.rng),
        )

    def _route_match(self, fields: HeaderFields) -> Match:
        return Match(
            eth_dst=fields.dst_mac,
            eth_src=fields.src_mac,
            wildcards=OFPFW_IN_PORT | OFPFW_DL_TYPE,
        )