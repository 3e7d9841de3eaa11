"""ARP responder and LLDP agent that share what they learn through HyperFlow."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ofsim.apps import ARPResponder
from ofsim.controller import Controller, HeaderFields, Signal
from ofsim.hyperflow import DataChannelEntry, HyperFlowAgent
from ofsim.lldp_apps import LLDPAgent
from ofsim.messages import EtherType, PacketIn
from ofsim.mib import HOST_PORT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArpEntry:
    """An IP-to-MAC binding learned by one controller."""

    src_ip: str
    src_mac: str


@dataclass(frozen=True)
class LinkEntry:
    """A link learned by one controller, from ``(src_id, src_port)`` to ``(dst_id, dst_port)``."""

    src_id: str
    src_port: int
    dst_id: str
    dst_port: int


def _find_hyperflow_agent(controller: Controller | None) -> HyperFlowAgent | None:
    if controller is None:
        return None
    return next((app for app in controller.apps if isinstance(app, HyperFlowAgent)), None)


def _refired_payload(signal: Signal, obj: Any) -> Any:
    """The payload of a change re-fired for all switches, or None."""
    if signal is not Signal.HYPERFLOW_REFIRE or not isinstance(obj, DataChannelEntry):
        return None
    if obj.trg_switch:
        return None
    return obj.payload


class _HyperFlowSharing:
    """Finds the HyperFlow agent among the controller's apps and publishes to it."""

    hf_agent: HyperFlowAgent | None
    controller: Controller | None

    def _link_hyperflow_agent(self) -> None:
        if self.hf_agent is None:
            self.hf_agent = _find_hyperflow_agent(self.controller)

    def _publish(self, payload: Any) -> None:
        if self.hf_agent is None or self.controller is None:
            raise RuntimeError("no HyperFlow agent to publish the change to")
        self.hf_agent.synchronize_data_channel_entry(
            DataChannelEntry(
                src_controller=self.controller.full_path,
                trg_switch="",
                event_id=0,
                payload=payload,
            )
        )


class HFARPResponder(_HyperFlowSharing, ARPResponder):
    """ARP responder that publishes new bindings and adopts those of other controllers."""

    def __init__(self) -> None:
        super().__init__()
        self.hf_agent: HyperFlowAgent | None = None

    def receive(self, signal: Signal, obj: Any) -> None:
        self._link_hyperflow_agent()
        super().receive(signal, obj)
        payload = _refired_payload(signal, obj)
        if isinstance(payload, ArpEntry):
            self.add_entry(payload.src_ip, payload.src_mac)

    def handle_packet_in(self, packet_in: PacketIn) -> None:
        """Answer or flood an ARP packet, publishing its sender if it is new."""
        super().handle_packet_in(packet_in)

    def _learn(self, fields: HeaderFields) -> bool:
        added = self.add_entry(fields.arp_src, fields.src_mac)
        if added:
            self._publish(ArpEntry(src_ip=fields.arp_src, src_mac=fields.src_mac))
        return added


class HFLLDPAgent(_HyperFlowSharing, LLDPAgent):
    """LLDP agent that publishes discovered links and adopts those of other controllers."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.hf_agent: HyperFlowAgent | None = None

    def receive(self, signal: Signal, obj: Any) -> None:
        self._link_hyperflow_agent()
        super().receive(signal, obj)
        payload = _refired_payload(signal, obj)
        if isinstance(payload, LinkEntry):
            self.mib_graph.add_entry(
                payload.src_id,
                payload.src_port,
                payload.dst_id,
                payload.dst_port,
                self.timeout,
            )
            self._log_graph()

    def handle_packet_in(self, packet_in: PacketIn) -> None:
        """Learn a link from an LLDP frame or a host packet and publish it."""
        fields = self.extract_header_fields(packet_in)
        switch = fields.switch_info
        if switch is None:
            raise LookupError("packet-in does not come from a known switch")

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
            self._publish(
                LinkEntry(
                    src_id=lldp.chassis_id,
                    src_port=lldp.port_id,
                    dst_id=switch.mac_address,
                    dst_port=fields.inport,
                )
            )
        elif self.mib_graph.add_entry(
            fields.src_mac, HOST_PORT, switch.mac_address, fields.inport, self.timeout
        ):
            self._log_graph()
            self._publish(
                LinkEntry(
                    src_id=fields.src_mac,
                    src_port=HOST_PORT,
                    dst_id=switch.mac_address,
                    dst_port=fields.inport,
                )
            )