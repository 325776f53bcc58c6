from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from bonjour_sniffer.core.errors import MissingLayer, NotDNS
from bonjour_sniffer.core.frame import DecodedFrame, IPPROTO_UDP
from bonjour_sniffer.protocols.layers import (
    extract_dns,
    extract_ethernet,
    extract_ip,
    extract_udp,
    extract_vlan_tag,
)

logger = logging.getLogger(__name__)

MDNS_PORT = 5353


@dataclass(frozen=True)
class BonjourClassification:
    """
    One mDNS frame that passed the filter.

    Equality covers the frame bytes, VLAN, source MAC and query flag.
    Capture metadata is ignored.
    """
    frame: DecodedFrame
    vlan_identifier: Optional[int]
    source_mac: str
    is_query: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.frame.info.timestamp,
            "interface": self.frame.info.interface,
            "vlan": self.vlan_identifier,
            "src_mac": self.source_mac,
            "kind": "query" if self.is_query else "answer",
            "length": len(self.frame.data),
        }


def classify(frame: DecodedFrame) -> Optional[BonjourClassification]:
    """
    Return a BonjourClassification for an mDNS frame, None for anything else.
    Never raises for a single frame.
    """
    try:
        ethernet = extract_ethernet(frame)
    except MissingLayer as exc:
        logger.debug("Rejected malformed frame: %s", exc)
        return None

    tag = extract_vlan_tag(frame)

    try:
        ip = extract_ip(frame)
        if ip.protocol != IPPROTO_UDP:
            return None

        udp = extract_udp(frame)
        if udp.source_port != MDNS_PORT or udp.destination_port != MDNS_PORT:
            return None

        dns = extract_dns(frame)
    except (MissingLayer, NotDNS) as exc:
        logger.debug("Rejected frame from %s: %s", ethernet.source_address, exc)
        return None

    return BonjourClassification(
        frame=frame,
        vlan_identifier=tag.identifier if tag is not None else None,
        source_mac=ethernet.source_address,
        is_query=dns.is_query,
    )
