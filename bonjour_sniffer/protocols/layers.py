from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import NamedTuple, Optional

from scapy.layers.dns import DNS

from bonjour_sniffer.core.errors import MissingLayer, NotDNS
from bonjour_sniffer.core.frame import DecodedFrame, decode_dns


class EthernetInfo(NamedTuple):
    source_address: str
    destination_address: str


@dataclass(frozen=True)
class VLANTag:
    identifier: int
    next_ethertype: int


class IPVersion(IntEnum):
    IPV4 = 4
    IPV6 = 6


@dataclass(frozen=True)
class IPInfo:
    version: IPVersion
    source: str
    destination: str
    protocol: int


@dataclass(frozen=True)
class UDPInfo:
    source_port: int
    destination_port: int
    payload: bytes


@dataclass(frozen=True)
class DNSInfo:
    is_query: bool
    question_count: int
    answer_count: int


# -------------------------
# Extractors
# -------------------------

def extract_ethernet(frame: DecodedFrame) -> EthernetInfo:
    eth = frame.ethernet
    if eth is None:
        raise MissingLayer("Ethernet")
    return EthernetInfo(eth.src.lower(), eth.dst.lower())


def extract_vlan_tag(frame: DecodedFrame) -> Optional[VLANTag]:
    """
    Outermost 802.1Q tag, or None for an untagged frame.
    VLAN 0 is a real identifier and is returned as 0.
    """
    tag = frame.dot1q
    if tag is None:
        return None
    return VLANTag(identifier=tag.vlan, next_ethertype=tag.type)


def extract_ip_version(frame: DecodedFrame) -> IPVersion:
    if frame.ipv4 is not None:
        return IPVersion.IPV4
    if frame.ipv6 is not None:
        return IPVersion.IPV6
    raise MissingLayer("IP")


def extract_ip(frame: DecodedFrame) -> IPInfo:
    if extract_ip_version(frame) is IPVersion.IPV4:
        ip = frame.ipv4
        return IPInfo(IPVersion.IPV4, ip.src, ip.dst, ip.proto)

    ip6 = frame.ipv6
    return IPInfo(IPVersion.IPV6, ip6.src, ip6.dst, ip6.nh)


def extract_udp(frame: DecodedFrame) -> UDPInfo:
    udp = frame.udp
    if udp is None:
        raise MissingLayer("UDP")
    return UDPInfo(
        source_port=int(udp.sport),
        destination_port=int(udp.dport),
        payload=frame.udp_payload,
    )


def extract_udp_payload(frame: DecodedFrame) -> bytes:
    payload = frame.udp_payload
    if payload is None:
        raise MissingLayer("UDP")
    return payload


def _query_flag(dns: DNS) -> bool:
    # questions with QR clear -> query, answers with QR set -> answer
    if not dns.qr and dns.qdcount:
        return True
    if dns.qr and dns.ancount:
        return False
    raise NotDNS("DNS message carries neither questions nor answers")


def extract_dns_query_flag(payload: bytes) -> bool:
    """
    True for a DNS query, False for a DNS answer.
    Raises NotDNS when the payload is neither.
    """
    return _query_flag(decode_dns(payload))


def extract_dns(frame: DecodedFrame) -> DNSInfo:
    dns = frame.dns
    if dns is None:
        raise NotDNS("frame has no decodable DNS layer")
    return DNSInfo(
        is_query=_query_flag(dns),
        question_count=dns.qdcount or 0,
        answer_count=dns.ancount or 0,
    )
