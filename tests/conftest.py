import pytest
from scapy.layers.dns import DNS, DNSQR, DNSRR
from scapy.layers.inet import IP, UDP
from scapy.layers.inet6 import IPv6
from scapy.layers.l2 import Dot1Q, Ether

SRC_MAC = "ff:aa:fa:aa:ff:aa"
DST_MAC = "bd:bd:bd:bd:bd:bd"
VLAN_ID = 30
SRC_IPV4, DST_IPV4 = "127.0.0.1", "224.0.0.251"
SRC_IPV6, DST_IPV6 = "::1", "ff02::fb"


def mdns_query():
    return DNS(qr=0, rd=0, qd=DNSQR(qname="example.com", qtype="A", qclass="IN"))


def mdns_answer():
    return DNS(
        qr=1,
        aa=1,
        rd=0,
        qd=[],
        an=DNSRR(rrname="example.com", type="A", rclass="IN", ttl=1024, rdata="1.2.3.4"),
    )


def build_frame(*, ipv6=False, vlan=VLAN_ID, transport=None, payload=None) -> bytes:
    """
    Ether [/ Dot1Q] / IP|IPv6 / transport / payload, with every
    type field set explicitly.
    """
    ethertype = 0x86DD if ipv6 else 0x0800
    if vlan is None:
        pkt = Ether(src=SRC_MAC, dst=DST_MAC, type=ethertype)
    else:
        pkt = Ether(src=SRC_MAC, dst=DST_MAC, type=0x8100) / Dot1Q(vlan=vlan, type=ethertype)

    if transport is None:
        transport = UDP(sport=5353, dport=5353)
    proto = 17 if isinstance(transport, UDP) else 6

    if ipv6:
        pkt = pkt / IPv6(src=SRC_IPV6, dst=DST_IPV6, nh=proto)
    else:
        pkt = pkt / IP(src=SRC_IPV4, dst=DST_IPV4, proto=proto)

    pkt = pkt / transport
    if payload is not None:
        pkt = pkt / payload
    return bytes(pkt)


def build_mdns_frame(*, ipv6=False, query=True, vlan=VLAN_ID, sport=5353, dport=5353) -> bytes:
    return build_frame(
        ipv6=ipv6,
        vlan=vlan,
        transport=UDP(sport=sport, dport=dport),
        payload=mdns_query() if query else mdns_answer(),
    )


@pytest.fixture
def query_frame() -> bytes:
    return build_mdns_frame()


@pytest.fixture
def answer_frame() -> bytes:
    return build_mdns_frame(query=False)
