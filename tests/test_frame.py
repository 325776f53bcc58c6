from scapy.layers.dns import DNS
from scapy.layers.inet import IP, UDP
from scapy.layers.l2 import Dot1Q, Ether
from scapy.packet import Raw

from bonjour_sniffer.core.frame import CaptureInfo, DecodedFrame, RawFrame
from bonjour_sniffer.protocols.layers import extract_ip_version, extract_vlan_tag

from conftest import DST_MAC, SRC_MAC, build_frame, build_mdns_frame


def test_nothing_decoded_up_front(query_frame):
    assert DecodedFrame(query_frame).decoded_layers() == ()


def test_vlan_lookup_decodes_only_link_layers(query_frame):
    frame = DecodedFrame(query_frame)
    extract_vlan_tag(frame)
    assert frame.decoded_layers() == (Ether, Dot1Q)


def test_ip_lookup_stops_before_udp(query_frame):
    frame = DecodedFrame(query_frame)
    extract_ip_version(frame)
    assert UDP not in frame.decoded_layers()
    assert DNS not in frame.decoded_layers()


def test_layers_are_memoized(query_frame):
    frame = DecodedFrame(query_frame)
    assert frame.udp is frame.udp
    assert frame.layer(UDP) is frame.udp
    assert frame.layer(IP) is frame.ipv4


def test_missing_layer_is_none():
    frame = DecodedFrame(build_mdns_frame(vlan=None, ipv6=True))
    assert frame.dot1q is None
    assert frame.ipv4 is None
    assert frame.layer(Dot1Q) is None
    assert frame.ipv6 is not None


def test_stacked_vlan_tags_outermost_first():
    data = bytes(
        Ether(src=SRC_MAC, dst=DST_MAC, type=0x88A8)
        / Dot1Q(vlan=100, type=0x8100)
        / Dot1Q(vlan=30, type=0x0800)
        / IP(src="10.0.0.1", dst="224.0.0.251", proto=17)
        / UDP(sport=5353, dport=5353)
    )
    frame = DecodedFrame(data)
    assert [tag.vlan for tag in frame.vlan_tags] == [100, 30]
    assert frame.dot1q.vlan == 100
    assert frame.ipv4 is not None


def test_ipv4_fragment_has_no_udp():
    data = bytes(
        Ether(src=SRC_MAC, dst=DST_MAC, type=0x0800)
        / IP(src="10.0.0.1", dst="224.0.0.251", proto=17, frag=10)
        / Raw(load=bytes(20))
    )
    frame = DecodedFrame(data)
    assert frame.ipv4 is not None
    assert frame.udp is None
    assert frame.udp_payload is None


def test_truncated_udp_header():
    data = build_mdns_frame()
    # cut inside the UDP header: 14 eth + 4 vlan + 20 ip + 4
    frame = DecodedFrame(data[:42])
    assert frame.ipv4 is not None
    assert frame.udp is None


def test_dns_layer_absent_for_non_dns_payload():
    frame = DecodedFrame(build_frame(payload=Raw(load=b"hello")))
    assert frame.udp is not None
    assert frame.dns is None


def test_full_packet_available(query_frame):
    frame = DecodedFrame(query_frame)
    assert frame.packet.haslayer(DNS)


def test_equality_ignores_capture_metadata(query_frame):
    a = DecodedFrame(query_frame, CaptureInfo(timestamp=1.0, interface="eth0"))
    b = DecodedFrame.from_raw(RawFrame.from_bytes(query_frame, timestamp=2.0))
    assert a == b
    assert hash(a) == hash(b)
    assert a != DecodedFrame(build_mdns_frame(query=False))


def test_ip_version_nibble_must_match_ethertype():
    # IPv6 packet behind an IPv4 ethertype, and the reverse
    v6 = bytearray(build_mdns_frame(ipv6=True, vlan=None))
    v6[12:14] = b"\x08\x00"
    v4 = bytearray(build_mdns_frame(vlan=None))
    v4[12:14] = b"\x86\xdd"
    v4 += bytes(40)

    for data in (v6, v4):
        frame = DecodedFrame(bytes(data))
        assert frame.ipv4 is None
        assert frame.ipv6 is None
        assert frame.udp is None
