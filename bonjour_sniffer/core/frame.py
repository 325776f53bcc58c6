"""
Captured frames and their lazily decoded view.

A DecodedFrame never dissects the whole frame up front. Each layer accessor
cuts its own header out of the frame bytes, dissects it with scapy on first
access and remembers the result. A layer that is not in the frame decodes to
None.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple, Type

from scapy.packet import Packet, Raw
from scapy.layers.l2 import Ether, Dot1Q
from scapy.layers.inet import IP, UDP
from scapy.layers.inet6 import IPv6
from scapy.layers.dns import DNS

from bonjour_sniffer.core.errors import NotDNS

ETHER_HEADER_LEN = 14
DOT1Q_HEADER_LEN = 4
IPV4_MIN_HEADER_LEN = 20
IPV6_HEADER_LEN = 40
UDP_HEADER_LEN = 8
DNS_HEADER_LEN = 12

ETHERTYPE_IPV4 = 0x0800
ETHERTYPE_IPV6 = 0x86DD
ETHERTYPE_DOT1Q = 0x8100
ETHERTYPE_QINQ = 0x88A8
VLAN_ETHERTYPES = {ETHERTYPE_DOT1Q, ETHERTYPE_QINQ}

IPPROTO_UDP = 17

_NOT_DECODED = object()


@dataclass(frozen=True)
class CaptureInfo:
    """
    Per-frame capture metadata.
    Never part of frame equality.
    """
    timestamp: float = 0.0
    capture_length: int = 0
    length: int = 0
    interface: Optional[str] = None


@dataclass(frozen=True)
class RawFrame:
    data: bytes
    info: CaptureInfo = field(default_factory=CaptureInfo)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        *,
        timestamp: float = 0.0,
        interface: Optional[str] = None,
    ) -> "RawFrame":
        data = bytes(data)
        return cls(
            data,
            CaptureInfo(
                timestamp=timestamp,
                capture_length=len(data),
                length=len(data),
                interface=interface,
            ),
        )


def decode_dns(payload: bytes) -> DNS:
    """
    Dissect a DNS message. Raises NotDNS when the payload cannot be one.
    """
    if len(payload) < DNS_HEADER_LEN:
        raise NotDNS(f"payload too short for a DNS header ({len(payload)} bytes)")
    try:
        dns = DNS(payload)
    except Exception as exc:  # scapy field decoders raise assorted errors
        raise NotDNS(f"payload does not parse as DNS: {exc}") from exc

    # scapy keeps going on a short or garbled record section, leaving fewer
    # records than the header counts or Raw chunks in their place
    for section, count in ((dns.qd, dns.qdcount), (dns.an, dns.ancount),
                           (dns.ns, dns.nscount), (dns.ar, dns.arcount)):
        records = section or []
        if len(records) != (count or 0) or any(isinstance(r, Raw) for r in records):
            raise NotDNS("DNS record section does not match its header counts")
    return dns


class DecodedFrame:
    """
    Layered view of one captured frame, decoded on demand.
    """

    _LAYER_ACCESSORS: Dict[Type[Packet], str] = {
        Ether: "ethernet",
        Dot1Q: "dot1q",
        IP: "ipv4",
        IPv6: "ipv6",
        UDP: "udp",
        DNS: "dns",
    }

    def __init__(self, data: bytes, info: Optional[CaptureInfo] = None):
        self.data = bytes(data)
        self.info = info or CaptureInfo(
            capture_length=len(self.data),
            length=len(self.data),
        )
        self._layers: Dict[Type[Packet], object] = {}
        self._tags: Optional[Tuple[Dot1Q, ...]] = None
        self._network: Optional[Tuple[int, int]] = None
        self._transport: object = _NOT_DECODED
        self._packet: Optional[Packet] = None

    @classmethod
    def from_raw(cls, raw: RawFrame) -> "DecodedFrame":
        return cls(raw.data, raw.info)

    def __eq__(self, other):
        if not isinstance(other, DecodedFrame):
            return NotImplemented
        return self.data == other.data

    def __hash__(self):
        return hash(self.data)

    def __repr__(self):
        names = ", ".join(cls.__name__ for cls in self.decoded_layers())
        return f"<DecodedFrame {len(self.data)} bytes [{names}]>"

    # -------------------------
    # Layer access
    # -------------------------

    def layer(self, cls: Type[Packet]) -> Optional[Packet]:
        """
        Return the layer of scapy class `cls`, or None if the frame has none.
        Layers outside the lazy set fall back to the fully dissected packet.
        """
        name = self._LAYER_ACCESSORS.get(cls)
        if name is None:
            return self.packet.getlayer(cls)
        return getattr(self, name)

    def decoded_layers(self) -> Tuple[Type[Packet], ...]:
        """Layer classes materialized so far, in decode order."""
        return tuple(cls for cls, layer in self._layers.items() if layer is not None)

    @property
    def packet(self) -> Packet:
        """The fully dissected scapy packet, for callers that want every layer."""
        if self._packet is None:
            self._packet = Ether(self.data)
        return self._packet

    def _memo(self, cls: Type[Packet], decode: Callable[[], Optional[Packet]]):
        layer = self._layers.get(cls, _NOT_DECODED)
        if layer is _NOT_DECODED:
            layer = decode()
            self._layers[cls] = layer
        return layer

    @property
    def ethernet(self) -> Optional[Ether]:
        return self._memo(Ether, self._decode_ethernet)

    @property
    def vlan_tags(self) -> Tuple[Dot1Q, ...]:
        """Every 802.1Q / 802.1ad tag, outermost first."""
        self._walk_tags()
        return self._tags

    @property
    def dot1q(self) -> Optional[Dot1Q]:
        self._walk_tags()
        return self._layers.get(Dot1Q)

    @property
    def ipv4(self) -> Optional[IP]:
        return self._memo(IP, self._decode_ipv4)

    @property
    def ipv6(self) -> Optional[IPv6]:
        return self._memo(IPv6, self._decode_ipv6)

    @property
    def udp(self) -> Optional[UDP]:
        return self._memo(UDP, self._decode_udp)

    @property
    def udp_payload(self) -> Optional[bytes]:
        udp = self.udp
        if udp is None:
            return None
        start = self._transport[0] + UDP_HEADER_LEN
        if udp.len is not None and udp.len >= UDP_HEADER_LEN:
            return self.data[start:start + udp.len - UDP_HEADER_LEN]
        return self.data[start:]

    @property
    def dns(self) -> Optional[DNS]:
        return self._memo(DNS, self._decode_dns)

    # -------------------------
    # Header decoders
    # -------------------------

    def _decode_ethernet(self) -> Optional[Ether]:
        if len(self.data) < ETHER_HEADER_LEN:
            return None
        return Ether(self.data[:ETHER_HEADER_LEN])

    def _walk_tags(self) -> None:
        if self._tags is not None:
            return

        eth = self.ethernet
        if eth is None:
            self._tags = ()
            self._network = None
            return

        tags = []
        # 802.3 frames dissect as Dot3, which carries a length instead of a type
        offset, ethertype = ETHER_HEADER_LEN, getattr(eth, "type", None)
        while ethertype in VLAN_ETHERTYPES and len(self.data) >= offset + DOT1Q_HEADER_LEN:
            tag = Dot1Q(self.data[offset:offset + DOT1Q_HEADER_LEN])
            tags.append(tag)
            offset += DOT1Q_HEADER_LEN
            ethertype = tag.type

        self._tags = tuple(tags)
        self._network = (offset, ethertype)
        self._layers.setdefault(Dot1Q, self._tags[0] if self._tags else None)

    def _network_header(self) -> Optional[Tuple[int, int]]:
        """(offset, ethertype) of the network layer, after any VLAN tags."""
        self._walk_tags()
        return self._network

    def _decode_ipv4(self) -> Optional[IP]:
        network = self._network_header()
        if network is None or network[1] != ETHERTYPE_IPV4:
            return None
        offset = network[0]
        if len(self.data) < offset + IPV4_MIN_HEADER_LEN:
            return None
        if self.data[offset] >> 4 != 4:
            return None

        header_len = (self.data[offset] & 0x0F) * 4
        if header_len < IPV4_MIN_HEADER_LEN or len(self.data) < offset + header_len:
            return None
        return IP(self.data[offset:offset + header_len])

    def _decode_ipv6(self) -> Optional[IPv6]:
        network = self._network_header()
        if network is None or network[1] != ETHERTYPE_IPV6:
            return None
        offset = network[0]
        if len(self.data) < offset + IPV6_HEADER_LEN:
            return None
        if self.data[offset] >> 4 != 6:
            return None
        return IPv6(self.data[offset:offset + IPV6_HEADER_LEN])

    def _transport_header(self) -> Optional[Tuple[int, int]]:
        """(offset, protocol number) of the transport layer."""
        if self._transport is not _NOT_DECODED:
            return self._transport

        transport = None
        network = self._network_header()
        if network is not None:
            ip = self.ipv4
            if ip is not None:
                # only the first fragment carries the transport header
                if ip.frag == 0:
                    transport = (network[0] + ip.ihl * 4, ip.proto)
            else:
                ip6 = self.ipv6
                if ip6 is not None:
                    transport = (network[0] + IPV6_HEADER_LEN, ip6.nh)

        self._transport = transport
        return transport

    def _decode_udp(self) -> Optional[UDP]:
        transport = self._transport_header()
        if transport is None or transport[1] != IPPROTO_UDP:
            return None
        offset = transport[0]
        if len(self.data) < offset + UDP_HEADER_LEN:
            return None
        return UDP(self.data[offset:offset + UDP_HEADER_LEN])

    def _decode_dns(self) -> Optional[DNS]:
        payload = self.udp_payload
        if payload is None:
            return None
        try:
            return decode_dns(payload)
        except NotDNS:
            return None
