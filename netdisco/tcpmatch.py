"""Matching of TCP SYN and SYN+ACK packets against fingerprint signatures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from .tcpsig import (
    MIN_TCP4,
    MIN_TCP6,
    OPT_MSS,
    OPT_SACK_PERMITTED,
    OPT_TIMESTAMPS,
    OPT_WINDOW_SCALE,
    Quirk,
    TCPSignature,
    WSizeType,
)

_U16 = 0xFFFF
_U8 = 0xFF

# Largest window scale permitted by RFC 1323.
_MAX_WSCALE = 14


@dataclass
class IPv4Header:
    """The IPv4 fields that fingerprinting looks at.

    ``length`` is the total length field; ``payload_length`` is the number of
    bytes following the IP header.
    """

    ttl: int = 64
    tos: int = 0
    id: int = 0
    dont_fragment: bool = False
    more_fragments: bool = False
    length: int = 0
    payload_length: int = 0


@dataclass
class IPv6Header:
    """The IPv6 fields that fingerprinting looks at."""

    hop_limit: int = 64
    traffic_class: int = 0
    flow_label: int = 0
    length: int = 0
    payload_length: int = 0


IPHeader = Union[IPv4Header, IPv6Header]


@dataclass
class TCPOption:
    """One TCP option: its kind, its length field and its data bytes."""

    kind: int
    length: int = 1
    data: bytes = b""


@dataclass
class TCPHeader:
    """The TCP fields that fingerprinting looks at."""

    seq: int = 0
    ack_number: int = 0
    window: int = 0
    urgent: int = 0
    data_offset: int = 5
    fin: bool = False
    syn: bool = False
    rst: bool = False
    psh: bool = False
    ack: bool = False
    urg: bool = False
    ece: bool = False
    cwr: bool = False
    ns: bool = False
    options: list[TCPOption] = field(default_factory=list)
    padding: bytes = b""
    payload: bytes = b""


@dataclass
class Packet:
    """A TCP segment together with the IP header that carried it."""

    ip: IPHeader | None
    tcp: TCPHeader


@dataclass
class MatchResult:
    """Outcome of a match; ``fuzzy`` is set when only tolerated quirks differ."""

    matched: bool
    fuzzy: bool = False

    def __bool__(self) -> bool:
        return self.matched


def _ip_header_len(ip: IPHeader | None) -> int:
    if ip is None:
        return 0
    return (ip.length - ip.payload_length) & _U16


def _option_quirks(tcp: TCPHeader, syn: "TCPSyn") -> None:
    for opt in tcp.options:
        if opt.kind == OPT_MSS:
            if opt.length != 4:
                syn.quirks |= Quirk.OPT_BAD
            else:
                syn.mss = int.from_bytes(opt.data[:2], "big")
        elif opt.kind == OPT_WINDOW_SCALE:
            if opt.length != 3:
                syn.quirks |= Quirk.OPT_BAD
            else:
                syn.wscale = opt.data[0]
                if syn.wscale > _MAX_WSCALE:
                    syn.quirks |= Quirk.OPT_EXWS
        elif opt.kind == OPT_SACK_PERMITTED:
            if opt.length != 2:
                syn.quirks |= Quirk.OPT_BAD
        elif opt.kind == OPT_TIMESTAMPS:
            if opt.length != 10:
                syn.quirks |= Quirk.OPT_BAD
            else:
                syn.ts1 = int.from_bytes(opt.data[:4], "big")
                if syn.ts1 == 0:
                    syn.quirks |= Quirk.OPT_ZERO_TS1
                syn.ts2 = int.from_bytes(opt.data[4:8], "big")
                if not tcp.ack and syn.ts2 != 0:
                    syn.quirks |= Quirk.OPT_NZ_TS2


def _ip_quirks(ip: IPHeader | None) -> Quirk:
    quirks = Quirk(0)
    if isinstance(ip, IPv4Header):
        if ip.tos & 0x3:
            quirks |= Quirk.ECN
        if ip.more_fragments:
            quirks |= Quirk.NZMBZ
        if ip.dont_fragment:
            quirks |= Quirk.DF
            if ip.id != 0:
                quirks |= Quirk.NZID
        elif ip.id == 0:
            quirks |= Quirk.ZERO_ID
    elif isinstance(ip, IPv6Header):
        if ip.flow_label != 0:
            quirks |= Quirk.FLOW
        if ip.traffic_class & 0x3:
            quirks |= Quirk.ECN
    return quirks


def _tcp_quirks(tcp: TCPHeader) -> Quirk:
    quirks = Quirk(0)
    if tcp.ece or tcp.cwr or tcp.ns:
        quirks |= Quirk.ECN
    if tcp.seq == 0:
        quirks |= Quirk.ZERO_SEQ
    if tcp.ack:
        if tcp.ack_number == 0:
            quirks |= Quirk.ZERO_ACK
    elif tcp.ack_number != 0 and not tcp.rst:
        quirks |= Quirk.NZACK
    if tcp.urg:
        quirks |= Quirk.URG
    elif tcp.urgent != 0:
        quirks |= Quirk.NZURG
    if tcp.psh:
        quirks |= Quirk.PUSH
    return quirks


def _divides(win: int, divisor: int) -> bool:
    return divisor != 0 and win % divisor == 0


@dataclass
class TCPSyn:
    """Summary of a SYN packet used to compare it with a signature."""

    header_len: int = 0
    quirks: Quirk = Quirk(0)
    mss: int = 0
    wscale: int = 0
    ts1: int = 0
    ts2: int = 0
    payload_class: int = 0

    @classmethod
    def from_packet(cls, packet: Packet) -> "TCPSyn":
        """Extract header size, options and quirks from ``packet``."""
        tcp = packet.tcp
        syn = cls()
        syn.header_len = (tcp.data_offset * 4 + _ip_header_len(packet.ip)) & _U16

        _option_quirks(tcp, syn)

        if any(b != 0 for b in tcp.padding):
            syn.quirks |= Quirk.OPT_EOL_NZ

        syn.quirks |= _ip_quirks(packet.ip)
        syn.quirks |= _tcp_quirks(tcp)

        if tcp.payload:
            syn.payload_class = 1
        return syn

    def win_mult_mss(self, win: int, ip6: bool) -> int:
        """Return the multiple of an MSS variant that divides ``win``, or 0."""
        if self.mss < 100:
            return 0
        candidates = [self.mss]
        if self.ts1 != 0:
            candidates.append(self.mss - 12)
        candidates += [1500 - MIN_TCP4, 1500 - MIN_TCP4 - 12]
        if ip6:
            candidates += [1500 - MIN_TCP6, 1500 - MIN_TCP6 - 12]
        for divisor in candidates:
            if _divides(win, divisor):
                return win // divisor
        return 0

    def win_mult_mtu(self, win: int, ip6: bool) -> int:
        """Return the multiple of an MTU variant that divides ``win``, or 0."""
        if self.mss < 100:
            return 0
        candidates = [
            (self.mss + MIN_TCP4) & _U16,
            (self.mss + self.header_len) & _U16,
            1500,
        ]
        for divisor in candidates:
            if _divides(win, divisor):
                return win // divisor
        return 0


def _match4(sig: TCPSignature, ip: IPv4Header) -> bool:
    if sig.version is not None and sig.version != 4:
        return False
    if ip.ttl > sig.ittl:
        return False
    opt_len = (ip.length - 20 - ip.payload_length) & _U16
    return (opt_len & _U8) == sig.opt_len


def _match6(sig: TCPSignature, ip: IPv6Header) -> bool:
    if sig.version is not None and sig.version != 6:
        return False
    return ip.hop_limit <= sig.ittl


def _window_matches(sig: TCPSignature, syn: TCPSyn, win: int, ipv6: bool) -> bool:
    if sig.wsize_type == WSizeType.NORMAL:
        return win == sig.wsize
    if sig.wsize_type == WSizeType.MOD:
        return _divides(win, sig.wsize)
    if sig.wsize_type == WSizeType.MSS:
        return sig.wsize == syn.win_mult_mss(win, ipv6)
    if sig.wsize_type == WSizeType.MTU:
        return sig.wsize == syn.win_mult_mtu(win, ipv6)
    return True


_V6_IGNORED = int(Quirk.DF | Quirk.NZID | Quirk.ZERO_ID | Quirk.NZMBZ)
_DELETABLE = int(Quirk.DF | Quirk.NZID)
_ADDABLE = int(Quirk.ZERO_ID | Quirk.ECN)


def match(signature: TCPSignature, packet: Packet) -> MatchResult:
    """Match ``packet`` against ``signature``.

    A match is fuzzy when the quirks differ only in tolerated ways: "df" or
    "id+" missing, or "id-" or "ecn" added.
    """
    ip = packet.ip
    tcp = packet.tcp
    ipv6 = isinstance(ip, IPv6Header)

    if isinstance(ip, IPv4Header) and not _match4(signature, ip):
        return MatchResult(False)
    if isinstance(ip, IPv6Header) and not _match6(signature, ip):
        return MatchResult(False)

    if len(tcp.padding) != signature.eol_pad:
        return MatchResult(False)
    if len(tcp.options) != len(signature.opt_layout):
        return MatchResult(False)

    syn = TCPSyn.from_packet(packet)

    if signature.mss is not None and syn.mss != signature.mss:
        return MatchResult(False)
    if signature.wscale is not None and syn.wscale != signature.wscale:
        return MatchResult(False)
    if signature.payload_class != -1 and syn.payload_class != signature.payload_class:
        return MatchResult(False)

    if not _window_matches(signature, syn, tcp.window, ipv6):
        return MatchResult(False)

    quirks = int(signature.quirks)
    if signature.version is None:
        if isinstance(ip, IPv4Header):
            quirks &= ~int(Quirk.FLOW)
        elif isinstance(ip, IPv6Header):
            quirks &= ~_V6_IGNORED

    got = int(syn.quirks)
    if got == quirks:
        return MatchResult(True, False)

    deleted = (quirks ^ got) & quirks
    added = (quirks ^ got) & got
    if deleted & ~_DELETABLE:
        return MatchResult(False)
    if added & ~_ADDABLE:
        return MatchResult(False)
    return MatchResult(True, True)