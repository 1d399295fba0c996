"""Parsing of passive TCP fingerprint signatures.

The format is ``ver:ittl:olen:mss:wsize,scale:olayout:quirks:pclass``.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field

MIN_TCP4 = 40  # minimum size of IPv4 header + TCP header
MIN_TCP6 = 60  # minimum size of IPv6 header + TCP header


class WSizeType(enum.IntEnum):
    """How the window-size field of a signature is interpreted."""

    ANY = 0
    NORMAL = 1
    MOD = 2
    MSS = 3
    MTU = 4


class Quirk(enum.IntFlag):
    """Oddities in the IP or TCP headers of a SYN packet."""

    ECN = 1 << 0
    DF = 1 << 1
    NZID = 1 << 2
    ZERO_ID = 1 << 3
    NZMBZ = 1 << 4
    FLOW = 1 << 5
    ZERO_SEQ = 1 << 6
    NZACK = 1 << 7
    ZERO_ACK = 1 << 8
    NZURG = 1 << 9
    URG = 1 << 10
    PUSH = 1 << 11
    OPT_ZERO_TS1 = 1 << 12
    OPT_NZ_TS2 = 1 << 13
    OPT_EOL_NZ = 1 << 14
    OPT_EXWS = 1 << 15
    OPT_BAD = 1 << 16


# TCP option kinds
OPT_NOP = 1
OPT_MSS = 2
OPT_WINDOW_SCALE = 3
OPT_SACK_PERMITTED = 4
OPT_SACK = 5
OPT_TIMESTAMPS = 8

TCP_OPTS: dict[str, int] = {
    "nop": OPT_NOP,
    "mss": OPT_MSS,
    "ws": OPT_WINDOW_SCALE,
    "sok": OPT_SACK_PERMITTED,
    "sack": OPT_SACK,
    "ts": OPT_TIMESTAMPS,
}

TCP_QUIRKS: dict[str, Quirk] = {
    "df": Quirk.DF,
    "id+": Quirk.NZID,
    "id-": Quirk.ZERO_ID,
    "ecn": Quirk.ECN,
    "0+": Quirk.NZMBZ,
    "flow": Quirk.FLOW,
    "seq-": Quirk.ZERO_SEQ,
    "ack+": Quirk.NZACK,
    "ack-": Quirk.ZERO_ACK,
    "uptr+": Quirk.NZURG,
    "urgf+": Quirk.URG,
    "pushf+": Quirk.PUSH,
    "ts1-": Quirk.OPT_ZERO_TS1,
    "ts2+": Quirk.OPT_NZ_TS2,
    "opt+": Quirk.OPT_EOL_NZ,
    "exws": Quirk.OPT_EXWS,
    "bad": Quirk.OPT_BAD,
}


class SignatureError(ValueError):
    """Raised when a signature string is malformed."""


@dataclass
class TCPSignature:
    """A parsed TCP fingerprint. ``None`` fields match anything."""

    label: str = ""
    raw: str = ""
    version: int | None = None
    ittl: int = 0
    opt_len: int = 0
    mss: int | None = None
    wsize_type: WSizeType = WSizeType.ANY
    wsize: int = 0
    wscale: int | None = None
    opt_layout: list[int] = field(default_factory=list)
    quirks: Quirk = Quirk(0)
    payload_class: int = 0
    bad_ttl: bool = False
    eol_pad: int = 0


_INT_RE = re.compile(r"[+-]?[0-9]+")


def _int(s: str, what: str) -> int:
    if not _INT_RE.fullmatch(s):
        raise SignatureError(f"expected integer for {what}, not {s}")
    return int(s)


def _ranged(s: str, what: str, low: int, high: int, message: str | None = None) -> int:
    value = _int(s, what)
    if not low <= value <= high:
        raise SignatureError(message or f"{low} <= {what} <= {high}")
    return value


def _parse_version(s: str) -> int | None:
    if s == "4":
        return 4
    if s == "6":
        return 6
    if s == "*":
        return None
    raise SignatureError("invalid ip version")


def _parse_head(parts: list[str], sig: TCPSignature) -> None:
    sig.version = _parse_version(parts[0])

    ittl = parts[1]
    if ittl.endswith("-"):
        sig.bad_ttl = True
        ittl = ittl[:-1]
    sig.ittl = _ranged(ittl, "ittl", 1, 255)

    sig.opt_len = _ranged(parts[2], "olen", 0, 255)

    if parts[3] != "*":
        sig.mss = _ranged(parts[3], "mss", 0, 65535)


def _parse_wsize(s: str, sig: TCPSignature) -> None:
    if s in ("", "*"):
        sig.wsize_type = WSizeType.ANY
        return
    if s.startswith("%"):
        sig.wsize_type, s, low, high = WSizeType.MOD, s[1:], 2, 65535
    elif s.startswith("mss*"):
        sig.wsize_type, s, low, high = WSizeType.MSS, s[4:], 1, 1000
    elif s.startswith("mtu*"):
        sig.wsize_type, s, low, high = WSizeType.MTU, s[4:], 1, 1000
    else:
        sig.wsize_type, low, high = WSizeType.NORMAL, 0, 65535
    sig.wsize = _ranged(s, "wsize", low, high)


def _parse_wscale(s: str, sig: TCPSignature) -> None:
    if s != "*":
        sig.wscale = _ranged(s, "wscale", 0, 255)


def _parse_opt_layout(opts: str, sig: TCPSignature) -> None:
    for s in opts.split(","):
        if s in TCP_OPTS:
            sig.opt_layout.append(TCP_OPTS[s])
        elif s.startswith("eol+"):
            sig.eol_pad = _ranged(s[4:], "eol pad", 0, 255, "0 <= eol pad <= 255")
            break  # eol is the last option
        elif s.startswith("?"):
            sig.opt_layout.append(
                _ranged(s[1:], "unknown opt", 0, 255, "0 <= unknown opt <= 255")
            )
        else:
            raise SignatureError("malformed option layout")


def _parse_quirks(quirks: str, sig: TCPSignature) -> None:
    if not quirks:
        return
    for s in quirks.split(","):
        if s not in TCP_QUIRKS:
            raise SignatureError(f"unknown quirk: {s}")
        sig.quirks |= TCP_QUIRKS[s]


def _parse_payload_class(s: str) -> int:
    classes = {"*": -1, "0": 0, "+": 1}
    if s not in classes:
        raise SignatureError("invalid payload class")
    return classes[s]


def parse_tcp_signature(label: str, s: str) -> TCPSignature:
    """Parse a signature string into a :class:`TCPSignature`."""
    parts = s.split(":")
    if len(parts) != 8:
        raise SignatureError("expected 8 fields")

    sig = TCPSignature(label=label, raw=s)

    head_error: SignatureError | None = None
    try:
        _parse_head(parts, sig)
    except SignatureError as err:
        head_error = err

    window = parts[4].split(",")
    if len(window) != 2:
        raise SignatureError("expected wsize,scale")
    if head_error is not None:
        raise head_error

    _parse_wsize(window[0], sig)
    _parse_wscale(window[1], sig)
    _parse_opt_layout(parts[5], sig)
    _parse_quirks(parts[6], sig)
    sig.payload_class = _parse_payload_class(parts[7])
    return sig