"""Extraction of interface addresses from router configuration dumps.

Each parser takes an iterable of text lines and yields an :class:`Interface`
for every interface that has a description and at least one address.
"""

from __future__ import annotations

import ipaddress
import json
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from . import minilog as log

_JUNIPER_MARKER = "show configuration | display json"


@dataclass(frozen=True)
class Interface:
    """One router interface: a description and its IPv4/IPv6 CIDR addresses."""

    desc: str = ""
    ip: str = ""
    ip6: str = ""

    @property
    def useful(self) -> bool:
        """True when there is a description and at least one address."""
        return bool(self.desc) and bool(self.ip or self.ip6)


class JuniperParseError(ValueError):
    """Raised when the JSON part of a Juniper dump cannot be decoded."""


class _State:
    """Interface fields collected between two flushes."""

    def __init__(self) -> None:
        self.desc = ""
        self.ip = ""
        self.ip6 = ""

    def flush(self) -> Iterator[Interface]:
        iface = Interface(self.desc, self.ip, self.ip6)
        self.desc = self.ip = self.ip6 = ""
        if iface.useful:
            yield iface


def _fields(lines: Iterable[str]) -> Iterator[tuple[str, list[str]]]:
    for raw in lines:
        line = raw.rstrip("\n").removesuffix("\r")
        fields = line.split()
        if len(fields) < 2:
            continue
        log.debug("processing line: %s", line)
        yield line, fields


def _take_address(state: _State, line: str, fields: list[str]) -> None:
    if fields[0] == "ip":
        state.ip = fields[2]
        log.debug("got ip address: %s", state.ip)
    elif "link-local" not in line:
        state.ip6 = fields[2]
        log.debug("got ipv6 address: %s", state.ip6)


def _router_id(state: _State, address: str) -> Iterator[Interface]:
    yield from state.flush()
    state.desc = "router-id"
    state.ip = address + "/32"
    log.debug("got router-id: %s", state.ip)


def parse_arista(lines: Iterable[str]) -> Iterator[Interface]:
    """Yield the interfaces of an Arista running configuration."""
    state = _State()
    for line, fields in _fields(lines):
        head = fields[0]
        if head == "interface":
            yield from state.flush()
        elif head == "description":
            state.desc = " ".join(fields[1:])
        elif head in ("ip", "ipv6"):
            if len(fields) == 3 and fields[1] == "address":
                _take_address(state, line, fields)
        elif head == "router-id":
            yield from _router_id(state, fields[1])
    yield from state.flush()


def parse_brocade(lines: Iterable[str]) -> Iterator[Interface]:
    """Yield the interfaces of a Brocade running configuration."""
    state = _State()
    for line, fields in _fields(lines):
        head = fields[0]
        if head == "interface":
            yield from state.flush()
        elif head == "port-name":
            state.desc = " ".join(fields[1:])
        elif head in ("ip", "ipv6") and len(fields) == 3:
            if fields[1] == "router-id":
                yield from _router_id(state, fields[2])
            elif fields[1] == "address":
                _take_address(state, line, fields)
    yield from state.flush()


def _cisco_ipv4(addr: str, mask: str) -> str:
    """Render an address and dotted netmask as ``addr/len`` (or ``addr/hexmask``)."""
    try:
        ip = ipaddress.IPv4Address(addr)
        netmask = int(ipaddress.IPv4Address(mask))
    except ValueError:
        return f"{addr}/{mask}"
    inverse = ~netmask & 0xFFFFFFFF
    if inverse & (inverse + 1) == 0:
        return f"{ip}/{32 - inverse.bit_length()}"
    return f"{ip}/{netmask:08x}"


def parse_cisco(lines: Iterable[str]) -> Iterator[Interface]:
    """Yield the interfaces of a Cisco running configuration.

    The interface name is the description until a ``description`` line
    replaces it.
    """
    state = _State()
    for line, fields in _fields(lines):
        head = fields[0]
        if head == "interface":
            yield from state.flush()
            state.desc = " ".join(fields[1:])
        elif head == "description":
            state.desc = " ".join(fields[1:])
        elif head in ("ip", "ipv4"):
            if len(fields) == 4 and fields[1] == "address":
                state.ip = _cisco_ipv4(fields[2], fields[3])
                log.debug("got ipv4 address: %s", state.ip)
        elif head == "ipv6":
            if len(fields) == 3 and fields[1] == "address" and "link-local" not in line:
                state.ip6 = fields[2]
                log.debug("got ipv6 address: %s", state.ip6)
        elif head == "bgp":
            if len(fields) == 3 and fields[1] == "router-id":
                yield from _router_id(state, fields[2])
    yield from state.flush()


def _get(obj: Any, key: str) -> Any:
    """Look up ``key`` in a JSON object, falling back to a case-insensitive match."""
    if not isinstance(obj, dict):
        raise JuniperParseError(f"expected JSON object, got {type(obj).__name__}")
    if key in obj:
        return obj[key]
    lowered = key.lower()
    return next((v for k, v in obj.items() if k.lower() == lowered), None)


def _list(obj: Any, key: str) -> list[Any]:
    value = _get(obj, key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise JuniperParseError(f"expected JSON array for {key!r}")
    return value


def _text(obj: Any) -> str:
    if obj is None:
        return ""
    value = _get(obj, "data")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise JuniperParseError("expected JSON string for 'data'")
    return value


def _data(obj: Any, key: str) -> str:
    return _text(_get(obj, key))


def _parse_cidr(text: str) -> ipaddress.IPv4Interface | ipaddress.IPv6Interface | None:
    addr, sep, bits = text.partition("/")
    if not sep or not bits.isascii() or not bits.isdigit():
        return None
    try:
        return ipaddress.ip_interface(f"{addr}/{int(bits)}")
    except ValueError:
        return None


def _pick_address(blocks: list[Any], current: str, label: str) -> str:
    for block in blocks:
        for addr in _list(block, "address"):
            name = _data(addr, "name")
            log.info("found %s address: %s", label, name)
            parsed = _parse_cidr(name)
            if parsed is None or parsed.ip.is_loopback:
                continue
            # a preferred (primary) address replaces an earlier one
            if not current or _list(addr, "preferred"):
                current = name
    return current


def juniper_interfaces(interfaces: Iterable[Any]) -> Iterator[Interface]:
    """Yield one interface per unit of a decoded Juniper ``interfaces`` list."""
    for group in interfaces:
        for iface in _list(group, "interface"):
            iface_name = _data(iface, "name")
            log.info("found interface: %s", iface_name)
            for unit in _list(iface, "unit"):
                ip = ip6 = ""
                for family in _list(unit, "family"):
                    ip = _pick_address(_list(family, "inet"), ip, "ip")
                    ip6 = _pick_address(_list(family, "inet6"), ip6, "ipv6")
                found = Interface(f"{iface_name}:{_data(unit, 'name')}", ip, ip6)
                if found.useful:
                    yield found


def _syntax_error(text: str, err: json.JSONDecodeError) -> str:
    start = text.rfind("\n", 0, err.pos) + 1
    end = text.find("\n", start)
    if end < 0:
        end = len(text)
    line_no = text.count("\n", 0, start)
    caret = " " * (err.pos - start) + "^"
    return f"Error in line {line_no}: {err.msg}\n{text[start:end]}\n{caret}"


def parse_juniper(lines: Iterable[str]) -> list[Interface]:
    """Return the interfaces from a Juniper ``display json`` dump.

    The JSON follows the line holding the ``show configuration`` command and
    ends at the first line starting with ``#``. Groups named by
    ``apply-groups`` contribute their interfaces too.
    """
    it = iter(lines)
    for line in it:
        if _JUNIPER_MARKER in line:
            break

    body: list[str] = []
    for raw in it:
        line = raw.rstrip("\n").removesuffix("\r")
        if line.startswith("#"):
            break
        body.append(line + "\n")
    text = "".join(body)

    try:
        document = json.loads(text)
    except json.JSONDecodeError as err:
        raise JuniperParseError(_syntax_error(text, err)) from err

    found: list[Interface] = []
    for config in _list(document, "configuration"):
        found.extend(juniper_interfaces(_list(config, "interfaces")))
        groups = _list(config, "groups")
        for apply in _list(config, "apply-groups"):
            wanted = _text(apply)
            for group in groups:
                if _data(group, "name") == wanted:
                    found.extend(juniper_interfaces(_list(group, "interfaces")))
    return found