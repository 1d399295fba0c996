"""Load router configurations into the discovery service.

Each interface found in a configuration is attached to the network holding
its subnet, or to a new network when none does.
"""

from __future__ import annotations

import argparse
import ipaddress
import os
import sys
from typing import Any, Callable, Iterable, Sequence

from . import minilog as log
from .discovery import EDGE_NONE, PORT, Client, DiscoveryError
from .minigraph import Endpoint, Network
from .routerparse import (
    Interface,
    JuniperParseError,
    parse_arista,
    parse_brocade,
    parse_cisco,
    parse_juniper,
)

_PARSERS: dict[str, Callable[[Iterable[str]], Iterable[Interface]]] = {
    "cisco": parse_cisco,
    "brocade": parse_brocade,
    "arista": parse_arista,
    "juniper": parse_juniper,
}

_Net = ipaddress.IPv4Network | ipaddress.IPv6Network


def _parse_cidr(text: str) -> _Net | None:
    addr, sep, bits = text.partition("/")
    if not sep or not bits.isascii() or not bits.isdigit():
        return None
    try:
        return ipaddress.ip_interface(f"{addr}/{int(bits)}").network
    except ValueError:
        return None


def _require_cidr(text: str) -> _Net | None:
    if not text:
        return None
    net = _parse_cidr(text)
    if net is None:
        raise ValueError(f"invalid CIDR address: {text}")
    return net


class RouterLoader:
    """Pushes router interfaces to a discovery client.

    With ``dry_run`` set nothing is sent to the server.
    """

    def __init__(self, client: Any, dry_run: bool = False) -> None:
        self.client = client
        self.dry_run = dry_run

    def _insert_router(self, kind: str, name: str) -> int:
        endpoint = Endpoint(
            data={"router": "true", "type": kind, "name": name, "icon": "router"}
        )
        if self.dry_run:
            return 0
        return self.client.insert_endpoints(endpoint)[0].nid

    def _find_network(self, endpoint_id: int, nets: list[tuple[str, _Net | None]]) -> Network | None | bool:
        """Return the matching network, None, or False if the endpoint already has it."""
        network: Network | None = None
        for endpoint in self.client.get_endpoints("", ""):
            for edge in endpoint.edges:
                for key, wanted in nets:
                    if wanted is None or key not in edge.data:
                        continue
                    got = _parse_cidr(edge.data[key])
                    if got is None or got != wanted:
                        continue
                    if endpoint.nid == endpoint_id:
                        # the configuration repeats itself
                        return False
                    if network is not None and network.nid != edge.n:
                        log.warn("subnets are inconsistent")
                    found = self.client.get_networks("nid", str(edge.n))
                    if len(found) == 1:
                        network = found[0]
        return network

    def add_interface(self, endpoint_id: int, interface: Interface) -> None:
        """Connect ``endpoint_id`` to the network for ``interface``'s subnet."""
        if self.dry_run or not interface.useful:
            return

        ipnet = _require_cidr(interface.ip)
        ipnet6 = _require_cidr(interface.ip6)

        network = self._find_network(endpoint_id, [("ip", ipnet), ("ip6", ipnet6)])
        if network is False:
            return
        if network is None:
            network = self.client.insert_networks(Network())[0]

        log.info(
            "connect %s <-> %s -- %s, %s",
            network.nid, endpoint_id, interface.ip, interface.ip6,
        )
        endpoint = self.client.connect(network.nid, endpoint_id, EDGE_NONE)
        edge = endpoint.edges[-1]
        edge.data["name"] = interface.desc
        if interface.ip:
            edge.data["ip"] = interface.ip
        if interface.ip6:
            edge.data["ip6"] = interface.ip6
        self.client.update_endpoints(endpoint)

    def load(self, path: str, kind: str) -> int:
        """Load the configuration at ``path`` of type ``kind``; return the router's ID."""
        parser = _PARSERS.get(kind)
        if parser is None:
            raise ValueError("invalid config type")
        log.debug("using filename: %s", path)
        name = os.path.basename(path)

        with open(path, encoding="utf-8", errors="replace") as handle:
            if kind == "juniper":
                interfaces = parse_juniper(handle)
                endpoint_id = self._insert_router(kind, name)
                for iface in interfaces:
                    try:
                        self.add_interface(endpoint_id, iface)
                    except (DiscoveryError, ValueError) as err:
                        log.warn("%s: %s", iface.desc, err)
            else:
                endpoint_id = self._insert_router(kind, name)
                for iface in parser(handle):
                    self.add_interface(endpoint_id, iface)
        return endpoint_id


def _usage(parser: argparse.ArgumentParser) -> None:
    print(f"USAGE: {parser.prog} [OPTIONS] CONFIG")
    print(parser.format_help().rstrip("\n"))
    raise SystemExit(1)


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(
        prog="ldrouterconfig", description="Load a router configuration into discovery."
    )
    parser.add_argument(
        "--type", dest="kind", default="cisco",
        help="specify config type: [cisco, arista, brocade, juniper]",
    )
    parser.add_argument("--server", default=f"localhost:{PORT}", help="web service")
    parser.add_argument(
        "--dry-run", action="store_true",
        help="do a dry run and do not push data to the server",
    )
    parser.add_argument(
        "--level", default=str(log.DEFAULT_LEVEL),
        help="set log level: [debug, info, warn, error, fatal]",
    )
    parser.add_argument("--logfile", default="", help="specify file to log to")
    parser.add_argument("config", nargs="*")
    args = parser.parse_args(sys.argv[1:] if argv is None else list(argv))

    try:
        level = log.Level.parse(args.level)
    except ValueError:
        _usage(parser)
    log.setup(level, True, args.logfile)

    client = Client(args.server)

    if len(args.config) != 1:
        _usage(parser)
    if args.kind not in _PARSERS:
        log.error("invalid config type")
        _usage(parser)

    loader = RouterLoader(client, dry_run=args.dry_run)
    try:
        loader.load(args.config[0], args.kind)
    except (OSError, ValueError, DiscoveryError, JuniperParseError) as err:
        log.fatalln(err)
    return 0