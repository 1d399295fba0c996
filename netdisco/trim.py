"""Trim endpoints from the discovery graph.

Trimming marks an endpoint with ``trimmed=true`` or, in delete mode, removes
it from the service.
"""

from __future__ import annotations

import argparse
from typing import Any, Sequence

from . import minilog as log
from .discovery import PORT, Client, DiscoveryError
from .minigraph import UNCONNECTED, Endpoint, Network


class Trimmer:
    """Trims endpoints through a discovery client."""

    def __init__(self, client: Any, delete: bool = False) -> None:
        self.client = client
        self.delete = delete

    def trim_node(self, node_id: int) -> None:
        """Trim one endpoint by ID."""
        log.info("trimming: %s", node_id)

        if self.delete:
            self.client.delete_endpoints("nid", str(node_id))
            return

        found = self.client.get_endpoints("nid", str(node_id))
        if len(found) != 1:
            raise DiscoveryError(
                f"expected 1 endpoint for ID {node_id}, not {len(found)}"
            )
        endpoint = found[0]
        endpoint.data["trimmed"] = "true"
        self.client.update_endpoints(endpoint)

    def _try_trim(self, node_id: int) -> None:
        try:
            self.trim_node(node_id)
        except DiscoveryError as err:
            log.error("trim %s: %s", node_id, err)

    def get_endpoints(self, *args: str) -> dict[int, Endpoint]:
        """Endpoints keyed by ID; args are nothing, a value, or a key and a value."""
        if len(args) > 2:
            raise TypeError(f"too many args to get_endpoints: {list(args)}")
        k, v = "", ""
        if len(args) == 1:
            v = args[0]
        elif len(args) == 2:
            k, v = args
        return {e.nid: e for e in self.client.get_endpoints(k, v)}

    def get_networks(self) -> dict[int, Network]:
        """All networks keyed by ID."""
        return {n.nid: n for n in self.client.get_networks("", "")}

    def connected(self, node_id: int) -> set[int]:
        """IDs of the endpoints reachable from endpoint ``node_id``."""
        networks = self.get_networks()

        working: list[int] = []
        visited: set[int] = set()
        reverse: dict[int, list[int]] = {}

        for network in networks.values():
            for endpoint_id in network.endpoints:
                if endpoint_id == node_id:
                    log.debug("initial network: %s", network.nid)
                    working.append(network.nid)
                    visited.add(network.nid)
                reverse.setdefault(endpoint_id, []).append(network.nid)

        while working:
            following: list[int] = []
            for nid in working:
                log.debug("visiting %s", nid)
                for endpoint_id in networks[nid].endpoints:
                    for other in reverse.get(endpoint_id, ()):
                        if other not in visited:
                            visited.add(other)
                            following.append(other)
            working = following

        return {
            endpoint_id
            for endpoint_id, nets in reverse.items()
            if any(n in visited for n in nets)
        }

    def trim_disconnected(self) -> None:
        """Trim endpoints that have no connected edges."""
        for endpoint in self.get_endpoints().values():
            if any(edge.n != UNCONNECTED for edge in endpoint.edges):
                continue
            self._try_trim(endpoint.nid)

    def trim_unconnected(self, node_id: int) -> None:
        """Trim endpoints not reachable from ``node_id``."""
        endpoints = self.get_endpoints()
        reachable = self.connected(node_id)
        for endpoint_id in endpoints:
            if endpoint_id not in reachable:
                self._try_trim(endpoint_id)

    def trim_size(self, root: int, size: int) -> None:
        """Trim endpoints until ``size`` are left.

        Endpoints not reachable from ``root`` go first; after that, those with
        the fewest edges (then lowest ID).
        """
        endpoints = self.get_endpoints()
        reachable = self.connected(root)

        for endpoint_id in list(endpoints):
            if endpoint_id in reachable:
                continue
            self._try_trim(endpoint_id)
            del endpoints[endpoint_id]
            if len(endpoints) == size:
                return

        ordered = sorted(endpoints.values(), key=lambda e: (len(e.edges), e.nid))
        for endpoint in ordered:
            if len(endpoints) <= size:
                break
            if endpoint.nid == root:
                log.warn("trimming the root!")
            self._try_trim(endpoint.nid)
            del endpoints[endpoint.nid]

    def trim_query(self, query: str) -> None:
        """Trim endpoints matching ``term`` or ``key=value``."""
        for endpoint_id in self.get_endpoints(*query.split("=", 1)):
            self._try_trim(endpoint_id)

    def trim_trimmed(self) -> None:
        """Trim endpoints already marked ``trimmed=true``."""
        for endpoint_id, endpoint in self.get_endpoints().items():
            if endpoint.data.get("trimmed") == "true":
                self._try_trim(endpoint_id)

    def clear_trim(self) -> None:
        """Remove the ``trimmed=true`` mark from every endpoint."""
        for endpoint in self.get_endpoints().values():
            if endpoint.data.get("trimmed") == "true":
                del endpoint.data["trimmed"]
                self.client.update_endpoints(endpoint)


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(prog="trim", description="Trim endpoints from discovery.")
    parser.add_argument("--server", default=f"localhost:{PORT}", help="web service")
    parser.add_argument(
        "--unconnected", action="store_true",
        help="trim nodes that are not connected to other nodes",
    )
    parser.add_argument(
        "--delete", action="store_true",
        help="trim nodes by deleting them (default is to mark them trimmed=true)",
    )
    parser.add_argument("--size", type=int, default=-1, help="trim until SIZE nodes are left")
    parser.add_argument("--root", type=int, default=-1, help="root node ID for walks")
    parser.add_argument(
        "--trimmed", action="store_true",
        help="trim trimmed=true endpoints (use with --delete)",
    )
    parser.add_argument("--clear", action="store_true", help="clear trimmed flags on endpoints")
    parser.add_argument("-q", dest="search", default="", help="trim nodes matching term or key=value")
    parser.add_argument(
        "--level", default=str(log.DEFAULT_LEVEL),
        help="set log level: [debug, info, warn, error, fatal]",
    )
    parser.add_argument("--logfile", default="", help="specify file to log to")
    args = parser.parse_args(argv)

    try:
        level = log.Level.parse(args.level)
    except ValueError:
        parser.error("invalid log level")
    log.setup(level, True, args.logfile)

    trimmer = Trimmer(Client(args.server), delete=args.delete)

    try:
        if args.clear:
            log.infoln("clearing trimmed flag on nodes")
            trimmer.clear_trim()
        elif args.size > -1:
            if args.root == -1:
                log.fatalln("must specify root with --size")
            log.info("trimming to size %s", args.size)
            trimmer.trim_size(args.root, args.size)
        elif args.unconnected:
            if args.root == -1:
                log.fatalln("must specify root with --unconnected")
            log.info("trimming nodes not connected to %s", args.root)
            trimmer.trim_unconnected(args.root)
        elif args.trimmed:
            if not args.delete:
                log.fatalln("no-op without --delete")
            log.infoln("trimming trimmed nodes")
            trimmer.trim_trimmed()
        elif args.search:
            log.infoln("trim query")
            trimmer.trim_query(args.search)
        else:
            log.infoln("trimming disconnected nodes")
            trimmer.trim_disconnected()
    except DiscoveryError as err:
        log.fatalln(err)
    return 0