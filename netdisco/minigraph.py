"""An in-memory graph of endpoints joined through networks.

Endpoints own edges; each edge references the network it connects to, or
:data:`UNCONNECTED`. Networks keep the IDs of the endpoints attached to them.
"""

from __future__ import annotations

import enum
import json
import threading
from dataclasses import dataclass, field
from typing import IO, Any, Union

from . import minilog as log

UNCONNECTED = -1


class NodeType(enum.IntEnum):
    """Kinds of node held by a graph."""

    NODE = 0
    ENDPOINT = 1
    NETWORK = 2


class GraphError(Exception):
    """Raised when a graph operation cannot be carried out."""


def _contains_value(data: dict[str, str], k: str, v: str) -> bool:
    if k:
        return k in data and v in data[k]
    return any(v in val for val in data.values())


@dataclass(eq=False)
class Edge:
    """A link from an endpoint to a network (``n``), with free-form data."""

    n: int = 0
    data: dict[str, str] = field(default_factory=dict)

    def match(self, k: str, v: str) -> bool:
        """Return True if the network ID or a data value matches."""
        if k:
            if k.upper() == "N" and str(self.n) == v:
                return True
            return _contains_value(self.data, k, v)
        if str(self.n) == v:
            return True
        return _contains_value(self.data, "", v)

    def to_dict(self) -> dict[str, Any]:
        return {"N": self.n, "D": dict(self.data)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Edge":
        return cls(n=int(data.get("N") or 0), data=dict(data.get("D") or {}))


@dataclass(eq=False)
class Endpoint:
    """A network endpoint (host, router, ...) with arbitrary data."""

    nid: int = 0
    edges: list[Edge] = field(default_factory=list)
    data: dict[str, str] = field(default_factory=dict)

    node_type = NodeType.ENDPOINT

    def __str__(self) -> str:
        return str(self.nid)

    def match(self, k: str, v: str) -> bool:
        """Return True if the ID, a data value or any edge matches."""
        if k:
            if k == "nid" and str(self.nid) == v:
                return True
            if _contains_value(self.data, k, v):
                return True
        else:
            if str(self.nid) == v:
                return True
            if _contains_value(self.data, "", v):
                return True
        return any(edge.match(k, v) for edge in self.edges)

    def has_edge(self, edge: Edge) -> bool:
        """Return True if this very edge belongs to the endpoint."""
        return any(e is edge for e in self.edges)

    def connected(self, n: int) -> bool:
        """Return True if an edge references network ``n``."""
        return any(e.n == n for e in self.edges)

    def new_edge(self) -> Edge:
        """Add and return a fresh edge."""
        edge = Edge()
        self.edges.append(edge)
        return edge

    def neighbors(self) -> list[int]:
        """IDs of the networks this endpoint is connected to."""
        return [e.n for e in self.edges if e.n != UNCONNECTED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "NID": self.nid,
            "Edges": [e.to_dict() for e in self.edges],
            "D": dict(self.data),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Endpoint":
        return cls(
            nid=int(data.get("NID") or 0),
            edges=[Edge.from_dict(e) for e in data.get("Edges") or []],
            data=dict(data.get("D") or {}),
        )


@dataclass(eq=False)
class Network:
    """A network joining endpoints, listed by ID."""

    nid: int = 0
    endpoints: list[int] = field(default_factory=list)
    data: dict[str, str] = field(default_factory=dict)

    node_type = NodeType.NETWORK

    def __str__(self) -> str:
        return str(self.nid)

    def match(self, k: str, v: str) -> bool:
        """Networks match only on their ID."""
        if k:
            return k == "nid" and str(self.nid) == v
        return str(self.nid) == v

    def connected(self, e: int) -> bool:
        """Return True if endpoint ``e`` is attached."""
        return e in self.endpoints

    def neighbors(self) -> list[int]:
        """IDs of the attached endpoints."""
        return [v for v in self.endpoints if v != UNCONNECTED]

    def to_dict(self) -> dict[str, Any]:
        return {"NID": self.nid, "Endpoints": list(self.endpoints), "D": dict(self.data)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Network":
        return cls(
            nid=int(data.get("NID") or 0),
            endpoints=[int(v) for v in data.get("Endpoints") or []],
            data=dict(data.get("D") or {}),
        )


Node = Union[Endpoint, Network]


def node_from_dict(data: dict[str, Any]) -> Node:
    """Build an endpoint or a network from its dictionary form."""
    if "Edges" in data:
        return Endpoint.from_dict(data)
    if "Endpoints" in data:
        return Network.from_dict(data)
    raise GraphError("unknown node kind")


class Graph:
    """A set of nodes keyed by ID."""

    def __init__(self) -> None:
        self.nodes: dict[int, Node] = {}
        self._max_id = 0
        self._lock = threading.RLock()

    @classmethod
    def read(cls, stream: IO[str]) -> "Graph":
        """Load a graph; an empty stream gives an empty graph."""
        graph = cls()
        text = stream.read()
        if not text.strip():
            return graph
        try:
            payload = json.loads(text)
        except ValueError as err:
            raise GraphError(f"malformed graph: {err}") from err
        with graph._lock:
            for item in payload.get("Nodes") or []:
                node = node_from_dict(item)
                graph.nodes[node.nid] = node
        return graph

    def write(self, stream: IO[str]) -> None:
        """Save the graph as JSON."""
        with self._lock:
            json.dump({"Nodes": [n.to_dict() for n in self.nodes.values()]}, stream)

    def _new_id(self) -> int:
        with self._lock:
            if self._max_id == 0:
                self._max_id = max(self.nodes, default=0)
            self._max_id += 1
            log.debug("new id: %s", self._max_id)
            return self._max_id

    def new_endpoint(self) -> Endpoint:
        node = Endpoint(nid=self._new_id())
        self.nodes[node.nid] = node
        return node

    def new_network(self) -> Network:
        node = Network(nid=self._new_id())
        self.nodes[node.nid] = node
        return node

    def insert(self, node: Node) -> Node:
        """Add a node, assigning an ID if it has none."""
        if node.nid == 0:
            node.nid = self._new_id()
        if node.nid in self.nodes:
            raise GraphError(f"node {node} already exists")
        self.nodes[node.nid] = node
        return node

    def delete(self, node: Node) -> None:
        """Remove a node and every reference to it."""
        if node.nid not in self.nodes:
            raise GraphError(f"no such node {node}")
        for other in node.neighbors():
            self.disconnect(node, self.nodes[other])
        del self.nodes[node.nid]

    def get_nodes(self) -> list[Node]:
        return list(self.nodes.values())

    def get_endpoints(self) -> list[Endpoint]:
        return [n for n in self.nodes.values() if isinstance(n, Endpoint)]

    def get_networks(self) -> list[Network]:
        """All networks, sorted by ID."""
        return sorted(
            (n for n in self.nodes.values() if isinstance(n, Network)),
            key=lambda n: n.nid,
        )

    def find_nodes(self, k: str, v: str) -> list[Node]:
        """Nodes whose key ``k`` (or any value, if ``k`` is empty) contains ``v``."""
        k = k.lower()
        return [n for n in self.nodes.values() if n.match(k, v)]

    def find_endpoints(self, k: str, v: str) -> list[Endpoint]:
        k = k.lower()
        return sorted((n for n in self.get_endpoints() if n.match(k, v)), key=lambda n: n.nid)

    def find_networks(self, k: str, v: str) -> list[Network]:
        k = k.lower()
        return [n for n in self.get_networks() if n.match(k, v)]

    def has_node(self, node: Node) -> bool:
        return node.nid in self.nodes

    def update(self, node: Node) -> Node:
        """Replace the stored node that has the same ID."""
        if not self.has_node(node):
            raise GraphError(f"no such node {node}")
        self.nodes[node.nid] = node
        return node

    def connect(self, e: Node, n: Node, edge: Edge) -> None:
        """Connect endpoint ``e`` to network ``n`` through ``edge``."""
        if not self.has_node(e):
            raise GraphError(f"node {e} not in graph")
        if not self.has_node(n):
            raise GraphError(f"node {n} not in graph")
        if not isinstance(e, Endpoint):
            raise GraphError(f"node {e} not an endpoint")
        if not isinstance(n, Network):
            raise GraphError(f"node {n} not a network")
        if not e.has_edge(edge):
            raise GraphError(f"edge {edge.to_dict()} not in endpoint {e}")
        if e.connected(n.nid):
            raise GraphError(f"endpoint {e} already connected to net {n}")
        edge.n = n.nid
        n.endpoints.append(e.nid)

    def disconnect(self, n1: Node, n2: Node) -> None:
        """Disconnect an endpoint and a network, given in either order."""
        if not self.has_node(n1):
            raise GraphError(f"node {n1} not in graph")
        if not self.has_node(n2):
            raise GraphError(f"node {n2} not in graph")
        if not n1.connected(n2.nid):
            raise GraphError(f"node {n1} not connected to node {n2}")

        endpoint = next((n for n in (n1, n2) if isinstance(n, Endpoint)), None)
        network = next((n for n in (n1, n2) if isinstance(n, Network)), None)
        if endpoint is None or network is None:
            raise GraphError(
                f"node type mismatch: {int(n1.node_type)}, {int(n2.node_type)}"
            )

        for edge in endpoint.edges:
            if edge.n == network.nid:
                edge.n = UNCONNECTED
                break
        if endpoint.nid in network.endpoints:
            network.endpoints.remove(endpoint.nid)