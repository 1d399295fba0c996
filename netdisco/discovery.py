"""HTTP client for the discovery web service.

The service stores a graph of endpoints and networks and exposes it over a
small REST interface. Nodes travel as JSON in the same shape as
:meth:`Endpoint.to_dict` and :meth:`Network.to_dict`.
"""

from __future__ import annotations

import json
from typing import Any

import requests

from . import minilog as log
from .minigraph import Endpoint, Network, Node, node_from_dict

PORT = 8000
EDGE_NONE = -1


class DiscoveryError(Exception):
    """Raised when the discovery service cannot be reached or reports an error."""


def format_error(method: str, uri: str, message: str) -> str:
    """Render an error report in the service's JSON error format."""
    return json.dumps({"request": f"{method}\t{uri}", "error": message}, indent=4)


def read_error(body: str | bytes) -> DiscoveryError:
    """Turn an error report from the service into an exception."""
    try:
        report = json.loads(body)
        request = report.get("request", "")
        message = report.get("error", "")
    except (ValueError, AttributeError):
        text = body.decode("utf-8", "replace") if isinstance(body, bytes) else body
        return DiscoveryError(f"malformed error response: {text}")
    return DiscoveryError(f"{request} : {message}")


def _has_port(address: str) -> bool:
    if address.startswith("["):
        close = address.find("]")
        return close != -1 and address[close + 1 : close + 2] == ":" and address[close + 2 :] != ""
    return address.count(":") == 1


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class Client:
    """Client for one discovery server, given as ``host`` or ``host:port``."""

    def __init__(self, server: str) -> None:
        address = server if _has_port(server) else _join_host_port(server, PORT)
        log.debug("using server %s", address)
        self.server = f"http://{address}"
        self._session = requests.Session()

    def _url(self, kind: str, k: str, v: str) -> str:
        if not k and not v:
            return f"{self.server}/{kind}/"
        if not k:
            return f"{self.server}/{kind}/{v}"
        return f"{self.server}/{kind}/{k}/{v}"

    def _request(
        self,
        method: str,
        url: str,
        expected: int,
        data: str | bytes | None = None,
    ) -> requests.Response:
        try:
            resp = self._session.request(method, url, data=data)
        except requests.RequestException as err:
            raise DiscoveryError(str(err)) from err
        if resp.status_code != expected:
            raise read_error(resp.content)
        return resp

    @staticmethod
    def _decode(resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as err:
            raise DiscoveryError(f"malformed response: {err}") from err

    def _endpoints(self, resp: requests.Response) -> list[Endpoint]:
        return [Endpoint.from_dict(item) for item in self._decode(resp) or []]

    def _networks(self, resp: requests.Response) -> list[Network]:
        return [Network.from_dict(item) for item in self._decode(resp) or []]

    @staticmethod
    def _body(nodes: tuple[Node, ...]) -> str:
        return json.dumps([n.to_dict() for n in nodes], indent=4)

    def get_endpoint(self, k: str, v: str) -> Endpoint:
        """Return the single endpoint matching the search."""
        found = self.get_endpoints(k, v)
        if not found:
            raise DiscoveryError("endpoint not found")
        if len(found) > 1:
            raise DiscoveryError("more than one endpoint found")
        return found[0]

    def get_endpoints(self, k: str = "", v: str = "") -> list[Endpoint]:
        """Endpoints matching the search (all if both are empty), sorted by ID.

        With only ``v`` set the search is freeform; with ``k`` set, ``v`` is
        searched for on that key.
        """
        resp = self._request("GET", self._url("endpoints", k, v), 200)
        return sorted(self._endpoints(resp), key=lambda e: e.nid)

    def get_config(self) -> dict[str, str]:
        resp = self._request("GET", f"{self.server}/config/", 200)
        return dict(self._decode(resp) or {})

    def set_config(self, k: str, v: str) -> None:
        self._request("POST", f"{self.server}/config/{k}", 201, data=v.encode("utf-8"))

    def delete_config(self, k: str) -> None:
        self._request("DELETE", f"{self.server}/config/{k}", 200)

    def get_networks(self, k: str = "", v: str = "") -> list[Network]:
        """Networks matching the search (all if both are empty), sorted by ID."""
        resp = self._request("GET", self._url("networks", k, v), 200)
        return sorted(self._networks(resp), key=lambda n: n.nid)

    def insert_endpoints(self, *args: Endpoint) -> list[Endpoint]:
        resp = self._request("POST", f"{self.server}/endpoints/", 201, data=self._body(args))
        return self._endpoints(resp)

    def update_endpoints(self, *args: Endpoint) -> list[Endpoint]:
        resp = self._request("PUT", f"{self.server}/endpoints/", 201, data=self._body(args))
        return self._endpoints(resp)

    def insert_networks(self, *args: Network) -> list[Network]:
        resp = self._request("POST", f"{self.server}/networks/", 201, data=self._body(args))
        return self._networks(resp)

    def update_networks(self, *args: Network) -> list[Network]:
        resp = self._request("PUT", f"{self.server}/networks/", 201, data=self._body(args))
        return self._networks(resp)

    def _delete_url(self, kind: str, k: str, v: str) -> str:
        if not k:
            return f"{self.server}/{kind}/{v}"
        return f"{self.server}/{kind}/{k}/{v}"

    def delete_endpoints(self, k: str, v: str) -> list[Endpoint]:
        resp = self._request("DELETE", self._delete_url("endpoints", k, v), 200)
        return self._endpoints(resp)

    def delete_networks(self, k: str, v: str) -> list[Network]:
        resp = self._request("DELETE", self._delete_url("networks", k, v), 200)
        return self._networks(resp)

    def neighbors(self, k: str = "", v: str = "") -> list[Node]:
        resp = self._request("GET", self._url("neighbors", k, v), 200)
        return [node_from_dict(item) for item in self._decode(resp) or []]

    def save(self, path: str) -> None:
        url = f"{self.server}/daemon/save/{path}"
        log.debug("using url: %s", url)
        self._request("GET", url, 200)

    def load(self, path: str) -> None:
        url = f"{self.server}/daemon/load/{path}"
        log.debug("using url: %s", url)
        self._request("GET", url, 200)

    def _endpoint(self, url: str) -> Endpoint:
        resp = self._request("POST", url, 200)
        return Endpoint.from_dict(self._decode(resp) or {})

    def connect(self, nnid: int, enid: int, eidx: int = EDGE_NONE) -> Endpoint:
        """Connect endpoint ``enid`` to network ``nnid``, on edge ``eidx`` if given."""
        if eidx == EDGE_NONE:
            url = f"{self.server}/connect/{nnid}/{enid}"
        else:
            url = f"{self.server}/connect/{nnid}/{enid}/{eidx}"
        return self._endpoint(url)

    def disconnect(self, nnid: int, enid: int) -> Endpoint:
        return self._endpoint(f"{self.server}/disconnect/{nnid}/{enid}")