import copy
import json

import pytest
import responses

from netdisco import minilog
from netdisco.discovery import DiscoveryError
from netdisco.minigraph import UNCONNECTED, Edge, Endpoint, Network
from netdisco.trim import Trimmer, main


class FakeClient:
    def __init__(self, endpoints, networks):
        self.endpoints = {e.nid: e for e in endpoints}
        self.networks = {n.nid: n for n in networks}
        self.deleted = []

    def get_endpoints(self, k="", v=""):
        found = [e for e in self.endpoints.values() if (not k and not v) or e.match(k, v)]
        return [copy.deepcopy(e) for e in sorted(found, key=lambda e: e.nid)]

    def get_networks(self, k="", v=""):
        return [copy.deepcopy(n) for n in sorted(self.networks.values(), key=lambda n: n.nid)]

    def delete_endpoints(self, k, v):
        gone = [e for e in self.endpoints.values() if e.match(k, v)]
        for e in gone:
            del self.endpoints[e.nid]
            self.deleted.append(e.nid)
        return gone

    def update_endpoints(self, *endpoints):
        for e in endpoints:
            self.endpoints[e.nid] = copy.deepcopy(e)
        return list(endpoints)

    def trimmed(self):
        return {nid for nid, e in self.endpoints.items() if e.data.get("trimmed") == "true"}


def _ep(nid, nets, **data):
    return Endpoint(nid=nid, edges=[Edge(n=n) for n in nets], data=dict(data))


@pytest.fixture
def client():
    endpoints = [
        _ep(1, [10], type="host"),
        _ep(2, [10, 11], type="router"),
        _ep(3, [11], type="host"),
        _ep(4, [12], type="host"),
        _ep(5, [], type="host"),
        _ep(6, [UNCONNECTED], type="host"),
    ]
    networks = [
        Network(nid=10, endpoints=[1, 2]),
        Network(nid=11, endpoints=[2, 3]),
        Network(nid=12, endpoints=[4]),
    ]
    return FakeClient(endpoints, networks)


def test_connected_walks_networks(client):
    trimmer = Trimmer(client)
    assert trimmer.connected(1) == {1, 2, 3}
    assert trimmer.connected(4) == {4}
    assert trimmer.connected(5) == set()


def test_get_endpoints_keyed_by_id(client):
    trimmer = Trimmer(client)
    assert sorted(trimmer.get_endpoints()) == [1, 2, 3, 4, 5, 6]
    assert list(trimmer.get_endpoints("router")) == [2]
    assert list(trimmer.get_endpoints("nid", "3")) == [3]


def test_get_endpoints_too_many_args(client):
    with pytest.raises(TypeError):
        Trimmer(client).get_endpoints("a", "b", "c")


def test_get_networks_keyed_by_id(client):
    assert sorted(Trimmer(client).get_networks()) == [10, 11, 12]


def test_trim_node_marks(client):
    Trimmer(client).trim_node(3)
    assert client.trimmed() == {3}


def test_trim_node_missing(client):
    with pytest.raises(DiscoveryError, match="expected 1 endpoint"):
        Trimmer(client).trim_node(99)


def test_trim_disconnected(client):
    Trimmer(client).trim_disconnected()
    assert client.trimmed() == {5, 6}


def test_trim_unconnected(client):
    Trimmer(client).trim_unconnected(1)
    assert client.trimmed() == {4, 5, 6}


def test_trim_unconnected_delete(client):
    Trimmer(client, delete=True).trim_unconnected(1)
    assert client.deleted == [4, 5, 6]
    assert sorted(client.endpoints) == [1, 2, 3]


def test_trim_size_unconnected_enough(client):
    Trimmer(client).trim_size(1, 3)
    assert client.trimmed() == {4, 5, 6}


def test_trim_size_by_edge_count(client):
    Trimmer(client).trim_size(1, 2)
    assert client.trimmed() == {1, 4, 5, 6}
    remaining = set(client.endpoints) - client.trimmed()
    assert len(remaining) == 2


def test_trim_size_larger_than_graph(client):
    Trimmer(client).trim_size(1, 10)
    assert client.trimmed() == {4, 5, 6}


def test_trim_query(client):
    Trimmer(client).trim_query("type=router")
    assert client.trimmed() == {2}


def test_trim_trimmed_deletes_marked(client):
    client.endpoints[2].data["trimmed"] = "true"
    client.endpoints[3].data["trimmed"] = "true"
    Trimmer(client, delete=True).trim_trimmed()
    assert client.deleted == [2, 3]


def test_clear_trim(client):
    trimmer = Trimmer(client)
    trimmer.trim_disconnected()
    assert client.trimmed() == {5, 6}
    trimmer.clear_trim()
    assert client.trimmed() == set()
    assert "trimmed" not in client.endpoints[5].data


@pytest.mark.parametrize(
    "argv", [["--size", "3"], ["--unconnected"], ["--trimmed"]]
)
def test_main_invalid_combinations(argv):
    try:
        with pytest.raises(SystemExit) as exc:
            main(argv)
    finally:
        minilog.del_logger("stderr")
    assert exc.value.code == 1


def test_main_clear():
    base = "http://localhost:8000"
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            f"{base}/endpoints/",
            json=[{"NID": 5, "Edges": [], "D": {"trimmed": "true", "name": "h"}}],
        )
        rsps.add(responses.PUT, f"{base}/endpoints/", json=[], status=201)
        try:
            code = main(["--server", "localhost:8000", "--clear"])
        finally:
            minilog.del_logger("stderr")
        body = json.loads(rsps.calls[1].request.body)
    assert code == 0
    assert body == [{"NID": 5, "Edges": [], "D": {"name": "h"}}]